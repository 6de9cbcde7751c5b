"""
Unit Tests for the read and write tools
"""

import pytest

from agentloop.infrastructure.tools.native.file_tools import (
    DEFAULT_MAX_LINES,
    MAX_LINE_LENGTH,
    ReadTool,
    WriteTool,
    detect_file_type,
    is_binary_content,
)


@pytest.fixture
def read_tool():
    return ReadTool()


@pytest.fixture
def write_tool():
    return WriteTool()


class TestWriteTool:
    """Tests for WriteTool."""

    @pytest.mark.asyncio
    async def test_write_then_read_round_trip(self, write_tool, read_tool, context, workspace):
        written = await write_tool.execute({"file_path": "a.txt", "content": "hello\nworld"}, context)

        assert written.success is True
        assert written.result["is_new_file"] is True
        assert written.result["lines_written"] == 2
        assert written.result["bytes_written"] == 11
        assert written.metadata.files_affected == ["a.txt"]

        read = await read_tool.execute({"filePath": "a.txt"}, context)
        assert read.success is True
        assert read.result["content"] == "hello\nworld"
        assert read.result["is_truncated"] is False

    @pytest.mark.asyncio
    async def test_overwrite_reports_existing_file(self, write_tool, context, workspace):
        (workspace / "a.txt").write_text("old")

        result = await write_tool.execute({"file_path": "a.txt", "content": "new"}, context)

        assert result.result["is_new_file"] is False
        assert (workspace / "a.txt").read_text() == "new"

    @pytest.mark.asyncio
    async def test_creates_parent_directories(self, write_tool, context, workspace):
        result = await write_tool.execute({"file_path": "deep/er/file.py", "content": "x = 1\n"}, context)

        assert result.success is True
        assert (workspace / "deep" / "er" / "file.py").read_text() == "x = 1\n"

    @pytest.mark.asyncio
    async def test_missing_parent_without_create_dirs(self, write_tool, context, workspace):
        result = await write_tool.execute(
            {"file_path": "missing/file.py", "content": "", "create_dirs": False}, context
        )

        assert result.success is False
        assert "Parent directory does not exist" in result.error
        assert not (workspace / "missing").exists()

    @pytest.mark.asyncio
    async def test_directory_target_fails(self, write_tool, context, workspace):
        (workspace / "pkg").mkdir()
        result = await write_tool.execute({"file_path": "pkg", "content": "x"}, context)
        assert result.success is False
        assert "directory" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/tmp/evil.txt", "../evil.txt", "sub/../../evil.txt"])
    async def test_rejects_paths_outside_workspace(self, write_tool, context, workspace, path):
        result = await write_tool.execute({"file_path": path, "content": "x"}, context)

        assert result.success is False
        assert not (workspace.parent / "evil.txt").exists()


class TestReadTool:
    """Tests for ReadTool."""

    @pytest.mark.asyncio
    async def test_missing_file(self, read_tool, context):
        result = await read_tool.execute({"filePath": "nope.txt"}, context)
        assert result.success is False
        assert result.error == "File not found: nope.txt"

    @pytest.mark.asyncio
    async def test_directory_fails(self, read_tool, context, workspace):
        (workspace / "src").mkdir()
        result = await read_tool.execute({"filePath": "src"}, context)
        assert result.success is False
        assert "directory" in result.error

    @pytest.mark.asyncio
    async def test_line_range(self, read_tool, context, workspace):
        (workspace / "lines.txt").write_text("\n".join(f"line {i}" for i in range(1, 11)))

        result = await read_tool.execute({"filePath": "lines.txt", "startLine": 3, "lineCount": 2}, context)

        assert result.success is True
        assert result.result["lines_shown"] == [3, 4]
        assert result.result["line_count"] == 10
        assert result.result["is_truncated"] is True
        assert result.result["content"].startswith("[Content truncated: showing lines 3-4 of 10 total lines]")
        assert result.result["content"].endswith("line 3\nline 4")

    @pytest.mark.asyncio
    async def test_start_line_beyond_end(self, read_tool, context, workspace):
        (workspace / "short.txt").write_text("one\ntwo")
        result = await read_tool.execute({"filePath": "short.txt", "startLine": 5}, context)
        assert result.success is False
        assert "exceeds total lines" in result.error

    @pytest.mark.asyncio
    async def test_default_line_cap(self, read_tool, context, workspace):
        (workspace / "big.txt").write_text("\n".join("x" for _ in range(DEFAULT_MAX_LINES + 50)))

        result = await read_tool.execute({"filePath": "big.txt"}, context)

        assert result.result["lines_shown"] == [1, DEFAULT_MAX_LINES]
        assert result.result["is_truncated"] is True

    @pytest.mark.asyncio
    async def test_long_lines_are_cut(self, read_tool, context, workspace):
        (workspace / "wide.txt").write_text("y" * (MAX_LINE_LENGTH + 10))

        result = await read_tool.execute({"filePath": "wide.txt"}, context)

        assert result.result["is_truncated"] is True
        assert "... [line truncated]" in result.result["content"]

    @pytest.mark.asyncio
    async def test_binary_file_is_described(self, read_tool, context, workspace):
        (workspace / "blob.bin").write_bytes(b"\x00\x01\x02binary")

        result = await read_tool.execute({"filePath": "blob.bin"}, context)

        assert result.success is True
        assert result.result["file_type"] == "binary"
        assert result.result["content"].startswith("[BINARY FILE: blob.bin]")

    @pytest.mark.asyncio
    async def test_image_is_described(self, read_tool, context, workspace):
        (workspace / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16)

        result = await read_tool.execute({"filePath": "logo.png"}, context)

        assert result.result["file_type"] == "image"
        assert result.result["mime_type"] == "image/png"
        assert "[IMAGE FILE: logo.png]" in result.result["content"]

    @pytest.mark.asyncio
    async def test_crlf_preserved(self, read_tool, context, workspace):
        (workspace / "win.txt").write_bytes(b"a\r\nb")

        result = await read_tool.execute({"filePath": "win.txt"}, context)

        assert result.result["content"] == "a\r\nb"

    @pytest.mark.asyncio
    async def test_absolute_path_rejected_in_validation(self, read_tool, context):
        result = await read_tool.execute({"filePath": "/etc/hosts"}, context)
        assert result.success is False
        assert result.error.startswith("Validation failed")

    def test_validate_rejects_non_positive_range(self, read_tool):
        validation = read_tool.validate({"filePath": "a.txt", "startLine": 0, "lineCount": 0})
        assert not validation.is_valid
        assert "startLine must be >= 1" in validation.errors
        assert "lineCount must be >= 1" in validation.errors


class TestFileTypeDetection:
    def test_is_binary_content(self):
        assert is_binary_content(b"abc\x00def")
        assert not is_binary_content(b"plain text\n")
        assert not is_binary_content(b"")

    def test_detect_file_type(self, tmp_path):
        assert detect_file_type(tmp_path / "a.py", b"print(1)")[0] == "text"
        assert detect_file_type(tmp_path / "a.pdf", b"%PDF")[0] == "pdf"
        assert detect_file_type(tmp_path / "a.jpg", b"")[0] == "image"
        assert detect_file_type(tmp_path / "a.zip", b"PK")[0] == "binary"
