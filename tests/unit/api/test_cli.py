"""
Unit Tests for the agentloop CLI

Commands are invoked through typer's CliRunner. The run command is tested
with a patched factory so no provider is contacted.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from agentloop import __version__
from agentloop.api.cli.commands.run import MessagePrinter
from agentloop.api.cli.main import app
from agentloop.core.domain.messages import (
    ErrorMessage,
    TextMessage,
    ToolCallMessage,
    ToolCallStatus,
    ToolResultMessage,
    UsageStats,
)
from agentloop.core.domain.models import ExecutionResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("OPENAI_API_KEY", "AGENTLOOP_API_KEY", "AGENTLOOP_PROVIDER", "AGENTLOOP_MODEL", "AGENTLOOP_TOOLS"):
        monkeypatch.delenv(var, raising=False)


class TestInfoCommands:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_providers(self):
        result = runner.invoke(app, ["providers"])
        assert result.exit_code == 0
        for name in ("openai", "anthropic", "google", "openrouter"):
            assert name in result.stdout


class TestToolsCommands:
    """Tests for `agentloop tools`."""

    def test_list(self):
        result = runner.invoke(app, ["tools", "list"])
        assert result.exit_code == 0
        for name in ("read", "multiedit", "grep", "bash"):
            assert name in result.stdout

    def test_list_with_config_subset(self, tmp_path):
        config = tmp_path / "agent.yaml"
        config.write_text("tools: [read]\n")

        result = runner.invoke(app, ["tools", "list", "--config", str(config)])

        assert result.exit_code == 0
        assert "read" in result.stdout
        assert "multiedit" not in result.stdout

    def test_inspect(self):
        result = runner.invoke(app, ["tools", "inspect", "read"])
        assert result.exit_code == 0
        assert "filePath" in result.stdout

    def test_inspect_json_shows_nested_schema(self):
        result = runner.invoke(app, ["tools", "inspect", "multiedit", "--json"])
        assert result.exit_code == 0
        assert '"old_string"' in result.stdout

    def test_inspect_unknown(self):
        result = runner.invoke(app, ["tools", "inspect", "teleport"])
        assert result.exit_code == 1
        assert "Tool 'teleport' not found" in result.stdout


class TestRunCommand:
    """Tests for `agentloop run`."""

    def test_missing_credential_exits_with_error(self, tmp_path):
        result = runner.invoke(app, ["run", "hello", "--workdir", str(tmp_path)])

        assert result.exit_code == 1
        assert "API key is required for openai provider" in result.stdout

    def test_missing_workdir(self, tmp_path):
        result = runner.invoke(app, ["run", "hello", "--workdir", str(tmp_path / "nope")])
        assert result.exit_code == 2

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["run", "hello", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 2
        assert "Config file not found" in result.stdout

    def test_round_budget_out_of_range(self, tmp_path):
        result = runner.invoke(app, ["run", "hello", "--max-rounds", "11", "--workdir", str(tmp_path)])
        assert result.exit_code == 2

    def test_successful_run(self, tmp_path):
        executor = MagicMock()
        executor.execute = AsyncMock(
            return_value=ExecutionResult(session_id="s", success=True, usage=UsageStats(3, 4, 7))
        )
        with patch("agentloop.api.cli.commands.run.AgentFactory") as factory:
            factory.return_value.create_executor.return_value = executor
            result = runner.invoke(
                app, ["run", "list files", "--workdir", str(tmp_path), "--provider", "anthropic", "--max-rounds", "3"]
            )

        assert result.exit_code == 0
        assert "Done" in result.stdout
        settings = factory.call_args.args[0]
        assert settings.provider == "anthropic"
        assert settings.max_rounds == 3
        assert executor.execute.call_args.args[0] == "list files"

    def test_failed_run_exits_nonzero(self, tmp_path):
        executor = MagicMock()
        executor.execute = AsyncMock(
            return_value=ExecutionResult(session_id="s", success=False, error="Exceeded maximum rounds (5)")
        )
        with patch("agentloop.api.cli.commands.run.AgentFactory") as factory:
            factory.return_value.create_executor.return_value = executor
            result = runner.invoke(app, ["run", "loop", "--workdir", str(tmp_path)])

        assert result.exit_code == 1
        assert "Exceeded maximum rounds (5)" in result.stdout


class TestMessagePrinter:
    """Tests for console rendering of canonical messages."""

    def render(self, *messages, debug=False):
        console = Console(record=True, width=200)
        printer = MessagePrinter(console, debug=debug)
        for message in messages:
            printer(message)
        printer.finish()
        return console.export_text()

    def test_text_is_streamed_inline(self):
        out = self.render(TextMessage(session_id="s", text="Hel"), TextMessage(session_id="s", text="lo"))
        assert out == "Hello\n"

    def test_only_complete_calls_printed(self):
        out = self.render(
            ToolCallMessage(session_id="s", tool_call_id="c", tool_name="grep", status=ToolCallStatus.STARTED),
            ToolCallMessage(session_id="s", tool_call_id="c", tool_name="grep", arguments={"pattern": "TODO"}),
        )
        assert out.count("> grep") == 1
        assert '"pattern": "TODO"' in out

    def test_markup_in_errors_is_escaped(self):
        out = self.render(
            ToolResultMessage(session_id="s", tool_call_id="c", tool_name="read", payload={"error": "bad [red]x[/red]"}, is_error=True),
            ErrorMessage(session_id="s", message="[bold]oops[/bold]"),
        )
        assert "bad [red]x[/red]" in out
        assert "[bold]oops[/bold]" in out
