"""Glob pattern translation shared by the glob, grep and ls tools."""

import re
from functools import lru_cache


def _split_alternatives(body: str) -> list[str]:
    """Split a brace body on top-level commas."""
    parts, depth, current = [], 0, []
    for char in body:
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current.append(char)
    parts.append("".join(current))
    return parts


def _translate(pattern: str) -> str:
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        char = pattern[i]
        if char == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    # "**/" also matches zero directories
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        elif char == "{":
            depth, end = 0, -1
            for j in range(i, n):
                if pattern[j] == "{":
                    depth += 1
                elif pattern[j] == "}":
                    depth -= 1
                    if depth == 0:
                        end = j
                        break
            if end == -1:
                out.append(re.escape(char))
            else:
                alternatives = _split_alternatives(pattern[i + 1:end])
                out.append("(?:" + "|".join(_translate(a) for a in alternatives) + ")")
                i = end
        else:
            out.append(re.escape(char))
        i += 1
    return "".join(out)


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str, case_sensitive: bool = True) -> re.Pattern[str]:
    """
    Compile a glob into an anchored regular expression over POSIX paths.

    ``*`` and ``?`` stay within one path segment, ``**`` crosses segments,
    ``{a,b}`` is alternation and ``[...]`` is a character class.

    >>> bool(glob_to_regex("**/*.ts").match("src/index.ts"))
    True
    >>> bool(glob_to_regex("**/*.ts").match("src/Button.tsx"))
    False
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(f"^{_translate(pattern)}$", flags)


def matches_glob(relative_path: str, pattern: str, case_sensitive: bool = True) -> bool:
    """
    Match a relative POSIX path against a glob.

    Patterns without a ``/`` match the file name at any depth, the way
    include filters such as ``*.py`` are usually meant.
    """
    regex = glob_to_regex(pattern, case_sensitive)
    if regex.match(relative_path):
        return True
    if "/" not in pattern:
        return bool(regex.match(relative_path.rsplit("/", 1)[-1]))
    return False
