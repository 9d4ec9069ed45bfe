"""Glob patterns from `## Paths` sections.

Patterns are compiled to regular expressions on demand:

* `*` matches any run of characters, `/` included
* `?` matches any one character, `/` included
* `**` must be a whole path component and matches zero or more components
* `[abc]`, `[a-z]`, `[!abc]` are character classes; `^` and `]` are
  literals except where `]` closes a class

`matches_pattern` tries the glob first and, for patterns ending in `/` or
`*`, falls back to a plain string-prefix test so that `src/commands/`
covers everything below that directory.
"""

from __future__ import annotations

from functools import lru_cache
import re

from pave.parser import CodeBlockTracker, Section

PATHS_SECTION = "Paths"


class GlobError(ValueError):
    pass


def _class_specifiers(members: list[str]) -> list[str]:
    specifiers: list[str] = []
    pos = 0
    while pos < len(members):
        if pos + 2 < len(members) and members[pos + 1] == "-":
            start, end = members[pos], members[pos + 2]
            # a reversed range is valid and matches nothing
            if start <= end:
                specifiers.append(f"{re.escape(start)}-{re.escape(end)}")
            pos += 3
        else:
            specifiers.append(re.escape(members[pos]))
            pos += 1
    return specifiers


def _translate_class(pattern: str, start: int) -> tuple[str, int]:
    idx = start + 1
    negate = False
    if idx < len(pattern) and pattern[idx] == "!":
        negate = True
        idx += 1
    members: list[str] = []
    if idx < len(pattern) and pattern[idx] == "]":
        members.append("]")
        idx += 1
    while idx < len(pattern) and pattern[idx] != "]":
        members.append(pattern[idx])
        idx += 1
    if idx >= len(pattern) or not members:
        raise GlobError(f"unclosed character class at position {start}")
    body = "".join(_class_specifiers(members))
    if not body:
        return ("." if negate else "(?!)"), idx + 1
    if negate:
        return f"[^{body}]", idx + 1
    return f"[{body}]", idx + 1


def _translate(pattern: str) -> str:
    parts: list[str] = []
    idx = 0
    size = len(pattern)
    while idx < size:
        ch = pattern[idx]
        if ch == "*":
            if pattern.startswith("**", idx):
                end = idx + 2
                whole_component = (idx == 0 or pattern[idx - 1] == "/") and (
                    end == size or pattern[end] == "/"
                )
                if not whole_component:
                    raise GlobError("recursive wildcards must form a single path component")
                if end == size:
                    parts.append(".*")
                    idx = end
                else:
                    parts.append("(?:.*/)?")
                    idx = end + 1
                continue
            parts.append(".*")
            idx += 1
        elif ch == "?":
            parts.append(".")
            idx += 1
        elif ch == "[":
            translated, idx = _translate_class(pattern, idx)
            parts.append(translated)
        else:
            parts.append(re.escape(ch))
            idx += 1
    return "".join(parts)


@lru_cache(maxsize=1024)
def compile_glob(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(_translate(pattern), re.DOTALL)
    except re.error as exc:
        raise GlobError(str(exc)) from exc


def glob_error(pattern: str) -> str | None:
    """Return why `pattern` is not a valid glob, or None when it is."""
    try:
        compile_glob(pattern)
    except GlobError as exc:
        return str(exc)
    return None


def is_absolute_pattern(pattern: str) -> bool:
    return pattern.startswith(("/", "\\", "~")) or bool(re.match(r"^[A-Za-z]:[\\/]", pattern))


def matches_pattern(path: str, pattern: str) -> bool:
    try:
        if compile_glob(pattern).fullmatch(path):
            return True
    except GlobError:
        pass
    if pattern.endswith(("/", "*")):
        prefix = pattern.rstrip("*").rstrip("/")
        if path.startswith(prefix):
            return True
    return False


def matches_any_pattern(path: str, patterns: list[str] | tuple[str, ...]) -> bool:
    return any(matches_pattern(path, pattern) for pattern in patterns)


def extract_patterns(section: Section | None) -> list[tuple[int, str]]:
    """Bullet items of a Paths section as (line, pattern) pairs.

    Lines inside fenced blocks are ignored; surrounding backticks are
    stripped from each item.
    """
    if section is None:
        return []
    patterns: list[tuple[int, str]] = []
    tracker = CodeBlockTracker()
    for offset, line in enumerate(section.content.split("\n")):
        if tracker.process(line) or tracker.in_block:
            continue
        trimmed = line.strip()
        if not trimmed.startswith(("- ", "* ")):
            continue
        item = trimmed[2:].strip().strip("`").strip()
        if item:
            patterns.append((section.start_line + 1 + offset, item))
    return patterns
