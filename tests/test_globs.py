from __future__ import annotations

from pathlib import Path

import pytest

from pave.globs import (
    GlobError,
    compile_glob,
    extract_patterns,
    glob_error,
    is_absolute_pattern,
    matches_any_pattern,
    matches_pattern,
)
from pave.parser import parse
from tests.project_helpers import dedent


@pytest.mark.parametrize(
    ("path", "pattern", "expected"),
    [
        ("src/a.rs", "src/*.rs", True),
        ("src/sub/a.rs", "src/*.rs", True),
        ("lib/sub/a.rs", "src/*.rs", False),
        ("src/a.rs", "src/**/*.rs", True),
        ("src/x/y/a.rs", "src/**/*.rs", True),
        ("src/x/y/a.py", "src/**/*.rs", False),
        ("src/x/y", "src/**", True),
        ("a.rs", "**/*.rs", True),
        ("src/a1.rs", "src/a?.rs", True),
        ("src/ab/c.rs", "src/a?c.rs", False),
        ("src/a/c.rs", "src/a?c.rs", True),
        ("src/b.rs", "src/[abc].rs", True),
        ("src/d.rs", "src/[!abc].rs", True),
        ("src/a.rs", "src/[^abc].rs", True),
        ("src/d.rs", "src/[^abc].rs", False),
        ("src/]x", "src/]x", True),
        ("src/m.rs", "src/[z-a].rs", False),
        ("src/a/b.rs", "src/a[!x]b.rs", True),
        ("src/m.rs", "src/[a-z].rs", True),
        ("src/a.rs", "src/", True),
        ("src/commands/run.rs", "src/commands/", True),
        ("src/commands/run.rs", "src/commands/*", True),
        ("lib/a.rs", "src/", False),
        ("src/a.rs", "src/a.rs", True),
    ],
)
def test_matches_pattern(path: str, pattern: str, expected: bool) -> None:
    assert matches_pattern(path, pattern) is expected


def test_matches_any_pattern() -> None:
    assert matches_any_pattern("docs/a.md", ["src/**", "docs/*.md"])
    assert not matches_any_pattern("docs/a.md", [])


@pytest.mark.parametrize("pattern", ["src/[bad", "src/[]", "a**b/c", "src/[!]", "**a"])
def test_invalid_globs(pattern: str) -> None:
    assert glob_error(pattern) is not None
    with pytest.raises(GlobError):
        compile_glob(pattern)


def test_invalid_glob_still_allows_prefix_match() -> None:
    assert matches_pattern("src/[bad/x", "src/[bad*")
    assert not matches_pattern("src/a.rs", "src/[bad")


@pytest.mark.parametrize("pattern", ["/etc/foo", "~/code", "\\\\server\\x", "C:\\src", "C:/src"])
def test_absolute_patterns(pattern: str) -> None:
    assert is_absolute_pattern(pattern)


def test_relative_patterns_are_not_absolute() -> None:
    assert not is_absolute_pattern("src/**")
    assert not is_absolute_pattern("./src")


def test_extract_patterns_reads_bullets() -> None:
    document = parse(
        Path("doc.md"),
        dedent(
            """
            # Auth
            ## Paths
            - `src/auth/**`
            * src/login.rs
            not a bullet
            ```
            - inside/fence
            ```
            -
            """
        ),
    )
    patterns = extract_patterns(document.get_section("Paths"))
    assert patterns == [(3, "src/auth/**"), (4, "src/login.rs")]


def test_extract_patterns_without_section() -> None:
    assert extract_patterns(None) == []
