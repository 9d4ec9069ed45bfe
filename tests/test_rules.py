from __future__ import annotations

from pathlib import Path

from pave.parser import parse
from pave.rules import (
    MaxLines,
    RequireCodeBlock,
    RequireCommand,
    RequireOneOf,
    RequireSection,
    RequireValidAdrStatus,
    Severity,
    ValidatePaths,
)
from tests.project_helpers import PASSING_DOC, dedent


def _doc(text: str, name: str = "doc.md"):
    return parse(Path(name), dedent(text))


def test_require_section() -> None:
    rule = RequireSection("Verification")
    assert rule.name() == "require-section-verification"
    assert rule.apply(_doc(PASSING_DOC)) == []
    [diagnostic] = rule.apply(_doc("# T\n## Purpose\n"))
    assert diagnostic.severity is Severity.ERROR
    assert diagnostic.message == "Missing required section 'Verification'"
    assert "Verification" in diagnostic.hint
    assert diagnostic.file == "doc.md"


def test_require_section_generic_hint() -> None:
    [diagnostic] = RequireSection("Rollback").apply(_doc("# T\n"))
    assert diagnostic.hint == "Add a '## Rollback' section"


def test_require_one_of() -> None:
    rule = RequireOneOf(("Interface", "Configuration"))
    assert rule.apply(_doc("## Configuration\n")) == []
    [diagnostic] = rule.apply(_doc("## Purpose\n"))
    assert "'Interface', 'Configuration'" in diagnostic.message


def test_max_lines_boundary() -> None:
    rule = MaxLines(5)
    assert rule.name() == "max-lines-5"
    assert rule.apply(_doc("\n".join(["x"] * 5))) == []
    [diagnostic] = rule.apply(_doc("\n".join(["x"] * 6)))
    assert diagnostic.severity is Severity.WARNING
    assert diagnostic.message == "Document exceeds 5 line limit (6 lines)"
    assert diagnostic.line == 6


def test_require_code_block() -> None:
    rule = RequireCodeBlock("Examples")
    assert rule.apply(_doc(PASSING_DOC)) == []
    assert rule.apply(_doc("## Purpose\n")) == []
    [diagnostic] = rule.apply(_doc("## Examples\nJust prose.\n"))
    assert diagnostic.line == 1
    assert diagnostic.hint


def test_require_command_accepts_prompts_and_executable_blocks() -> None:
    rule = RequireCommand("Verification")
    assert rule.apply(_doc("## Verification\nRun:\n\n    $ make test\n")) == []
    assert rule.apply(_doc("## Verification\n```bash\npytest\n```\n")) == []
    [diagnostic] = rule.apply(_doc("## Verification\nLook at it carefully.\n"))
    assert diagnostic.rule_name == "require-command-in-verification"


def test_require_valid_adr_status() -> None:
    rule = RequireValidAdrStatus()
    assert rule.apply(_doc("## Status\nAccepted on 2024-01-01\n")) == []
    assert rule.apply(_doc("## Context\n")) == []
    [diagnostic] = rule.apply(_doc("## Status\nmaybe\n"))
    assert "proposed" in diagnostic.message


def test_validate_paths_reports_absolute_and_invalid(tmp_path: Path) -> None:
    document = _doc(
        """
        # Component
        ## Paths
        - /etc/foo
        - src/[bad
        - src/**
        """
    )
    first, second = ValidatePaths(tmp_path).apply(document)
    assert "absolute" in first.message
    assert first.line == 3
    assert first.hint == "Remove the leading '/' and use a relative path"
    assert "invalid glob pattern" in second.message
    assert second.hint
    assert first.severity is second.severity is Severity.ERROR


def test_validate_paths_warns_on_empty_matches(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.rs").write_text("fn main() {}\n")
    document = _doc(
        """
        ## Paths
        - src/**
        - lib/**
        """
    )
    assert ValidatePaths(tmp_path).apply(document) == []
    [diagnostic] = ValidatePaths(tmp_path, warn_empty=True).apply(document)
    assert diagnostic.severity is Severity.WARNING
    assert diagnostic.message == "path pattern 'lib/**' matches no files"


def test_rules_are_pure() -> None:
    document = _doc("# T\n## Purpose\n")
    rule = RequireSection("Examples")
    assert rule.apply(document) == rule.apply(document)
