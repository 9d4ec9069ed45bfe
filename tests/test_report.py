from __future__ import annotations

import json

from pave.report import OutputFormat, annotation, manual_command, plural, render
from pave.schema import (
    CheckResults,
    CommandResultDTO,
    CoverageResults,
    DiagnosticDTO,
    DocumentResultDTO,
    EnvVarDTO,
    LintIssueDTO,
    LintResults,
    OutputMismatchDTO,
    UncoveredFileDTO,
    VerifyResults,
)


def _diagnostic(**overrides) -> DiagnosticDTO:
    values = {
        "file": "docs/auth.md",
        "line": None,
        "severity": "error",
        "rule": "require-section-verification",
        "message": "Missing required section 'Verification'",
        "hint": "Add a '## Verification' section with test commands",
    }
    values.update(overrides)
    return DiagnosticDTO(**values)


def test_plural() -> None:
    assert plural(1, "document") == "1 document"
    assert plural(0, "document") == "0 documents"


def test_check_text_passing_summary() -> None:
    text = render(CheckResults(files_checked=1), OutputFormat.TEXT)
    assert text == "Checked 1 document: all checks passed"


def test_check_text_lists_issues_with_hints() -> None:
    results = CheckResults(
        files_checked=2,
        errors=[_diagnostic()],
        warnings=[_diagnostic(severity="warning", line=301, message="too long", hint=None)],
    )
    lines = render(results, OutputFormat.TEXT).splitlines()
    assert lines[0] == "docs/auth.md: error: Missing required section 'Verification'"
    assert lines[1] == "  hint: Add a '## Verification' section with test commands"
    assert "docs/auth.md:301: warning: too long" in lines
    assert lines[-1] == "Checked 2 documents: 1 error, 1 warning"


def test_check_text_gradual_notes() -> None:
    results = CheckResults(
        files_checked=1,
        warnings=[_diagnostic(severity="warning", converted_from_error=True)],
        would_fail_count=1,
        gradual_mode=True,
    )
    text = render(results, OutputFormat.TEXT)
    assert "  note: This would be an error outside gradual mode" in text
    assert text.endswith("Gradual mode: 1 issue would fail in strict mode")


def test_check_github_annotations() -> None:
    results = CheckResults(
        files_checked=1,
        errors=[_diagnostic(line=3)],
        warnings=[_diagnostic(severity="warning", message="a\nb")],
        would_fail_count=2,
        gradual_mode=True,
    )
    assert render(results, OutputFormat.GITHUB).splitlines() == [
        "::error file=docs/auth.md,line=3::Missing required section 'Verification'",
        "::warning file=docs/auth.md::a%0Ab",
        "::notice::Gradual mode active: 2 issues would fail in strict mode",
    ]


def test_annotation_without_location() -> None:
    assert annotation("error", "boom") == "::error::boom"


def test_json_is_sorted_and_lowercase() -> None:
    payload = json.loads(render(CheckResults(files_checked=1, errors=[_diagnostic()]), OutputFormat.JSON))
    assert payload["files_checked"] == 1
    assert payload["errors"][0]["severity"] == "error"
    text = render(CheckResults(files_checked=0), OutputFormat.JSON)
    keys = [line.strip().split(":")[0] for line in text.splitlines() if line.startswith('  "')]
    assert keys == sorted(keys)


def _verify_results() -> VerifyResults:
    return VerifyResults(
        documents_verified=1,
        commands_executed=2,
        commands_passed=0,
        commands_warned=1,
        commands_failed=1,
        commands_skipped=1,
        documents=[
            DocumentResultDTO(
                file="docs/auth.md",
                section_line=7,
                status="fail",
                commands=[
                    CommandResultDTO(
                        command="echo actual",
                        status="warn",
                        exit_code=0,
                        duration_ms=12,
                        stdout="actual\n",
                        output_mismatch=OutputMismatchDTO(
                            expected="expected", strategy="contains", actual="actual\n"
                        ),
                    ),
                    CommandResultDTO(
                        command="make test",
                        status="fail",
                        exit_code=2,
                        duration_ms=1500,
                        stderr="boom\n",
                        working_dir="api",
                        env_vars=[EnvVarDTO(key="MODE", value="ci")],
                    ),
                    CommandResultDTO(command="make lint", status="skipped"),
                ],
            )
        ],
    )


def test_manual_command() -> None:
    command = _verify_results().documents[0].commands[1]
    assert manual_command(command) == "MODE=ci cd api && make test"


def test_verify_text() -> None:
    text = render(_verify_results(), OutputFormat.TEXT)
    assert "docs/auth.md (Verification at line 7)" in text
    assert "  [WARN] (0.01s) echo actual" in text
    assert "    output mismatch (contains):" in text
    assert "  [FAIL] (1.50s) make test" in text
    assert "    exit code: 2 (expected 0)" in text
    assert "    stderr: boom" in text
    assert "    Try running manually: MODE=ci cd api && make test" in text
    assert "  [SKIP] make lint" in text
    assert text.endswith("Verified 1 document: 0 passed, 1 warned, 1 failed, 1 skipped")


def test_verify_github() -> None:
    assert render(_verify_results(), OutputFormat.GITHUB).splitlines() == [
        "::warning file=docs/auth.md,line=7::output mismatch: echo actual",
        "::error file=docs/auth.md,line=7::verification fail: make test",
    ]


def test_coverage_text() -> None:
    results = CoverageResults(
        covered_files=1,
        uncovered_files=1,
        total_files=2,
        coverage_percentage=50.0,
        uncovered=[UncoveredFileDTO(path="src/new.rs", suggested_doc="docs/components/src.md")],
        threshold=80.0,
        threshold_met=False,
    )
    text = render(results, OutputFormat.TEXT)
    assert text.startswith("Code Coverage Report")
    assert "Coverage:  50.0%" in text
    assert "  src/new.rs -> docs/components/src.md" in text
    assert text.endswith("Threshold: 80.0% (not met)")


def test_lint_text_groups_by_file() -> None:
    results = LintResults(
        files_linted=2,
        issues=[
            LintIssueDTO(file="docs/a.md", line=1, rule="trailing-whitespace", message="trailing whitespace", fixable=True),
            LintIssueDTO(file="docs/a.md", line=4, rule="dead-anchors", message="dead anchor '#x' (section not found)"),
            LintIssueDTO(file="docs/b.md", line=2, rule="missing-alt-text", message="missing alt text for image"),
        ],
    )
    lines = render(results, OutputFormat.TEXT).splitlines()
    assert lines[:3] == [
        "docs/a.md",
        "  1: [trailing-whitespace] trailing whitespace",
        "  4: [dead-anchors] dead anchor '#x' (section not found)",
    ]
    assert "docs/b.md" in lines
    assert "Linted 2 files: 3 issues" in lines
    assert lines[-1] == "Run `pave lint --fix` to fix 1 issue automatically"
