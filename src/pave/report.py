"""Render command result records as text, JSON, or GitHub annotations.

Renderers never classify anything; they turn a finished record into the
string the CLI writes to stdout.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable
import json

from pydantic import BaseModel

from pave.schema import (
    ChangedResults,
    CheckResults,
    CommandResultDTO,
    CoverageChangedResults,
    CoverageResults,
    DiagnosticDTO,
    DoctorResults,
    LintResults,
    StatusResults,
    VerifyResults,
)

OUTPUT_TRUNCATE = 500
GRADUAL_NOTE = "  note: This would be an error outside gradual mode"

_STATUS_TAGS = {
    "pass": "PASS",
    "warn": "WARN",
    "fail": "FAIL",
    "timeout": "TIMEOUT",
    "skipped": "SKIP",
}


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"
    GITHUB = "github"


def to_json(record: BaseModel) -> str:
    return json.dumps(record.model_dump(mode="json"), indent=2, sort_keys=True)


def plural(count: int, word: str, suffix: str = "s") -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}{suffix}"


def _truncate(text: str, limit: int = OUTPUT_TRUNCATE) -> str:
    text = text.rstrip()
    if len(text) <= limit:
        return text
    return text[:limit] + f"... ({len(text) - limit} more characters)"


def _annotation_message(message: str) -> str:
    # GitHub workflow commands end at the first newline.
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def annotation(level: str, message: str, file: str | None = None, line: int | None = None) -> str:
    props = []
    if file is not None:
        props.append(f"file={file}")
    if line is not None:
        props.append(f"line={line}")
    head = f"::{level} {','.join(props)}" if props else f"::{level}"
    return f"{head}::{_annotation_message(message)}"


def _location(item: DiagnosticDTO) -> str:
    return f"{item.file}:{item.line}" if item.line is not None else item.file


# check


def render_check_text(results: CheckResults) -> str:
    lines: list[str] = []
    for item in [*results.errors, *results.warnings]:
        lines.append(f"{_location(item)}: {item.severity}: {item.message}")
        if item.hint:
            lines.append(f"  hint: {item.hint}")
        if item.converted_from_error:
            lines.append(GRADUAL_NOTE)
        lines.append("")
    documents = plural(results.files_checked, "document")
    if not results.errors and not results.warnings:
        lines.append(f"Checked {documents}: all checks passed")
    else:
        lines.append(
            f"Checked {documents}: {plural(len(results.errors), 'error')}, "
            f"{plural(len(results.warnings), 'warning')}"
        )
    if results.gradual_mode and results.would_fail_count:
        lines.append(
            f"Gradual mode: {plural(results.would_fail_count, 'issue')} would fail in strict mode"
        )
    return "\n".join(lines)


def render_check_github(results: CheckResults) -> str:
    lines = [
        annotation("error", item.message, item.file, item.line) for item in results.errors
    ]
    lines.extend(
        annotation("warning", item.message, item.file, item.line) for item in results.warnings
    )
    if results.gradual_mode and results.would_fail_count:
        lines.append(
            annotation(
                "notice",
                f"Gradual mode active: {plural(results.would_fail_count, 'issue')} "
                "would fail in strict mode",
            )
        )
    return "\n".join(lines)


# verify


def manual_command(command: CommandResultDTO) -> str:
    parts = [f"{env.key}={env.value}" for env in command.env_vars]
    if command.working_dir:
        parts.append(f"cd {command.working_dir} &&")
    parts.append(command.command)
    return " ".join(parts)


def _command_details(command: CommandResultDTO) -> list[str]:
    details: list[str] = []
    if command.status == "fail" and command.output_mismatch is None:
        if command.exit_code is None:
            details.append("    command could not be started")
        else:
            details.append(
                f"    exit code: {command.exit_code} (expected {command.expected_exit_code})"
            )
    if command.status == "timeout":
        details.append("    command timed out")
    mismatch = command.output_mismatch
    if mismatch is not None:
        details.append(f"    output mismatch ({mismatch.strategy}):")
        details.append(f"      expected: {_truncate(mismatch.expected)}")
        details.append(f"      actual:   {_truncate(mismatch.actual)}")
    if command.status in ("fail", "timeout"):
        if command.stderr:
            details.append(f"    stderr: {_truncate(command.stderr)}")
        if command.stdout and mismatch is None:
            details.append(f"    stdout: {_truncate(command.stdout)}")
        details.append(f"    Try running manually: {manual_command(command)}")
    return details


def render_verify_text(results: VerifyResults) -> str:
    lines: list[str] = []
    for document in results.documents:
        lines.append(f"{document.file} (Verification at line {document.section_line})")
        for command in document.commands:
            tag = _STATUS_TAGS.get(command.status, command.status.upper())
            if command.status == "skipped":
                lines.append(f"  [{tag}] {command.command}")
                continue
            lines.append(f"  [{tag}] ({command.duration_ms / 1000:.2f}s) {command.command}")
            lines.extend(_command_details(command))
        lines.append("")
    if not results.documents:
        lines.append("No verification commands found")
        return "\n".join(lines)
    summary = (
        f"Verified {plural(results.documents_verified, 'document')}: "
        f"{results.commands_passed} passed, {results.commands_warned} warned, "
        f"{results.commands_failed} failed"
    )
    if results.commands_skipped:
        summary += f", {results.commands_skipped} skipped"
    lines.append(summary)
    return "\n".join(lines)


def render_verify_github(results: VerifyResults) -> str:
    lines: list[str] = []
    for document in results.documents:
        for command in document.commands:
            if command.status in ("fail", "timeout"):
                lines.append(
                    annotation(
                        "error",
                        f"verification {command.status}: {command.command}",
                        document.file,
                        document.section_line,
                    )
                )
            elif command.status == "warn":
                lines.append(
                    annotation(
                        "warning",
                        f"output mismatch: {command.command}",
                        document.file,
                        document.section_line,
                    )
                )
    return "\n".join(lines)


# coverage


def render_coverage_text(results: CoverageResults) -> str:
    lines = [
        "Code Coverage Report",
        "====================",
        "",
        f"Covered:   {plural(results.covered_files, 'file')}",
        f"Uncovered: {plural(results.uncovered_files, 'file')}",
        f"Total:     {plural(results.total_files, 'file')}",
        f"Coverage:  {results.coverage_percentage:.1f}%",
    ]
    if results.by_directory:
        lines.extend(["", "By directory:"])
        width = max(len(entry.path) for entry in results.by_directory)
        for entry in results.by_directory:
            lines.append(
                f"  {entry.path.ljust(width)}  {entry.covered}/{entry.total} "
                f"({entry.percentage:.1f}%)"
            )
    if results.uncovered:
        lines.extend(["", "Uncovered files:"])
        for item in results.uncovered:
            suffix = f" -> {item.suggested_doc}" if item.suggested_doc else ""
            lines.append(f"  {item.path}{suffix}")
    if results.suggestions:
        lines.extend(["", "Suggestions:"])
        for suggestion in results.suggestions:
            lines.append(f"  {suggestion.description} ({plural(len(suggestion.files), 'file')})")
    if results.threshold is not None:
        state = "met" if results.threshold_met else "not met"
        lines.extend(["", f"Threshold: {results.threshold:.1f}% ({state})"])
    return "\n".join(lines)


def render_coverage_github(results: CoverageResults) -> str:
    lines = [
        annotation("warning", "file is not covered by any doc", item.path)
        for item in results.uncovered
    ]
    if not results.threshold_met:
        lines.append(
            annotation(
                "error",
                f"coverage {results.coverage_percentage:.1f}% is below threshold "
                f"{results.threshold:.1f}%",
            )
        )
    return "\n".join(lines)


def render_coverage_changed_text(results: CoverageChangedResults) -> str:
    lines = [
        f"New code against {results.base_ref}: {plural(results.new_files_count, 'new file')}, "
        f"{plural(results.new_code_files_count, 'code file')}",
        f"Covered: {results.covered_count}, Uncovered: {results.uncovered_count}",
    ]
    if results.uncovered:
        lines.extend(["", "Uncovered new files:"])
        for item in results.uncovered:
            suffix = f" (create {item.suggested_doc})" if item.suggested_doc else ""
            lines.append(f"  {item.path}{suffix}")
    else:
        lines.extend(["", "All new code is documented."])
    return "\n".join(lines)


def render_coverage_changed_github(results: CoverageChangedResults) -> str:
    return "\n".join(
        annotation(
            "error",
            "new code file has no documentation"
            + (f"; create {item.suggested_doc}" if item.suggested_doc else ""),
            item.path,
        )
        for item in results.uncovered
    )


# changed


def render_changed_text(results: ChangedResults) -> str:
    lines = [f"Changes against {results.base_ref}: {plural(results.changed_files_count, 'file')}"]
    if not results.impacted_docs:
        lines.append("No documentation is impacted.")
        return "\n".join(lines)
    lines.extend(["", "Impacted docs:"])
    for doc in results.impacted_docs:
        title = f" ({doc.title})" if doc.title else ""
        state = "updated" if doc.was_updated else "NOT UPDATED"
        lines.append(f"  {doc.doc_path}{title} [{state}]")
        lines.extend(f"    - {path}" for path in doc.matched_files)
    if results.missing_updates:
        lines.extend(
            ["", f"{plural(len(results.missing_updates), 'doc')} may need updates:"]
        )
        lines.extend(f"  {path}" for path in results.missing_updates)
    return "\n".join(lines)


def render_changed_github(results: ChangedResults) -> str:
    lines: list[str] = []
    for doc in results.impacted_docs:
        if doc.was_updated:
            continue
        lines.append(
            annotation(
                "warning",
                f"code mapped by this doc changed ({', '.join(doc.matched_files)}) "
                "but the doc was not updated",
                doc.doc_path,
            )
        )
    return "\n".join(lines)


# lint


def render_lint_text(results: LintResults) -> str:
    lines: list[str] = []
    current: str | None = None
    for issue in results.issues:
        if issue.file != current:
            if current is not None:
                lines.append("")
            lines.append(issue.file)
            current = issue.file
        lines.append(f"  {issue.line}: [{issue.rule}] {issue.message}")
    if lines:
        lines.append("")
    files = plural(results.files_linted, "file")
    if results.issues:
        lines.append(f"Linted {files}: {plural(len(results.issues), 'issue')}")
    else:
        lines.append(f"Linted {files}: no issues found")
    if results.fixed_count:
        lines.append(f"Fixed {plural(results.fixed_count, 'issue')}")
    fixable = sum(1 for issue in results.issues if issue.fixable)
    if fixable:
        lines.append(
            f"Run `pave lint --fix` to fix {plural(fixable, 'issue')} automatically"
        )
    return "\n".join(lines)


def render_lint_github(results: LintResults) -> str:
    return "\n".join(
        annotation("warning", f"[{issue.rule}] {issue.message}", issue.file, issue.line)
        for issue in results.issues
    )


# doctor


def render_doctor_text(results: DoctorResults) -> str:
    tags = {"pass": "PASS", "warning": "WARN", "error": "ERROR"}
    lines: list[str] = []
    for category in results.categories:
        lines.append(category.name)
        for check in category.checks:
            lines.append(f"  [{tags.get(check.status, check.status)}] {check.name}: {check.message}")
            if check.suggestion and check.status != "pass":
                lines.append(f"      suggestion: {check.suggestion}")
            lines.extend(f"      - {path}" for path in check.affected_files)
        lines.append("")
    lines.append(
        f"Summary: {results.passed} passed, {plural(results.warnings, 'warning')}, "
        f"{plural(results.errors, 'error')}"
    )
    return "\n".join(lines)


def render_doctor_github(results: DoctorResults) -> str:
    lines: list[str] = []
    for category in results.categories:
        for check in category.checks:
            if check.status == "pass":
                continue
            level = "error" if check.status == "error" else "warning"
            lines.append(annotation(level, f"{category.name} / {check.name}: {check.message}"))
    return "\n".join(lines)


# status


def render_status_text(results: StatusResults) -> str:
    lines = [
        "Documentation Status",
        "====================",
        "",
        f"Documents:  {results.total_docs}",
        f"Compliant:  {results.compliant_docs} ({results.compliance_percent:.1f}%)",
        f"Warnings:   {results.warning_docs}",
        f"Errors:     {results.error_docs}",
        "",
        "By type:",
    ]
    for name, stats in results.type_stats.items():
        lines.append(f"  {name.ljust(10)}  {stats.compliant}/{stats.total} compliant")
    lines.extend(
        [
            "",
            f"Gradual mode:      {'active' if results.gradual_mode else 'inactive'}",
            f"Strict mode ready: {'yes' if results.strict_mode_ready else 'no'}",
        ]
    )
    recent = results.recent_changes
    if recent is not None:
        lines.extend(["", f"Recent changes against {recent.base_ref}:"])
        lines.append(f"  docs changed:  {len(recent.changed_docs)}")
        lines.extend(f"    - {path}" for path in recent.changed_docs)
        lines.append(f"  docs impacted: {len(recent.impacted_docs)}")
        lines.extend(f"    - {path}" for path in recent.impacted_docs)
    return "\n".join(lines)


def render_status_github(results: StatusResults) -> str:
    return annotation(
        "notice",
        f"{results.compliant_docs}/{results.total_docs} documents compliant "
        f"({results.compliance_percent:.1f}%)",
    )


_RENDERERS: dict[type, tuple[Callable, Callable]] = {
    CheckResults: (render_check_text, render_check_github),
    VerifyResults: (render_verify_text, render_verify_github),
    CoverageResults: (render_coverage_text, render_coverage_github),
    CoverageChangedResults: (render_coverage_changed_text, render_coverage_changed_github),
    ChangedResults: (render_changed_text, render_changed_github),
    LintResults: (render_lint_text, render_lint_github),
    DoctorResults: (render_doctor_text, render_doctor_github),
    StatusResults: (render_status_text, render_status_github),
}


def render(record: BaseModel, output_format: OutputFormat) -> str:
    if output_format is OutputFormat.JSON:
        return to_json(record)
    text_fn, github_fn = _RENDERERS[type(record)]
    if output_format is OutputFormat.GITHUB:
        return github_fn(record)
    return text_fn(record)
