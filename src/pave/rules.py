"""Rule variants for PAVED documents.

Each rule is a frozen dataclass holding its parameters, with a stable
`name()` and a pure `apply(document)` that returns diagnostics. Rules never
depend on one another; the engine concatenates their output in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TypeAlias

from pave.globs import (
    PATHS_SECTION,
    extract_patterns,
    glob_error,
    is_absolute_pattern,
    matches_pattern,
)
from pave.mapping import walk_files
from pave.parser import Document

ADR_STATUSES = ("proposed", "accepted", "deprecated", "superseded")

_SECTION_HINTS = {
    "verification": "Add a '## Verification' section with test commands",
    "examples": "Add an '## Examples' section with concrete usage examples",
}


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    file: str
    line: int | None
    severity: Severity
    rule_name: str
    message: str
    hint: str | None = None
    converted_from_error: bool = False


def _diagnostic(
    document: Document,
    rule_name: str,
    message: str,
    *,
    hint: str,
    line: int | None = None,
    severity: Severity = Severity.ERROR,
) -> Diagnostic:
    return Diagnostic(
        file=str(document.path),
        line=line,
        severity=severity,
        rule_name=rule_name,
        message=message,
        hint=hint,
    )


@dataclass(frozen=True)
class RequireSection:
    section: str

    def name(self) -> str:
        return f"require-section-{self.section.lower()}"

    def apply(self, document: Document) -> list[Diagnostic]:
        if document.has_section(self.section):
            return []
        hint = _SECTION_HINTS.get(
            self.section.lower(), f"Add a '## {self.section}' section"
        )
        return [
            _diagnostic(
                document,
                self.name(),
                f"Missing required section '{self.section}'",
                hint=hint,
            )
        ]


@dataclass(frozen=True)
class RequireOneOf:
    sections: tuple[str, ...]

    def name(self) -> str:
        return "require-one-of-" + "-".join(name.lower() for name in self.sections)

    def apply(self, document: Document) -> list[Diagnostic]:
        if any(document.has_section(name) for name in self.sections):
            return []
        quoted = ", ".join(f"'{name}'" for name in self.sections)
        options = " or ".join(f"'## {name}'" for name in self.sections)
        return [
            _diagnostic(
                document,
                self.name(),
                f"Missing one of required sections: {quoted}",
                hint=f"Add a {options} section",
            )
        ]


@dataclass(frozen=True)
class MaxLines:
    limit: int

    def name(self) -> str:
        return f"max-lines-{self.limit}"

    def apply(self, document: Document) -> list[Diagnostic]:
        if document.line_count <= self.limit:
            return []
        return [
            _diagnostic(
                document,
                self.name(),
                f"Document exceeds {self.limit} line limit ({document.line_count} lines)",
                hint="Consider splitting into smaller, focused documents",
                line=document.line_count,
                severity=Severity.WARNING,
            )
        ]


@dataclass(frozen=True)
class RequireCodeBlock:
    in_section: str

    def name(self) -> str:
        return f"require-code-block-in-{self.in_section.lower()}"

    def apply(self, document: Document) -> list[Diagnostic]:
        section = document.get_section(self.in_section)
        if section is None or section.has_code_blocks:
            return []
        return [
            _diagnostic(
                document,
                self.name(),
                f"section '{self.in_section}' must contain at least one code block",
                hint=f"Add a fenced code block with an example to '{self.in_section}'",
                line=section.start_line,
            )
        ]


@dataclass(frozen=True)
class RequireCommand:
    in_section: str

    def name(self) -> str:
        return f"require-command-in-{self.in_section.lower()}"

    def apply(self, document: Document) -> list[Diagnostic]:
        section = document.get_section(self.in_section)
        if section is None or section.has_commands or section.executable_blocks():
            return []
        return [
            _diagnostic(
                document,
                self.name(),
                f"section '{self.in_section}' should contain a runnable command",
                hint=f"Add a shell command in a ```bash code block in '{self.in_section}'",
                line=section.start_line,
            )
        ]


@dataclass(frozen=True)
class RequireValidAdrStatus:
    def name(self) -> str:
        return "require-valid-adr-status"

    def apply(self, document: Document) -> list[Diagnostic]:
        section = document.get_section("Status")
        if section is None:
            return []
        body = section.content.lower()
        if any(status in body for status in ADR_STATUSES):
            return []
        return [
            _diagnostic(
                document,
                self.name(),
                "ADR status must be one of: " + ", ".join(ADR_STATUSES),
                hint="Set the status to proposed, accepted, deprecated or superseded",
                line=section.start_line,
            )
        ]


@dataclass(frozen=True)
class ValidatePaths:
    project_root: Path
    warn_empty: bool = False

    def name(self) -> str:
        return "validate-paths"

    def apply(self, document: Document) -> list[Diagnostic]:
        patterns = extract_patterns(document.get_section(PATHS_SECTION))
        if not patterns:
            return []
        diagnostics: list[Diagnostic] = []
        files: list[str] | None = None
        for line, pattern in patterns:
            if is_absolute_pattern(pattern):
                diagnostics.append(
                    _diagnostic(
                        document,
                        self.name(),
                        f"path pattern '{pattern}' is absolute; patterns must be relative to the project root",
                        hint="Remove the leading '/' and use a relative path",
                        line=line,
                    )
                )
                continue
            reason = glob_error(pattern)
            if reason is not None:
                diagnostics.append(
                    _diagnostic(
                        document,
                        self.name(),
                        f"invalid glob pattern '{pattern}': {reason}",
                        hint="Fix the glob syntax, for example close any '[' bracket",
                        line=line,
                    )
                )
                continue
            if not self.warn_empty:
                continue
            if files is None:
                files = walk_files(self.project_root)
            if not any(matches_pattern(path, pattern) for path in files):
                diagnostics.append(
                    _diagnostic(
                        document,
                        self.name(),
                        f"path pattern '{pattern}' matches no files",
                        hint="Update the pattern or remove it if the code was moved",
                        line=line,
                        severity=Severity.WARNING,
                    )
                )
        return diagnostics


Rule: TypeAlias = (
    RequireSection
    | RequireOneOf
    | MaxLines
    | RequireCodeBlock
    | RequireCommand
    | RequireValidAdrStatus
    | ValidatePaths
)
