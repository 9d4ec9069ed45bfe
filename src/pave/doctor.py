"""Project health checks for `pave doctor`."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable
import logging
import shutil

from pave.commands import check_document, discover_docs, display_path
from pave.config import PaveConfig, load_config
from pave.exceptions import PaveError
from pave.globs import PATHS_SECTION, extract_patterns, glob_error, is_absolute_pattern
from pave.mapping import analyze_coverage, load_doc_mappings
from pave.parser import parse_file
from pave.rules import MaxLines
from pave.schema import DiagnosticCategoryDTO, DiagnosticCheckDTO, DoctorResults
from pave.verification import extract_spec

logger = logging.getLogger(__name__)

AFFECTED_FILES_LIMIT = 10


class CheckStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class DiagnosticCheck:
    name: str
    status: CheckStatus
    message: str
    suggestion: str | None = None
    affected_files: tuple[str, ...] = ()


@dataclass
class DiagnosticCategory:
    name: str
    checks: list[DiagnosticCheck] = field(default_factory=list)

    def add(
        self,
        name: str,
        status: CheckStatus,
        message: str,
        suggestion: str | None = None,
        affected_files: list[str] | None = None,
    ) -> None:
        self.checks.append(
            DiagnosticCheck(
                name=name,
                status=status,
                message=message,
                suggestion=suggestion,
                affected_files=tuple((affected_files or [])[:AFFECTED_FILES_LIMIT]),
            )
        )


def configuration_checks(config: PaveConfig) -> DiagnosticCategory:
    category = DiagnosticCategory("Configuration")
    category.add("Config file", CheckStatus.PASS, f"Loaded {config.path}")
    if config.docs_dir.is_dir():
        category.add("Docs root", CheckStatus.PASS, f"Docs root '{config.docs_root}' exists")
    else:
        category.add(
            "Docs root",
            CheckStatus.ERROR,
            f"Docs root '{config.docs_root}' does not exist",
            "Create the directory or update docs.root in .pave.toml",
        )
    if config.templates is not None:
        if (config.config_dir / config.templates).is_dir():
            category.add("Templates", CheckStatus.PASS, f"Templates found in '{config.templates}'")
        else:
            category.add(
                "Templates",
                CheckStatus.WARNING,
                f"Templates directory '{config.templates}' does not exist",
                "Create the directory or remove docs.templates from .pave.toml",
            )
    return category


def structure_checks(config: PaveConfig, docs: list[Path]) -> DiagnosticCategory:
    category = DiagnosticCategory("Documentation Structure")
    if not docs:
        category.add(
            "Documents",
            CheckStatus.WARNING,
            "No documents found",
            f"Add markdown files under '{config.docs_root}'",
        )
        return category
    category.add("Documents", CheckStatus.PASS, f"Found {len(docs)} document(s)")

    max_lines_rule = MaxLines(config.rules.max_lines).name()
    failing: list[str] = []
    too_long: list[str] = []
    for path in docs:
        result = check_document(path, config).result
        if result.errors:
            failing.append(display_path(path, config))
        if any(item.rule_name == max_lines_rule for item in result.warnings):
            too_long.append(display_path(path, config))
    if failing:
        category.add(
            "Required sections",
            CheckStatus.ERROR,
            f"{len(failing)} document(s) fail validation",
            "Run `pave check` for details",
            failing,
        )
    else:
        category.add("Required sections", CheckStatus.PASS, "All documents pass validation")
    if too_long:
        category.add(
            "Line limits",
            CheckStatus.WARNING,
            f"{len(too_long)} document(s) exceed {config.rules.max_lines} lines",
            "Split long documents into smaller focused ones",
            too_long,
        )
    else:
        category.add("Line limits", CheckStatus.PASS, "All documents are within the line limit")
    if not (config.docs_dir / "index.md").is_file():
        category.add(
            "Index",
            CheckStatus.WARNING,
            "No index.md in the docs root",
            f"Create {config.docs_root}/index.md linking your documents",
        )
    else:
        category.add("Index", CheckStatus.PASS, "index.md present")
    return category


def verification_checks(
    config: PaveConfig,
    docs: list[Path],
    which: Callable[[str], str | None] = shutil.which,
) -> DiagnosticCategory:
    category = DiagnosticCategory("Verification Commands")
    if which("sh") is None:
        category.add(
            "Shell",
            CheckStatus.ERROR,
            "No `sh` executable on PATH",
            "Install a POSIX shell so `pave verify` can run commands",
        )
    else:
        category.add("Shell", CheckStatus.PASS, "`sh` is available")
    missing = [
        display_path(path, config)
        for path in docs
        if extract_spec(parse_file(path)) is None
    ]
    if missing and config.rules.require_verification:
        category.add(
            "Verification sections",
            CheckStatus.WARNING,
            f"{len(missing)} document(s) have no runnable verification commands",
            "Add a bash block to each document's Verification section",
            missing,
        )
    else:
        category.add(
            "Verification sections",
            CheckStatus.PASS,
            f"{len(docs) - len(missing)} document(s) have runnable verification commands",
        )
    return category


def coverage_checks(config: PaveConfig, docs: list[Path]) -> DiagnosticCategory:
    category = DiagnosticCategory("Code Coverage")
    bad_patterns: list[str] = []
    for path in docs:
        section = parse_file(path).get_section(PATHS_SECTION)
        for line, pattern in extract_patterns(section):
            if is_absolute_pattern(pattern) or glob_error(pattern) is not None:
                bad_patterns.append(f"{display_path(path, config)}:{line}: {pattern}")
    if bad_patterns:
        category.add(
            "Path patterns",
            CheckStatus.ERROR,
            f"{len(bad_patterns)} invalid path pattern(s)",
            "Use relative glob patterns in ## Paths sections",
            bad_patterns,
        )
    else:
        category.add("Path patterns", CheckStatus.PASS, "All path patterns are valid")

    mappings = load_doc_mappings(config.docs_dir, config.config_dir)
    if not mappings:
        category.add(
            "Path mappings",
            CheckStatus.WARNING,
            "No documents declare a ## Paths section",
            "List the code each document describes under ## Paths",
        )
        return category
    category.add("Path mappings", CheckStatus.PASS, f"{len(mappings)} document(s) map code paths")
    report = analyze_coverage(config.config_dir, mappings, [], list(config.mapping.exclude))
    if report.uncovered:
        category.add(
            "Coverage",
            CheckStatus.WARNING,
            f"{report.percentage:.1f}% of code files are documented",
            "Run `pave coverage` to see uncovered files",
            list(report.uncovered),
        )
    else:
        category.add("Coverage", CheckStatus.PASS, "All code files are documented")
    return category


def to_results(categories: list[DiagnosticCategory]) -> DoctorResults:
    checks = [check for category in categories for check in category.checks]
    return DoctorResults(
        categories=[
            DiagnosticCategoryDTO(
                name=category.name,
                checks=[
                    DiagnosticCheckDTO(
                        name=check.name,
                        status=check.status.value,
                        message=check.message,
                        suggestion=check.suggestion,
                        affected_files=list(check.affected_files),
                    )
                    for check in category.checks
                ],
            )
            for category in categories
        ],
        passed=sum(1 for check in checks if check.status is CheckStatus.PASS),
        warnings=sum(1 for check in checks if check.status is CheckStatus.WARNING),
        errors=sum(1 for check in checks if check.status is CheckStatus.ERROR),
    )


def run_doctor(
    config_path: Path | None = None,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> tuple[DoctorResults, int]:
    """Run every check group; a missing or invalid config is reported, not raised."""
    try:
        config = load_config(config_path)
    except PaveError as exc:
        category = DiagnosticCategory("Configuration")
        category.add(
            "Config file",
            CheckStatus.ERROR,
            str(exc),
            "Create a .pave.toml with a [docs] root entry",
        )
        results = to_results([category])
        return results, 1

    categories = [configuration_checks(config)]
    docs = discover_docs(config) if config.docs_dir.is_dir() else []
    logger.debug("doctor: %d document(s)", len(docs))
    categories.append(structure_checks(config, docs))
    categories.append(verification_checks(config, docs, which))
    categories.append(coverage_checks(config, docs))
    results = to_results(categories)
    return results, 1 if results.errors else 0
