"""Command implementations shared by the CLI and tests.

Every function takes the loaded config plus plain options and returns a
pydantic result record together with the process exit code. Nothing here
prints; rendering lives in `pave.report`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable
import logging
import subprocess

from pave import vcs
from pave.config import PaveConfig
from pave.engine import (
    DocumentKind,
    ValidationResult,
    detect_kind,
    gradual_mode_active,
    soften,
    validate,
)
from pave.exceptions import PaveError
from pave.lint import LintOptions, UrlChecker, check_url, lint_file, select_rules
from pave.mapping import (
    DocMapping,
    analyze_coverage,
    analyze_new_code,
    impacted_docs,
    is_mapped_doc,
    iter_markdown_files,
    load_doc_mappings,
    relative_posix,
    suggested_doc_for,
)
from pave.parser import parse_file
from pave.rules import Diagnostic
from pave.schema import (
    ChangedResults,
    CheckResults,
    CommandResultDTO,
    CoverageChangedResults,
    CoverageResults,
    DiagnosticDTO,
    DirectoryCoverageDTO,
    DocumentResultDTO,
    EnvVarDTO,
    ImpactedDocDTO,
    LintIssueDTO,
    LintResults,
    OutputMismatchDTO,
    RecentChangesDTO,
    StatusResults,
    SuggestionDTO,
    TypeStatsDTO,
    UncoveredFileDTO,
    VerifyResults,
)
from pave.verification import (
    DocumentVerification,
    ItemResult,
    VerifyOptions,
    VerifyStatus,
    extract_spec,
    run_all,
)
from pave.vcs import GitRunner

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1

_TYPE_KEYS = {
    DocumentKind.COMPONENT: "components",
    DocumentKind.RUNBOOK: "runbooks",
    DocumentKind.ADR: "adrs",
    DocumentKind.OTHER: "other",
}


@dataclass(frozen=True)
class CheckedDoc:
    path: Path
    kind: DocumentKind
    result: ValidationResult


def display_path(path: Path | str, config: PaveConfig) -> str:
    return relative_posix(Path(path), config.config_dir)


def discover_docs(
    config: PaveConfig,
    paths: Iterable[Path] | None = None,
    *,
    include_unmapped: bool = False,
) -> list[Path]:
    """Markdown files named on the command line, or every doc under the docs root.

    Directories skip `index.md` and anything below `templates/` unless
    `include_unmapped` is set. Explicit files are always kept.
    """
    roots = list(paths or []) or [config.docs_dir]
    found: set[Path] = set()
    for root in roots:
        if not root.exists():
            raise PaveError(f"path not found: {root}")
        if root.is_file():
            found.add(root.resolve())
            continue
        for path in iter_markdown_files(root):
            if include_unmapped or is_mapped_doc(path, root):
                found.add(path.resolve())
    docs = sorted(found)
    logger.debug("discovered %d document(s)", len(docs))
    return docs


def _filter_changed(docs: list[Path], changed: list[str], config: PaveConfig) -> list[Path]:
    wanted = set(changed)
    return [path for path in docs if display_path(path, config) in wanted]


def check_document(path: Path, config: PaveConfig) -> CheckedDoc:
    document = parse_file(path)
    kind = detect_kind(document, relative_posix(path, config.docs_dir.resolve()))
    return CheckedDoc(path=path, kind=kind, result=validate(document, kind, config))


def diagnostic_dto(item: Diagnostic, config: PaveConfig) -> DiagnosticDTO:
    return DiagnosticDTO(
        file=display_path(item.file, config),
        line=item.line,
        severity=item.severity.value,
        rule=item.rule_name,
        message=item.message,
        hint=item.hint,
        converted_from_error=item.converted_from_error,
    )


def run_check(
    config: PaveConfig,
    paths: Iterable[Path] | None = None,
    *,
    strict: bool = False,
    gradual: bool = False,
    changed: bool = False,
    base: str | None = None,
    run_fn: GitRunner = subprocess.run,
    today: date | None = None,
) -> tuple[CheckResults, int]:
    docs = discover_docs(config, paths)
    if changed:
        base_ref = vcs.determine_base_ref(base, cwd=config.config_dir, run_fn=run_fn)
        docs = _filter_changed(
            docs, vcs.changed_files(base_ref, cwd=config.config_dir, run_fn=run_fn), config
        )
    gradual_active = gradual_mode_active(
        config.rules, strict=strict, gradual=gradual, today=today
    )
    errors: list[DiagnosticDTO] = []
    warnings: list[DiagnosticDTO] = []
    would_fail = 0
    for path in docs:
        result = check_document(path, config).result
        if gradual_active:
            would_fail += len(result.errors)
            result = soften(result)
        errors.extend(diagnostic_dto(item, config) for item in result.errors)
        warnings.extend(diagnostic_dto(item, config) for item in result.warnings)
    results = CheckResults(
        files_checked=len(docs),
        errors=errors,
        warnings=warnings,
        would_fail_count=would_fail,
        gradual_mode=gradual_active,
    )
    failed = bool(errors) or (strict and bool(warnings))
    return results, EXIT_FAILURES if failed else EXIT_OK


def _item_dto(result: ItemResult) -> CommandResultDTO:
    mismatch = result.output_mismatch
    return CommandResultDTO(
        command=result.item.command,
        status=result.status.value,
        exit_code=result.exit_code,
        expected_exit_code=result.item.expected_exit_code,
        stdout=result.stdout or None,
        stderr=result.stderr or None,
        duration_ms=result.duration_ms,
        output_mismatch=(
            OutputMismatchDTO(
                expected=mismatch.expected,
                strategy=mismatch.strategy.value,
                actual=mismatch.actual,
            )
            if mismatch is not None
            else None
        ),
        working_dir=result.item.working_dir,
        env_vars=[EnvVarDTO(key=key, value=value) for key, value in result.item.env_vars],
    )


def verify_results(outcomes: list[DocumentVerification], config: PaveConfig) -> VerifyResults:
    documents: list[DocumentResultDTO] = []
    counts = {status: 0 for status in VerifyStatus}
    for outcome in outcomes:
        for result in outcome.results:
            counts[result.status] += 1
        documents.append(
            DocumentResultDTO(
                file=display_path(outcome.spec.source_file, config),
                section_line=outcome.spec.section_line,
                status=outcome.status.value,
                commands=[_item_dto(result) for result in outcome.results],
            )
        )
    return VerifyResults(
        documents_verified=len(outcomes),
        commands_executed=sum(
            count for status, count in counts.items() if status is not VerifyStatus.SKIPPED
        ),
        commands_passed=counts[VerifyStatus.PASS],
        commands_warned=counts[VerifyStatus.WARN],
        commands_failed=counts[VerifyStatus.FAIL] + counts[VerifyStatus.TIMEOUT],
        commands_skipped=counts[VerifyStatus.SKIPPED],
        documents=documents,
    )


def run_verify(
    config: PaveConfig,
    paths: Iterable[Path] | None = None,
    *,
    timeout_secs: int = 30,
    keep_going: bool = False,
) -> tuple[VerifyResults, int]:
    if timeout_secs <= 0:
        raise PaveError("timeout must be greater than 0")
    specs = []
    for path in discover_docs(config, paths):
        spec = extract_spec(parse_file(path), timeout_secs)
        if spec is not None:
            specs.append(spec)
    options = VerifyOptions(
        timeout_secs=timeout_secs,
        keep_going=keep_going,
        strict_output_matching=config.rules.strict_output_matching,
        skip_output_matching=config.rules.skip_output_matching,
    )
    outcomes = run_all(specs, config.config_dir, options)
    results = verify_results(outcomes, config)
    failed = any(outcome.status.failed for outcome in outcomes)
    return results, EXIT_FAILURES if failed else EXIT_OK


def _uncovered(paths: Iterable[str]) -> list[UncoveredFileDTO]:
    return [UncoveredFileDTO(path=path, suggested_doc=suggested_doc_for(path)) for path in paths]


def _mappings(config: PaveConfig) -> list[DocMapping]:
    return load_doc_mappings(config.docs_dir, config.config_dir)


def run_coverage(
    config: PaveConfig,
    *,
    threshold: float | None = None,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> tuple[CoverageResults, int]:
    excludes = [*config.mapping.exclude, *(exclude or [])]
    report = analyze_coverage(config.config_dir, _mappings(config), list(include or []), excludes)
    threshold_met = threshold is None or report.percentage >= threshold
    results = CoverageResults(
        covered_files=len(report.covered),
        uncovered_files=len(report.uncovered),
        total_files=report.total,
        coverage_percentage=round(report.percentage, 2),
        by_directory=[
            DirectoryCoverageDTO(
                path=entry.path,
                covered=entry.covered,
                total=entry.total,
                percentage=round(entry.percentage, 2),
            )
            for entry in report.by_directory
        ],
        uncovered=_uncovered(report.uncovered),
        suggestions=[
            SuggestionDTO(description=item.description, files=list(item.files))
            for item in report.suggestions
        ],
        threshold=threshold,
        threshold_met=threshold_met,
    )
    return results, EXIT_OK if threshold_met else EXIT_FAILURES


def run_coverage_changed(
    config: PaveConfig,
    *,
    base: str | None = None,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    run_fn: GitRunner = subprocess.run,
) -> tuple[CoverageChangedResults, int]:
    base_ref = vcs.determine_base_ref(base, cwd=config.config_dir, run_fn=run_fn)
    added = vcs.added_files(base_ref, cwd=config.config_dir, run_fn=run_fn)
    excludes = [*config.mapping.exclude, *(exclude or [])]
    report = analyze_new_code(added, _mappings(config), list(include or []), excludes)
    results = CoverageChangedResults(
        base_ref=base_ref,
        new_files_count=len(report.new_files),
        new_code_files_count=len(report.code_files),
        covered_count=len(report.covered),
        uncovered_count=len(report.uncovered),
        uncovered=_uncovered(report.uncovered),
        all_covered=not report.uncovered,
    )
    return results, EXIT_FAILURES if report.uncovered else EXIT_OK


def run_changed(
    config: PaveConfig,
    *,
    base: str | None = None,
    strict: bool = False,
    run_fn: GitRunner = subprocess.run,
) -> tuple[ChangedResults, int]:
    base_ref = vcs.determine_base_ref(base, cwd=config.config_dir, run_fn=run_fn)
    changed = vcs.changed_files(base_ref, cwd=config.config_dir, run_fn=run_fn)
    impacted = impacted_docs(_mappings(config), changed)
    missing = [doc.doc_path for doc in impacted if not doc.was_updated]
    results = ChangedResults(
        base_ref=base_ref,
        changed_files_count=len(changed),
        impacted_docs=[
            ImpactedDocDTO(
                doc_path=doc.doc_path,
                title=doc.title,
                matched_files=list(doc.matched_files),
                was_updated=doc.was_updated,
            )
            for doc in impacted
        ],
        missing_updates=missing,
    )
    return results, EXIT_FAILURES if strict and missing else EXIT_OK


def run_lint(
    config: PaveConfig,
    paths: Iterable[Path] | None = None,
    *,
    rules: list[str] | None = None,
    fix: bool = False,
    external_links: bool = False,
    url_checker: UrlChecker = check_url,
) -> tuple[LintResults, int]:
    options = LintOptions(
        rules=select_rules(rules, config.lint),
        project_root=config.config_dir,
        max_paragraph_words=config.lint.max_paragraph_words,
        external_links=external_links or config.lint.external_links,
        fix=fix,
    )
    docs = [
        path
        for path in discover_docs(config, paths, include_unmapped=True)
        if "templates" not in Path(display_path(path, config)).parts[:-1]
    ]
    issues: list[LintIssueDTO] = []
    fixed = 0
    for path in docs:
        outcome = lint_file(path, options, url_checker=url_checker)
        fixed += outcome.fixed_count
        issues.extend(
            LintIssueDTO(
                file=display_path(issue.file, config),
                line=issue.line,
                rule=issue.rule.value,
                message=issue.message,
                fixable=issue.fixable,
            )
            for issue in outcome.issues
        )
    results = LintResults(files_linted=len(docs), issues=issues, fixed_count=fixed)
    return results, EXIT_FAILURES if issues else EXIT_OK


def _recent_changes(
    config: PaveConfig, base: str | None, run_fn: GitRunner
) -> RecentChangesDTO:
    base_ref = vcs.determine_base_ref(base, cwd=config.config_dir, run_fn=run_fn)
    changed = vcs.changed_files(base_ref, cwd=config.config_dir, run_fn=run_fn)
    return RecentChangesDTO(
        base_ref=base_ref,
        changed_docs=[path for path in changed if path.endswith(".md")],
        impacted_docs=[doc.doc_path for doc in impacted_docs(_mappings(config), changed)],
    )


def run_status(
    config: PaveConfig,
    *,
    changed: bool = False,
    base: str | None = None,
    run_fn: GitRunner = subprocess.run,
    today: date | None = None,
) -> tuple[StatusResults, int]:
    type_stats = {key: TypeStatsDTO() for key in _TYPE_KEYS.values()}
    compliant = warning_docs = error_docs = 0
    docs = discover_docs(config) if config.docs_dir.is_dir() else []
    for path in docs:
        checked = check_document(path, config)
        stats = type_stats[_TYPE_KEYS[checked.kind]]
        stats.total += 1
        if checked.result.errors:
            error_docs += 1
            continue
        compliant += 1
        stats.compliant += 1
        if checked.result.warnings:
            warning_docs += 1
    total = len(docs)
    results = StatusResults(
        total_docs=total,
        compliant_docs=compliant,
        warning_docs=warning_docs,
        error_docs=error_docs,
        compliance_percent=round((compliant / total) * 100.0, 2) if total else 100.0,
        type_stats=type_stats,
        recent_changes=_recent_changes(config, base, run_fn) if changed else None,
        gradual_mode=gradual_mode_active(config.rules, today=today),
        strict_mode_ready=error_docs == 0 and warning_docs == 0,
    )
    return results, EXIT_OK
