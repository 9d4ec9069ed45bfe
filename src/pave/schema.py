from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel


class DiagnosticDTO(BaseModel):
    file: str
    line: Optional[int] = None
    severity: str
    rule: str
    message: str
    hint: Optional[str] = None
    converted_from_error: bool = False


class CheckResults(BaseModel):
    files_checked: int
    errors: List[DiagnosticDTO] = []
    warnings: List[DiagnosticDTO] = []
    would_fail_count: int = 0
    gradual_mode: bool = False


class OutputMismatchDTO(BaseModel):
    expected: str
    strategy: str
    actual: str


class EnvVarDTO(BaseModel):
    key: str
    value: str


class CommandResultDTO(BaseModel):
    command: str
    status: str
    exit_code: Optional[int] = None
    expected_exit_code: int = 0
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    duration_ms: int = 0
    output_mismatch: Optional[OutputMismatchDTO] = None
    working_dir: Optional[str] = None
    env_vars: List[EnvVarDTO] = []


class DocumentResultDTO(BaseModel):
    file: str
    section_line: int
    status: str
    commands: List[CommandResultDTO] = []


class VerifyResults(BaseModel):
    documents_verified: int = 0
    commands_executed: int = 0
    commands_passed: int = 0
    commands_warned: int = 0
    commands_failed: int = 0
    commands_skipped: int = 0
    documents: List[DocumentResultDTO] = []


class DirectoryCoverageDTO(BaseModel):
    path: str
    covered: int
    total: int
    percentage: float


class UncoveredFileDTO(BaseModel):
    path: str
    suggested_doc: Optional[str] = None


class SuggestionDTO(BaseModel):
    description: str
    files: List[str] = []


class CoverageResults(BaseModel):
    covered_files: int
    uncovered_files: int
    total_files: int
    coverage_percentage: float
    by_directory: List[DirectoryCoverageDTO] = []
    uncovered: List[UncoveredFileDTO] = []
    suggestions: List[SuggestionDTO] = []
    threshold: Optional[float] = None
    threshold_met: bool = True


class CoverageChangedResults(BaseModel):
    base_ref: str
    new_files_count: int
    new_code_files_count: int
    covered_count: int
    uncovered_count: int
    uncovered: List[UncoveredFileDTO] = []
    all_covered: bool = True


class ImpactedDocDTO(BaseModel):
    doc_path: str
    title: Optional[str] = None
    matched_files: List[str] = []
    was_updated: bool = False


class ChangedResults(BaseModel):
    base_ref: str
    changed_files_count: int
    impacted_docs: List[ImpactedDocDTO] = []
    missing_updates: List[str] = []


class LintIssueDTO(BaseModel):
    file: str
    line: int
    rule: str
    message: str
    fixable: bool = False


class LintResults(BaseModel):
    files_linted: int
    issues: List[LintIssueDTO] = []
    fixed_count: int = 0


class DiagnosticCheckDTO(BaseModel):
    name: str
    status: str
    message: str
    suggestion: Optional[str] = None
    affected_files: List[str] = []


class DiagnosticCategoryDTO(BaseModel):
    name: str
    checks: List[DiagnosticCheckDTO] = []


class DoctorResults(BaseModel):
    categories: List[DiagnosticCategoryDTO] = []
    passed: int = 0
    warnings: int = 0
    errors: int = 0


class TypeStatsDTO(BaseModel):
    total: int = 0
    compliant: int = 0


class RecentChangesDTO(BaseModel):
    base_ref: str
    changed_docs: List[str] = []
    impacted_docs: List[str] = []


class StatusResults(BaseModel):
    total_docs: int
    compliant_docs: int
    warning_docs: int
    error_docs: int
    compliance_percent: float
    type_stats: Dict[str, TypeStatsDTO] = {}
    recent_changes: Optional[RecentChangesDTO] = None
    gradual_mode: bool = False
    strict_mode_ready: bool = False
