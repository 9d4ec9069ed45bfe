from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from pathlib import Path
import logging

from pave.config import PaveConfig, RulesConfig
from pave.parser import Document
from pave.rules import (
    ADR_STATUSES,
    Diagnostic,
    MaxLines,
    RequireCodeBlock,
    RequireCommand,
    RequireOneOf,
    RequireSection,
    RequireValidAdrStatus,
    Rule,
    Severity,
    ValidatePaths,
)

logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    COMPONENT = "component"
    RUNBOOK = "runbook"
    ADR = "adr"
    OTHER = "other"


@dataclass(frozen=True)
class ValidationResult:
    """Diagnostics for one document, in rule-assembly order."""

    path: str
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self.diagnostics if item.severity is Severity.ERROR)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self.diagnostics if item.severity is Severity.WARNING)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class RuleSet:
    rules: tuple[Rule, ...] = field(default_factory=tuple)

    def names(self) -> list[str]:
        return [rule.name() for rule in self.rules]


def detect_kind(document: Document, relative_path: str | None = None) -> DocumentKind:
    """Classify a doc by its path first, then by the sections it carries."""
    path_text = (relative_path if relative_path is not None else str(document.path)).lower()
    if "component" in path_text:
        return DocumentKind.COMPONENT
    if "runbook" in path_text:
        return DocumentKind.RUNBOOK
    if "adr" in path_text or "decision" in path_text:
        return DocumentKind.ADR

    status = document.get_section("Status")
    if status is not None and any(word in status.content.lower() for word in ADR_STATUSES):
        return DocumentKind.ADR
    if any(document.has_section(name) for name in ("When to Use", "Preconditions", "Steps")):
        return DocumentKind.RUNBOOK
    if document.has_section("Interface") or document.has_section("Configuration"):
        return DocumentKind.COMPONENT
    return DocumentKind.OTHER


def base_rules(rules: RulesConfig, project_root: Path) -> list[Rule]:
    assembled: list[Rule] = [RequireSection("Purpose")]
    if rules.require_verification:
        assembled.append(RequireSection("Verification"))
        if rules.require_verification_commands:
            assembled.append(RequireCommand("Verification"))
    if rules.require_examples:
        assembled.append(RequireSection("Examples"))
        assembled.append(RequireCodeBlock("Examples"))
    assembled.append(MaxLines(rules.max_lines))
    if rules.validate_paths:
        assembled.append(ValidatePaths(project_root, warn_empty=rules.warn_empty_paths))
    return assembled


def kind_rules(kind: DocumentKind, rules: RulesConfig) -> list[Rule]:
    toggles = rules.type_specific
    if kind is DocumentKind.RUNBOOK and toggles.runbooks:
        return [RequireSection(name) for name in ("When to Use", "Steps", "Rollback")]
    if kind is DocumentKind.ADR and toggles.adrs:
        return [
            *(RequireSection(name) for name in ("Status", "Context", "Decision", "Consequences")),
            RequireValidAdrStatus(),
        ]
    if kind is DocumentKind.COMPONENT and toggles.components:
        return [RequireOneOf(("Interface", "Configuration"))]
    return []


def build_ruleset(config: PaveConfig, kind: DocumentKind) -> RuleSet:
    assembled = base_rules(config.rules, config.config_dir) + kind_rules(kind, config.rules)
    return RuleSet(tuple(assembled))


def validate(document: Document, kind: DocumentKind, config: PaveConfig) -> ValidationResult:
    ruleset = build_ruleset(config, kind)
    logger.debug("%s (%s): %s", document.path, kind.value, ", ".join(ruleset.names()))
    diagnostics = tuple(item for rule in ruleset.rules for item in rule.apply(document))
    return ValidationResult(path=str(document.path), diagnostics=diagnostics)


def gradual_deadline_passed(deadline: str, today: date | None = None) -> bool:
    try:
        limit = date.fromisoformat(deadline.strip())
    except ValueError:
        logger.warning(
            "invalid gradual_until %r, expected YYYY-MM-DD; ignoring deadline", deadline
        )
        return False
    return (today or date.today()) > limit


def gradual_mode_active(
    rules: RulesConfig,
    *,
    strict: bool = False,
    gradual: bool = False,
    today: date | None = None,
) -> bool:
    if strict:
        return False
    if gradual:
        return True
    if not rules.gradual:
        return False
    if rules.gradual_until and gradual_deadline_passed(rules.gradual_until, today):
        logger.info("gradual mode deadline %s has passed", rules.gradual_until)
        return False
    return True


def soften(result: ValidationResult) -> ValidationResult:
    """Turn every error into a warning that remembers it was an error."""
    softened = tuple(
        replace(item, severity=Severity.WARNING, converted_from_error=True)
        if item.severity is Severity.ERROR
        else item
        for item in result.diagnostics
    )
    return ValidationResult(path=result.path, diagnostics=softened)
