from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from pave.config import PaveConfig, RulesConfig, TypeSpecificRules
from pave.engine import (
    DocumentKind,
    build_ruleset,
    detect_kind,
    gradual_deadline_passed,
    gradual_mode_active,
    soften,
    validate,
)
from pave.parser import parse
from pave.rules import Severity
from tests.project_helpers import PASSING_DOC, dedent


def _doc(text: str, name: str = "doc.md"):
    return parse(Path(name), dedent(text))


def _config(tmp_path: Path, **rules) -> PaveConfig:
    return PaveConfig(rules=RulesConfig(**rules), path=tmp_path / ".pave.toml")


@pytest.mark.parametrize(
    ("relative", "expected"),
    [
        ("components/auth.md", DocumentKind.COMPONENT),
        ("runbooks/deploy.md", DocumentKind.RUNBOOK),
        ("adr/0001-db.md", DocumentKind.ADR),
        ("decisions/db.md", DocumentKind.ADR),
        ("guide.md", DocumentKind.OTHER),
    ],
)
def test_detect_kind_from_path(relative: str, expected: DocumentKind) -> None:
    assert detect_kind(_doc("# T\n"), relative) is expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("## Status\nProposed\n", DocumentKind.ADR),
        ("## Status\nunknown\n", DocumentKind.OTHER),
        ("## Preconditions\n", DocumentKind.RUNBOOK),
        ("## Interface\n", DocumentKind.COMPONENT),
    ],
)
def test_detect_kind_from_sections(text: str, expected: DocumentKind) -> None:
    assert detect_kind(_doc(text), "notes.md") is expected


def test_build_ruleset_defaults(tmp_path: Path) -> None:
    ruleset = build_ruleset(_config(tmp_path), DocumentKind.OTHER)
    assert ruleset.names() == [
        "require-section-purpose",
        "require-section-verification",
        "require-command-in-verification",
        "require-section-examples",
        "require-code-block-in-examples",
        "max-lines-300",
    ]


def test_build_ruleset_toggles(tmp_path: Path) -> None:
    config = _config(
        tmp_path,
        require_verification=False,
        require_examples=False,
        validate_paths=True,
        max_lines=50,
        type_specific=TypeSpecificRules(adrs=True),
    )
    assert build_ruleset(config, DocumentKind.ADR).names() == [
        "require-section-purpose",
        "max-lines-50",
        "validate-paths",
        "require-section-status",
        "require-section-context",
        "require-section-decision",
        "require-section-consequences",
        "require-valid-adr-status",
    ]
    assert build_ruleset(config, DocumentKind.RUNBOOK).names()[-1] == "validate-paths"


def test_validate_passing_document(tmp_path: Path) -> None:
    result = validate(_doc(PASSING_DOC), DocumentKind.OTHER, _config(tmp_path))
    assert result.is_valid
    assert result.errors == ()
    assert result.warnings == ()


def test_validate_missing_sections(tmp_path: Path) -> None:
    result = validate(
        _doc("# Title\n\n## Purpose\nOnly purpose.\n"), DocumentKind.OTHER, _config(tmp_path)
    )
    assert [item.message for item in result.errors] == [
        "Missing required section 'Verification'",
        "Missing required section 'Examples'",
    ]
    assert all(item.hint for item in result.errors)


def test_validate_runbook_rules(tmp_path: Path) -> None:
    config = _config(tmp_path, type_specific=TypeSpecificRules(runbooks=True))
    result = validate(_doc(PASSING_DOC), DocumentKind.RUNBOOK, config)
    assert [item.rule_name for item in result.errors] == [
        "require-section-when to use",
        "require-section-steps",
        "require-section-rollback",
    ]


def test_validate_line_limit_warning(tmp_path: Path) -> None:
    text = dedent(PASSING_DOC) + "\n".join(["filler"] * 300) + "\n"
    document = parse(Path("long.md"), text)
    result = validate(document, DocumentKind.OTHER, _config(tmp_path))
    assert result.errors == ()
    [warning] = result.warnings
    assert warning.message.startswith("Document exceeds 300 line limit")


def test_gradual_deadline() -> None:
    assert not gradual_deadline_passed("2030-01-01", date(2029, 12, 31))
    assert not gradual_deadline_passed("2030-01-01", date(2030, 1, 1))
    assert gradual_deadline_passed("2030-01-01", date(2030, 1, 2))
    assert not gradual_deadline_passed("next year", date(2030, 1, 2))


def test_gradual_mode_active() -> None:
    assert not gradual_mode_active(RulesConfig())
    assert gradual_mode_active(RulesConfig(), gradual=True)
    assert not gradual_mode_active(RulesConfig(gradual=True), strict=True)
    assert gradual_mode_active(
        RulesConfig(gradual=True, gradual_until="2030-01-01"), today=date(2029, 6, 1)
    )
    assert not gradual_mode_active(
        RulesConfig(gradual=True, gradual_until="2030-01-01"), today=date(2030, 6, 1)
    )


def test_soften_converts_errors(tmp_path: Path) -> None:
    result = validate(_doc("# T\n## Purpose\n"), DocumentKind.OTHER, _config(tmp_path))
    softened = soften(result)
    assert softened.is_valid
    assert len(softened.warnings) == len(result.errors) + len(result.warnings)
    assert all(item.severity is Severity.WARNING for item in softened.warnings)
    assert all(item.converted_from_error for item in softened.warnings)


def test_soften_keeps_rule_order(tmp_path: Path) -> None:
    document = _doc(PASSING_DOC + "\n## Paths\n\n- /etc/app\n")
    config = _config(tmp_path, max_lines=5, validate_paths=True)
    result = validate(document, DocumentKind.OTHER, config)
    assert [item.rule_name for item in result.diagnostics] == ["max-lines-5", "validate-paths"]

    softened = soften(result)
    assert [item.rule_name for item in softened.warnings] == ["max-lines-5", "validate-paths"]
    assert [item.converted_from_error for item in softened.warnings] == [False, True]
