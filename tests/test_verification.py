from __future__ import annotations

from pathlib import Path
import shutil

import pytest

from pave import verification
from pave.parser import ExpectedOutput, OutputStrategy, parse
from pave.verification import (
    VerificationItem,
    VerificationSpec,
    VerifyOptions,
    VerifyStatus,
    aggregate_status,
    classify,
    command_lines,
    extract_spec,
    output_matches,
    run_all,
    run_document,
    run_item,
)
from tests.project_helpers import dedent


def _doc(text: str, name: str = "doc.md"):
    return parse(Path(name), dedent(text))


def _spec(*commands: str, name: str = "doc.md") -> VerificationSpec:
    return VerificationSpec(
        source_file=Path(name),
        section_line=1,
        items=tuple(VerificationItem(command=command, timeout_secs=5) for command in commands),
    )


def test_extract_spec_builds_one_item_per_block() -> None:
    document = _doc(
        """
        ---
        working_dir: app
        ---
        # Doc
        ## Verification

        ```bash
        # build first
        $ make build
        $ make test
        ```

        <!-- pave:working_dir other -->
        <!-- pave:env MODE=ci -->
        ```sh
        ./check.sh
        ```

        ```python
        print("not run")
        ```
        """
    )
    spec = extract_spec(document, timeout_secs=7)
    assert spec.section_line == 5
    first, second = spec.items
    assert first.command == "make build && make test"
    assert first.working_dir == "app"
    assert first.timeout_secs == 7
    assert second.command == "./check.sh"
    assert second.working_dir == "other"
    assert second.env_vars == (("MODE", "ci"),)


def test_extract_spec_without_commands() -> None:
    assert extract_spec(_doc("## Purpose\n")) is None
    assert extract_spec(_doc("## Verification\nNothing to run.\n")) is None


def test_command_lines_strip_prompts_and_output() -> None:
    [block] = _doc("## V\n```bash\n$ echo hi\nhi\n> echo there\n```\n").sections[0].code_blocks
    assert command_lines(block) == ["echo hi", "echo there"]


@pytest.mark.parametrize(
    ("expected", "stdout", "matches"),
    [
        (None, "anything", True),
        (ExpectedOutput(OutputStrategy.CONTAINS, "ell"), "hello\n", True),
        (ExpectedOutput(OutputStrategy.CONTAINS, "ELL"), "hello\n", False),
        (ExpectedOutput(OutputStrategy.REGEX, r"^b\d$"), "a\nb1\nc", True),
        (ExpectedOutput(OutputStrategy.REGEX, r"([unclosed"), "([unclosed", False),
        (ExpectedOutput(OutputStrategy.EXACT, "  done "), "done\n", True),
        (ExpectedOutput(OutputStrategy.EXACT, "done"), "done twice\n", False),
    ],
)
def test_output_matches(expected, stdout: str, matches: bool) -> None:
    assert output_matches(expected, stdout) is matches


def test_classify_regimes() -> None:
    item = VerificationItem(
        command="x", expected_output=ExpectedOutput(OutputStrategy.CONTAINS, "want")
    )
    assert classify(item, 1, "want", VerifyOptions()) == (VerifyStatus.FAIL, None)
    assert classify(item, 0, "want", VerifyOptions())[0] is VerifyStatus.PASS
    status, mismatch = classify(item, 0, "got", VerifyOptions())
    assert status is VerifyStatus.WARN
    assert mismatch.expected == "want"
    assert mismatch.actual == "got"
    assert classify(item, 0, "got", VerifyOptions(strict_output_matching=True))[0] is (
        VerifyStatus.FAIL
    )
    assert classify(item, 0, "got", VerifyOptions(skip_output_matching=True)) == (
        VerifyStatus.PASS,
        None,
    )


def test_aggregate_status_order() -> None:
    assert aggregate_status([]) is VerifyStatus.PASS
    assert aggregate_status([VerifyStatus.PASS, VerifyStatus.SKIPPED]) is VerifyStatus.SKIPPED
    assert aggregate_status([VerifyStatus.SKIPPED, VerifyStatus.WARN]) is VerifyStatus.WARN
    assert aggregate_status([VerifyStatus.WARN, VerifyStatus.TIMEOUT]) is VerifyStatus.TIMEOUT


def test_run_item_pass_and_fail(tmp_path: Path) -> None:
    passed = run_item(VerificationItem(command="echo hello"), tmp_path, VerifyOptions())
    assert passed.status is VerifyStatus.PASS
    assert passed.exit_code == 0
    assert passed.stdout == "hello\n"

    failed = run_item(
        VerificationItem(command="echo oops >&2; exit 3"), tmp_path, VerifyOptions()
    )
    assert failed.status is VerifyStatus.FAIL
    assert failed.exit_code == 3
    assert failed.stderr == "oops\n"
    assert failed.output_mismatch is None


def test_run_item_env_and_working_dir(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    item = VerificationItem(
        command='echo "$MODE" && pwd',
        working_dir="sub",
        env_vars=(("MODE", "first"), ("MODE", "last")),
    )
    result = run_item(item, tmp_path, VerifyOptions())
    assert result.status is VerifyStatus.PASS
    mode, cwd = result.stdout.splitlines()
    assert mode == "last"
    assert Path(cwd).resolve() == (tmp_path / "sub").resolve()


def test_run_item_timeout_kills_command(tmp_path: Path) -> None:
    item = VerificationItem(command="sleep 30", timeout_secs=1)
    result = run_item(item, tmp_path, VerifyOptions())
    assert result.status is VerifyStatus.TIMEOUT
    assert result.duration_ms < 10_000


@pytest.mark.skipif(shutil.which("setsid") is None, reason="needs setsid")
def test_run_item_timeout_ignores_escaped_children(tmp_path: Path) -> None:
    item = VerificationItem(command="(setsid sleep 15 &) ; echo started; sleep 30", timeout_secs=1)
    result = run_item(item, tmp_path, VerifyOptions())
    assert result.status is VerifyStatus.TIMEOUT
    assert result.duration_ms < 8_000


def test_run_item_spawn_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_shell(*args, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", "sh")

    monkeypatch.setattr(verification.subprocess, "Popen", _no_shell)
    result = run_item(VerificationItem(command="true"), tmp_path, VerifyOptions())
    assert result.status is VerifyStatus.FAIL
    assert result.exit_code is None
    assert result.stderr.startswith("failed to spawn command:")


def test_run_document_skips_after_failure(tmp_path: Path) -> None:
    spec = _spec("false", "echo never")
    outcome = run_document(spec, tmp_path, VerifyOptions())
    assert [result.status for result in outcome.results] == [
        VerifyStatus.FAIL,
        VerifyStatus.SKIPPED,
    ]
    assert outcome.status is VerifyStatus.FAIL

    outcome = run_document(spec, tmp_path, VerifyOptions(keep_going=True))
    assert [result.status for result in outcome.results] == [
        VerifyStatus.FAIL,
        VerifyStatus.PASS,
    ]


def test_run_all_stops_at_first_failing_document(tmp_path: Path) -> None:
    specs = [_spec("false", name="a.md"), _spec("true", name="b.md")]
    assert len(run_all(specs, tmp_path, VerifyOptions())) == 1
    assert len(run_all(specs, tmp_path, VerifyOptions(keep_going=True))) == 2


def test_warned_document_does_not_fail(tmp_path: Path) -> None:
    document = _doc(
        """
        ## Verification

        ```bash
        $ echo hello
        ```

        ```bash
        echo actual
        ```

        <!-- pave:expect -->
        ```
        expected
        ```
        """
    )
    outcome = run_document(extract_spec(document), tmp_path, VerifyOptions())
    first, second = outcome.results
    assert first.status is VerifyStatus.PASS
    assert second.status is VerifyStatus.WARN
    assert second.output_mismatch.strategy is OutputStrategy.CONTAINS
    assert second.output_mismatch.expected == "expected"
    assert "actual" in second.output_mismatch.actual
    assert outcome.status is VerifyStatus.WARN
    assert not outcome.status.failed
