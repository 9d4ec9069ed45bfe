"""Run the commands in a document's Verification section.

Each executable block becomes one `VerificationItem`: its command lines are
joined with `&&` and run through `sh -c` with a wall-clock timeout. Results
are classified against the expected exit code and, when declared, the
expected output.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import logging
import os
import re
import signal
import subprocess
import time

from pave.parser import CodeBlock, Document, ExpectedOutput, OutputStrategy, split_inline_output

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECS = 30
KILL_GRACE_SECS = 2
VERIFICATION_SECTION = "Verification"


class VerifyStatus(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def failed(self) -> bool:
        return self in (VerifyStatus.FAIL, VerifyStatus.TIMEOUT)


_STATUS_RANK = {
    VerifyStatus.PASS: 0,
    VerifyStatus.SKIPPED: 1,
    VerifyStatus.WARN: 2,
    VerifyStatus.FAIL: 3,
    VerifyStatus.TIMEOUT: 3,
}


@dataclass(frozen=True)
class VerificationItem:
    command: str
    working_dir: str | None = None
    expected_exit_code: int = 0
    expected_output: ExpectedOutput | None = None
    timeout_secs: int = DEFAULT_TIMEOUT_SECS
    env_vars: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class VerificationSpec:
    source_file: Path
    section_line: int
    items: tuple[VerificationItem, ...]


@dataclass(frozen=True)
class OutputMismatch:
    expected: str
    strategy: OutputStrategy
    actual: str


@dataclass(frozen=True)
class ItemResult:
    item: VerificationItem
    status: VerifyStatus
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    output_mismatch: OutputMismatch | None = None


@dataclass(frozen=True)
class DocumentVerification:
    spec: VerificationSpec
    results: tuple[ItemResult, ...]

    @property
    def status(self) -> VerifyStatus:
        return aggregate_status([result.status for result in self.results])


@dataclass(frozen=True)
class VerifyOptions:
    timeout_secs: int = DEFAULT_TIMEOUT_SECS
    keep_going: bool = False
    strict_output_matching: bool = False
    skip_output_matching: bool = False


def aggregate_status(statuses: list[VerifyStatus]) -> VerifyStatus:
    strongest = VerifyStatus.PASS
    for status in statuses:
        if status.rank > strongest.rank:
            strongest = status
    return strongest


def command_lines(block: CodeBlock) -> list[str]:
    """Commands of a block with prompts stripped and comments dropped."""
    lines = split_inline_output(block.content)[0] if block.has_prompts() else block.lines()
    commands: list[str] = []
    for line in lines:
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        if trimmed.startswith(("$ ", "> ")):
            trimmed = trimmed[2:].strip()
        if trimmed:
            commands.append(trimmed)
    return commands


def extract_spec(
    document: Document, timeout_secs: int = DEFAULT_TIMEOUT_SECS
) -> VerificationSpec | None:
    section = document.get_section(VERIFICATION_SECTION)
    if section is None:
        return None
    items: list[VerificationItem] = []
    for block in section.executable_blocks():
        command = " && ".join(command_lines(block))
        if not command:
            continue
        items.append(
            VerificationItem(
                command=command,
                working_dir=block.working_dir or document.working_dir,
                expected_output=block.expected_output,
                timeout_secs=timeout_secs,
                env_vars=block.env_vars,
            )
        )
    if not items:
        return None
    return VerificationSpec(
        source_file=document.path,
        section_line=section.start_line,
        items=tuple(items),
    )


def output_matches(expected: ExpectedOutput | None, stdout: str) -> bool:
    if expected is None:
        return True
    if expected.strategy is OutputStrategy.CONTAINS:
        return expected.content in stdout
    if expected.strategy is OutputStrategy.REGEX:
        try:
            return re.search(expected.content, stdout, re.MULTILINE) is not None
        except re.error:
            return False
    return stdout.strip() == expected.content.strip()


def classify(
    item: VerificationItem,
    exit_code: int,
    stdout: str,
    options: VerifyOptions,
) -> tuple[VerifyStatus, OutputMismatch | None]:
    if exit_code != item.expected_exit_code:
        return VerifyStatus.FAIL, None
    if output_matches(item.expected_output, stdout) or options.skip_output_matching:
        return VerifyStatus.PASS, None
    mismatch = OutputMismatch(
        expected=item.expected_output.content,
        strategy=item.expected_output.strategy,
        actual=stdout,
    )
    if options.strict_output_matching:
        return VerifyStatus.FAIL, mismatch
    return VerifyStatus.WARN, mismatch


def resolve_working_dir(item: VerificationItem, base_dir: Path) -> Path:
    if item.working_dir is None:
        return base_dir
    path = Path(item.working_dir)
    return path if path.is_absolute() else base_dir / path


def _kill(process: subprocess.Popen) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        process.kill()


def _drain_after_kill(process: subprocess.Popen) -> tuple[bytes, bytes]:
    """Collect what the killed command wrote without waiting on escaped children.

    A descendant that left the process group can keep the pipes open; after
    the grace period the pipes are closed and its output is dropped.
    """
    try:
        return process.communicate(timeout=KILL_GRACE_SECS)
    except subprocess.TimeoutExpired as exc:
        logger.debug("pipes still open after kill, detaching from %r", process.args)
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                stream.close()
        process.wait()
        return exc.stdout or b"", exc.stderr or b""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def run_item(item: VerificationItem, base_dir: Path, options: VerifyOptions) -> ItemResult:
    cwd = resolve_working_dir(item, base_dir)
    env = dict(os.environ)
    for key, value in item.env_vars:
        env[key] = value
    logger.debug("running %r in %s", item.command, cwd)
    start = time.monotonic()
    try:
        process = subprocess.Popen(
            ["sh", "-c", item.command],
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        return ItemResult(
            item=item,
            status=VerifyStatus.FAIL,
            stderr=f"failed to spawn command: {exc}",
            duration_ms=_elapsed_ms(start),
        )
    try:
        raw_out, raw_err = process.communicate(timeout=item.timeout_secs)
    except subprocess.TimeoutExpired:
        _kill(process)
        raw_out, raw_err = _drain_after_kill(process)
        logger.debug("timed out after %ss: %r", item.timeout_secs, item.command)
        return ItemResult(
            item=item,
            status=VerifyStatus.TIMEOUT,
            stdout=raw_out.decode("utf-8", errors="replace"),
            stderr=raw_err.decode("utf-8", errors="replace"),
            duration_ms=_elapsed_ms(start),
        )
    stdout = raw_out.decode("utf-8", errors="replace")
    stderr = raw_err.decode("utf-8", errors="replace")
    status, mismatch = classify(item, process.returncode, stdout, options)
    return ItemResult(
        item=item,
        status=status,
        exit_code=process.returncode,
        stdout=stdout,
        stderr=stderr,
        duration_ms=_elapsed_ms(start),
        output_mismatch=mismatch,
    )


def run_document(
    spec: VerificationSpec, base_dir: Path, options: VerifyOptions
) -> DocumentVerification:
    results: list[ItemResult] = []
    stopped = False
    for item in spec.items:
        if stopped:
            results.append(ItemResult(item=item, status=VerifyStatus.SKIPPED))
            continue
        result = run_item(item, base_dir, options)
        results.append(result)
        if result.status.failed and not options.keep_going:
            stopped = True
    return DocumentVerification(spec=spec, results=tuple(results))


def run_all(
    specs: list[VerificationSpec], base_dir: Path, options: VerifyOptions
) -> list[DocumentVerification]:
    outcomes: list[DocumentVerification] = []
    for spec in specs:
        outcome = run_document(spec, base_dir, options)
        outcomes.append(outcome)
        if outcome.status.failed and not options.keep_going:
            logger.debug("stopping after failing document %s", spec.source_file)
            break
    return outcomes
