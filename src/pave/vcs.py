"""Thin wrapper over the local `git` executable for diff-aware commands."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, TypeAlias
import logging
import subprocess

from pave.exceptions import VcsError

logger = logging.getLogger(__name__)

DEFAULT_BASE_CANDIDATES = ("origin/main", "origin/master", "HEAD~1")

GitRunner: TypeAlias = Callable[..., subprocess.CompletedProcess]


def _git(
    args: list[str],
    *,
    cwd: Path | None,
    run_fn: GitRunner = subprocess.run,
) -> subprocess.CompletedProcess:
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        return run_fn(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise VcsError(f"failed to run git: {exc}") from exc


def _parse_name_list(stdout: str) -> list[str]:
    return [line.strip() for line in stdout.splitlines() if line.strip()]


def ref_exists(ref: str, *, cwd: Path | None = None, run_fn: GitRunner = subprocess.run) -> bool:
    result = _git(["rev-parse", "--verify", "--quiet", ref], cwd=cwd, run_fn=run_fn)
    return result.returncode == 0


def determine_base_ref(
    explicit: str | None = None,
    *,
    cwd: Path | None = None,
    run_fn: GitRunner = subprocess.run,
) -> str:
    if explicit:
        return explicit
    for candidate in DEFAULT_BASE_CANDIDATES:
        if ref_exists(candidate, cwd=cwd, run_fn=run_fn):
            return candidate
    raise VcsError(
        "could not determine a base ref (tried "
        + ", ".join(DEFAULT_BASE_CANDIDATES)
        + "); pass --base explicitly"
    )


def _diff_names(
    base: str,
    extra: list[str],
    *,
    cwd: Path | None,
    run_fn: GitRunner,
) -> list[str]:
    result = _git(["diff", "--name-only", *extra, f"{base}..HEAD"], cwd=cwd, run_fn=run_fn)
    if result.returncode != 0:
        result = _git(["diff", "--name-only", *extra, base], cwd=cwd, run_fn=run_fn)
        if result.returncode != 0:
            raise VcsError(f"git diff failed: {result.stderr.strip()}")
    return _parse_name_list(result.stdout)


def changed_files(
    base: str, *, cwd: Path | None = None, run_fn: GitRunner = subprocess.run
) -> list[str]:
    return _diff_names(base, [], cwd=cwd, run_fn=run_fn)


def added_files(
    base: str, *, cwd: Path | None = None, run_fn: GitRunner = subprocess.run
) -> list[str]:
    return _diff_names(base, ["--diff-filter=A"], cwd=cwd, run_fn=run_fn)
