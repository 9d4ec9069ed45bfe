from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Mapping, NoReturn, Optional
import json
import logging
import subprocess
import sys

import typer

from pave import commands
from pave.config import PaveConfig, get_value, load_config
from pave.doctor import run_doctor
from pave.exceptions import PaveError
from pave.lint import UnknownLintRule, UrlChecker, check_url
from pave.report import OutputFormat, render, to_json
from pave.vcs import GitRunner

app = typer.Typer(add_completion=False, help="Lint and verify PAVED documentation.")
config_app = typer.Typer(add_completion=False, help="Read values from .pave.toml.")
app.add_typer(config_app, name="config")

EXIT_PROGRAM_ERROR = 2

_FORMAT_HELP = "Output format: text, json or github."


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to .pave.toml (default: search upwards from the current directory).",
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    obj = ctx.ensure_object(dict)
    obj.setdefault("config_path", config_path)


def _context_value(ctx: typer.Context, key: str, default):
    obj = ctx.find_root().obj
    if isinstance(obj, Mapping):
        candidate = obj.get(key)
        if candidate is not None:
            return candidate
    return default


def _context_git_runner(ctx: typer.Context) -> GitRunner:
    candidate = _context_value(ctx, "git_runner", subprocess.run)
    return candidate if callable(candidate) else subprocess.run


def _context_url_checker(ctx: typer.Context) -> UrlChecker:
    candidate = _context_value(ctx, "url_checker", check_url)
    return candidate if callable(candidate) else check_url


def _load(ctx: typer.Context) -> PaveConfig:
    return load_config(_context_value(ctx, "config_path", None))


def _parse_format(value: str) -> OutputFormat:
    try:
        return OutputFormat(value.strip().lower())
    except ValueError:
        raise typer.BadParameter(
            f"unknown format '{value}' (expected text, json or github)",
            param_hint="--format",
        ) from None


def _emit(text: str) -> None:
    if text:
        typer.echo(text)


def _abort(exc: PaveError) -> NoReturn:
    typer.secho(f"error: {exc}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=EXIT_PROGRAM_ERROR) from exc


def _run(ctx: typer.Context, output_format: str, fn: Callable[[PaveConfig], tuple]) -> None:
    """Load config, run one command, render its record and exit with its code."""
    fmt = _parse_format(output_format)
    try:
        record, exit_code = fn(_load(ctx))
    except PaveError as exc:
        _abort(exc)
    _emit(render(record, fmt))
    raise typer.Exit(code=exit_code)


@app.command("check")
def check(
    ctx: typer.Context,
    paths: Optional[List[Path]] = typer.Argument(
        None, help="Files or directories to check (default: the docs root)."
    ),
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as failures."),
    gradual: bool = typer.Option(
        False, "--gradual", help="Report errors as warnings for incremental adoption."
    ),
    changed: bool = typer.Option(
        False, "--changed", help="Only check docs changed against the base ref."
    ),
    base: Optional[str] = typer.Option(None, "--base", help="Base ref for --changed."),
) -> None:
    """Validate docs against the PAVED structure rules."""
    git_runner = _context_git_runner(ctx)
    _run(
        ctx,
        output_format,
        lambda config: commands.run_check(
            config,
            paths,
            strict=strict,
            gradual=gradual,
            changed=changed,
            base=base,
            run_fn=git_runner,
        ),
    )


@app.command("verify")
def verify(
    ctx: typer.Context,
    paths: Optional[List[Path]] = typer.Argument(
        None, help="Files or directories to verify (default: the docs root)."
    ),
    timeout: int = typer.Option(30, "--timeout", help="Per-command timeout in seconds."),
    keep_going: bool = typer.Option(
        False, "--keep-going", help="Keep running after a failing command."
    ),
    report: Optional[Path] = typer.Option(
        None, "--report", help="Also write the JSON results to this path."
    ),
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """Run the commands in each doc's Verification section."""
    if timeout <= 0:
        raise typer.BadParameter("timeout must be greater than 0", param_hint="--timeout")

    def _verify(config: PaveConfig) -> tuple:
        record, exit_code = commands.run_verify(
            config, paths, timeout_secs=timeout, keep_going=keep_going
        )
        if report is not None:
            try:
                report.parent.mkdir(parents=True, exist_ok=True)
                report.write_text(to_json(record) + "\n", encoding="utf-8")
            except OSError as exc:
                raise PaveError(f"failed to write report {report}: {exc}") from exc
        return record, exit_code

    _run(ctx, output_format, _verify)


@app.command("coverage")
def coverage(
    ctx: typer.Context,
    threshold: Optional[float] = typer.Option(
        None, "--threshold", help="Fail when coverage is below this percentage."
    ),
    include: List[str] = typer.Option([], "--include", help="Only count matching files."),
    exclude: List[str] = typer.Option([], "--exclude", help="Skip matching files."),
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """Report which code files are covered by a doc's Paths section."""
    if threshold is not None and not 0 <= threshold <= 100:
        raise typer.BadParameter("threshold must be between 0 and 100", param_hint="--threshold")
    _run(
        ctx,
        output_format,
        lambda config: commands.run_coverage(
            config, threshold=threshold, include=include, exclude=exclude
        ),
    )


@app.command("coverage-changed")
def coverage_changed(
    ctx: typer.Context,
    base: Optional[str] = typer.Option(None, "--base", help="Base ref to diff against."),
    include: List[str] = typer.Option([], "--include", help="Only count matching files."),
    exclude: List[str] = typer.Option([], "--exclude", help="Skip matching files."),
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """Fail when code files added since the base ref have no doc."""
    git_runner = _context_git_runner(ctx)
    _run(
        ctx,
        output_format,
        lambda config: commands.run_coverage_changed(
            config, base=base, include=include, exclude=exclude, run_fn=git_runner
        ),
    )


@app.command("changed")
def changed(
    ctx: typer.Context,
    base: Optional[str] = typer.Option(None, "--base", help="Base ref to diff against."),
    strict: bool = typer.Option(
        False, "--strict", help="Fail when an impacted doc was not updated."
    ),
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """List docs whose mapped code changed since the base ref."""
    git_runner = _context_git_runner(ctx)
    _run(
        ctx,
        output_format,
        lambda config: commands.run_changed(
            config, base=base, strict=strict, run_fn=git_runner
        ),
    )


@app.command("lint")
def lint(
    ctx: typer.Context,
    paths: Optional[List[Path]] = typer.Argument(
        None, help="Files or directories to lint (default: the docs root)."
    ),
    fix: bool = typer.Option(False, "--fix", help="Fix what can be fixed in place."),
    rules: Optional[str] = typer.Option(
        None, "--rules", help="Comma-separated rule ids to run."
    ),
    external_links: bool = typer.Option(
        False, "--external-links", help="Also check http(s) links."
    ),
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """Run prose checks: links, anchors, headings, images, whitespace."""
    url_checker = _context_url_checker(ctx)
    requested = [name for name in (rules or "").split(",") if name.strip()]

    def _lint(config: PaveConfig) -> tuple:
        try:
            return commands.run_lint(
                config,
                paths,
                rules=requested,
                fix=fix,
                external_links=external_links,
                url_checker=url_checker,
            )
        except UnknownLintRule as exc:
            raise typer.BadParameter(str(exc), param_hint="--rules") from exc

    _run(ctx, output_format, _lint)


@app.command("doctor")
def doctor(
    ctx: typer.Context,
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """Diagnose configuration, structure, verification and coverage problems."""
    fmt = _parse_format(output_format)
    try:
        record, exit_code = run_doctor(_context_value(ctx, "config_path", None))
    except PaveError as exc:
        _abort(exc)
    _emit(render(record, fmt))
    raise typer.Exit(code=exit_code)


@app.command("status")
def status(
    ctx: typer.Context,
    changed: bool = typer.Option(
        False, "--changed", help="Include docs changed against the base ref."
    ),
    base: Optional[str] = typer.Option(None, "--base", help="Base ref for --changed."),
    output_format: str = typer.Option("text", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """Show documentation compliance at a glance."""
    git_runner = _context_git_runner(ctx)
    _run(
        ctx,
        output_format,
        lambda config: commands.run_status(
            config, changed=changed, base=base, run_fn=git_runner
        ),
    )


@config_app.command("get")
def config_get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dotted key such as rules.max_lines."),
) -> None:
    """Print one configuration value."""
    try:
        value = get_value(_load(ctx).raw, key)
    except PaveError as exc:
        _abort(exc)
    if isinstance(value, (dict, list)):
        typer.echo(json.dumps(value, indent=2, sort_keys=True, default=str))
    elif isinstance(value, bool):
        typer.echo("true" if value else "false")
    else:
        typer.echo(str(value))
