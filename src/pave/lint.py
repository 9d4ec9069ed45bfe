"""Prose checks for markdown docs.

Eight rules look for broken links, dead anchors, stale code references,
heading style problems, images without alt text, long paragraphs, repeated
headings and trailing whitespace. Nothing inside a fenced block or the
frontmatter is checked. Only trailing whitespace is fixable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable
import logging
import re
import urllib.error
import urllib.request

from pave.config import LintConfig
from pave.exceptions import ConfigError, DocumentReadError, PaveError
from pave.parser import CodeBlockTracker, split_frontmatter

logger = logging.getLogger(__name__)

_LINK_RE = re.compile(r"\[([^\]]*)\]\(([^)]+)\)")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_ATX_RE = re.compile(r"^#{1,6}(?!#)")
_ATX_SPACED_RE = re.compile(r"^#{1,6}\s")
_SETEXT_RE = re.compile(r"^(=+|-+)\s*$")
_CODE_REF_RE = re.compile(
    r"`([^`]+\.(?:rs|py|js|ts|go|java|rb|c|cpp|h|hpp))`"
    r"|\[[^\]]*\]\(([^)]+\.(?:rs|py|js|ts|go|java|rb|c|cpp|h|hpp))\)"
)
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
_HTML_IMG_RE = re.compile(r"<img\s+[^>]*>", re.IGNORECASE)
_ALT_RE = re.compile(r"""alt\s*=\s*["']([^"']*)["']""", re.IGNORECASE)
_HTML_ID_RE = re.compile(r"""<a\s+[^>]*(?:id|name)\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_LIST_RE = re.compile(r"^([-*+]\s|\d+[.)]\s)")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")

UrlChecker = Callable[[str], str | None]


class LintRule(str, Enum):
    BROKEN_INTERNAL_LINKS = "broken-internal-links"
    DEAD_ANCHORS = "dead-anchors"
    STALE_CODE_REFS = "stale-code-refs"
    INCONSISTENT_HEADINGS = "inconsistent-headings"
    MISSING_ALT_TEXT = "missing-alt-text"
    LONG_PARAGRAPHS = "long-paragraphs"
    DUPLICATE_HEADINGS = "duplicate-headings"
    TRAILING_WHITESPACE = "trailing-whitespace"

    @property
    def fixable(self) -> bool:
        return self is LintRule.TRAILING_WHITESPACE


class UnknownLintRule(PaveError):
    pass


@dataclass(frozen=True)
class LintIssue:
    file: str
    line: int
    rule: LintRule
    message: str
    fixable: bool = False


@dataclass
class LintOutcome:
    issues: list[LintIssue] = field(default_factory=list)
    fixed_count: int = 0
    fixed_text: str | None = None


@dataclass(frozen=True)
class LintOptions:
    rules: tuple[LintRule, ...] = tuple(LintRule)
    project_root: Path = Path(".")
    max_paragraph_words: int = 150
    external_links: bool = False
    fix: bool = False


def _rule_named(name: str, *, origin: str) -> LintRule:
    try:
        return LintRule(name)
    except ValueError:
        if origin == "config":
            raise ConfigError(f"Unknown lint rule in config: {name}") from None
        raise UnknownLintRule(f"Unknown lint rule: {name}") from None


def select_rules(requested: Iterable[str] | None, config: LintConfig) -> tuple[LintRule, ...]:
    """CLI selection wins over `lint.enable`; `lint.disable` always applies."""
    names = [name.strip() for name in requested or [] if name.strip()]
    if names:
        chosen = {_rule_named(name, origin="cli") for name in names}
    elif config.enable:
        chosen = {_rule_named(name, origin="config") for name in config.enable}
    else:
        chosen = set(LintRule)
    for name in config.disable:
        try:
            chosen.discard(LintRule(name))
        except ValueError:
            logger.warning("ignoring unknown rule %r in lint.disable", name)
    return tuple(rule for rule in LintRule if rule in chosen)


def heading_anchor(text: str) -> str:
    return re.sub(r"[^a-z0-9-]", "", text.strip().lower().replace(" ", "-"))


def _normalize_anchor(anchor: str) -> str:
    return re.sub(r"[^a-z0-9-]", "", anchor.lower())


def prose_mask(lines: list[str]) -> list[bool]:
    """True for lines that belong to frontmatter or a fenced block."""
    masked = [False] * len(lines)
    frontmatter, body_start = split_frontmatter(lines)
    if frontmatter is not None:
        for idx in range(body_start):
            masked[idx] = True
    tracker = CodeBlockTracker()
    for idx in range(body_start, len(lines)):
        was_open = tracker.in_block
        if tracker.process(lines[idx]) or was_open:
            masked[idx] = True
    return masked


def collect_anchors(lines: list[str], masked: list[bool] | None = None) -> set[str]:
    masked = masked if masked is not None else prose_mask(lines)
    anchors: set[str] = set()
    for line, skip in zip(lines, masked):
        if skip:
            continue
        match = _HEADING_RE.match(line)
        if match:
            anchors.add(heading_anchor(match.group(2)))
        for html_id in _HTML_ID_RE.findall(line):
            anchors.add(_normalize_anchor(html_id))
    return anchors


def check_url(url: str, timeout: float = 5.0) -> str | None:
    """Return a failure reason for an unreachable URL, or None."""
    request = urllib.request.Request(url, method="HEAD", headers={"User-Agent": "pave-lint"})
    try:
        with urllib.request.urlopen(request, timeout=timeout):
            return None
    except urllib.error.HTTPError as exc:
        return f"HTTP {exc.code}"
    except (urllib.error.URLError, OSError) as exc:
        return str(getattr(exc, "reason", exc))


class _FileLinter:
    def __init__(self, path: Path, text: str, options: LintOptions, url_checker: UrlChecker):
        self.path = path
        self.text = text
        self.options = options
        self.url_checker = url_checker
        self.lines = text.splitlines()
        self.masked = prose_mask(self.lines)
        self.issues: list[LintIssue] = []
        self._anchor_cache: dict[Path, set[str]] = {}

    def prose(self) -> Iterable[tuple[int, str]]:
        for idx, line in enumerate(self.lines):
            if not self.masked[idx]:
                yield idx + 1, line

    def report(self, line: int, rule: LintRule, message: str) -> None:
        self.issues.append(
            LintIssue(
                file=str(self.path),
                line=line,
                rule=rule,
                message=message,
                fixable=rule.fixable,
            )
        )

    def resolve(self, target: str) -> Path:
        if target.startswith("/"):
            return self.options.project_root / target.lstrip("/")
        return self.path.parent / target

    def broken_internal_links(self) -> None:
        for number, line in self.prose():
            for match in _LINK_RE.finditer(line):
                target = match.group(2).strip().split()[0] if match.group(2).strip() else ""
                if not target or target.startswith("#"):
                    continue
                if target.startswith(("http://", "https://")):
                    if self.options.external_links:
                        reason = self.url_checker(target)
                        if reason is not None:
                            self.report(
                                number,
                                LintRule.BROKEN_INTERNAL_LINKS,
                                f"broken external link to '{target}' ({reason})",
                            )
                    continue
                if _SCHEME_RE.match(target):
                    continue
                file_part = target.split("#", 1)[0]
                if file_part and not self.resolve(file_part).exists():
                    self.report(
                        number,
                        LintRule.BROKEN_INTERNAL_LINKS,
                        f"broken link to '{file_part}' (file not found)",
                    )

    def _anchors_of(self, path: Path) -> set[str] | None:
        if path not in self._anchor_cache:
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                return None
            self._anchor_cache[path] = collect_anchors(lines)
        return self._anchor_cache[path]

    def dead_anchors(self) -> None:
        own = collect_anchors(self.lines, self.masked)
        for number, line in self.prose():
            for match in _LINK_RE.finditer(line):
                target = match.group(2).strip()
                if "#" not in target or _SCHEME_RE.match(target):
                    continue
                file_part, anchor = target.split("#", 1)
                if not anchor:
                    continue
                if not file_part:
                    if _normalize_anchor(anchor) not in own:
                        self.report(
                            number,
                            LintRule.DEAD_ANCHORS,
                            f"dead anchor '#{anchor}' (section not found)",
                        )
                    continue
                resolved = self.resolve(file_part)
                if not resolved.is_file():
                    continue
                anchors = self._anchors_of(resolved)
                if anchors is not None and _normalize_anchor(anchor) not in anchors:
                    self.report(
                        number,
                        LintRule.DEAD_ANCHORS,
                        f"dead anchor '{file_part}#{anchor}' (section not found in target file)",
                    )

    def stale_code_refs(self) -> None:
        for number, line in self.prose():
            for match in _CODE_REF_RE.finditer(line):
                ref = match.group(1) or match.group(2) or ""
                if (
                    not ref
                    or "example" in ref
                    or ref.startswith("http")
                    or any(char in ref for char in "*?{<")
                ):
                    continue
                candidates = (
                    self.options.project_root / ref.lstrip("/"),
                    self.path.parent / ref,
                )
                if not any(candidate.exists() for candidate in candidates):
                    self.report(
                        number,
                        LintRule.STALE_CODE_REFS,
                        f"reference to '{ref}' (file not found)",
                    )

    def inconsistent_headings(self) -> None:
        spaced: bool | None = None
        setext_seen = False
        previous: tuple[int, str] | None = None
        for number, line in self.prose():
            if _ATX_RE.match(line):
                has_space = _ATX_SPACED_RE.match(line) is not None or line.strip("#") == ""
                if spaced is None:
                    spaced = has_space
                elif spaced != has_space:
                    detail = "missing space after #" if spaced else "unexpected space after #"
                    self.report(
                        number,
                        LintRule.INCONSISTENT_HEADINGS,
                        f"inconsistent heading style ({detail})",
                    )
                if setext_seen:
                    self.report(
                        number,
                        LintRule.INCONSISTENT_HEADINGS,
                        "mixed ATX and Setext heading styles",
                    )
            elif (
                _SETEXT_RE.match(line)
                and previous is not None
                and previous[0] == number - 1
                and previous[1].strip()
                and not previous[1].startswith("#")
                and not _LIST_RE.match(previous[1].strip())
            ):
                if spaced is not None:
                    self.report(
                        number,
                        LintRule.INCONSISTENT_HEADINGS,
                        "mixed ATX and Setext heading styles",
                    )
                setext_seen = True
            previous = (number, line)

    def missing_alt_text(self) -> None:
        for number, line in self.prose():
            for match in _IMAGE_RE.finditer(line):
                if not match.group(1).strip():
                    self.report(number, LintRule.MISSING_ALT_TEXT, "missing alt text for image")
            for tag in _HTML_IMG_RE.findall(line):
                alt = _ALT_RE.search(tag)
                if alt is None or not alt.group(1).strip():
                    self.report(number, LintRule.MISSING_ALT_TEXT, "missing alt text for image")

    def long_paragraphs(self) -> None:
        limit = self.options.max_paragraph_words
        start: int | None = None
        words = 0

        def flush() -> None:
            if start is not None and words > limit:
                self.report(
                    start,
                    LintRule.LONG_PARAGRAPHS,
                    f"long paragraph ({words} words, max {limit})",
                )

        for idx, line in enumerate(self.lines):
            trimmed = line.strip()
            breaks = (
                self.masked[idx]
                or not trimmed
                or trimmed.startswith("#")
                or _LIST_RE.match(trimmed) is not None
            )
            if breaks:
                flush()
                start, words = None, 0
                continue
            if start is None:
                start = idx + 1
            words += len(trimmed.split())
        flush()

    def duplicate_headings(self) -> None:
        seen: dict[tuple[int, str], int] = {}
        for number, line in self.prose():
            match = _HEADING_RE.match(line)
            if not match:
                continue
            text = match.group(2).strip()
            key = (len(match.group(1)), text.lower())
            if key in seen:
                self.report(
                    number,
                    LintRule.DUPLICATE_HEADINGS,
                    f"duplicate heading '{text}' (also at line {seen[key]})",
                )
            else:
                seen[key] = number

    def trailing_whitespace(self, outcome: LintOutcome) -> None:
        fixed = self.text.splitlines(keepends=True)
        for number, line in self.prose():
            if not line.endswith((" ", "\t")):
                continue
            if self.options.fix:
                ending = fixed[number - 1][len(line):]
                fixed[number - 1] = line.rstrip(" \t") + ending
                outcome.fixed_count += 1
            else:
                self.report(number, LintRule.TRAILING_WHITESPACE, "trailing whitespace")
        if outcome.fixed_count:
            outcome.fixed_text = "".join(fixed)

    def run(self) -> LintOutcome:
        outcome = LintOutcome()
        checks = {
            LintRule.BROKEN_INTERNAL_LINKS: self.broken_internal_links,
            LintRule.DEAD_ANCHORS: self.dead_anchors,
            LintRule.STALE_CODE_REFS: self.stale_code_refs,
            LintRule.INCONSISTENT_HEADINGS: self.inconsistent_headings,
            LintRule.MISSING_ALT_TEXT: self.missing_alt_text,
            LintRule.LONG_PARAGRAPHS: self.long_paragraphs,
            LintRule.DUPLICATE_HEADINGS: self.duplicate_headings,
        }
        for rule in self.options.rules:
            if rule is LintRule.TRAILING_WHITESPACE:
                self.trailing_whitespace(outcome)
            else:
                checks[rule]()
        outcome.issues = sorted(self.issues, key=lambda issue: issue.line)
        return outcome


def lint_text(
    path: Path,
    text: str,
    options: LintOptions,
    *,
    url_checker: UrlChecker = check_url,
) -> LintOutcome:
    return _FileLinter(path, text, options, url_checker).run()


def lint_file(
    path: Path,
    options: LintOptions,
    *,
    url_checker: UrlChecker = check_url,
) -> LintOutcome:
    try:
        with path.open(encoding="utf-8", newline="") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(f"failed to read {path}: {exc}") from exc
    outcome = lint_text(path, text, options, url_checker=url_checker)
    if outcome.fixed_text is not None and outcome.fixed_text != text:
        path.write_text(outcome.fixed_text, encoding="utf-8", newline="")
        logger.debug("fixed %d issue(s) in %s", outcome.fixed_count, path)
    return outcome
