"""Markdown reader for PAVED documents.

A single pass over the lines of a file produces a `Document`: optional
frontmatter, the title, and the ordered level-2 sections with their fenced
code blocks. Directive comments (`<!-- pave:... -->`) are collected while
scanning and attached to blocks in a separate pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
import logging
import re

import yaml

from pave.exceptions import DocumentReadError

logger = logging.getLogger(__name__)

SHELL_LANGUAGES = frozenset({"bash", "sh", "shell", "zsh"})
COMMAND_PREFIXES = (
    "$ ",
    "make ",
    "npm ",
    "cargo ",
    "pave ",
    "git ",
    "docker ",
    "kubectl ",
)
PROMPT_PREFIXES = ("$ ", "> ")

_FENCE_RE = re.compile(r"^(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
_DIRECTIVE_RE = re.compile(r"^<!--\s*pave:(?P<key>[a-z_]+)(?::(?P<arg>[a-z]+))?(?:\s+(?P<body>.*?))?\s*-->$")


class OutputStrategy(str, Enum):
    CONTAINS = "contains"
    REGEX = "regex"
    EXACT = "exact"


@dataclass(frozen=True)
class ExpectedOutput:
    strategy: OutputStrategy
    content: str


@dataclass(frozen=True)
class CodeBlock:
    language: str
    content: str
    start_line: int
    executable: bool
    working_dir: str | None = None
    env_vars: tuple[tuple[str, str], ...] = ()
    expected_output: ExpectedOutput | None = None

    def lines(self) -> list[str]:
        return self.content.split("\n") if self.content else []

    def has_prompts(self) -> bool:
        return any(line.strip().startswith(PROMPT_PREFIXES) for line in self.lines())


@dataclass(frozen=True)
class Section:
    name: str
    start_line: int
    content: str
    code_blocks: tuple[CodeBlock, ...] = ()

    @property
    def has_code_blocks(self) -> bool:
        return bool(self.code_blocks)

    @property
    def has_commands(self) -> bool:
        return any(
            line.strip().startswith(COMMAND_PREFIXES)
            for line in self.content.split("\n")
        )

    def executable_blocks(self) -> list[CodeBlock]:
        return [block for block in self.code_blocks if block.executable]


@dataclass(frozen=True)
class Document:
    path: Path
    title: str | None
    sections: tuple[Section, ...]
    line_count: int
    frontmatter: dict[str, str] | None = None

    def get_section(self, name: str) -> Section | None:
        wanted = name.casefold()
        for section in self.sections:
            if section.name.casefold() == wanted:
                return section
        return None

    def has_section(self, name: str) -> bool:
        return self.get_section(name) is not None

    @property
    def working_dir(self) -> str | None:
        if not self.frontmatter:
            return None
        value = self.frontmatter.get("working_dir") or self.frontmatter.get(
            "pave.working_dir"
        )
        return value or None


class CodeBlockTracker:
    """Tracks whether a line sits inside a fenced code block.

    A fence opens on a trimmed line starting with three or more backticks or
    tildes and closes on a line using the same character, at least as many
    times, with nothing after it. A longer outer fence can therefore wrap
    shorter inner fences.
    """

    def __init__(self) -> None:
        self.fence: str | None = None
        self.info = ""

    @property
    def in_block(self) -> bool:
        return self.fence is not None

    def process(self, line: str) -> bool:
        """Feed one line; return True when it is an opening or closing fence."""
        match = _FENCE_RE.match(line.strip())
        if match is None:
            return False
        fence = match.group("fence")
        rest = match.group("info")
        if self.fence is None:
            if fence[0] == "`" and "`" in rest:
                # CommonMark: backtick info strings cannot contain backticks
                return False
            self.fence = fence
            self.info = rest.strip()
            return True
        if fence[0] == self.fence[0] and len(fence) >= len(self.fence) and not rest.strip():
            self.fence = None
            self.info = ""
            return True
        return False


@dataclass
class _Directives:
    run: bool = False
    expect: OutputStrategy | None = None
    working_dir: str | None = None
    env_vars: list[tuple[str, str]] = field(default_factory=list)

    def empty(self) -> bool:
        return not (self.run or self.expect or self.working_dir or self.env_vars)


@dataclass
class _RawBlock:
    language: str
    content: str
    start_line: int
    directives: _Directives


def parse_directive(line: str) -> tuple[str, str | None, str] | None:
    """Split a `<!-- pave:KEY[:ARG] BODY -->` comment into its parts."""
    match = _DIRECTIVE_RE.match(line.strip())
    if match is None:
        return None
    return match.group("key"), match.group("arg"), (match.group("body") or "").strip()


def _apply_directive(pending: _Directives, line: str) -> bool:
    parsed = parse_directive(line)
    if parsed is None:
        return False
    key, arg, body = parsed
    if key == "run":
        pending.run = True
    elif key == "expect":
        try:
            pending.expect = OutputStrategy(arg or "contains")
        except ValueError:
            logger.debug("ignoring unknown expect strategy %r", arg)
            return False
    elif key == "working_dir":
        if not body:
            return False
        pending.working_dir = body
    elif key == "env":
        name, sep, value = body.partition("=")
        if not sep or not name.strip():
            return False
        pending.env_vars.append((name.strip(), value.strip()))
    else:
        return False
    return True


def _is_executable(language: str, content: str, run_marker: bool) -> bool:
    if run_marker:
        return True
    if language.lower() in SHELL_LANGUAGES:
        return True
    if language:
        return False
    for line in content.split("\n"):
        if line.strip():
            return line.lstrip().startswith("$ ")
    return False


def split_inline_output(content: str) -> tuple[list[str], str | None]:
    """Split a prompted block into command lines and trailing output text.

    Lines beginning with a prompt are commands, as is anything before the
    first prompt. Other lines after a prompt are output; blank and comment
    lines are skipped until the first output line.
    """
    commands: list[str] = []
    output: list[str] = []
    seen_prompt = False
    for line in content.split("\n"):
        trimmed = line.strip()
        if trimmed.startswith(PROMPT_PREFIXES):
            commands.append(line)
            seen_prompt = True
        elif seen_prompt:
            if not output and (not trimmed or trimmed.startswith("#")):
                continue
            output.append(line)
        else:
            commands.append(line)
    text = "\n".join(output)
    return commands, (text if text.strip() else None)


def _attach(raw_blocks: list[_RawBlock]) -> list[CodeBlock]:
    blocks: list[CodeBlock] = []
    for raw in raw_blocks:
        directives = raw.directives
        if directives.expect is not None:
            if blocks and blocks[-1].executable and blocks[-1].expected_output is None:
                blocks[-1] = replace(
                    blocks[-1],
                    expected_output=ExpectedOutput(directives.expect, raw.content),
                )
            continue
        executable = _is_executable(raw.language, raw.content, directives.run)
        expected = None
        if executable:
            _, inline = split_inline_output(raw.content)
            if inline is not None:
                expected = ExpectedOutput(OutputStrategy.CONTAINS, inline)
        blocks.append(
            CodeBlock(
                language=raw.language,
                content=raw.content,
                start_line=raw.start_line,
                executable=executable,
                working_dir=directives.working_dir,
                env_vars=tuple(directives.env_vars),
                expected_output=expected,
            )
        )
    return blocks


def split_frontmatter(lines: list[str]) -> tuple[list[str] | None, int]:
    """Return the frontmatter lines and the index of the first body line."""
    for idx, line in enumerate(lines):
        if not line.strip():
            continue
        if line.strip() != "---":
            return None, 0
        for end in range(idx + 1, len(lines)):
            if lines[end].strip() == "---":
                return lines[idx + 1 : end], end + 1
        return None, 0
    return None, 0


def _scalar_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def parse_frontmatter(lines: list[str]) -> dict[str, str]:
    """Read frontmatter into a flat string record.

    Top-level scalars keep their key; scalars of a nested mapping are stored
    as `parent.key`. Text that is not valid YAML is read as plain
    `key: value` lines.
    """
    try:
        data = yaml.safe_load("\n".join(lines))
    except yaml.YAMLError:
        data = None
    record: dict[str, str] = {}
    if isinstance(data, dict):
        for key, value in data.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    if not isinstance(sub_value, (dict, list)):
                        record[f"{key}.{sub_key}"] = _scalar_text(sub_value)
            elif not isinstance(value, list):
                record[str(key)] = _scalar_text(value)
        return record
    for line in lines:
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        record[key.strip()] = value
    return record


def parse(path: Path, text: str) -> Document:
    lines = text.splitlines()
    frontmatter_lines, body_start = split_frontmatter(lines)
    frontmatter = (
        parse_frontmatter(frontmatter_lines) if frontmatter_lines is not None else None
    )

    title: str | None = None
    tracker = CodeBlockTracker()
    headings: list[tuple[int, str]] = []
    raw_blocks: dict[int, list[_RawBlock]] = {}
    pending = _Directives()
    open_block: _RawBlock | None = None
    body: list[str] = []

    for idx in range(body_start, len(lines)):
        line = lines[idx]
        was_open = tracker.in_block
        is_fence = tracker.process(line)
        if was_open:
            if is_fence:
                open_block.content = "\n".join(body)
                open_block = None
                body = []
            else:
                body.append(line)
            continue
        if is_fence:
            language = tracker.info.split()[0] if tracker.info.split() else ""
            open_block = _RawBlock(language, "", idx + 1, pending)
            raw_blocks.setdefault(len(headings), []).append(open_block)
            pending = _Directives()
            continue
        trimmed = line.strip()
        if _apply_directive(pending, trimmed):
            continue
        if trimmed.startswith("## ") and not trimmed.startswith("### "):
            headings.append((idx, trimmed[3:].strip()))
        elif title is None and trimmed.startswith("# "):
            title = trimmed[2:].strip()
        if trimmed and not pending.empty():
            pending = _Directives()

    if open_block is not None:
        open_block.content = "\n".join(body)

    sections: list[Section] = []
    for position, (start, name) in enumerate(headings):
        end = headings[position + 1][0] if position + 1 < len(headings) else len(lines)
        sections.append(
            Section(
                name=name,
                start_line=start + 1,
                content="\n".join(lines[start + 1 : end]),
                code_blocks=tuple(_attach(raw_blocks.get(position + 1, []))),
            )
        )

    return Document(
        path=path,
        title=title,
        sections=tuple(sections),
        line_count=len(lines),
        frontmatter=frontmatter,
    )


def parse_file(path: Path) -> Document:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise DocumentReadError(f"failed to read {path}: {exc}") from exc
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DocumentReadError(f"{path} is not valid UTF-8: {exc}") from exc
    logger.debug("parsing %s", path)
    return parse(path, text)
