"""Doc-to-code mappings and coverage.

Docs declare the code they describe in a `## Paths` section. This module
reads those patterns, walks the source tree, and answers which files are
covered, which docs a changeset touches, and which new files lack docs.
All paths are compared as POSIX strings relative to the project root.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
import logging
import os

from pave.globs import PATHS_SECTION, extract_patterns, matches_any_pattern
from pave.parser import parse_file

logger = logging.getLogger(__name__)

CODE_EXTENSIONS = frozenset(
    {
        "rs", "py", "js", "ts", "jsx", "tsx", "go", "java", "c", "cpp", "h", "hpp",
        "rb", "php", "swift", "kt", "scala", "sh", "bash", "zsh", "pl", "pm", "lua",
        "ex", "exs", "erl", "hrl", "hs", "ml", "mli", "fs", "fsi", "clj", "cljs",
        "lisp", "el", "vim", "sql",
    }
)
SKIP_DIRS = frozenset({"target", "node_modules", "dist", "build", "__pycache__", ".git"})
SUGGESTION_LIMIT = 5


@dataclass(frozen=True)
class DocMapping:
    doc_path: str
    title: str | None
    patterns: tuple[str, ...]


@dataclass(frozen=True)
class ImpactedDoc:
    doc_path: str
    title: str | None
    matched_files: tuple[str, ...]
    was_updated: bool


@dataclass(frozen=True)
class DirectoryCoverage:
    path: str
    covered: int
    total: int

    @property
    def percentage(self) -> float:
        return (self.covered / self.total) * 100.0 if self.total else 100.0


@dataclass(frozen=True)
class Suggestion:
    directory: str
    doc: str
    files: tuple[str, ...]

    @property
    def description(self) -> str:
        return f"Create {self.doc} covering {self.directory}/"


@dataclass(frozen=True)
class CoverageReport:
    covered: tuple[str, ...]
    uncovered: tuple[str, ...]
    by_directory: tuple[DirectoryCoverage, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()

    @property
    def total(self) -> int:
        return len(self.covered) + len(self.uncovered)

    @property
    def percentage(self) -> float:
        return (len(self.covered) / self.total) * 100.0 if self.total else 100.0


@dataclass(frozen=True)
class NewCodeReport:
    new_files: tuple[str, ...]
    code_files: tuple[str, ...]
    covered: tuple[str, ...] = ()
    uncovered: tuple[str, ...] = ()


def relative_posix(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def is_mapped_doc(path: Path, docs_dir: Path) -> bool:
    """Docs eligible for mapping and checking: not an index, not a template."""
    if path.name == "index.md":
        return False
    try:
        parts = path.relative_to(docs_dir).parts
    except ValueError:
        parts = path.parts
    return "templates" not in parts[:-1]


def iter_markdown_files(root: Path) -> list[Path]:
    if root.is_file():
        return [root] if root.suffix == ".md" else []
    return sorted(path for path in root.rglob("*.md") if path.is_file())


def load_doc_mappings(docs_dir: Path, project_root: Path) -> list[DocMapping]:
    mappings: list[DocMapping] = []
    if not docs_dir.is_dir():
        return mappings
    for path in iter_markdown_files(docs_dir):
        if not is_mapped_doc(path, docs_dir):
            continue
        document = parse_file(path)
        patterns = tuple(
            pattern for _, pattern in extract_patterns(document.get_section(PATHS_SECTION))
        )
        if not patterns:
            continue
        mappings.append(
            DocMapping(
                doc_path=relative_posix(path, project_root),
                title=document.title,
                patterns=patterns,
            )
        )
    logger.debug("loaded %d doc mapping(s) from %s", len(mappings), docs_dir)
    return mappings


def impacted_docs(mappings: list[DocMapping], changed_files: list[str]) -> list[ImpactedDoc]:
    changed = set(changed_files)
    impacted: list[ImpactedDoc] = []
    for mapping in mappings:
        matched = tuple(
            path for path in changed_files if matches_any_pattern(path, mapping.patterns)
        )
        if not matched:
            continue
        impacted.append(
            ImpactedDoc(
                doc_path=mapping.doc_path,
                title=mapping.title,
                matched_files=matched,
                was_updated=mapping.doc_path in changed,
            )
        )
    return impacted


def is_code_file(path: str) -> bool:
    suffix = PurePosixPath(path).suffix
    return bool(suffix) and suffix[1:] in CODE_EXTENSIONS


def passes_filters(path: str, include: list[str], exclude: list[str]) -> bool:
    if exclude and matches_any_pattern(path, exclude):
        return False
    if include and not matches_any_pattern(path, include):
        return False
    return True


def walk_files(root: Path) -> list[str]:
    """Every file under `root`, skipping build output and hidden directories."""
    files: list[str] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            name for name in dirnames if name not in SKIP_DIRS and not name.startswith(".")
        )
        files.extend(relative_posix(Path(current) / name, root) for name in filenames)
    return sorted(files)


def walk_code_files(root: Path, include: list[str], exclude: list[str]) -> list[str]:
    return [
        path
        for path in walk_files(root)
        if is_code_file(path) and passes_filters(path, include, exclude)
    ]


def parent_dir(path: str) -> str:
    parent = PurePosixPath(path).parent.as_posix()
    return "." if parent in ("", ".") else parent


def suggested_doc_for(path: str) -> str | None:
    parent = PurePosixPath(path).parent
    if not parent.name:
        return None
    return f"docs/components/{parent.name}.md"


def _directory_coverage(covered: list[str], uncovered: list[str]) -> tuple[DirectoryCoverage, ...]:
    stats: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    for path in covered:
        entry = stats[parent_dir(path)]
        entry[0] += 1
        entry[1] += 1
    for path in uncovered:
        stats[parent_dir(path)][1] += 1
    return tuple(
        DirectoryCoverage(path=directory, covered=counts[0], total=counts[1])
        for directory, counts in sorted(stats.items())
    )


def _suggestions(uncovered: list[str]) -> tuple[Suggestion, ...]:
    grouped: dict[str, list[str]] = defaultdict(list)
    for path in uncovered:
        grouped[parent_dir(path)].append(path)
    candidates = [
        Suggestion(
            directory=directory,
            doc=f"docs/components/{PurePosixPath(directory).name or 'root'}.md",
            files=tuple(files),
        )
        for directory, files in grouped.items()
        if len(files) >= 2
    ]
    candidates.sort(key=lambda item: (-len(item.files), item.directory))
    return tuple(candidates[:SUGGESTION_LIMIT])


def classify(files: list[str], mappings: list[DocMapping]) -> tuple[list[str], list[str]]:
    patterns = [pattern for mapping in mappings for pattern in mapping.patterns]
    covered: list[str] = []
    uncovered: list[str] = []
    for path in files:
        (covered if matches_any_pattern(path, patterns) else uncovered).append(path)
    return covered, uncovered


def analyze_coverage(
    project_root: Path,
    mappings: list[DocMapping],
    include: list[str],
    exclude: list[str],
) -> CoverageReport:
    files = walk_code_files(project_root, include, exclude)
    covered, uncovered = classify(files, mappings)
    logger.debug("coverage: %d covered, %d uncovered", len(covered), len(uncovered))
    return CoverageReport(
        covered=tuple(covered),
        uncovered=tuple(uncovered),
        by_directory=_directory_coverage(covered, uncovered),
        suggestions=_suggestions(uncovered),
    )


def analyze_new_code(
    added_files: list[str],
    mappings: list[DocMapping],
    include: list[str],
    exclude: list[str],
) -> NewCodeReport:
    code_files = [
        path
        for path in added_files
        if is_code_file(path) and passes_filters(path, include, exclude)
    ]
    covered, uncovered = classify(code_files, mappings)
    return NewCodeReport(
        new_files=tuple(added_files),
        code_files=tuple(code_files),
        covered=tuple(covered),
        uncovered=tuple(uncovered),
    )
