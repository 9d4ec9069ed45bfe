from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from tests.project_helpers import DEFAULT_CONFIG, dedent


@pytest.fixture
def write_project(tmp_path: Path) -> Callable[..., Path]:
    """Write `.pave.toml` plus the given files (paths relative to the project root)."""

    def _write(
        files: dict[str, str] | None = None,
        *,
        config: str = DEFAULT_CONFIG,
        extra_config: str = "",
    ) -> Path:
        (tmp_path / ".pave.toml").write_text(dedent(config) + dedent(extra_config))
        (tmp_path / "docs").mkdir(exist_ok=True)
        for rel_path, text in (files or {}).items():
            path = tmp_path / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(dedent(text))
        return tmp_path

    return _write
