from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import logging
import tomllib

from pave.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = ".pave.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


@dataclass(frozen=True)
class TypeSpecificRules:
    runbooks: bool = False
    adrs: bool = False
    components: bool = False


@dataclass(frozen=True)
class RulesConfig:
    max_lines: int = 300
    require_verification: bool = True
    require_examples: bool = True
    require_verification_commands: bool = True
    strict_output_matching: bool = False
    skip_output_matching: bool = False
    validate_paths: bool = False
    warn_empty_paths: bool = False
    gradual: bool = False
    gradual_until: str | None = None
    type_specific: TypeSpecificRules = field(default_factory=TypeSpecificRules)


@dataclass(frozen=True)
class LintConfig:
    enable: tuple[str, ...] = ()
    disable: tuple[str, ...] = ()
    max_paragraph_words: int = 150
    external_links: bool = False


@dataclass(frozen=True)
class MappingConfig:
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True)
class PaveConfig:
    docs_root: str = "docs"
    version: str = "0.1"
    templates: str | None = None
    rules: RulesConfig = field(default_factory=RulesConfig)
    lint: LintConfig = field(default_factory=LintConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)
    path: Path | None = None
    raw: TomlTable = field(default_factory=dict)

    @property
    def config_dir(self) -> Path:
        if self.path is None:
            return Path.cwd()
        return self.path.parent

    @property
    def docs_dir(self) -> Path:
        return self.config_dir / self.docs_root


def find_config(start: Path | None = None) -> Path:
    """Walk from `start` (default: cwd) towards the filesystem root."""
    current = (start if start is not None else Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            logger.debug("using config %s", candidate)
            return candidate
    raise ConfigError(
        f"No {DEFAULT_CONFIG_NAME} found in current directory or any parent directory"
    )


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed to read config file: {path}: {exc}") from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"failed to parse config file: {path}: {exc}") from exc
    return data


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> tuple[str, ...]:
    items: list[str] = []
    if value is None:
        return ()
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return tuple(item for item in items if item)


def _as_bool(value: TomlValue, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return default


def _as_int(key: str, value: TomlValue, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    return value


def _as_str(value: TomlValue) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def rules_from_table(section: TomlTable) -> RulesConfig:
    type_specific = _section(section, "type_specific")
    defaults = RulesConfig()
    return RulesConfig(
        max_lines=_as_int("rules.max_lines", section.get("max_lines"), defaults.max_lines),
        require_verification=_as_bool(section.get("require_verification"), True),
        require_examples=_as_bool(section.get("require_examples"), True),
        require_verification_commands=_as_bool(
            section.get("require_verification_commands"), True
        ),
        strict_output_matching=_as_bool(section.get("strict_output_matching"), False),
        skip_output_matching=_as_bool(section.get("skip_output_matching"), False),
        validate_paths=_as_bool(section.get("validate_paths"), False),
        warn_empty_paths=_as_bool(section.get("warn_empty_paths"), False),
        gradual=_as_bool(section.get("gradual"), False),
        gradual_until=_as_str(section.get("gradual_until")),
        type_specific=TypeSpecificRules(
            runbooks=_as_bool(type_specific.get("runbooks"), False),
            adrs=_as_bool(type_specific.get("adrs"), False),
            components=_as_bool(type_specific.get("components"), False),
        ),
    )


def lint_from_table(section: TomlTable) -> LintConfig:
    return LintConfig(
        enable=_normalize_name_list(section.get("enable")),
        disable=_normalize_name_list(section.get("disable")),
        max_paragraph_words=_as_int(
            "lint.max_paragraph_words", section.get("max_paragraph_words"), 150
        ),
        external_links=_as_bool(section.get("external_links"), False),
    )


def config_from_table(data: TomlTable, path: Path | None = None) -> PaveConfig:
    pave = _section(data, "pave")
    docs = _section(data, "docs")
    if "root" not in docs:
        raise ConfigError("docs.root is required")
    config = PaveConfig(
        docs_root=_as_str(docs.get("root")) or "",
        version=_as_str(pave.get("version", "0.1")) or "",
        templates=_as_str(docs.get("templates")),
        rules=rules_from_table(_section(data, "rules")),
        lint=lint_from_table(_section(data, "lint")),
        mapping=MappingConfig(
            exclude=_normalize_name_list(_section(data, "mapping").get("exclude"))
        ),
        path=path,
        raw=data,
    )
    validate_config(config)
    return config


def validate_config(config: PaveConfig) -> None:
    if not config.version.strip():
        raise ConfigError("pave.version cannot be empty")
    if not config.docs_root.strip():
        raise ConfigError("docs.root cannot be empty")
    if config.rules.max_lines <= 0:
        raise ConfigError("rules.max_lines must be greater than 0")


def load_config(config_path: Path | None = None, root: Path | None = None) -> PaveConfig:
    if config_path is None:
        config_path = find_config(root)
    config_path = config_path.resolve()
    return config_from_table(_load_toml(config_path), path=config_path)


def get_value(data: TomlTable, key: str) -> TomlValue:
    """Look up a dotted key such as `rules.max_lines`."""
    current: TomlValue = data
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            raise ConfigError(f"config key not found: {key}")
        current = current[part]
    return current
