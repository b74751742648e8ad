"""YAML configuration for batchfix runs."""

from __future__ import annotations

import copy
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "BatchfixConfig",
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "code_matches",
    "load_config",
    "normalize_code",
    "write_config",
]

DEFAULT_CONFIG_NAME = "batchfix.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "root": ".",
        "encoding": "utf-8",
    },
    "analyzer": {
        "name": "ruff",
        "command": ["ruff"],
        "select": [],
        "ignore": [],
        "extra_args": [],
        "unsafe_fixes": False,
        "paths": [],
    },
    "filters": {
        "codes": [],
        "fixes": [],
    },
    "run": {
        "workers": 1,
        "dry_run": False,
    },
    "logging": {
        "level": "INFO",
        "telemetry": False,
    },
}

_CODE_PREFIX = re.compile(r"^[A-Za-z]+(?=\d+$)")


class ConfigError(ValueError):
    """Raised when the configuration file cannot be loaded or validated."""


def normalize_code(value: str | int) -> str:
    """Canonical form of a diagnostic code: stripped and upper-cased."""
    return str(value).strip().upper()


def code_matches(requested: str, actual: str) -> bool:
    """Compare codes, letting ``TS2345`` match a bare ``2345`` and vice versa."""
    left = normalize_code(requested)
    right = normalize_code(actual)
    if left == right:
        return True
    return _CODE_PREFIX.sub("", left) == _CODE_PREFIX.sub("", right) and (
        left.isdigit() or right.isdigit()
    )


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProjectSection(_Section):
    root: str = "."
    encoding: str = "utf-8"


class AnalyzerSection(_Section):
    name: Literal["ruff"] = "ruff"
    command: List[str] = Field(default_factory=lambda: ["ruff"])
    select: List[str] = Field(default_factory=list)
    ignore: List[str] = Field(default_factory=list)
    extra_args: List[str] = Field(default_factory=list)
    unsafe_fixes: bool = False
    paths: List[str] = Field(default_factory=list)

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, value: List[str]) -> List[str]:
        if not value or not str(value[0]).strip():
            raise ValueError("analyzer.command must name an executable")
        return value


class FiltersSection(_Section):
    codes: List[str] = Field(default_factory=list)
    fixes: List[str] = Field(default_factory=list)

    @field_validator("codes", mode="before")
    @classmethod
    def _stringify_codes(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [normalize_code(item) for item in value]
        return value


class RunSection(_Section):
    workers: int = Field(default=1, ge=1)
    dry_run: bool = False


class LoggingSection(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    telemetry: bool = False

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class BatchfixConfig(_Section):
    """Validated configuration tree."""

    project: ProjectSection = Field(default_factory=ProjectSection)
    analyzer: AnalyzerSection = Field(default_factory=AnalyzerSection)
    filters: FiltersSection = Field(default_factory=FiltersSection)
    run: RunSection = Field(default_factory=RunSection)
    logging: LoggingSection = Field(default_factory=LoggingSection)

    config_path: Optional[Path] = Field(default=None, exclude=True)

    def resolve_root(self) -> Path:
        """Project root, relative paths being anchored at the config file's folder."""
        root = Path(self.project.root)
        if root.is_absolute():
            return root
        base = self.config_path.parent if self.config_path is not None else Path.cwd()
        return (base / root).resolve()


def load_config(config_path: Path | str | None) -> BatchfixConfig:
    """Load configuration from disk, falling back to defaults when the file is absent."""
    if config_path is None:
        return BatchfixConfig()
    path = Path(config_path)
    if not path.exists():
        return BatchfixConfig()
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error
    if not isinstance(data, Mapping):
        raise ConfigError(f"Configuration in {path} must be a mapping at the top level.")
    try:
        config = BatchfixConfig.model_validate(dict(data))
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {path}: {error}") from error
    config.config_path = path.resolve()
    return config


def write_config(config_path: Path, config_data: Mapping[str, Any] | None = None) -> None:
    """Persist configuration data to disk with stable formatting."""
    payload = copy.deepcopy(dict(config_data or DEFAULT_CONFIG_TEMPLATE))
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)
