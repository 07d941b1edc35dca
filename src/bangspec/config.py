"""Configuration loading for bangspec (.bangspec.yml)."""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

CONFIG_FILENAMES = (".bangspec.yml", ".bangspec.yaml")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be read or is invalid."""


class CompilerConfig(BaseModel):
    """Settings from .bangspec.yml; CLI options override them."""

    model_config = ConfigDict(extra="forbid")

    source: Path = Path(".")
    output: Path | None = None
    format: str = "auto"  # auto / json / yaml
    indent: int = 2
    openapi_version: str = "3.0.3"
    exclude: list[str] = []
    include_tests: bool = False
    strict: bool = False


def find_config(start: Path) -> Path | None:
    """Return the first config file found in ``start``, if any."""
    directory = start if start.is_dir() else start.parent
    for name in CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config(config_path: Path | None) -> CompilerConfig:
    """Load configuration from disk; a missing path yields the defaults."""
    if config_path is None:
        return CompilerConfig()

    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read {config_path}: {exc}") from exc

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    try:
        config = CompilerConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration in {config_path}: {exc}") from exc

    # Relative paths in the file are relative to the file itself.
    base = config_path.parent
    updates = {"source": base / config.source}
    if config.output is not None:
        updates["output"] = base / config.output
    return config.model_copy(update=updates)
