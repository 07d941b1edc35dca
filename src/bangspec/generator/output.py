"""Document serialization to JSON or YAML."""

import json
from enum import Enum
from pathlib import Path

import yaml

from bangspec.openapi import Document


class OutputFormat(str, Enum):
    JSON = "json"
    YAML = "yaml"


def parse_format(value: str) -> OutputFormat:
    """Parse a user-supplied format name; ``yml`` is accepted for YAML."""
    lowered = value.lower()
    if lowered == "json":
        return OutputFormat.JSON
    if lowered in ("yaml", "yml"):
        return OutputFormat.YAML
    raise ValueError(f"unknown format: {value} (supported: json, yaml)")


def detect_format(file_path: Path) -> OutputFormat:
    """Pick the format from a file extension, defaulting to YAML."""
    if file_path.suffix.lower() == ".json":
        return OutputFormat.JSON
    return OutputFormat.YAML


def serialize(document: Document, fmt: OutputFormat = OutputFormat.YAML, indent: int = 2) -> bytes:
    """Serialize a document with stable field order and empty members omitted."""
    data = document.to_dict()
    if fmt == OutputFormat.JSON:
        text = json.dumps(data, indent=indent or None, ensure_ascii=False) + "\n"
    else:
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, indent=indent, default_flow_style=False)
    return text.encode("utf-8")
