"""Source file discovery for the compiler."""

import os
import tokenize
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel

from bangspec.logging import get_logger

logger = get_logger("discover")

_EXCLUDED_DIRS = {
    "venv",
    "node_modules",
    "__pycache__",
    "build",
    "dist",
    "site-packages",
    "vendor",
    "third_party",
}

_TEST_DIRS = {"tests", "test"}

_GENERATED_SUFFIXES = ("_pb2.py", "_pb2_grpc.py")


class SourceFile(BaseModel):
    """A Python source file to compile; ``path`` is relative to the scan root.

    ``decode_error`` is set instead of ``text`` when the bytes cannot be decoded.
    """

    path: str
    text: str
    decode_error: str = ""


def discover_sources(root: Path, exclude: Iterable[str] = (), include_tests: bool = False) -> list[SourceFile]:
    """Collect Python sources under ``root`` in a stable, sorted order.

    ``root`` may also be a single file. Exclude patterns are fnmatch globs
    matched against the relative path and against each of its components.
    """
    patterns = list(exclude)
    if root.is_file():
        return [read_source(root)]
    if not root.is_dir():
        raise FileNotFoundError(f"source path does not exist: {root}")

    sources = []
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        kept_dirs = []
        for name in sorted(dirnames):
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if _skip_dir(name, include_tests) or _excluded(rel_path, patterns):
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs

        for filename in sorted(filenames):
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if not filename.endswith(".py") or _skip_file(filename, include_tests):
                continue
            if _excluded(rel_path, patterns):
                logger.debug("excluded %s", rel_path)
                continue
            sources.append(read_source(current_dir / filename, rel_path))

    logger.debug("discovered %d source files under %s", len(sources), root)
    return sources


def read_source(path: Path, rel_path: str | None = None) -> SourceFile:
    """Decode a source file honouring its PEP 263 coding declaration."""
    rel_path = rel_path or path.name
    try:
        with tokenize.open(path) as handle:
            text = handle.read()
    except (SyntaxError, UnicodeDecodeError) as exc:
        logger.debug("cannot decode %s: %s", rel_path, exc)
        return SourceFile(path=rel_path, text="", decode_error=str(exc))
    return SourceFile(path=rel_path, text=text)


def _skip_dir(name: str, include_tests: bool) -> bool:
    if name.startswith(".") or name in _EXCLUDED_DIRS:
        return True
    return not include_tests and name in _TEST_DIRS


def _skip_file(filename: str, include_tests: bool) -> bool:
    if filename.endswith(_GENERATED_SUFFIXES):
        return True
    if include_tests:
        return False
    return filename.startswith("test_") or filename.endswith("_test.py") or filename == "conftest.py"


def _excluded(rel_path: str, patterns: list[str]) -> bool:
    for pattern in patterns:
        if fnmatchcase(rel_path, pattern):
            return True
        if any(fnmatchcase(part, pattern) for part in rel_path.split("/")):
            return True
    return False
