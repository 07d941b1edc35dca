"""Logging for the compiler pipeline.

Every stage logs under ``bangspec.<stage>`` (associator, assembler,
resolver, ...). Records carry the stage name so a ``--log-file`` trace
reads as a pipeline run. Diagnostics are user-facing output, not log
records; ``log_diagnostics`` only mirrors them into the debug trace.
"""

import logging
from pathlib import Path
from typing import Iterable

from bangspec.parser.base import Diagnostic

_LOGGER_NAME = "bangspec"


class _StageFormatter(logging.Formatter):
    """Adds ``%(stage)s``, the logger name below the bangspec root."""

    def format(self, record: logging.LogRecord) -> str:
        if record.name.startswith(f"{_LOGGER_NAME}."):
            record.stage = record.name[len(_LOGGER_NAME) + 1 :]
        else:
            record.stage = "main"
        return super().format(record)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a stage logger under the bangspec hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False, log_file: Path | None = None) -> logging.Logger:
    """Send warnings (or everything, with ``verbose``) to stderr and a full trace to ``log_file``."""
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    logger.propagate = False

    # CliRunner invokes main() repeatedly in one process.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(_StageFormatter("[bangspec:%(stage)s] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(_StageFormatter("%(asctime)s %(levelname)s %(stage)s: %(message)s"))
        logger.addHandler(file_handler)

    return logger


def log_diagnostics(diagnostics: Iterable[Diagnostic]) -> None:
    """Mirror compile diagnostics into the debug trace."""
    logger = get_logger("diagnostics")
    for diagnostic in diagnostics:
        logger.debug("%s", diagnostic)
