"""Compilation pipeline: source files -> scope blocks -> draft -> Document."""

from pathlib import Path
from typing import Iterable

from pydantic import BaseModel

from bangspec.config import CompilerConfig
from bangspec.discover import SourceFile, discover_sources
from bangspec.generator.assembler import assemble
from bangspec.generator.resolver import resolve
from bangspec.logging import get_logger, log_diagnostics
from bangspec.openapi import Document
from bangspec.parser.base import Diagnostic, ScopeBlock, SourceLocation, has_errors
from bangspec.parser.source import associate

logger = get_logger("compiler")


class CompileResult(BaseModel):
    document: Document
    diagnostics: list[Diagnostic] = []

    @property
    def has_errors(self) -> bool:
        return has_errors(self.diagnostics)

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if not d.is_error]

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]


def compile_sources(files: Iterable[SourceFile], config: CompilerConfig | None = None) -> CompileResult:
    """Compile already-loaded sources in the given order.

    A file that does not decode or parse is reported and skipped; the rest
    still compile.
    """
    config = config or CompilerConfig()
    diagnostics: list[Diagnostic] = []
    blocks: list[ScopeBlock] = []

    for source in files:
        if source.decode_error:
            location = SourceLocation(file=source.path, line=1)
            diagnostics.append(Diagnostic.error(f"cannot decode source: {source.decode_error}", location))
            continue
        try:
            blocks.extend(associate(source.text, source.path))
        except SyntaxError as exc:
            location = SourceLocation(file=source.path, line=exc.lineno or 1)
            diagnostics.append(Diagnostic.error(f"cannot parse source: {exc.msg}", location))
            continue
        logger.debug("associated %s", source.path)

    draft, assembly_diagnostics = assemble(blocks)
    document, resolution_diagnostics = resolve(draft, config.openapi_version)
    diagnostics.extend(assembly_diagnostics)
    diagnostics.extend(resolution_diagnostics)
    log_diagnostics(diagnostics)
    return CompileResult(document=document, diagnostics=diagnostics)


def compile_directory(root: Path, config: CompilerConfig | None = None) -> CompileResult:
    """Discover sources under ``root`` and compile them."""
    config = config or CompilerConfig()
    files = discover_sources(root, exclude=config.exclude, include_tests=config.include_tests)
    logger.debug("compiling %d files from %s", len(files), root)
    return compile_sources(files, config)
