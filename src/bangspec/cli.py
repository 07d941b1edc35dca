"""CLI entry point for bangspec."""

import sys
from pathlib import Path

import click

from bangspec.compiler import CompileResult, compile_directory
from bangspec.config import CompilerConfig, ConfigError, find_config, load_config
from bangspec.discover import read_source
from bangspec.generator.output import OutputFormat, detect_format, parse_format, serialize
from bangspec.logging import configure_logging
from bangspec.parser.annotations import parse_line
from bangspec.parser.source import comment_blocks

FORMAT_CHOICES = ["auto", "json", "yaml"]


def _load_config(source: Path | None, config_path: Path | None) -> CompilerConfig:
    """Read --config, or the .bangspec.yml next to SOURCE / the working directory."""
    if config_path is None:
        config_path = find_config(source if source is not None else Path.cwd())
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _compile(source: Path, config: CompilerConfig) -> CompileResult:
    try:
        return compile_directory(source, config)
    except OSError as exc:
        raise click.ClickException(f"cannot read sources: {exc}") from exc


def _report(result: CompileResult) -> None:
    for diagnostic in result.diagnostics:
        click.echo(str(diagnostic), err=True)
    if result.diagnostics:
        click.echo(f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)", err=True)


def _failed(result: CompileResult, strict: bool) -> bool:
    return result.has_errors or (strict and bool(result.warnings))


def _resolve_format(fmt: str, output: Path | None) -> OutputFormat:
    if fmt == "auto":
        return detect_format(output) if output is not None else OutputFormat.YAML
    try:
        return parse_format(fmt)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--format") from exc


@click.group()
def main():
    """bangspec: compile ! directives in Python comments into an OpenAPI 3.x document."""
    pass


@main.command()
@click.argument("source", required=False, type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Output file; stdout when omitted.")
@click.option("--format", "fmt", default=None, type=click.Choice(FORMAT_CHOICES), help="Output format (default: from the file extension).")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, path_type=Path), help="Path to a .bangspec.yml file.")
@click.option("--exclude", multiple=True, help="Glob pattern of files or directories to skip (repeatable).")
@click.option("--openapi-version", default=None, help="OpenAPI version used when no !api directive is present.")
@click.option("--include-tests", is_flag=True, help="Also scan test files and directories.")
@click.option("--strict", is_flag=True, help="Treat warnings as errors.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False, path_type=Path), help="Also write debug logs to this file.")
def generate(
    source: Path | None,
    output: Path | None,
    fmt: str | None,
    config_path: Path | None,
    exclude: tuple[str, ...],
    openapi_version: str | None,
    include_tests: bool,
    strict: bool,
    verbose: bool,
    log_file: Path | None,
):
    """Compile SOURCE (a directory or file) and write the OpenAPI document."""
    configure_logging(verbose=verbose, log_file=log_file)
    config = _load_config(source, config_path)

    # CLI options override the config file
    overrides = {}
    if source is not None:
        overrides["source"] = source
    if output is not None:
        overrides["output"] = output
    if fmt is not None:
        overrides["format"] = fmt
    if exclude:
        overrides["exclude"] = [*config.exclude, *exclude]
    if openapi_version is not None:
        overrides["openapi_version"] = openapi_version
    if include_tests:
        overrides["include_tests"] = True
    if strict:
        overrides["strict"] = True
    config = config.model_copy(update=overrides)

    result = _compile(config.source, config)
    out_format = _resolve_format(config.format, config.output)
    data = serialize(result.document, out_format, indent=config.indent)

    if config.output is None:
        click.echo(data.decode("utf-8"), nl=False)
    else:
        config.output.parent.mkdir(parents=True, exist_ok=True)
        config.output.write_bytes(data)
        click.echo(f"Wrote {config.output} ({len(result.document.paths)} paths, {len(result.document.components.schemas)} schemas)", err=True)

    _report(result)
    if _failed(result, config.strict):
        sys.exit(1)


@main.command()
@click.argument("source", required=False, type=click.Path(exists=True, path_type=Path))
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, path_type=Path), help="Path to a .bangspec.yml file.")
@click.option("--exclude", multiple=True, help="Glob pattern of files or directories to skip (repeatable).")
@click.option("--strict", is_flag=True, help="Treat warnings as errors.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False, path_type=Path), help="Also write debug logs to this file.")
def check(
    source: Path | None,
    config_path: Path | None,
    exclude: tuple[str, ...],
    strict: bool,
    verbose: bool,
    log_file: Path | None,
):
    """Compile SOURCE without writing anything and report diagnostics."""
    configure_logging(verbose=verbose, log_file=log_file)
    config = _load_config(source, config_path)
    overrides = {}
    if source is not None:
        overrides["source"] = source
    if exclude:
        overrides["exclude"] = [*config.exclude, *exclude]
    if strict:
        overrides["strict"] = True
    config = config.model_copy(update=overrides)

    result = _compile(config.source, config)
    _report(result)
    document = result.document
    click.echo(f"{len(list(document.operations()))} operations, {len(document.components.schemas)} schemas")
    if _failed(result, config.strict):
        sys.exit(1)


@main.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def lex(file_path: Path):
    """Print every directive found in FILE's comments."""
    try:
        source = read_source(file_path)
    except OSError as exc:
        raise click.ClickException(f"cannot read {file_path}: {exc}") from exc
    if source.decode_error:
        raise click.ClickException(f"cannot decode {file_path}: {source.decode_error}")

    count = 0
    for start, block in comment_blocks(source.text):
        for offset, line in enumerate(block.splitlines()):
            annotation = parse_line(line)
            if annotation is None:
                continue
            count += 1
            args = " ".join(f"{key}={value!r}" for key, value in annotation.args.items() if value)
            tags = " ".join(f"#{tag}" for tag in annotation.tags)
            click.echo(f"{file_path.name}:{start + offset}: {annotation.kind.value} {args} {tags}".rstrip())
    click.echo(f"{count} directive(s)", err=True)
