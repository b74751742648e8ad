"""CLI commands for applying analyzer-suggested fixes in bulk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .backends.base import AnalyzerError, ProgramContext
from .backends.ruff import RuffBackend, RuffSettings
from .config import (
    DEFAULT_CONFIG_NAME,
    BatchfixConfig,
    ConfigError,
    code_matches,
    load_config,
    write_config,
)
from .edits import Diagnostic, FixCandidate
from .listing import list_fixes, render_fix_counts
from .orchestrator import AutofixRunner, RunOptions
from .reporting import LoggingSink, render_summary

APP_HELP = "Apply the fixes a static analyzer suggests, many files at a time."

app = typer.Typer(help=APP_HELP)


def _configure_logging(config: BatchfixConfig, *, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("batchfix").setLevel(level)
    telemetry_level = logging.INFO if config.logging.telemetry else logging.WARNING
    logging.getLogger("batchfix.telemetry").setLevel(telemetry_level)


def _load(config: str) -> BatchfixConfig:
    try:
        return load_config(Path(config))
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _build_backend(config: BatchfixConfig, *, unsafe_fixes: bool) -> RuffBackend:
    """Construct the analyzer/oracle pair named by the configuration."""
    analyzer_cfg = config.analyzer
    settings = RuffSettings(
        command=tuple(analyzer_cfg.command),
        select=tuple(analyzer_cfg.select),
        ignore=tuple(analyzer_cfg.ignore),
        extra_args=tuple(analyzer_cfg.extra_args),
        unsafe_fixes=analyzer_cfg.unsafe_fixes or unsafe_fixes,
    )
    return RuffBackend(settings=settings)


def _build_context(config: BatchfixConfig, paths: Optional[List[str]]) -> ProgramContext:
    selected = list(paths or config.analyzer.paths)
    return ProgramContext.create(
        config.resolve_root(),
        paths=selected,
        encoding=config.project.encoding,
    )


def _build_options(
    config: BatchfixConfig,
    *,
    errors: Optional[List[str]],
    fixes: Optional[List[str]],
    dry_run: bool,
    workers: Optional[int],
) -> RunOptions:
    codes = list(errors or config.filters.codes)
    names = {name.strip() for name in (fixes or config.filters.fixes) if name.strip()}

    diagnostic_filter = None
    if codes:

        def diagnostic_filter(diagnostic: Diagnostic) -> bool:
            return any(code_matches(code, diagnostic.code) for code in codes)

    fix_filter = None
    if names:

        def fix_filter(candidate: FixCandidate) -> bool:
            return candidate.name in names or (candidate.group_id or "") in names

    return RunOptions(
        diagnostic_filter=diagnostic_filter,
        fix_filter=fix_filter,
        dry_run=dry_run or config.run.dry_run,
        workers=workers if workers is not None else config.run.workers,
    )


@app.command()
def fix(
    paths: Optional[List[str]] = typer.Argument(None, help="Files or folders to analyze."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the batchfix configuration file.",
    ),
    errors: Optional[List[str]] = typer.Option(
        None,
        "--errors",
        "-e",
        help="Diagnostic codes to apply fixes to (repeatable).",
    ),
    fixes: Optional[List[str]] = typer.Option(
        None,
        "--fixes",
        "-f",
        help="Names of fixes to apply (repeatable). Run `batchfix list` to see them.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the diff instead of writing files."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Files processed in parallel."),
    unsafe_fixes: bool = typer.Option(False, "--unsafe-fixes", help="Also apply fixes marked unsafe."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Apply one suggested fix per diagnostic and rewrite the touched files."""
    config_data = _load(config)
    _configure_logging(config_data, verbose=verbose)

    backend = _build_backend(config_data, unsafe_fixes=unsafe_fixes)
    context = _build_context(config_data, paths)
    options = _build_options(config_data, errors=errors, fixes=fixes, dry_run=dry_run, workers=workers)
    runner = AutofixRunner(analyzer=backend, oracle=backend, sink=LoggingSink(), options=options)

    try:
        summary = runner.run(context)
    except AnalyzerError as error:
        typer.echo(f"Analyzer failed: {error}")
        raise typer.Exit(code=1) from error

    if options.dry_run:
        for entry in summary.files.values():
            if entry.diff:
                typer.echo(entry.diff, nl=False)
    for line in render_summary(summary):
        typer.echo(line)
    if summary.has_errors:
        raise typer.Exit(code=1)


@app.command("list")
def list_command(
    paths: Optional[List[str]] = typer.Argument(None, help="Files or folders to analyze."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the batchfix configuration file.",
    ),
    unsafe_fixes: bool = typer.Option(False, "--unsafe-fixes", help="Include fixes marked unsafe."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List the available fixes and how many diagnostics each would address."""
    config_data = _load(config)
    _configure_logging(config_data, verbose=verbose)

    backend = _build_backend(config_data, unsafe_fixes=unsafe_fixes)
    context = _build_context(config_data, paths)
    try:
        counts = list_fixes(context, backend, backend)
    except AnalyzerError as error:
        typer.echo(f"Analyzer failed: {error}")
        raise typer.Exit(code=1) from error

    if not counts:
        typer.echo("No fixes available.")
        return
    for line in render_fix_counts(counts):
        typer.echo(line)


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Where to write the configuration file.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    write_config(config_path)
    typer.echo(f"Wrote default configuration to {config_path}")


if __name__ == "__main__":
    app()
