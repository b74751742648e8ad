"""Drive a full autofix run: analyze, group, select, merge and write per file."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .backends.base import Analyzer, FixOracle, OperationCancelled, ProgramContext
from .edits import Diagnostic
from .files import FileWriter, WriteFailure
from .grouping import MissingFileError, group_by_file
from .patching import InvalidSpanError, apply_patch_set, render_diff
from .reporting import (
    CollectingSink,
    FanOutSink,
    Outcome,
    OutcomeEvent,
    ReportingSink,
    RunSummary,
    emit_telemetry,
)
from .selector import DiagnosticFilter, FixFilter, PreprocessHook, select_fixes

__all__ = ["AutofixRunner", "FileResult", "RunOptions"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RunOptions:
    """Caller-supplied selection hooks and execution switches."""

    diagnostic_filter: Optional[DiagnosticFilter] = None
    fix_filter: Optional[FixFilter] = None
    preprocess: Optional[PreprocessHook] = None
    dry_run: bool = False
    collect_diffs: bool = False
    workers: int = 1


@dataclass(slots=True)
class FileResult:
    """What happened to a single file once its patch set was merged."""

    path: str
    written: bool = False
    diff: str = ""


class AutofixRunner:
    """Coordinates the analyzer, the fix oracle and the file writer for one run."""

    def __init__(
        self,
        *,
        analyzer: Analyzer,
        oracle: FixOracle,
        writer: FileWriter | None = None,
        sink: ReportingSink | None = None,
        options: RunOptions | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._oracle = oracle
        self._writer = writer
        self._sink = sink
        self.options = options or RunOptions()

    def run(self, context: ProgramContext) -> RunSummary:
        """Process every file the analyzer reports on and summarise the outcome."""
        collector = CollectingSink()
        sink: ReportingSink = collector if self._sink is None else FanOutSink([collector, self._sink])
        writer = self._writer or FileWriter(context.loader)

        LOGGER.info("Running analyzer to get diagnostics")
        diagnostics = self._analyzer.get_diagnostics(context)
        emit_telemetry("diagnostics", count=len(diagnostics))

        def report_missing(error: MissingFileError) -> None:
            LOGGER.warning("%s", error)
            sink.emit(OutcomeEvent(path=None, diagnostic=error.diagnostic, outcome=Outcome.ERROR, detail=str(error)))

        grouped = group_by_file(diagnostics, on_missing=report_missing)
        if self._parallel(len(grouped)):
            results, interrupted = self._run_parallel(grouped, context, writer, sink)
        else:
            results, interrupted = self._run_sequential(grouped, context, writer, sink)
        cancelled = interrupted is not None
        if cancelled:
            LOGGER.warning("Run cancelled; remaining files were left untouched")

        summary = RunSummary.from_events(
            collector.events,
            written=[result.path for result in results if result.written],
            diffs={result.path: result.diff for result in results if result.diff},
            cancelled=cancelled,
            interrupted=interrupted or (),
        )
        ordered = {path: summary.files[path] for path in grouped if path in summary.files}
        ordered.update({path: entry for path, entry in summary.files.items() if path not in ordered})
        summary.files = ordered
        emit_telemetry(
            "run_complete",
            files=len(grouped),
            written=len(summary.written_paths),
            cancelled=cancelled,
            totals={outcome.value: count for outcome, count in summary.totals.items()},
        )
        return summary

    def _parallel(self, file_count: int) -> bool:
        if self.options.workers <= 1 or file_count <= 1:
            return False
        if not getattr(self._oracle, "concurrent_safe", False):
            LOGGER.warning("Fix oracle is not safe for concurrent queries; processing files sequentially")
            return False
        return True

    def _run_parallel(
        self,
        grouped: Dict[str, List[Diagnostic]],
        context: ProgramContext,
        writer: FileWriter,
        sink: ReportingSink,
    ) -> Tuple[List[FileResult], Optional[List[str]]]:
        """Return the finished results and, when cancelled, the interrupted paths."""
        results: List[FileResult] = []
        interrupted: Optional[List[str]] = None
        with ThreadPoolExecutor(max_workers=self.options.workers) as executor:
            futures = {
                executor.submit(self._guarded, path, file_diagnostics, context, writer, sink): path
                for path, file_diagnostics in grouped.items()
            }
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                try:
                    results.append(future.result())
                except OperationCancelled:
                    interrupted = (interrupted or []) + [futures[future]]
                    for pending in futures:
                        pending.cancel()
        return results, interrupted

    def _run_sequential(
        self,
        grouped: Dict[str, List[Diagnostic]],
        context: ProgramContext,
        writer: FileWriter,
        sink: ReportingSink,
    ) -> Tuple[List[FileResult], Optional[List[str]]]:
        results: List[FileResult] = []
        for path, file_diagnostics in grouped.items():
            if context.cancellation.is_cancellation_requested:
                return results, []
            try:
                results.append(self._guarded(path, file_diagnostics, context, writer, sink))
            except OperationCancelled:
                return results, [path]
        return results, None

    def _guarded(
        self,
        path: str,
        diagnostics: Sequence[Diagnostic],
        context: ProgramContext,
        writer: FileWriter,
        sink: ReportingSink,
    ) -> FileResult:
        try:
            return self.process_file(path, diagnostics, context, writer=writer, sink=sink)
        except OperationCancelled:
            raise
        except Exception as error:  # noqa: BLE001 - one file never aborts the run
            LOGGER.exception("Unexpected failure while fixing %s", path)
            sink.emit(OutcomeEvent(path=path, diagnostic=None, outcome=Outcome.ERROR, detail=str(error)))
            return FileResult(path=path)

    def process_file(
        self,
        path: str,
        diagnostics: Sequence[Diagnostic],
        context: ProgramContext,
        *,
        writer: FileWriter,
        sink: ReportingSink,
    ) -> FileResult:
        """Select, merge and (unless dry-running) write the fixes for one file."""
        options = self.options
        try:
            document = context.document(path)
        except OSError as error:
            LOGGER.warning("Cannot read %s: %s", path, error)
            sink.emit(OutcomeEvent(path=path, diagnostic=None, outcome=Outcome.ERROR, detail=f"unreadable: {error}"))
            return FileResult(path=path)

        LOGGER.info("Processing code fixes for %s", path)
        selection = select_fixes(
            diagnostics,
            document,
            self._oracle,
            context,
            diagnostic_filter=options.diagnostic_filter,
            fix_filter=options.fix_filter,
            preprocess=options.preprocess,
            sink=sink,
            cancellation=context.cancellation,
        )
        if selection.skipped_file or not selection.patch_set:
            return FileResult(path=path)

        try:
            result = apply_patch_set(document, selection.patch_set)
        except InvalidSpanError as error:
            LOGGER.error("Aborting fixes for %s: %s", path, error)
            sink.emit(OutcomeEvent(path=path, diagnostic=None, outcome=Outcome.ERROR, detail=str(error)))
            return FileResult(path=path)

        for entry in result.skipped:
            span = entry.edit.span
            LOGGER.info("Skipping overlapping change in %s: start=%d length=%d", path, span.start, span.length)
        dropped = result.dropped_diagnostics
        for diagnostic in dropped:
            sink.emit(
                OutcomeEvent(
                    path=path,
                    diagnostic=diagnostic,
                    outcome=Outcome.SKIPPED_OVERLAP,
                    detail="every edit overlaps an applied edit",
                )
            )
        for diagnostic in result.skipped_diagnostics:
            if diagnostic not in dropped:
                LOGGER.warning("Fix for %s was only partially applied", diagnostic.describe())

        if not result.changed:
            return FileResult(path=path)

        diff = render_diff(path, result.original, result.text) if options.dry_run or options.collect_diffs else ""
        if options.dry_run:
            return FileResult(path=path, diff=diff)

        try:
            writer.write(path, result.text)
        except WriteFailure as error:
            LOGGER.error("%s", error)
            sink.emit(OutcomeEvent(path=path, diagnostic=None, outcome=Outcome.ERROR, detail=str(error)))
            return FileResult(path=path, diff=diff)

        emit_telemetry(
            "file_written",
            path=path,
            applied=len(result.applied),
            skipped=len(result.skipped),
        )
        return FileResult(path=path, written=True, diff=diff)
