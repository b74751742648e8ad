"""Interfaces for the analyzer and fix oracle collaborators.

The core never talks to an analysis tool directly. A run constructs one
:class:`ProgramContext`, asks an :class:`Analyzer` for diagnostics, and asks a
:class:`FixOracle` for candidate fixes per diagnostic. Both collaborators receive the
context explicitly; there is no process-wide analyzer handle.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

from ..edits import Diagnostic, FixCandidate, SourceDocument
from ..files import SourceLoader

__all__ = [
    "Analyzer",
    "AnalyzerError",
    "CancellationToken",
    "FixOracle",
    "OperationCancelled",
    "OracleQueryFailure",
    "ProgramContext",
]


class AnalyzerError(RuntimeError):
    """Raised when the analyzer cannot produce diagnostics at all."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class OracleQueryFailure(RuntimeError):
    """Raised when the fix oracle fails for a single diagnostic."""

    def __init__(self, message: str, *, diagnostic: Diagnostic | None = None) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class OperationCancelled(RuntimeError):
    """Raised when a run observes a cancellation request."""


class CancellationToken:
    """Thread-safe cancellation flag checked between diagnostics."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def throw_if_cancellation_requested(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Run cancelled")


@dataclass(slots=True)
class ProgramContext:
    """Per-run state shared by the analyzer, the oracle and the orchestrator.

    Construct once per run, before analysis, and pass it to every component that
    needs it. Documents are captured through ``loader`` the first time they are
    requested and stay immutable for the rest of the run.
    """

    root: Path
    loader: SourceLoader
    paths: tuple[str, ...] = ()
    options: Dict[str, Any] = field(default_factory=dict)
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    @classmethod
    def create(
        cls,
        root: Path | str,
        *,
        paths: Sequence[str] = (),
        options: Mapping[str, Any] | None = None,
        encoding: str = "utf-8",
    ) -> "ProgramContext":
        resolved = Path(root).resolve()
        return cls(
            root=resolved,
            loader=SourceLoader(resolved, encoding=encoding),
            paths=tuple(paths),
            options=dict(options or {}),
        )

    def document(self, path: str) -> SourceDocument:
        return self.loader.load(path)


class Analyzer:
    """Produces the flat diagnostic list for a program."""

    def get_diagnostics(self, context: ProgramContext) -> Sequence[Diagnostic]:  # pragma: no cover
        raise NotImplementedError


class FixOracle:
    """Proposes candidate fixes for one diagnostic, preferred candidate first.

    Implementations must be deterministic for a fixed context within one run.
    ``concurrent_safe`` declares whether queries may be issued from several
    worker threads at once.
    """

    concurrent_safe: bool = False

    def suggest_fixes(
        self,
        diagnostic: Diagnostic,
        document: SourceDocument,
        context: ProgramContext,
    ) -> Sequence[FixCandidate]:  # pragma: no cover
        raise NotImplementedError
