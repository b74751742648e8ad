"""Outcome events emitted while fixes are selected and applied, plus run summaries."""

from __future__ import annotations

import json
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .edits import Diagnostic

__all__ = [
    "CollectingSink",
    "FanOutSink",
    "FileSummary",
    "LoggingSink",
    "Outcome",
    "OutcomeEvent",
    "ReportingSink",
    "RunSummary",
    "emit_telemetry",
    "render_summary",
]

TELEMETRY_LOGGER = logging.getLogger("batchfix.telemetry")


class Outcome(str, Enum):
    """Per-diagnostic result categories."""

    FIXED = "fixed"
    SKIPPED_DUPLICATE = "skipped-duplicate"
    SKIPPED_OVERLAP = "skipped-overlap"
    NO_FIX = "no-fix"
    MULTIPLE_FIXES_AMBIGUOUS = "multiple-fixes-ambiguous"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class OutcomeEvent:
    """What happened to one diagnostic (or one file, when ``diagnostic`` is None)."""

    path: str | None
    diagnostic: Diagnostic | None
    outcome: Outcome
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "path": self.path,
            "outcome": self.outcome.value,
            "detail": self.detail,
        }
        if self.diagnostic is not None:
            payload["diagnostic"] = {
                "code": self.diagnostic.code,
                "start": self.diagnostic.start,
                "length": self.diagnostic.length,
                "message": self.diagnostic.message,
            }
        return payload


class ReportingSink:
    """Receiver for outcome events. Implementations must tolerate concurrent emitters."""

    def emit(self, event: OutcomeEvent) -> None:  # pragma: no cover - interface
        raise NotImplementedError


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


def emit_telemetry(event: str, **fields: Any) -> None:
    """Log a structured telemetry event as a single compact JSON line."""
    if not TELEMETRY_LOGGER.isEnabledFor(logging.INFO):
        return
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


class LoggingSink(ReportingSink):
    """Forward every outcome to the telemetry logger."""

    def emit(self, event: OutcomeEvent) -> None:
        emit_telemetry("outcome", **event.to_dict())


class FanOutSink(ReportingSink):
    """Broadcast events to several sinks in order."""

    def __init__(self, sinks: Iterable[ReportingSink]) -> None:
        self._sinks = tuple(sinks)

    def emit(self, event: OutcomeEvent) -> None:
        for sink in self._sinks:
            sink.emit(event)


class CollectingSink(ReportingSink):
    """Append-only, lock-protected event store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[OutcomeEvent] = []

    def emit(self, event: OutcomeEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> tuple[OutcomeEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def for_path(self, path: str) -> list[OutcomeEvent]:
        return [event for event in self.events if event.path == path]


@dataclass(slots=True)
class FileSummary:
    """Aggregated outcome counts and status for one file."""

    path: str
    counts: Dict[Outcome, int] = field(default_factory=dict)
    written: bool = False
    errors: List[str] = field(default_factory=list)
    diff: str = ""

    def retract(self, outcome: Outcome, count: int = 1) -> None:
        remaining = self.counts.get(outcome, 0) - count
        if remaining > 0:
            self.counts[outcome] = remaining
        else:
            self.counts.pop(outcome, None)

    @property
    def fixed(self) -> int:
        return self.counts.get(Outcome.FIXED, 0)

    @property
    def skipped(self) -> int:
        return self.counts.get(Outcome.SKIPPED_DUPLICATE, 0) + self.counts.get(
            Outcome.SKIPPED_OVERLAP, 0
        )

    @property
    def errored(self) -> int:
        return self.counts.get(Outcome.ERROR, 0)


@dataclass(slots=True)
class RunSummary:
    """Per-file and aggregate view over a completed run."""

    files: Dict[str, FileSummary] = field(default_factory=dict)
    unresolved: List[OutcomeEvent] = field(default_factory=list)
    cancelled: bool = False

    @classmethod
    def from_events(
        cls,
        events: Sequence[OutcomeEvent],
        *,
        written: Iterable[str] = (),
        diffs: Mapping[str, str] | None = None,
        cancelled: bool = False,
        interrupted: Iterable[str] = (),
    ) -> "RunSummary":
        """Fold events into per-file counts, one final outcome per diagnostic.

        A ``SKIPPED_OVERLAP`` event replaces the ``FIXED`` event of the same
        diagnostic, and a file-level ``ERROR`` (no diagnostic) withdraws every
        ``FIXED`` outcome of that file since its patch set was never applied. The
        same holds for ``interrupted`` files, cancelled before their merge.
        """
        summary = cls(cancelled=cancelled)
        fixed: Dict[str, Counter[Diagnostic]] = {}
        for event in events:
            if event.path is None:
                summary.unresolved.append(event)
                continue
            entry = summary.files.setdefault(event.path, FileSummary(path=event.path))
            file_fixed = fixed.setdefault(event.path, Counter())
            if event.outcome is Outcome.FIXED and event.diagnostic is not None:
                file_fixed[event.diagnostic] += 1
            elif event.outcome is Outcome.SKIPPED_OVERLAP and file_fixed[event.diagnostic] > 0:
                file_fixed[event.diagnostic] -= 1
                entry.retract(Outcome.FIXED)
            elif event.outcome is Outcome.ERROR and event.diagnostic is None:
                entry.retract(Outcome.FIXED, sum(file_fixed.values()))
                file_fixed.clear()
            entry.counts[event.outcome] = entry.counts.get(event.outcome, 0) + 1
            if event.outcome is Outcome.ERROR and event.detail:
                entry.errors.append(event.detail)
        for path in interrupted:
            if path in summary.files:
                summary.files[path].retract(Outcome.FIXED, sum(fixed.get(path, Counter()).values()))
        for path in written:
            summary.files.setdefault(path, FileSummary(path=path)).written = True
        for path, diff in (diffs or {}).items():
            summary.files.setdefault(path, FileSummary(path=path)).diff = diff
        return summary

    @property
    def totals(self) -> Counter[Outcome]:
        totals: Counter[Outcome] = Counter()
        for entry in self.files.values():
            totals.update(entry.counts)
        for event in self.unresolved:
            totals[event.outcome] += 1
        return totals

    @property
    def written_paths(self) -> list[str]:
        return [path for path, entry in self.files.items() if entry.written]

    @property
    def has_errors(self) -> bool:
        return self.totals.get(Outcome.ERROR, 0) > 0


def render_summary(summary: RunSummary) -> list[str]:
    """Return human readable summary lines for CLI output."""
    lines: list[str] = []
    for path, entry in summary.files.items():
        status = "written" if entry.written else "unchanged"
        lines.append(
            f"{path}: fixed {entry.fixed} | skipped {entry.skipped} | "
            f"errored {entry.errored} ({status})"
        )
        for message in entry.errors:
            lines.append(f"  error: {message}")
    for event in summary.unresolved:
        lines.append(f"(no file): {event.outcome.value} {event.detail}".rstrip())
    totals = summary.totals
    skipped = totals.get(Outcome.SKIPPED_DUPLICATE, 0) + totals.get(Outcome.SKIPPED_OVERLAP, 0)
    lines.append(
        f"Total: fixed {totals.get(Outcome.FIXED, 0)} | skipped {skipped} | "
        f"no fix {totals.get(Outcome.NO_FIX, 0)} | errored {totals.get(Outcome.ERROR, 0)} | "
        f"files written {len(summary.written_paths)}"
    )
    if summary.cancelled:
        lines.append("Run cancelled before all files were processed.")
    return lines
