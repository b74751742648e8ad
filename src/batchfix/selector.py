"""Pick at most one candidate fix per diagnostic for a single file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

from .backends.base import CancellationToken, FixOracle, OracleQueryFailure, ProgramContext
from .edits import Diagnostic, FixCandidate, PatchSet, SourceDocument, TextEdit
from .reporting import Outcome, OutcomeEvent, ReportingSink

__all__ = [
    "DiagnosticFilter",
    "FixFilter",
    "PreprocessHook",
    "Selection",
    "select_fixes",
]

LOGGER = logging.getLogger(__name__)

DiagnosticFilter = Callable[[Diagnostic], bool]
FixFilter = Callable[[FixCandidate], bool]
PreprocessHook = Callable[[Sequence[TextEdit], SourceDocument, Diagnostic], Sequence[TextEdit]]


@dataclass(slots=True)
class Selection:
    """Edits chosen for one file together with the per-diagnostic outcomes."""

    patch_set: PatchSet
    outcomes: List[OutcomeEvent] = field(default_factory=list)
    skipped_file: bool = False

    def outcomes_of(self, outcome: Outcome) -> list[OutcomeEvent]:
        return [event for event in self.outcomes if event.outcome is outcome]


def _query(
    oracle: FixOracle,
    diagnostic: Diagnostic,
    document: SourceDocument,
    context: ProgramContext,
) -> list[FixCandidate]:
    try:
        return list(oracle.suggest_fixes(diagnostic, document, context))
    except OracleQueryFailure:
        raise
    except Exception as error:  # noqa: BLE001 - oracle errors are contained per diagnostic
        raise OracleQueryFailure(str(error) or type(error).__name__, diagnostic=diagnostic) from error


def select_fixes(
    diagnostics: Sequence[Diagnostic],
    document: SourceDocument,
    oracle: FixOracle,
    context: ProgramContext,
    *,
    diagnostic_filter: Optional[DiagnosticFilter] = None,
    fix_filter: Optional[FixFilter] = None,
    preprocess: Optional[PreprocessHook] = None,
    sink: Optional[ReportingSink] = None,
    cancellation: Optional[CancellationToken] = None,
) -> Selection:
    """Walk ``diagnostics`` in order and queue the edits of one fix for each.

    A diagnostic whose start offset was already claimed by an earlier fixed
    diagnostic is reported as a duplicate: its candidate edits were computed
    against the pre-edit buffer and are not safe to stack on the earlier fix.
    """
    selection = Selection(patch_set=PatchSet(path=document.path))

    def record(diagnostic: Diagnostic, outcome: Outcome, detail: str = "") -> None:
        event = OutcomeEvent(path=document.path, diagnostic=diagnostic, outcome=outcome, detail=detail)
        selection.outcomes.append(event)
        if sink is not None:
            sink.emit(event)

    if diagnostic_filter is not None:
        diagnostics = [diagnostic for diagnostic in diagnostics if diagnostic_filter(diagnostic)]
        if not diagnostics:
            selection.skipped_file = True
            return selection

    claimed_starts: Set[int] = set()
    for diagnostic in diagnostics:
        if cancellation is not None:
            cancellation.throw_if_cancellation_requested()

        if diagnostic.start in claimed_starts:
            record(diagnostic, Outcome.SKIPPED_DUPLICATE, f"start {diagnostic.start} already fixed")
            continue

        try:
            candidates = _query(oracle, diagnostic, document, context)
        except OracleQueryFailure as error:
            LOGGER.warning("Fix lookup failed for %s: %s", diagnostic.describe(), error)
            record(diagnostic, Outcome.NO_FIX, f"oracle failure: {error}")
            continue

        if fix_filter is not None:
            candidates = [candidate for candidate in candidates if fix_filter(candidate)]
        if not candidates:
            record(diagnostic, Outcome.NO_FIX)
            continue

        chosen = candidates[0]
        if len(candidates) > 1:
            LOGGER.info(
                "Found %d matching fixes at pos %d in %s. Only '%s' will be applied.",
                len(candidates),
                diagnostic.start,
                document.path,
                chosen.name,
            )
            record(
                diagnostic,
                Outcome.MULTIPLE_FIXES_AMBIGUOUS,
                ", ".join(candidate.name for candidate in candidates),
            )

        edits: Sequence[TextEdit] = chosen.edits
        if preprocess is not None:
            edits = list(preprocess(list(edits), document, diagnostic))
        if not edits:
            record(diagnostic, Outcome.NO_FIX, f"{chosen.name} produced no edits")
            continue

        selection.patch_set.add(diagnostic, edits)
        claimed_starts.add(diagnostic.start)
        record(diagnostic, Outcome.FIXED, chosen.name)

    return selection
