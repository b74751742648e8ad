"""Merge a batch of independently computed text edits into one source buffer.

Edits are applied from the end of the buffer towards the beginning, so every
offset stays valid in the original coordinate space and no recomputation is
needed after a splice. An edit reaching into a region already claimed by an
applied (higher offset) edit is skipped rather than applied against stale
coordinates.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .edits import Diagnostic, PatchEntry, PatchSet, SourceDocument, TextEdit

__all__ = [
    "ApplyResult",
    "InvalidSpanError",
    "PatchSetResult",
    "apply_edits",
    "apply_patch_set",
    "render_diff",
]


class InvalidSpanError(ValueError):
    """Raised when an edit span falls outside the buffer it targets."""

    def __init__(self, message: str, *, edit: TextEdit | None = None, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.edit = edit
        self.details: dict[str, Any] = dict(details or {})


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """New buffer plus the edits that made it in and those skipped for overlap."""

    text: str
    applied: tuple[TextEdit, ...]
    skipped: tuple[TextEdit, ...]

    @property
    def changed(self) -> bool:
        return bool(self.applied)


@dataclass(frozen=True, slots=True)
class PatchSetResult:
    """:class:`ApplyResult` with skipped edits traced back to their diagnostics."""

    path: str
    original: str
    text: str
    applied: tuple[PatchEntry, ...]
    skipped: tuple[PatchEntry, ...]

    @property
    def changed(self) -> bool:
        return self.text != self.original

    @property
    def skipped_diagnostics(self) -> list[Diagnostic]:
        return list(dict.fromkeys(entry.diagnostic for entry in self.skipped))

    @property
    def dropped_diagnostics(self) -> list[Diagnostic]:
        """Diagnostics none of whose edits made it into the buffer."""
        applied = {entry.diagnostic for entry in self.applied}
        return [diagnostic for diagnostic in self.skipped_diagnostics if diagnostic not in applied]


def _validate(size: int, edits: Sequence[TextEdit]) -> None:
    for position, edit in enumerate(edits):
        span = edit.span
        if not span.fits(size):
            raise InvalidSpanError(
                f"Edit #{position} span [{span.start}, {span.end}) lies outside a buffer of length {size}",
                edit=edit,
                details={"start": span.start, "length": span.length, "buffer_length": size},
            )


def _select(edits: Sequence[TextEdit], size: int) -> tuple[list[int], list[int]]:
    """Return indices of accepted (descending start) and skipped edits."""
    order = sorted(range(len(edits)), key=lambda index: -edits[index].span.start)
    accepted: list[int] = []
    skipped: list[int] = []
    boundary = size
    for index in order:
        span = edits[index].span
        if span.end > boundary or (accepted and span.start == boundary):
            # Reaches into, or shares the anchor of, an already applied edit.
            skipped.append(index)
            continue
        accepted.append(index)
        boundary = span.start
    return accepted, skipped


def _splice(text: str, edits: Sequence[TextEdit], accepted: Sequence[int]) -> str:
    pieces: list[str] = []
    cursor = len(text)
    for index in accepted:
        edit = edits[index]
        pieces.append(text[edit.span.end:cursor])
        pieces.append(edit.new_text)
        cursor = edit.span.start
    pieces.append(text[:cursor])
    return "".join(reversed(pieces))


def apply_edits(text: str, edits: Sequence[TextEdit]) -> ApplyResult:
    """Apply every non-conflicting edit in ``edits`` to ``text``.

    Edits are ordered by start offset, highest first; ties keep discovery order so
    the earlier edit wins. The first edit at a given start always applies; any later
    edit at the same start, or whose range ends past the start of an applied edit,
    is returned in ``skipped``. Spans are validated before anything is spliced, so an
    :class:`InvalidSpanError` leaves no partial result behind.
    """
    edits = list(edits)
    _validate(len(text), edits)
    accepted, skipped = _select(edits, len(text))
    return ApplyResult(
        text=_splice(text, edits, accepted),
        applied=tuple(edits[index] for index in accepted),
        skipped=tuple(edits[index] for index in sorted(skipped)),
    )


def apply_patch_set(document: SourceDocument, patch_set: PatchSet) -> PatchSetResult:
    """Apply ``patch_set`` to ``document`` and keep track of which entries lost."""
    entries = list(patch_set)
    edits = [entry.edit for entry in entries]
    _validate(len(document.text), edits)
    accepted, skipped = _select(edits, len(document.text))
    return PatchSetResult(
        path=document.path,
        original=document.text,
        text=_splice(document.text, edits, accepted),
        applied=tuple(entries[index] for index in accepted),
        skipped=tuple(entries[index] for index in sorted(skipped)),
    )


def render_diff(path: str, before: str, after: str) -> str:
    """Return a unified diff between two versions of ``path``."""
    return "".join(
        difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )
