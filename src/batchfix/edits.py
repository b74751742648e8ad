"""Typed payloads describing diagnostics, candidate fixes and text edits."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Sequence

__all__ = [
    "Diagnostic",
    "EditSpan",
    "FixCandidate",
    "LineIndex",
    "PatchEntry",
    "PatchSet",
    "SourceDocument",
    "TextEdit",
]

# Analyzers count lines at \n, \r\n and \r only, unlike str.splitlines.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """Immutable snapshot of a source file captured once per run."""

    path: str
    text: str

    def __len__(self) -> int:
        return len(self.text)


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """Single analyzer finding anchored to ``[start, start + length)`` of a file."""

    code: str
    path: str | None
    start: int
    length: int
    message: str = ""

    @property
    def end(self) -> int:
        return self.start + self.length

    def describe(self) -> str:
        location = self.path or "<unknown>"
        if not self.message:
            return f"{location}@{self.start} {self.code}"
        return f"{location}@{self.start} {self.code}: {self.message}"


@dataclass(frozen=True, slots=True)
class EditSpan:
    """Half-open range into a :class:`SourceDocument`."""

    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length

    def fits(self, size: int) -> bool:
        """Return True when the span lies within a buffer of ``size`` code units."""
        return self.start >= 0 and self.length >= 0 and self.end <= size


@dataclass(frozen=True, slots=True)
class TextEdit:
    """Delete ``span`` and insert ``new_text`` at ``span.start``."""

    span: EditSpan
    new_text: str

    @classmethod
    def replace(cls, start: int, length: int, new_text: str) -> "TextEdit":
        return cls(span=EditSpan(start=start, length=length), new_text=new_text)

    @classmethod
    def insert(cls, start: int, new_text: str) -> "TextEdit":
        return cls.replace(start, 0, new_text)

    @classmethod
    def delete(cls, start: int, length: int) -> "TextEdit":
        return cls.replace(start, length, "")


@dataclass(frozen=True, slots=True)
class FixCandidate:
    """One remediation proposed by a fix oracle for a diagnostic."""

    name: str
    description: str
    edits: tuple[TextEdit, ...] = ()
    group_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "edits", tuple(self.edits))


@dataclass(frozen=True, slots=True)
class PatchEntry:
    """Queued edit tagged with the diagnostic that produced it."""

    diagnostic: Diagnostic
    edit: TextEdit


@dataclass(slots=True)
class PatchSet:
    """Not-yet-applied edits accumulated for one file, in discovery order."""

    path: str
    entries: List[PatchEntry] = field(default_factory=list)

    def add(self, diagnostic: Diagnostic, edits: Sequence[TextEdit]) -> None:
        self.entries.extend(PatchEntry(diagnostic=diagnostic, edit=edit) for edit in edits)

    @property
    def edits(self) -> list[TextEdit]:
        return [entry.edit for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __iter__(self) -> Iterator[PatchEntry]:
        return iter(self.entries)


class LineIndex:
    """Convert 1-based row/column positions into absolute character offsets."""

    def __init__(self, source: str) -> None:
        self._size = len(source)
        self._line_starts: List[int] = [0]
        self._line_starts.extend(match.end() for match in _LINE_BREAK.finditer(source))
        if self._line_starts[-1] != self._size:
            self._line_starts.append(self._size)

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def offset(self, row: int, column: int) -> int:
        """Return the offset of ``row``/``column`` (both 1-based)."""
        if row < 1 or row > len(self._line_starts):
            raise ValueError(f"Line out of range: {row}")
        if column < 1:
            raise ValueError(f"Column out of range: {column}")
        # A line ends where the next one starts; its break counts as part of it.
        line_end = self._line_starts[row] if row < len(self._line_starts) else self._size
        offset = self._line_starts[row - 1] + column - 1
        if offset > line_end:
            raise ValueError(f"Column out of range: {column} on line {row}")
        return offset
