"""Partition an analyzer's flat diagnostic list by owning file."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping

from .edits import Diagnostic

__all__ = ["MissingFileError", "group_by_file"]


class MissingFileError(ValueError):
    """Raised when a diagnostic does not reference a resolvable source file."""

    def __init__(
        self,
        message: str,
        *,
        diagnostic: Diagnostic | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic
        self.details: dict[str, Any] = dict(details or {})


def group_by_file(
    diagnostics: Iterable[Diagnostic],
    *,
    on_missing: Callable[[MissingFileError], None] | None = None,
) -> Dict[str, List[Diagnostic]]:
    """Group ``diagnostics`` by path, keeping each file's emitted order.

    Files appear in the order their first diagnostic was emitted. A diagnostic
    without a file raises :class:`MissingFileError`, unless ``on_missing`` is given,
    in which case the error is handed to it and grouping carries on.
    """
    grouped: Dict[str, List[Diagnostic]] = {}
    for diagnostic in diagnostics:
        path = diagnostic.path
        if not path:
            error = MissingFileError(
                f"Diagnostic {diagnostic.code} does not reference a source file",
                diagnostic=diagnostic,
                details={"code": diagnostic.code, "message": diagnostic.message},
            )
            if on_missing is None:
                raise error
            on_missing(error)
            continue
        grouped.setdefault(path, []).append(diagnostic)
    return grouped
