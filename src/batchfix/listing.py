"""Inventory of the fixes the oracle can offer, without applying any of them."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict

from .backends.base import Analyzer, FixOracle, OracleQueryFailure, ProgramContext
from .grouping import group_by_file

__all__ = ["fix_key", "list_fixes", "render_fix_counts"]

LOGGER = logging.getLogger(__name__)


def fix_key(name: str, code: str) -> str:
    return f"{name} fixes {code}"


def list_fixes(
    context: ProgramContext,
    analyzer: Analyzer,
    oracle: FixOracle,
) -> Dict[str, Counter[str]]:
    """Count available fixes per file, keyed by ``"<fix name> fixes <code>"``."""
    diagnostics = analyzer.get_diagnostics(context)
    grouped = group_by_file(
        diagnostics,
        on_missing=lambda error: LOGGER.warning("%s", error),
    )
    counts: Dict[str, Counter[str]] = {}
    for path, file_diagnostics in grouped.items():
        context.cancellation.throw_if_cancellation_requested()
        try:
            document = context.document(path)
        except OSError as error:
            LOGGER.warning("Cannot read %s: %s", path, error)
            continue
        file_counts: Counter[str] = Counter()
        for diagnostic in file_diagnostics:
            try:
                candidates = oracle.suggest_fixes(diagnostic, document, context)
            except OracleQueryFailure as error:
                LOGGER.warning("Fix lookup failed for %s: %s", diagnostic.describe(), error)
                continue
            for candidate in candidates:
                file_counts[fix_key(candidate.name, diagnostic.code)] += 1
        if file_counts:
            counts[path] = file_counts
    return counts


def render_fix_counts(counts: Dict[str, Counter[str]]) -> list[str]:
    lines: list[str] = []
    for path, file_counts in counts.items():
        lines.append(path)
        for key, count in sorted(file_counts.items()):
            noun = "instance" if count == 1 else "instances"
            lines.append(f"  {key}: {count} {noun}")
    return lines
