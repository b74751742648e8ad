"""Analyzer and fix oracle integrations."""

from .base import Analyzer, AnalyzerError, CancellationToken, FixOracle, OracleQueryFailure, ProgramContext
from .ruff import RuffBackend, RuffSettings

__all__ = [
    "Analyzer",
    "AnalyzerError",
    "CancellationToken",
    "FixOracle",
    "OracleQueryFailure",
    "ProgramContext",
    "RuffBackend",
    "RuffSettings",
]
