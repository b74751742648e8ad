"""Batch application of analyzer-suggested source fixes."""

from .backends.base import (
    Analyzer,
    AnalyzerError,
    CancellationToken,
    FixOracle,
    OperationCancelled,
    OracleQueryFailure,
    ProgramContext,
)
from .edits import Diagnostic, EditSpan, FixCandidate, PatchSet, SourceDocument, TextEdit
from .files import FileWriter, WriteFailure
from .grouping import MissingFileError, group_by_file
from .orchestrator import AutofixRunner, RunOptions
from .patching import ApplyResult, InvalidSpanError, apply_edits, apply_patch_set
from .reporting import CollectingSink, Outcome, OutcomeEvent, RunSummary
from .selector import Selection, select_fixes

__all__ = [
    "Analyzer",
    "AnalyzerError",
    "ApplyResult",
    "AutofixRunner",
    "CancellationToken",
    "CollectingSink",
    "Diagnostic",
    "EditSpan",
    "FileWriter",
    "FixCandidate",
    "FixOracle",
    "InvalidSpanError",
    "MissingFileError",
    "OperationCancelled",
    "OracleQueryFailure",
    "Outcome",
    "OutcomeEvent",
    "PatchSet",
    "ProgramContext",
    "RunOptions",
    "RunSummary",
    "Selection",
    "SourceDocument",
    "TextEdit",
    "WriteFailure",
    "apply_edits",
    "apply_patch_set",
    "group_by_file",
    "select_fixes",
]
