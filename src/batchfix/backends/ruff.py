"""Ruff-backed analyzer and fix oracle.

One ``ruff check --output-format json`` invocation produces both the diagnostics and
the fix attached to each of them. Row/column locations are converted to absolute
offsets against the documents captured by the run's :class:`ProgramContext`.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.type_adapter import TypeAdapter

from ..edits import Diagnostic, FixCandidate, LineIndex, SourceDocument, TextEdit
from .base import Analyzer, AnalyzerError, FixOracle, ProgramContext

__all__ = ["RuffBackend", "RuffSettings", "parse_ruff_output"]

LOGGER = logging.getLogger(__name__)

CommandRunner = Callable[[Sequence[str], Path], "subprocess.CompletedProcess[str]"]

SYNTAX_ERROR_CODE = "syntax-error"


class _RuffModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RuffLocation(_RuffModel):
    row: int
    column: int


class RuffEdit(_RuffModel):
    content: str = ""
    location: RuffLocation
    end_location: RuffLocation


class RuffFix(_RuffModel):
    applicability: Literal["safe", "unsafe", "display-only"] = "safe"
    message: Optional[str] = None
    edits: List[RuffEdit] = Field(default_factory=list)


class RuffMessage(_RuffModel):
    code: Optional[str] = None
    filename: Optional[str] = None
    message: str = ""
    location: RuffLocation
    end_location: RuffLocation
    fix: Optional[RuffFix] = None
    url: Optional[str] = None


_MESSAGES_ADAPTER = TypeAdapter(List[RuffMessage])


def parse_ruff_output(raw: str) -> list[RuffMessage]:
    """Validate ruff's JSON report into typed messages."""
    if not raw.strip():
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise AnalyzerError(
            f"Ruff produced invalid JSON: {error}",
            details={"output": raw[:500]},
        ) from error
    try:
        return _MESSAGES_ADAPTER.validate_python(payload)
    except ValidationError as error:
        raise AnalyzerError(f"Unexpected ruff report shape: {error}") from error


def _run_command(command: Sequence[str], cwd: Path) -> "subprocess.CompletedProcess[str]":
    return subprocess.run(  # noqa: S603 - command comes from configuration
        list(command),
        cwd=cwd,
        check=False,
        capture_output=True,
        text=True,
    )


@dataclass(slots=True)
class RuffSettings:
    """How ruff is invoked and which fixes it may contribute."""

    command: Sequence[str] = ("ruff",)
    select: Sequence[str] = ()
    ignore: Sequence[str] = ()
    extra_args: Sequence[str] = ()
    unsafe_fixes: bool = False

    def build_command(self, paths: Sequence[str]) -> list[str]:
        command = [*self.command, "check", "--output-format", "json", "--no-fix", "--exit-zero"]
        if self.select:
            command.extend(["--select", ",".join(self.select)])
        if self.ignore:
            command.extend(["--ignore", ",".join(self.ignore)])
        if self.unsafe_fixes:
            command.append("--unsafe-fixes")
        command.extend(self.extra_args)
        command.extend(paths or ["."])
        return command


@dataclass(slots=True)
class RuffBackend(Analyzer, FixOracle):
    """Analyzer and oracle sharing one ruff report per run."""

    settings: RuffSettings = field(default_factory=RuffSettings)
    runner: CommandRunner = _run_command
    _fixes: Dict[Diagnostic, List[FixCandidate]] = field(default_factory=dict, init=False, repr=False)

    concurrent_safe = True

    def get_diagnostics(self, context: ProgramContext) -> list[Diagnostic]:
        command = self.settings.build_command(context.paths)
        if self.runner is _run_command and shutil.which(command[0]) is None:
            raise AnalyzerError(
                f"Executable not available: {command[0]}",
                details={"command": command},
            )
        LOGGER.info("Running %s", " ".join(command))
        process = self.runner(command, context.root)
        if process.returncode != 0:
            raise AnalyzerError(
                f"Ruff exited with code {process.returncode}: {process.stderr.strip()}",
                details={"command": command, "stderr": process.stderr},
            )
        messages = parse_ruff_output(process.stdout)
        self._fixes.clear()
        diagnostics: list[Diagnostic] = []
        indexes: Dict[str, LineIndex] = {}
        for message in messages:
            diagnostic = self._convert(message, context, indexes)
            if diagnostic is not None:
                diagnostics.append(diagnostic)
        LOGGER.info("Ruff reported %d diagnostic(s)", len(diagnostics))
        return diagnostics

    def suggest_fixes(
        self,
        diagnostic: Diagnostic,
        document: SourceDocument,
        context: ProgramContext,
    ) -> list[FixCandidate]:
        return list(self._fixes.get(diagnostic, ()))

    def _relative_path(self, filename: str, root: Path) -> str:
        candidate = Path(filename)
        if not candidate.is_absolute():
            return candidate.as_posix()
        try:
            return candidate.resolve().relative_to(root).as_posix()
        except ValueError:
            return candidate.as_posix()

    def _convert(
        self,
        message: RuffMessage,
        context: ProgramContext,
        indexes: Dict[str, LineIndex],
    ) -> Diagnostic | None:
        code = message.code or SYNTAX_ERROR_CODE
        if not message.filename:
            return Diagnostic(code=code, path=None, start=0, length=0, message=message.message)

        path = self._relative_path(message.filename, context.root)
        index = indexes.get(path)
        if index is None:
            try:
                index = LineIndex(context.document(path).text)
            except OSError as error:
                LOGGER.warning("Cannot read %s reported by ruff: %s", path, error)
                return Diagnostic(code=code, path=None, start=0, length=0, message=message.message)
            indexes[path] = index

        try:
            start = index.offset(message.location.row, message.location.column)
            end = index.offset(message.end_location.row, message.end_location.column)
        except ValueError as error:
            LOGGER.warning("Skipping %s diagnostic with unmappable location in %s: %s", code, path, error)
            return None

        diagnostic = Diagnostic(
            code=code,
            path=path,
            start=start,
            length=max(end - start, 0),
            message=message.message,
        )
        candidate = self._candidate(message, index, path)
        if candidate is not None:
            bucket = self._fixes.setdefault(diagnostic, [])
            if candidate not in bucket:
                bucket.append(candidate)
        return diagnostic

    def _candidate(self, message: RuffMessage, index: LineIndex, path: str) -> FixCandidate | None:
        fix = message.fix
        if fix is None or not fix.edits:
            return None
        if fix.applicability == "display-only":
            return None
        if fix.applicability == "unsafe" and not self.settings.unsafe_fixes:
            return None
        edits: list[TextEdit] = []
        for edit in fix.edits:
            try:
                start = index.offset(edit.location.row, edit.location.column)
                end = index.offset(edit.end_location.row, edit.end_location.column)
            except ValueError as error:
                LOGGER.warning("Dropping fix for %s in %s: %s", message.code, path, error)
                return None
            edits.append(TextEdit.replace(start, end - start, edit.content))
        code = message.code or SYNTAX_ERROR_CODE
        return FixCandidate(
            name=_rule_name(message.url) or code,
            description=fix.message or message.message,
            edits=tuple(edits),
            group_id=code,
        )


def _rule_name(url: str | None) -> str | None:
    """Extract the rule slug from a ruff documentation URL."""
    if not url:
        return None
    slug = url.rstrip("/").rsplit("/", 1)[-1]
    return slug or None
