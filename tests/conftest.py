from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from batchfix.backends.base import Analyzer, FixOracle, ProgramContext  # noqa: E402
from batchfix.edits import Diagnostic, FixCandidate, SourceDocument, TextEdit  # noqa: E402


@dataclass
class FakeAnalyzer(Analyzer):
    """Analyzer returning a canned diagnostic list."""

    diagnostics: List[Diagnostic] = field(default_factory=list)
    calls: int = 0

    def get_diagnostics(self, context: ProgramContext) -> List[Diagnostic]:
        self.calls += 1
        return list(self.diagnostics)


@dataclass
class FakeOracle(FixOracle):
    """Oracle keyed by diagnostic, optionally failing for selected ones."""

    fixes: Dict[Diagnostic, List[FixCandidate]] = field(default_factory=dict)
    failures: Dict[Diagnostic, Exception] = field(default_factory=dict)
    queries: List[Diagnostic] = field(default_factory=list)
    concurrent_safe: bool = True
    on_query: Callable[[Diagnostic], None] | None = None

    def suggest_fixes(
        self,
        diagnostic: Diagnostic,
        document: SourceDocument,
        context: ProgramContext,
    ) -> Sequence[FixCandidate]:
        self.queries.append(diagnostic)
        if self.on_query is not None:
            self.on_query(diagnostic)
        if diagnostic in self.failures:
            raise self.failures[diagnostic]
        return list(self.fixes.get(diagnostic, ()))


def make_fix(name: str, *edits: TextEdit, description: str = "") -> FixCandidate:
    return FixCandidate(name=name, description=description or name, edits=edits)


@pytest.fixture()
def write_sources(tmp_path: Path) -> Callable[[Dict[str, str]], ProgramContext]:
    """Write the given files under ``tmp_path`` and return a context rooted there."""

    def _write(files: Dict[str, str]) -> ProgramContext:
        for relative, content in files.items():
            target = tmp_path / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return ProgramContext.create(tmp_path)

    return _write
