from __future__ import annotations

import threading
from pathlib import Path

from conftest import FakeAnalyzer, FakeOracle, make_fix

from batchfix.edits import Diagnostic, TextEdit
from batchfix.files import FileWriter, MemoryWriter, WriteFailure
from batchfix.orchestrator import AutofixRunner, RunOptions
from batchfix.reporting import CollectingSink, Outcome, render_summary

SOURCES = {
    "pkg/alpha.py": "import os\nimport sys\nprint(sys.argv)\n",
    "pkg/beta.py": "x = 1  \ny = 2\n",
    "pkg/clean.py": "z = 3\n",
}

ALPHA_UNUSED = Diagnostic(code="F401", path="pkg/alpha.py", start=7, length=2, message="`os` imported but unused")
BETA_TRAILING = Diagnostic(code="W291", path="pkg/beta.py", start=5, length=2, message="Trailing whitespace")
CLEAN_NOFIX = Diagnostic(code="E501", path="pkg/clean.py", start=0, length=5, message="Line too long")


def _oracle() -> FakeOracle:
    return FakeOracle(
        fixes={
            ALPHA_UNUSED: [make_fix("unused-import", TextEdit.delete(0, 10))],
            BETA_TRAILING: [make_fix("trailing-whitespace", TextEdit.delete(5, 2))],
        }
    )


def test_run_writes_fixed_files_and_leaves_others_untouched(write_sources, tmp_path: Path) -> None:
    context = write_sources(SOURCES)
    clean_path = tmp_path / "pkg" / "clean.py"
    before = clean_path.stat().st_mtime_ns
    analyzer = FakeAnalyzer([ALPHA_UNUSED, BETA_TRAILING, CLEAN_NOFIX])

    summary = AutofixRunner(analyzer=analyzer, oracle=_oracle()).run(context)

    assert (tmp_path / "pkg" / "alpha.py").read_text(encoding="utf-8") == "import sys\nprint(sys.argv)\n"
    assert (tmp_path / "pkg" / "beta.py").read_text(encoding="utf-8") == "x = 1\ny = 2\n"
    assert clean_path.stat().st_mtime_ns == before
    assert summary.written_paths == ["pkg/alpha.py", "pkg/beta.py"]
    assert summary.files["pkg/clean.py"].counts == {Outcome.NO_FIX: 1}
    assert summary.totals[Outcome.FIXED] == 2
    assert not summary.has_errors


def test_duplicate_start_contributes_no_edit_even_when_disjoint(write_sources) -> None:
    context = write_sources({"mod.py": "0123456789abcdefghij\n"})
    first = Diagnostic(code="A1", path="mod.py", start=10, length=3)
    second = Diagnostic(code="B2", path="mod.py", start=10, length=1)
    oracle = FakeOracle(
        fixes={
            first: [make_fix("first", TextEdit.replace(10, 3, "ABC"))],
            second: [make_fix("second", TextEdit.replace(0, 2, "ZZ"))],
        }
    )
    writer = MemoryWriter()

    summary = AutofixRunner(analyzer=FakeAnalyzer([first, second]), oracle=oracle, writer=writer).run(context)

    assert writer.written == {"mod.py": "0123456789ABCdefghij\n"}
    assert summary.files["mod.py"].counts[Outcome.SKIPPED_DUPLICATE] == 1


def test_overlapping_edits_are_reported_and_not_applied(write_sources) -> None:
    context = write_sources({"mod.py": "abcdef"})
    outer = Diagnostic(code="A1", path="mod.py", start=1, length=3)
    inner = Diagnostic(code="B2", path="mod.py", start=2, length=1)
    oracle = FakeOracle(
        fixes={
            outer: [make_fix("outer", TextEdit.replace(1, 3, "Q"))],
            inner: [make_fix("inner", TextEdit.replace(2, 1, "R"))],
        }
    )
    writer = MemoryWriter()
    sink = CollectingSink()

    summary = AutofixRunner(analyzer=FakeAnalyzer([outer, inner]), oracle=oracle, writer=writer, sink=sink).run(
        context
    )

    assert writer.written == {"mod.py": "abRdef"}
    overlap = [event for event in sink.events if event.outcome is Outcome.SKIPPED_OVERLAP]
    assert [event.diagnostic for event in overlap] == [outer]
    assert summary.files["mod.py"].skipped == 1
    assert render_summary(summary)[0] == "mod.py: fixed 1 | skipped 1 | errored 0 (written)"


def test_empty_patch_set_does_not_rewrite_file(write_sources) -> None:
    context = write_sources({"hello.txt": "hello"})
    diagnostic = Diagnostic(code="X1", path="hello.txt", start=0, length=5)
    writer = MemoryWriter()

    summary = AutofixRunner(analyzer=FakeAnalyzer([diagnostic]), oracle=FakeOracle(), writer=writer).run(context)

    assert writer.written == {}
    assert summary.written_paths == []


def test_diagnostic_without_file_is_reported_and_run_continues(write_sources) -> None:
    context = write_sources(SOURCES)
    orphan = Diagnostic(code="E902", path=None, start=0, length=0, message="No such file")
    writer = MemoryWriter()

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([orphan, BETA_TRAILING]), oracle=_oracle(), writer=writer
    ).run(context)

    assert list(writer.written) == ["pkg/beta.py"]
    assert [event.outcome for event in summary.unresolved] == [Outcome.ERROR]
    assert summary.has_errors


def test_invalid_span_aborts_only_that_file(write_sources) -> None:
    context = write_sources(SOURCES)
    oracle = _oracle()
    oracle.fixes[ALPHA_UNUSED] = [make_fix("broken", TextEdit.replace(30, 500, ""))]
    writer = MemoryWriter()

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([ALPHA_UNUSED, BETA_TRAILING]), oracle=oracle, writer=writer
    ).run(context)

    assert list(writer.written) == ["pkg/beta.py"]
    alpha = summary.files["pkg/alpha.py"]
    assert alpha.errored == 1
    assert not alpha.written
    assert alpha.fixed == 0
    assert "outside a buffer" in alpha.errors[0]
    assert summary.files["pkg/beta.py"].fixed == 1


class _FailingWriter(MemoryWriter):
    def write(self, path: str, content: str) -> None:
        if path == "pkg/alpha.py":
            raise WriteFailure(f"Failed to write {path}: read-only")
        super().write(path, content)


def test_write_failure_is_per_file(write_sources) -> None:
    context = write_sources(SOURCES)
    writer = _FailingWriter()

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([ALPHA_UNUSED, BETA_TRAILING]), oracle=_oracle(), writer=writer
    ).run(context)

    assert list(writer.written) == ["pkg/beta.py"]
    assert summary.files["pkg/alpha.py"].errors == ["Failed to write pkg/alpha.py: read-only"]
    assert summary.written_paths == ["pkg/beta.py"]


def test_unreadable_file_is_reported(write_sources) -> None:
    context = write_sources(SOURCES)
    ghost = Diagnostic(code="F401", path="pkg/ghost.py", start=0, length=1)

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([ghost, BETA_TRAILING]), oracle=_oracle(), writer=MemoryWriter()
    ).run(context)

    assert summary.files["pkg/ghost.py"].errored == 1
    assert summary.files["pkg/ghost.py"].errors[0].startswith("unreadable:")
    assert summary.files["pkg/beta.py"].fixed == 1


def test_dry_run_collects_diff_without_writing(write_sources, tmp_path: Path) -> None:
    context = write_sources(SOURCES)

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([ALPHA_UNUSED]),
        oracle=_oracle(),
        writer=FileWriter(context.loader),
        options=RunOptions(dry_run=True),
    ).run(context)

    assert (tmp_path / "pkg" / "alpha.py").read_text(encoding="utf-8") == SOURCES["pkg/alpha.py"]
    assert summary.written_paths == []
    assert "-import os\n" in summary.files["pkg/alpha.py"].diff


def test_parallel_run_matches_sequential_run(write_sources) -> None:
    context = write_sources(SOURCES)
    diagnostics = [ALPHA_UNUSED, BETA_TRAILING, CLEAN_NOFIX]
    sequential_writer = MemoryWriter()
    parallel_writer = MemoryWriter()

    sequential = AutofixRunner(
        analyzer=FakeAnalyzer(diagnostics), oracle=_oracle(), writer=sequential_writer
    ).run(context)
    parallel = AutofixRunner(
        analyzer=FakeAnalyzer(diagnostics),
        oracle=_oracle(),
        writer=parallel_writer,
        options=RunOptions(workers=3),
    ).run(context)

    assert parallel_writer.written == sequential_writer.written
    assert list(parallel.files) == list(sequential.files)
    assert parallel.totals == sequential.totals


def test_unsafe_oracle_falls_back_to_sequential(write_sources) -> None:
    context = write_sources(SOURCES)
    oracle = _oracle()
    oracle.concurrent_safe = False
    writer = MemoryWriter()

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([ALPHA_UNUSED, BETA_TRAILING]),
        oracle=oracle,
        writer=writer,
        options=RunOptions(workers=4),
    ).run(context)

    assert oracle.queries == [ALPHA_UNUSED, BETA_TRAILING]
    assert sorted(writer.written) == ["pkg/alpha.py", "pkg/beta.py"]
    assert summary.totals[Outcome.FIXED] == 2


def test_cancellation_stops_the_run(write_sources) -> None:
    context = write_sources(SOURCES)
    oracle = _oracle()
    oracle.on_query = lambda _diagnostic: context.cancellation.cancel()
    writer = MemoryWriter()

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([ALPHA_UNUSED, BETA_TRAILING]), oracle=oracle, writer=writer
    ).run(context)

    assert summary.cancelled
    assert writer.written == {"pkg/alpha.py": "import sys\nprint(sys.argv)\n"}
    assert oracle.queries == [ALPHA_UNUSED]


def test_diagnostic_filter_skips_whole_files(write_sources) -> None:
    context = write_sources(SOURCES)
    oracle = _oracle()
    writer = MemoryWriter()

    AutofixRunner(
        analyzer=FakeAnalyzer([ALPHA_UNUSED, BETA_TRAILING]),
        oracle=oracle,
        writer=writer,
        options=RunOptions(diagnostic_filter=lambda diagnostic: diagnostic.code == "W291"),
    ).run(context)

    assert oracle.queries == [BETA_TRAILING]
    assert list(writer.written) == ["pkg/beta.py"]


def test_multi_edit_fix_losing_to_overlap_counts_once(write_sources) -> None:
    context = write_sources({"mod.py": "abcdefgh"})
    inner = Diagnostic(code="A1", path="mod.py", start=2, length=1)
    outer = Diagnostic(code="B2", path="mod.py", start=1, length=2)
    oracle = FakeOracle(
        fixes={
            inner: [make_fix("inner", TextEdit.replace(2, 1, "R"))],
            outer: [make_fix("outer", TextEdit.replace(1, 2, "Q"), TextEdit.insert(2, "+"))],
        }
    )
    writer = MemoryWriter()
    sink = CollectingSink()

    summary = AutofixRunner(analyzer=FakeAnalyzer([inner, outer]), oracle=oracle, writer=writer, sink=sink).run(
        context
    )

    assert writer.written == {"mod.py": "abRdefgh"}
    assert [event.diagnostic for event in sink.events if event.outcome is Outcome.SKIPPED_OVERLAP] == [outer]
    entry = summary.files["mod.py"]
    assert (entry.fixed, entry.skipped) == (1, 1)


def test_undecodable_file_is_reported_and_others_are_fixed(write_sources, tmp_path: Path) -> None:
    context = write_sources({"pkg/beta.py": SOURCES["pkg/beta.py"]})
    (tmp_path / "pkg" / "latin.py").write_bytes(b"x = '\xff'\n")
    latin = Diagnostic(code="E902", path="pkg/latin.py", start=0, length=1)
    writer = MemoryWriter()

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([latin, BETA_TRAILING]), oracle=_oracle(), writer=writer
    ).run(context)

    assert writer.written == {"pkg/beta.py": "x = 1\ny = 2\n"}
    latin_entry = summary.files["pkg/latin.py"]
    assert latin_entry.errored == 1
    assert latin_entry.errors[0].startswith("unreadable:")


class _SignallingWriter(MemoryWriter):
    def __init__(self) -> None:
        super().__init__()
        self.alpha_written = threading.Event()

    def write(self, path: str, content: str) -> None:
        super().write(path, content)
        if path == "pkg/alpha.py":
            self.alpha_written.set()


def test_cancellation_in_worker_pool_keeps_finished_files_in_summary(write_sources) -> None:
    context = write_sources(SOURCES)
    beta_second = Diagnostic(code="W293", path="pkg/beta.py", start=11, length=1)
    writer = _SignallingWriter()
    oracle = _oracle()

    def cancel_once_alpha_is_written(diagnostic: Diagnostic) -> None:
        if diagnostic.path == "pkg/beta.py":
            assert writer.alpha_written.wait(timeout=5)
            context.cancellation.cancel()

    oracle.on_query = cancel_once_alpha_is_written

    summary = AutofixRunner(
        analyzer=FakeAnalyzer([ALPHA_UNUSED, BETA_TRAILING, beta_second]),
        oracle=oracle,
        writer=writer,
        options=RunOptions(workers=2),
    ).run(context)

    assert summary.cancelled
    assert list(writer.written) == ["pkg/alpha.py"]
    assert summary.written_paths == ["pkg/alpha.py"]
    assert summary.files["pkg/alpha.py"].fixed == 1
    assert summary.files["pkg/beta.py"].fixed == 0
    assert "Run cancelled before all files were processed." in render_summary(summary)
