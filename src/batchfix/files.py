"""Source loading and file writing collaborators."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Mapping

from .edits import SourceDocument

__all__ = ["FileWriter", "MemoryWriter", "SourceLoader", "WriteFailure"]

LOGGER = logging.getLogger(__name__)


class WriteFailure(RuntimeError):
    """Raised when a patched buffer cannot be persisted."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class SourceLoader:
    """Read each file at most once per run and hand out immutable snapshots."""

    def __init__(self, root: Path | str | None = None, *, encoding: str = "utf-8") -> None:
        self.root = Path(root).resolve() if root is not None else None
        self.encoding = encoding
        self._cache: Dict[str, SourceDocument] = {}
        self._lock = threading.Lock()

    def resolve(self, path: str) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute() and self.root is not None:
            candidate = self.root / candidate
        return candidate

    def load(self, path: str) -> SourceDocument:
        with self._lock:
            cached = self._cache.get(path)
            if cached is not None:
                return cached
        # newline="" keeps CRLF intact so analyzer offsets line up with the buffer
        try:
            with self.resolve(path).open("r", encoding=self.encoding, newline="") as handle:
                text = handle.read()
        except UnicodeDecodeError as error:
            raise OSError(f"{path} is not valid {self.encoding}: {error}") from error
        document = SourceDocument(path=path, text=text)
        with self._lock:
            return self._cache.setdefault(path, document)

    def preload(self, document: SourceDocument) -> None:
        with self._lock:
            self._cache[document.path] = document


class FileWriter:
    """Overwrite files with patched content."""

    def __init__(self, loader: SourceLoader | None = None, *, encoding: str = "utf-8") -> None:
        self._loader = loader
        self.encoding = encoding

    def _target(self, path: str) -> Path:
        if self._loader is not None:
            return self._loader.resolve(path)
        return Path(path)

    def write(self, path: str, content: str) -> None:
        target = self._target(path)
        try:
            with target.open("w", encoding=self.encoding, newline="") as handle:
                handle.write(content)
        except OSError as error:
            raise WriteFailure(
                f"Failed to write {path}: {error}",
                details={"path": path, "error": str(error)},
            ) from error
        LOGGER.debug("Wrote %d characters to %s", len(content), target)


class MemoryWriter(FileWriter):
    """Writer that records output instead of touching the filesystem."""

    def __init__(self) -> None:
        super().__init__()
        self.written: Dict[str, str] = {}
        self._lock = threading.Lock()

    def write(self, path: str, content: str) -> None:
        with self._lock:
            self.written[path] = content
