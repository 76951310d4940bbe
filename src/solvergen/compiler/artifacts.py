# src/solvergen/compiler/artifacts.py
"""
Artifact targets.

A target is either a filesystem path or an already-open text stream
(anything with ``write``; ``None`` means stdout). File targets are owned
here: opened, flushed, fsynced and closed on every exit path. Streams
belong to the caller and are never closed.

A failure in the middle of writing a file target leaves whatever was
written so far on disk; it is not removed.
"""
from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TextIO, Union
import os
import sys
import time

from solvergen.errors import ArtifactIOError, ArtifactTimeoutError

__all__ = ["STREAM", "open_artifact", "write_artifact", "wait_for_visibility"]


class _StreamTarget:
    """Placeholder path returned for artifacts written to a stream."""

    def __repr__(self) -> str:
        return "STREAM"

    def __bool__(self) -> bool:
        return False


STREAM = _StreamTarget()


def _is_stream(target: Any) -> bool:
    return target is None or hasattr(target, "write")


@contextmanager
def open_artifact(target: Any) -> Iterator[TextIO]:
    if _is_stream(target):
        stream = sys.stdout if target is None else target
        yield stream
        flush = getattr(stream, "flush", None)
        if flush is not None:
            flush()
        return

    path = Path(target)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(path, "w", encoding="utf-8")
    except OSError as exc:
        raise ArtifactIOError(str(path), str(exc)) from exc
    try:
        yield fh
        fh.flush()
        os.fsync(fh.fileno())
    finally:
        fh.close()


def write_artifact(target: Any, text: str) -> Union[Path, _StreamTarget]:
    """Write ``text`` to ``target``; return its path, or ``STREAM``."""
    where = "<stream>" if _is_stream(target) else str(target)
    try:
        with open_artifact(target) as fh:
            fh.write(text)
    except ArtifactIOError:
        raise
    except OSError as exc:
        raise ArtifactIOError(where, str(exc)) from exc
    if _is_stream(target):
        return STREAM
    return Path(target)


def wait_for_visibility(path: Union[str, Path], timeout: float = 5.0, interval: float = 0.01) -> Path:
    """Poll until ``path`` exists; raise ``ArtifactTimeoutError`` after ``timeout`` seconds."""
    path = Path(path)
    deadline = time.monotonic() + timeout
    while True:
        if path.exists():
            return path
        if time.monotonic() >= deadline:
            raise ArtifactTimeoutError(str(path), timeout)
        time.sleep(interval)
