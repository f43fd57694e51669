"""Batch measurement over a file or directory.

Files are measured on a thread pool. The cache is consulted before a file
is decoded and again, through ``try_insert``, after it is measured: two
workers holding files with the same key can both see the key as absent and
both measure, in which case the later insert is dropped and that file is
reported as skipped. Nothing stops the duplicated decode; the cache never
holds more than one value per key.
"""
from __future__ import annotations
import itertools
import logging
import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, TextIO
from loudscan.analysis.measure import measure
from loudscan.corpus.cache import ResultCache
from loudscan.corpus.files import DEFAULT_EXTENSIONS, file_key, resolve_targets
from loudscan.errors import SnapshotIOError
from loudscan.types import BatchResult, FileResult, Measurement, Outcome

logger = logging.getLogger("loudscan.batch")

DEFAULT_SAVE_EVERY = 10


def default_workers() -> int:
    return max(1, (os.cpu_count() or 2) - 1)


def format_result_line(result: FileResult) -> str:
    """One line of operator output for a file outcome."""
    prefix = f"[{result.index}] {result.key}:"
    if result.outcome == Outcome.MEASURED:
        m = result.measurement
        return f"{prefix} \t{m.loudness:.2f} LUFS\t{m.energy:.2f} energy"
    if result.outcome == Outcome.SKIPPED:
        return f"{prefix} skipping"
    return f"{prefix} failed - {result.error}"


class _Reporter:
    """Serializes outcome lines so concurrent workers never interleave them."""

    def __init__(self, out: TextIO | None, err: TextIO | None):
        self._out = out if out is not None else sys.stdout
        self._err = err if err is not None else sys.stderr
        self._lock = threading.Lock()

    def __call__(self, result: FileResult) -> None:
        stream = self._err if result.outcome == Outcome.FAILED else self._out
        with self._lock:
            print(format_result_line(result), file=stream, flush=True)


def run_batch(
    target: str | Path,
    snapshot_path: str | Path | None = None,
    *,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    workers: int | None = None,
    save_every: int = DEFAULT_SAVE_EVERY,
    measure_fn: Callable[[Path], Measurement] = measure,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> BatchResult:
    """
    Measure every target file, skipping those already in the cache.

    Raises MalformedSnapshot (before any file is touched) when the cache file
    exists but cannot be parsed, and PathNotFound when ``target`` does not
    exist. Per-file failures are reported and recorded in the result.
    When ``snapshot_path`` is None nothing is cached or written.
    """
    cache = ResultCache.load(snapshot_path) if snapshot_path is not None else None
    files = resolve_targets(target, extensions)
    result = BatchResult(
        files=files,
        snapshot_path=Path(snapshot_path) if snapshot_path is not None else None
    )
    report = _Reporter(out, err)
    save_every = max(1, int(save_every))
    inserted = itertools.count(1)
    results_lock = threading.Lock()

    def save() -> None:
        cache.snapshot(snapshot_path)
        with results_lock:
            result.snapshots_written += 1

    def process(i: int, path: Path) -> FileResult:
        key = file_key(path)
        if cache is not None and cache.contains(key):
            return FileResult(i, key, path, Outcome.SKIPPED)
        try:
            m = measure_fn(path)
        except Exception as exc:
            return FileResult(
                i, key, path, Outcome.FAILED,
                error=str(exc), error_kind=type(exc).__name__
            )
        if cache is not None:
            if not cache.try_insert(key, m):
                logger.debug("%s: measured concurrently by another worker", key)
                return FileResult(i, key, path, Outcome.SKIPPED)
            if next(inserted) % save_every == 0:
                try:
                    save()
                except SnapshotIOError as exc:
                    logger.warning("periodic save failed, will retry at the end: %s", exc)
        return FileResult(i, key, path, Outcome.MEASURED, measurement=m)

    def worker(args: tuple[int, Path]) -> None:
        fr = process(*args)
        report(fr)
        with results_lock:
            result.results.append(fr)

    n_workers = min(workers or default_workers(), max(1, len(files)))
    try:
        if n_workers == 1:
            for item in enumerate(files):
                worker(item)
        else:
            with ThreadPoolExecutor(max_workers=n_workers) as ex:
                # list() re-raises anything a worker did not handle
                list(ex.map(worker, enumerate(files)))
    finally:
        # results measured before an aborted run still reach disk
        if cache is not None:
            save()
    result.results.sort(key=lambda r: r.index)
    return result
