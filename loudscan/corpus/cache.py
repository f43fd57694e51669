"""Persistent measurement cache.

The cache maps a file key to its Measurement and is shared by all batch
workers. Every access goes through the methods below, each of which holds
the cache lock for its whole duration; the underlying dict is never handed
out.

Snapshots are written to a temporary file in the target directory and moved
into place, so an interrupted write leaves the previous snapshot intact.
The new file takes over the permissions of the one it replaces.
"""
from __future__ import annotations
import functools
import json
import os
import stat
import tempfile
import threading
from pathlib import Path
from loudscan.errors import MalformedSnapshot, SnapshotIOError
from loudscan.types import Measurement
from loudscan.utils.canonical_json import canonical_dumps_pretty


def _parse_measurement(key: str, obj) -> Measurement:
    if not isinstance(obj, dict):
        raise MalformedSnapshot(f"entry '{key}' must be an object.")
    values = {}
    for field in ("loudness", "energy"):
        v = obj.get(field)
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise MalformedSnapshot(f"entry '{key}'.{field} must be a number.")
        values[field] = float(v)
    return Measurement(**values)


def parse_snapshot(text: str) -> dict[str, Measurement]:
    """Parse snapshot JSON into a key -> Measurement mapping."""
    try:
        j = json.loads(text)
    except ValueError as exc:
        raise MalformedSnapshot(f"invalid JSON: {exc}") from exc
    if not isinstance(j, dict):
        raise MalformedSnapshot("snapshot root must be an object.")
    return {str(k): _parse_measurement(k, v) for k, v in j.items()}


@functools.lru_cache(maxsize=None)
def _new_file_mode() -> int:
    # os.umask can only be read by setting it; do it once, not per snapshot
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _target_mode(path: Path) -> int:
    """Mode a snapshot at ``path`` should carry: the existing file's, else the umask default."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return _new_file_mode()


class ResultCache:
    """Thread-safe key -> Measurement mapping with JSON snapshots."""

    def __init__(self, entries: dict[str, Measurement] | None = None):
        self._entries: dict[str, Measurement] = dict(entries or {})
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: str | Path) -> "ResultCache":
        """
        Load a snapshot; a missing file yields an empty cache.

        Raises MalformedSnapshot when the file exists but cannot be read or
        parsed.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise MalformedSnapshot(f"cannot read '{path}': {exc}") from exc
        try:
            return cls(parse_snapshot(text))
        except MalformedSnapshot as exc:
            raise MalformedSnapshot(f"malformed cache file '{path}': {exc}") from exc

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> Measurement | None:
        with self._lock:
            return self._entries.get(key)

    def try_insert(self, key: str, measurement: Measurement) -> bool:
        """Insert ``measurement`` unless ``key`` is present; True if inserted."""
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = measurement
            return True

    def items(self) -> list[tuple[str, Measurement]]:
        with self._lock:
            return sorted(self._entries.items())

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def to_dict(self) -> dict:
        with self._lock:
            return {k: m.to_dict() for k, m in self._entries.items()}

    def snapshot(self, path: str | Path) -> None:
        """Write the whole cache to ``path``, replacing it atomically."""
        path = Path(path)
        with self._lock:
            text = canonical_dumps_pretty(self.to_dict())
            try:
                fd, tmp = tempfile.mkstemp(
                    prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(text)
                    os.chmod(tmp, _target_mode(path))
                    os.replace(tmp, path)
                except BaseException:
                    if os.path.exists(tmp):
                        os.unlink(tmp)
                    raise
            except OSError as exc:
                raise SnapshotIOError(f"failed to write cache '{path}': {exc}") from exc
