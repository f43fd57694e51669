"""Target file enumeration."""
from __future__ import annotations
from pathlib import Path
from typing import Iterable
from loudscan.errors import PathNotFound

DEFAULT_EXTENSIONS = (".mp3",)


def normalize_extensions(exts: Iterable[str]) -> tuple[str, ...]:
    """Lower-case extensions and make sure each starts with a dot."""
    out = []
    for ext in exts:
        ext = ext.strip().lower()
        if not ext:
            continue
        out.append(ext if ext.startswith(".") else "." + ext)
    return tuple(out)


def iter_audio_files(folder: Path, extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> list[Path]:
    """Collect direct children of ``folder`` with a recognized extension."""
    exts = set(normalize_extensions(extensions))
    out: list[Path] = []
    for p in folder.iterdir():
        if p.is_file() and p.suffix.lower() in exts:
            out.append(p)
    return out


def resolve_targets(target: str | Path, extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> list[Path]:
    """
    Resolve the files a run will measure.

    A file is measured as given, whatever its extension; a directory is
    scanned non-recursively.
    """
    path = Path(target)
    if path.is_file():
        return [path]
    if path.is_dir():
        return iter_audio_files(path, extensions)
    raise PathNotFound(f"Path '{path}' does not exist.")


def file_key(path: Path) -> str:
    """Cache key of a file: its base name without extension."""
    return Path(path).stem
