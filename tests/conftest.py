from __future__ import annotations

import sys
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def sine(
    *,
    seconds: float = 2.0,
    fs: int = 48000,
    freq: float = 997.0,
    amp: float = 0.1,
    channels: int = 2
) -> np.ndarray:
    t = np.arange(int(seconds * fs)) / fs
    x = amp * np.sin(2.0 * np.pi * freq * t)
    return np.stack([x] * channels, axis=1)


def write_tone(path: Path, **kwargs) -> Path:
    import soundfile as sf
    fs = kwargs.get("fs", 48000)
    sf.write(str(path), sine(**kwargs), fs, subtype="FLOAT")
    return path


def write_corpus(folder: Path, names: list[str], ext: str = ".wav", **kwargs) -> list[Path]:
    folder.mkdir(parents=True, exist_ok=True)
    return [write_tone(folder / f"{name}{ext}", **kwargs) for name in names]
