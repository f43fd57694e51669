from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import numpy as np


class Outcome(str, Enum):
    MEASURED = "measured"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Measurement:
    """Integrated loudness (LUFS) and gated-block energy of one file."""
    loudness: float
    energy: float

    def to_dict(self) -> dict:
        return {"loudness": float(self.loudness), "energy": float(self.energy)}


@dataclass(frozen=True)
class TrackInfo:
    track_id: int
    codec: str
    channels: int | None
    sample_rate: int | None
    frames: int | None = None


@dataclass(frozen=True)
class Packet:
    track_id: int
    data: np.ndarray


@dataclass(frozen=True)
class FileResult:
    index: int
    key: str
    path: Path
    outcome: Outcome
    measurement: Measurement | None = None
    error: str | None = None
    error_kind: str | None = None


@dataclass
class BatchResult:
    files: list[Path]
    results: list[FileResult] = field(default_factory=list)
    snapshot_path: Path | None = None
    snapshots_written: int = 0

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)
