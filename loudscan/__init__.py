"""
loudscan - Batch Loudness Measurement

Measures integrated loudness (LUFS) and gated-block energy for a folder of
audio files, keeping results in a resumable JSON cache.
"""
from loudscan.version import __version__
from loudscan.types import (
    Outcome,
    Measurement,
    TrackInfo,
    Packet,
    FileResult,
    BatchResult,
)

__all__ = [
    "__version__",
    "Outcome",
    "Measurement",
    "TrackInfo",
    "Packet",
    "FileResult",
    "BatchResult",
]
