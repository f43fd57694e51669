"""Per-file loudness measurement."""
from __future__ import annotations
import logging
from pathlib import Path
import numpy as np
from loudscan.errors import (
    DecodeError,
    DecodeFatal,
    DecoderInitFailure,
    DecoderSetupError,
    EndOfStream,
    NoChannelInfo,
    NoEnergyData,
    NoSampleRate,
    NoTrack,
    OpenFailure,
    ProbeError,
    ProbeFailure,
)
from loudscan.io.audio import probe
from loudscan.metrics.loudness import LoudnessAccumulator
from loudscan.types import Measurement

logger = logging.getLogger("loudscan.analysis.measure")


def _accumulate(reader, track, meter: LoudnessAccumulator, name: str) -> Exception | None:
    """
    Drain the reader into the meter.

    Returns the error that stopped decoding early, or None when the stream
    ended normally. Malformed packets and empty blocks are skipped.
    """
    while True:
        try:
            packet = reader.next_packet()
        except EndOfStream:
            return None
        except DecodeError as exc:
            logger.warning("%s: malformed packet skipped: %s", name, exc)
            continue
        except (OSError, RuntimeError, ValueError) as exc:
            return exc
        if packet.track_id != track.track_id:
            continue
        try:
            block = reader.decode(packet)
        except DecodeError as exc:
            logger.warning("%s: decode error: %s", name, exc)
            continue
        except (OSError, RuntimeError, ValueError) as exc:
            return exc
        if block.shape[0] == 0:
            logger.warning("%s: empty block skipped", name)
            continue
        meter.add_samples(np.ascontiguousarray(block, dtype=np.float32).reshape(-1))


def measure(path: str | Path) -> Measurement:
    """
    Measure integrated loudness and gated energy of a file's default track.

    Raises a MeasurementError subclass when the file cannot be measured.
    A fatal decode error after some audio was decoded is not an error: the
    measurement covers what was decoded.
    """
    path = Path(path)
    name = str(path)
    try:
        stream = open(path, "rb")
    except OSError as exc:
        raise OpenFailure(f"failed to open file '{name}' for measurement: {exc}") from exc

    with stream:
        try:
            reader = probe(stream, name=name)
        except ProbeError as exc:
            raise ProbeFailure(f"failed to probe file '{name}': {exc}") from exc

        with reader:
            track = reader.default_track()
            if track is None:
                raise NoTrack(f"file '{name}' has no audio tracks")
            if not track.channels:
                raise NoChannelInfo(f"file '{name}' reports no channel count")
            if not track.sample_rate:
                raise NoSampleRate(f"file '{name}' reports no sample rate")
            try:
                reader.make_decoder(track)
            except DecoderSetupError as exc:
                raise DecoderInitFailure(
                    f"failed to create decoder for file '{name}': {exc}"
                ) from exc

            meter = LoudnessAccumulator(track.channels, track.sample_rate)
            stopped_by = _accumulate(reader, track, meter, name)

    if stopped_by is not None:
        if meter.frames_added == 0:
            raise DecodeFatal(f"decoding '{name}' failed: {stopped_by}") from stopped_by
        logger.warning(
            "%s: decoding stopped after %d frames: %s",
            name, meter.frames_added, stopped_by
        )

    gated = meter.gated_block_count_and_energy()
    if gated is None:
        raise NoEnergyData(f"file '{name}' has no gated loudness blocks")
    _, energy = gated
    return Measurement(loudness=meter.global_loudness(), energy=energy)
