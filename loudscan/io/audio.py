"""Audio decoding backends.

A backend is probed against an open byte stream and yields a FormatReader,
which exposes the container's default track and hands out decoded PCM one
block at a time. soundfile (libsndfile) is tried first; ffmpeg is the
fallback for containers libsndfile does not understand.
"""
from __future__ import annotations
import json
import logging
import shutil
import subprocess
import tempfile
from typing import BinaryIO
import numpy as np
from loudscan.errors import DecodeError, DecoderSetupError, EndOfStream, ProbeError
from loudscan.types import Packet, TrackInfo

logger = logging.getLogger("loudscan.io.audio")

BLOCK_FRAMES = 8192


def _int_or_none(value) -> int | None:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


class FormatReader:
    """Sequential reader over the packets of one container."""

    backend = "base"

    def default_track(self) -> TrackInfo | None:
        raise NotImplementedError

    def make_decoder(self, track: TrackInfo) -> None:
        """Prepare decoding of ``track``; raises DecoderSetupError."""
        raise NotImplementedError

    def next_packet(self) -> Packet:
        """Return the next packet, or raise EndOfStream when exhausted."""
        raise NotImplementedError

    def decode(self, packet: Packet) -> np.ndarray:
        """Decode a packet to a (frames, channels) float32 array."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class SoundfileReader(FormatReader):
    """Reader backed by libsndfile; packets are already PCM."""

    backend = "soundfile"

    def __init__(self, stream: BinaryIO, block_frames: int = BLOCK_FRAMES):
        try:
            import soundfile as sf
        except Exception as exc:
            raise ProbeError("soundfile backend not available.") from exc
        try:
            self._sf = sf.SoundFile(stream)
        except Exception as exc:
            raise ProbeError(f"soundfile: {exc}") from exc
        self._block_frames = int(block_frames)
        self._track = TrackInfo(
            track_id=0,
            codec=f"{self._sf.format}/{self._sf.subtype}",
            channels=_int_or_none(self._sf.channels),
            sample_rate=_int_or_none(self._sf.samplerate),
            frames=_int_or_none(self._sf.frames),
        )

    def default_track(self) -> TrackInfo | None:
        return self._track

    def make_decoder(self, track: TrackInfo) -> None:
        if track.track_id != self._track.track_id:
            raise DecoderSetupError(f"soundfile: unknown track {track.track_id}")

    def next_packet(self) -> Packet:
        data = self._sf.read(self._block_frames, dtype="float32", always_2d=True)
        if data.shape[0] == 0:
            raise EndOfStream()
        return Packet(track_id=self._track.track_id, data=data)

    def decode(self, packet: Packet) -> np.ndarray:
        return packet.data

    def close(self) -> None:
        self._sf.close()


def _ffprobe_tracks(path: str) -> list[TrackInfo]:
    """Return the audio streams of ``path`` as reported by ffprobe."""
    ffprobe = shutil.which("ffprobe")
    if not ffprobe:
        raise ProbeError("ffprobe not found for ffmpeg backend.")
    cmd = [
        ffprobe,
        "-v", "error",
        "-select_streams", "a",
        "-show_entries", "stream=index,codec_name,sample_rate,channels",
        "-of", "json",
        path,
    ]
    proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if proc.returncode != 0:
        raise ProbeError(f"ffprobe failed: {proc.stderr.strip()}")
    try:
        info = json.loads(proc.stdout)
    except ValueError as exc:
        raise ProbeError(f"ffprobe returned invalid JSON: {exc}") from exc
    tracks = []
    for i, stream in enumerate(info.get("streams", [])):
        tracks.append(TrackInfo(
            track_id=int(stream.get("index", i)),
            codec=str(stream.get("codec_name", "unknown")),
            channels=_int_or_none(stream.get("channels")),
            sample_rate=_int_or_none(stream.get("sample_rate")),
        ))
    return tracks


class FfmpegReader(FormatReader):
    """Reader that streams raw float32 PCM out of an ffmpeg subprocess."""

    backend = "ffmpeg"

    def __init__(self, path: str, block_frames: int = BLOCK_FRAMES):
        self._path = path
        self._tracks = _ffprobe_tracks(path)
        self._block_frames = int(block_frames)
        self._track: TrackInfo | None = None
        self._proc: subprocess.Popen | None = None
        self._stderr = None
        self._carry = b""

    def default_track(self) -> TrackInfo | None:
        return self._tracks[0] if self._tracks else None

    def make_decoder(self, track: TrackInfo) -> None:
        ffmpeg = shutil.which("ffmpeg")
        if not ffmpeg:
            raise DecoderSetupError("ffmpeg not found for ffmpeg backend.")
        if not track.channels:
            raise DecoderSetupError(f"ffmpeg: track {track.track_id} has no channel layout.")
        cmd = [
            ffmpeg,
            "-v", "error",
            "-i", self._path,
            "-map", f"0:{track.track_id}",
            "-f", "f32le",
            "-acodec", "pcm_f32le",
            "-vn",
            "pipe:1",
        ]
        self._stderr = tempfile.TemporaryFile()
        try:
            self._proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=self._stderr)
        except OSError as exc:
            raise DecoderSetupError(f"failed to start ffmpeg: {exc}") from exc
        self._track = track

    def _stderr_tail(self) -> str:
        if self._stderr is None:
            return ""
        self._stderr.seek(0)
        text = self._stderr.read().decode("utf-8", errors="replace")
        lines = [line for line in text.splitlines() if line.strip()]
        return lines[-1] if lines else ""

    def next_packet(self) -> Packet:
        if self._proc is None or self._track is None:
            raise EndOfStream()
        frame_bytes = 4 * int(self._track.channels)
        chunk = self._proc.stdout.read(self._block_frames * frame_bytes)
        if not chunk:
            rc = self._proc.wait()
            if self._carry:
                # A partial frame at the end; decode() rejects it.
                tail, self._carry = self._carry, b""
                return Packet(self._track.track_id, np.frombuffer(tail, dtype=np.uint8))
            if rc != 0:
                raise OSError(f"ffmpeg exited with status {rc}: {self._stderr_tail()}")
            raise EndOfStream()
        buf = self._carry + chunk
        n = (len(buf) // frame_bytes) * frame_bytes
        self._carry = buf[n:]
        return Packet(self._track.track_id, np.frombuffer(buf[:n], dtype=np.uint8))

    def decode(self, packet: Packet) -> np.ndarray:
        ch = int(self._track.channels)
        raw = packet.data
        if raw.size % (4 * ch) != 0:
            raise DecodeError(f"ffmpeg: trimmed partial frame of {raw.size} bytes.")
        return raw.view(np.float32).reshape(-1, ch)

    def close(self) -> None:
        if self._proc is not None:
            if self._proc.poll() is None:
                self._proc.kill()
            self._proc.wait()
            if self._proc.stdout is not None:
                self._proc.stdout.close()
            self._proc = None
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None


def probe(stream: BinaryIO, name: str | None = None) -> FormatReader:
    """
    Find a backend that understands ``stream``.

    soundfile reads from the stream directly; ffmpeg needs a filesystem
    path, taken from ``name`` or the stream's ``name`` attribute.
    """
    errors: list[str] = []
    try:
        return SoundfileReader(stream)
    except ProbeError as exc:
        errors.append(str(exc))
    path = name or getattr(stream, "name", None)
    if isinstance(path, str):
        try:
            reader = FfmpegReader(path)
            logger.debug("%s: soundfile probe failed, using ffmpeg", path)
            return reader
        except ProbeError as exc:
            errors.append(str(exc))
    raise ProbeError("; ".join(errors) or "no backend recognized the stream.")
