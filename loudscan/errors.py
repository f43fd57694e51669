"""Exception hierarchy.

Run-level errors abort a batch before any measurement starts; measurement
errors abort one file; decoder errors are raised per packet and are handled
inside the measurement loop.
"""
from __future__ import annotations


class LoudscanError(Exception):
    """Base class for all loudscan errors."""


# Run-level

class PathNotFound(LoudscanError):
    pass


class MalformedSnapshot(LoudscanError):
    """Cache file exists but cannot be read or parsed."""


class SnapshotIOError(LoudscanError):
    """Cache file could not be written."""


# Per-file

class MeasurementError(LoudscanError):
    """A single file could not be measured."""


class OpenFailure(MeasurementError):
    pass


class ProbeFailure(MeasurementError):
    pass


class NoTrack(MeasurementError):
    pass


class NoChannelInfo(MeasurementError):
    pass


class NoSampleRate(MeasurementError):
    pass


class DecoderInitFailure(MeasurementError):
    pass


class DecodeFatal(MeasurementError):
    pass


class NoEnergyData(MeasurementError):
    pass


# Decoder adapter

class ProbeError(LoudscanError):
    """No backend recognized the container."""


class DecoderSetupError(LoudscanError):
    """Codec parameters of the track cannot be decoded."""


class DecodeError(LoudscanError):
    """Malformed packet; decoding may continue with the next one."""


class EndOfStream(LoudscanError):
    """No more packets."""
