"""
streamglow/core/errors.py — Exception hierarchy for StreamGlow.

Steady-state errors (decode, queue, device) are caught and logged by the
pipeline; only :class:`StartupError` and :class:`ConfigError` end the process.
"""

from __future__ import annotations

from typing import Sequence


class StreamGlowError(Exception):
    """Base class for every error raised by StreamGlow."""


# ──────────────────────────────────────────────────────────────
# Decoding
# ──────────────────────────────────────────────────────────────

class DecodeError(StreamGlowError):
    """A raw transport payload could not be turned into an event."""


class MalformedPayloadError(DecodeError):
    """Payload is not JSON, not an object, or lacks the fields we need."""


class InvalidAmountError(DecodeError):
    """
    A donation / bits amount was present but could not be used.

    Args:
        original: The amount exactly as it appeared in the payload.
    """

    def __init__(self, original: str) -> None:
        self.original = original
        super().__init__(f"Invalid amount: {original!r}")


# ──────────────────────────────────────────────────────────────
# Queue
# ──────────────────────────────────────────────────────────────

class QueueError(StreamGlowError):
    """Base class for event queue rejections."""


class QueueFullError(QueueError):
    """The event queue is at capacity; the event was not enqueued."""


class QueueClosedError(QueueError):
    """The event queue was closed for shutdown; the event was not enqueued."""


# ──────────────────────────────────────────────────────────────
# Device
# ──────────────────────────────────────────────────────────────

class DeviceError(StreamGlowError):
    """Base class for failures talking to the lighting controller."""


class UnreachableError(DeviceError):
    """The controller could not be enumerated (network or API failure)."""


class InvalidColorError(DeviceError):
    """
    An effect color is not a 3-byte hex RGB string.

    Args:
        color: The offending color string.
    """

    def __init__(self, color: str) -> None:
        self.color = color
        super().__init__(f"Invalid color: {color!r}")


class PartialCommandFailure(DeviceError):
    """
    Some lights rejected a command during a fan-out.

    Never propagated out of an apply; carried on the report for logging.

    Args:
        failed_ids: IDs of the lights whose command failed.
    """

    def __init__(self, failed_ids: Sequence[str]) -> None:
        self.failed_ids = list(failed_ids)
        super().__init__(f"Command failed on lights: {', '.join(self.failed_ids)}")


# ──────────────────────────────────────────────────────────────
# Startup
# ──────────────────────────────────────────────────────────────

class ConfigError(StreamGlowError, ValueError):
    """Configuration file is missing required values or contains invalid ones."""


class StartupError(StreamGlowError):
    """The pipeline could not reach RUNNING; the process must exit."""
