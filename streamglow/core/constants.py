"""
streamglow/core/constants.py — System constants for StreamGlow.

Pipeline lifecycle states (Enum), queue sizing, timing budgets, and the
Hue value ranges every other module validates against.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


# ──────────────────────────────────────────────────────────────
# Pipeline states
# ──────────────────────────────────────────────────────────────

class PipelineState(Enum):
    """Lifecycle states of the StreamGlow pipeline coordinator."""

    STARTING = "STARTING"
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    STOPPED = "STOPPED"


# ──────────────────────────────────────────────────────────────
# Frozen constants dataclass
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GlowConstants:
    """
    Frozen dataclass holding StreamGlow system constants.

    Use the class attributes directly — do not instantiate.

    Example::

        from streamglow.core.constants import C

        print(C.QUEUE_CAPACITY)   # 32
    """

    # ── Queue ─────────────────────────────────────────────────
    QUEUE_CAPACITY: ClassVar[int] = 32
    """Maximum number of decoded events waiting for the coordinator."""

    # ── Timing ────────────────────────────────────────────────
    DEFAULT_EFFECT_DURATION_MS: ClassVar[int] = 5000
    """Display time of an effect before the baseline reset."""

    CONSUMER_POLL_S: ClassVar[float] = 0.25
    """Upper bound on how long the consumer blocks before re-checking shutdown."""

    REQUEST_TIMEOUT_S: ClassVar[float] = 5.0
    """Default timeout for a single bridge HTTP request."""

    SHUTDOWN_JOIN_S: ClassVar[float] = 10.0
    """How long ``stop()`` waits for the pipeline thread to exit."""

    DEBUG_INTERVAL_S: ClassVar[float] = 7.0
    """Spacing between synthetic events in the debug cycle."""

    # ── Hue value ranges ──────────────────────────────────────
    BRIGHTNESS_MAX: ClassVar[int] = 254
    SATURATION_MAX: ClassVar[int] = 254
    HUE_MAX: ClassVar[int] = 65535

    # ── Transport ─────────────────────────────────────────────
    DEFAULT_PORT: ClassVar[int] = 8080
    DEFAULT_WEBHOOK_PATH: ClassVar[str] = "/webhook"

    # ── Event source identifiers ──────────────────────────────
    DONATION_SOURCE: ClassVar[str] = "streamlabs"
    """``for`` value accepted on donations (the field may also be absent)."""

    PLATFORM_SOURCE: ClassVar[str] = "twitch_account"
    """``for`` value required on follow / subscription / bits payloads."""

    States: ClassVar[type[PipelineState]] = PipelineState
    """Convenience reference to :class:`PipelineState`."""


#: Convenience alias — ``from streamglow.core.constants import C``
C = GlowConstants
