"""
streamglow/effects/models.py — Immutable effect value types.

LightEffect / EffectTier are loaded from configuration at startup and never
mutated. EffectCommand is the bridge-facing projection sent to each light.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from streamglow.core.constants import C


class AlertMode(Enum):
    """Alert behaviour of a light while an effect is shown."""

    NONE = "none"
    SINGLE = "single"
    REPEATING = "repeating"

    @property
    def hue_value(self) -> str:
        """The bridge's ``alert`` string for this mode."""
        return _HUE_ALERTS[self]

    @classmethod
    def parse(cls, value: str) -> "AlertMode":
        """
        Accept either our names (``single``) or the bridge's (``select``).

        Raises:
            ValueError: If *value* matches neither.
        """
        key = str(value).strip().lower()
        for mode, hue_name in _HUE_ALERTS.items():
            if key in (mode.value, hue_name):
                return mode
        raise ValueError(f"Unknown alert mode: {value!r}")


_HUE_ALERTS: Dict[AlertMode, str] = {
    AlertMode.NONE: "none",
    AlertMode.SINGLE: "select",
    AlertMode.REPEATING: "lselect",
}


@dataclass(frozen=True)
class LightEffect:
    """
    A target visual state plus how long to hold it.

    Attributes:
        color: RGB hex string, e.g. ``"#FF0000"``. Checked when applied.
        brightness: 0–254.
        alert_mode: Alert behaviour while displayed.
        duration_ms: Display time before reverting to the baseline.
    """

    color: str
    brightness: int = C.BRIGHTNESS_MAX
    alert_mode: AlertMode = AlertMode.SINGLE
    duration_ms: int = C.DEFAULT_EFFECT_DURATION_MS

    def __post_init__(self) -> None:
        if not 0 <= self.brightness <= C.BRIGHTNESS_MAX:
            raise ValueError(
                f"brightness must be in [0, {C.BRIGHTNESS_MAX}], got {self.brightness}"
            )
        if self.duration_ms <= 0:
            raise ValueError(f"duration_ms must be positive, got {self.duration_ms}")


@dataclass(frozen=True)
class EffectTier:
    """An effect selected when an event amount meets ``threshold``."""

    threshold: Decimal
    effect: LightEffect


@dataclass(frozen=True)
class EffectCommand:
    """Bridge-facing light state; ``to_payload()`` is the PUT body."""

    on: bool
    brightness: int
    hue: int
    saturation: int
    alert_mode: AlertMode = AlertMode.NONE

    def to_payload(self) -> Dict[str, Any]:
        return {
            "on": self.on,
            "bri": self.brightness,
            "hue": self.hue,
            "sat": self.saturation,
            "alert": self.alert_mode.hue_value,
        }


@dataclass(frozen=True)
class BaselineState:
    """
    Idle state every light returns to after an effect.

    Defaults are a warm white.
    """

    on: bool = True
    brightness: int = C.BRIGHTNESS_MAX
    hue: int = 8418
    saturation: int = 140
    alert_mode: AlertMode = AlertMode.NONE

    def __post_init__(self) -> None:
        if not 0 <= self.brightness <= C.BRIGHTNESS_MAX:
            raise ValueError(
                f"brightness must be in [0, {C.BRIGHTNESS_MAX}], got {self.brightness}"
            )
        if not 0 <= self.hue <= C.HUE_MAX:
            raise ValueError(f"hue must be in [0, {C.HUE_MAX}], got {self.hue}")
        if not 0 <= self.saturation <= C.SATURATION_MAX:
            raise ValueError(
                f"saturation must be in [0, {C.SATURATION_MAX}], got {self.saturation}"
            )

    def to_command(self) -> EffectCommand:
        return EffectCommand(
            on=self.on,
            brightness=self.brightness,
            hue=self.hue,
            saturation=self.saturation,
            alert_mode=self.alert_mode,
        )
