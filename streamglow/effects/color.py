"""
streamglow/effects/color.py — Hex RGB → Hue bridge hue/saturation.

The bridge takes hue on a 0–65535 wheel and saturation on 0–254, so an
effect's ``#RRGGBB`` color is converted through HSV before it is sent.
"""

from __future__ import annotations

import colorsys
import re
from typing import Tuple

from streamglow.core.constants import C
from streamglow.core.errors import InvalidColorError
from streamglow.effects.models import EffectCommand, LightEffect

_HEX_RGB = re.compile(r"[0-9a-fA-F]{6}")


def parse_hex_rgb(color: str) -> Tuple[int, int, int]:
    """
    Parse ``"#RRGGBB"`` (leading ``#`` optional) into three 0–255 ints.

    Raises:
        InvalidColorError: Unless exactly three hex bytes remain after
            stripping one leading ``#``.
    """
    if not isinstance(color, str):
        raise InvalidColorError(str(color))
    digits = color[1:] if color.startswith("#") else color
    if not _HEX_RGB.fullmatch(digits):
        raise InvalidColorError(color)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def hex_to_hue_sat(color: str) -> Tuple[int, int]:
    """
    Convert a hex RGB color to the bridge's ``(hue, saturation)``.

    ``hue = H/360 · 65535`` and ``saturation = S · 254``; greys (no chroma)
    come out with hue 0.

    Args:
        color: ``"#RRGGBB"`` or ``"RRGGBB"``.

    Returns:
        Tuple of ``(hue, saturation)`` ints.

    Raises:
        InvalidColorError: If *color* is not a 3-byte hex string.
    """
    r, g, b = parse_hex_rgb(color)
    # colorsys returns h already scaled to [0, 1) and h == 0 when delta == 0
    h, s, _v = colorsys.rgb_to_hsv(r / 255.0, g / 255.0, b / 255.0)
    hue = int(round(h * C.HUE_MAX)) % (C.HUE_MAX + 1)
    saturation = int(round(s * C.SATURATION_MAX))
    return hue, saturation


def effect_to_command(effect: LightEffect) -> EffectCommand:
    """Project a :class:`LightEffect` onto the command sent to each light."""
    hue, saturation = hex_to_hue_sat(effect.color)
    return EffectCommand(
        on=True,
        brightness=effect.brightness,
        hue=hue,
        saturation=saturation,
        alert_mode=effect.alert_mode,
    )
