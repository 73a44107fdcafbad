"""
streamglow/effects/resolver.py — Event + configuration → LightEffect.

Pure: no I/O, no state, same answer for the same inputs.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from streamglow.core.config import EventsConfig, SingleEffectConfig, TieredEffectConfig
from streamglow.effects.models import EffectTier, LightEffect
from streamglow.events.decoder import Event, EventKind


def resolve(event: Event, config: EventsConfig) -> Optional[LightEffect]:
    """
    Pick the effect to show for *event*.

    Follow / subscription get their single configured effect; donation / bits
    get the first tier whose threshold the amount meets, or the last tier when
    it meets none. Disabled features and unknown events resolve to ``None``.

    Args:
        event: A decoded event.
        config: The ``events`` section of the loaded configuration.

    Returns:
        The effect to apply, or ``None`` when nothing should be shown.
    """
    if event.kind is EventKind.FOLLOW:
        return _single(config.twitch_follow)
    if event.kind is EventKind.SUBSCRIPTION:
        return _single(config.twitch_subscription)
    if event.kind is EventKind.DONATION:
        return _tiered(config.streamlabs_donation, event.amount)
    if event.kind is EventKind.BITS:
        return _tiered(config.twitch_bits, event.amount)
    return None


def select_tier(tiers: Sequence[EffectTier], amount: Decimal) -> Optional[EffectTier]:
    """
    First tier with ``threshold <= amount``; the last tier if none qualifies.

    Tiers are examined in the given order. Returns ``None`` only for an empty
    sequence.
    """
    if not tiers:
        return None
    for tier in tiers:
        if tier.threshold <= amount:
            return tier
    return tiers[-1]


def _single(feature: SingleEffectConfig) -> Optional[LightEffect]:
    if not feature.enabled:
        return None
    return feature.effect


def _tiered(feature: TieredEffectConfig, amount: Optional[Decimal]) -> Optional[LightEffect]:
    if not feature.enabled or amount is None:
        return None
    tier = select_tier(feature.tiers, amount)
    return tier.effect if tier is not None else None
