"""
tests/helpers.py — Recording fakes and config builders shared by the tests.

No network: :class:`RecordingController` stands in for the Hue bridge and
records every command with a monotonic timestamp.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from streamglow.core.config import GlowConfig, build_config
from streamglow.devices.hue import BridgeRequestError, Light
from streamglow.effects.models import EffectCommand


@dataclass(frozen=True)
class Call:
    at: float
    light_id: str
    payload: Dict[str, Any]


class RecordingController:
    """Fake device handle; satisfies the applicator's LightController protocol."""

    def __init__(
        self,
        light_ids: Iterable[str] = ("1", "2", "3"),
        fail_ids: Iterable[str] = (),
        list_error: Optional[Exception] = None,
    ) -> None:
        self.light_ids = list(light_ids)
        self.fail_ids = set(fail_ids)
        self.list_error = list_error
        self.calls: List[Call] = []
        self.list_calls = 0
        self.closed = False
        self._lock = threading.Lock()

    def list_lights(self) -> List[Light]:
        with self._lock:
            self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return [Light(id=i, name=f"Light {i}") for i in self.light_ids]

    def set_light_state(self, light_id: str, command: EffectCommand) -> None:
        with self._lock:
            self.calls.append(Call(time.monotonic(), light_id, command.to_payload()))
        if light_id in self.fail_ids:
            raise BridgeRequestError(f"light {light_id} unreachable")

    def close(self) -> None:
        self.closed = True

    # ── helpers ──────────────────────────────────────────────
    def hues(self) -> List[int]:
        with self._lock:
            return [c.payload["hue"] for c in self.calls]

    def snapshot(self) -> List[Call]:
        with self._lock:
            return list(self.calls)


# Hue values of the default palette
RED_HUE = 0
GREEN_HUE = 21845
BLUE_HUE = 43690
BASELINE_HUE = 8418


def _effect(color: str, alert: str, duration_ms: int) -> Dict[str, Any]:
    return {"color": color, "alert": alert, "duration_ms": duration_ms}


def make_config(duration_ms: int = 50, queue_capacity: int = 32, **events: Any) -> GlowConfig:
    """Default tiers and effects with a short display time."""
    raw_events: Dict[str, Any] = {
        "streamlabs_donation": {
            "enabled": True,
            "tiers": [
                {"threshold": 100, "effect": _effect("#FF0000", "repeating", duration_ms)},
                {"threshold": 50, "effect": _effect("#00FF00", "single", duration_ms)},
                {"threshold": 0, "effect": _effect("#0000FF", "single", duration_ms)},
            ],
        },
        "twitch_follow": {"enabled": True, "effect": _effect("#0000FF", "single", duration_ms)},
        "twitch_subscription": {"enabled": True, "effect": _effect("#00FF00", "single", duration_ms)},
    }
    raw_events.update(events)
    return build_config({
        "credentials": {"hue_username": "test-user"},
        "events": raw_events,
        "pipeline": {"queue_capacity": queue_capacity},
    })


def donation(amount: Any, for_: Optional[str] = "streamlabs", name: str = "viewer") -> bytes:
    doc: Dict[str, Any] = {
        "type": "donation",
        "message": [{"_id": f"don-{amount}", "name": name, "amount": amount}],
    }
    if for_ is not None:
        doc["for"] = for_
    return json.dumps(doc).encode("utf-8")


def platform_event(event_type: str, name: str = "viewer", **extra: Any) -> bytes:
    message = {"_id": f"{event_type}-1", "name": name, **extra}
    return json.dumps({
        "type": event_type,
        "for": "twitch_account",
        "message": [message],
    }).encode("utf-8")


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
