"""
streamglow/pipeline/debug_cycle.py — Synthetic event feed for bench testing.

Pushes a fixed sequence of payloads through the same entry point the webhook
uses, so every stage from decoding to the lights is exercised without a
live stream.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from streamglow.core.constants import C
from streamglow.core.logger import get_logger

_log = get_logger()


def _donation(amount: str) -> Dict[str, Any]:
    return {
        "type": "donation",
        "for": C.DONATION_SOURCE,
        "message": [{"_id": f"debug-donation-{amount}", "name": "debug", "amount": amount}],
    }


def _platform(event_type: str) -> Dict[str, Any]:
    return {
        "type": event_type,
        "for": C.PLATFORM_SOURCE,
        "message": [{"_id": f"debug-{event_type}", "name": "debug"}],
    }


DEBUG_PAYLOADS: List[Dict[str, Any]] = [
    _donation("150"),
    _donation("75"),
    _donation("25"),
    _platform("follow"),
    _platform("subscription"),
]


def run_debug_cycle(controller, interval_s: float = C.DEBUG_INTERVAL_S) -> int:
    """
    Feed :data:`DEBUG_PAYLOADS` to *controller* one every *interval_s* seconds.

    Stops early once the controller's shutdown is requested.

    Args:
        controller: A started :class:`~streamglow.pipeline.controller.PipelineController`.
        interval_s: Pause before each payload.

    Returns:
        Number of payloads delivered.
    """
    sent = 0
    _log.info("debug", "cycle_start", {"payloads": len(DEBUG_PAYLOADS), "interval_s": interval_s})
    for payload in DEBUG_PAYLOADS:
        if controller.wait_for_shutdown(interval_s):
            break
        controller.handle_payload(json.dumps(payload).encode("utf-8"))
        sent += 1
    _log.info("debug", "cycle_end", {"sent": sent})
    return sent
