"""
streamglow/events/decoder.py — Raw transport payload → typed Event.

Stateless. Payloads follow the Streamlabs event shape::

    {"type": "donation", "for": "streamlabs",
     "message": [{"name": "Ana", "amount": "5.00", "_id": "abc123"}]}

Combinations we do not act on come back as ``EventKind.UNKNOWN`` rather than
as an error; the caller drops them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

from streamglow.core.constants import C
from streamglow.core.errors import InvalidAmountError, MalformedPayloadError


class EventKind(Enum):
    """Audience interaction categories the pipeline understands."""

    DONATION = "DONATION"
    FOLLOW = "FOLLOW"
    SUBSCRIPTION = "SUBSCRIPTION"
    BITS = "BITS"
    UNKNOWN = "UNKNOWN"

    @property
    def has_amount(self) -> bool:
        return self in (EventKind.DONATION, EventKind.BITS)


@dataclass(frozen=True)
class Event:
    """
    One decoded audience interaction.

    Attributes:
        kind: Classified event category.
        source: Display name of whoever triggered it (may be empty).
        amount: Donation / bits amount; ``None`` for every other kind.
        raw_id: Transport-assigned identifier (may be empty).
    """

    kind: EventKind
    source: str = ""
    amount: Optional[Decimal] = None
    raw_id: str = ""

    def __post_init__(self) -> None:
        if self.kind.has_amount:
            if self.amount is None or self.amount < 0:
                raise ValueError(f"{self.kind.value} requires a non-negative amount")
        elif self.kind in (EventKind.FOLLOW, EventKind.SUBSCRIPTION) and self.amount is not None:
            raise ValueError(f"{self.kind.value} must not carry an amount")

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form for log entries."""
        return {
            "kind": self.kind.value,
            "source": self.source,
            "amount": str(self.amount) if self.amount is not None else None,
            "raw_id": self.raw_id,
        }


# (type, for) → kind. ``None`` in the "for" slot means the field is absent.
_RECOGNISED: Dict[tuple, EventKind] = {
    ("donation", None): EventKind.DONATION,
    ("donation", C.DONATION_SOURCE): EventKind.DONATION,
    ("follow", C.PLATFORM_SOURCE): EventKind.FOLLOW,
    ("subscription", C.PLATFORM_SOURCE): EventKind.SUBSCRIPTION,
    ("bits", C.PLATFORM_SOURCE): EventKind.BITS,
}


def classify(event_type: str, event_for: Optional[str]) -> EventKind:
    """Map a payload's ``(type, for)`` pair onto an :class:`EventKind`."""
    return _RECOGNISED.get((event_type, event_for), EventKind.UNKNOWN)


def decode(raw: str | bytes) -> Event:
    """
    Parse and validate one raw payload.

    Args:
        raw: Text exactly as delivered by the transport.

    Returns:
        The decoded :class:`Event` (possibly of kind ``UNKNOWN``).

    Raises:
        MalformedPayloadError: Not JSON, not an object, missing ``type``,
            unusable ``message``, or a donation/bits payload with no amount.
        InvalidAmountError: Amount present but not a finite, non-negative
            decimal.
    """
    try:
        doc = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedPayloadError(f"Payload is not valid JSON: {exc}") from exc

    if not isinstance(doc, dict):
        raise MalformedPayloadError(f"Payload must be a JSON object, got {type(doc).__name__}")

    event_type = doc.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedPayloadError("Payload has no 'type'")

    event_for = doc.get("for")
    if event_for is not None and not isinstance(event_for, str):
        raise MalformedPayloadError("'for' must be a string")

    message = _first_message(doc.get("message"))
    kind = classify(event_type, event_for)

    source = str(message.get("name") or "")
    raw_id = str(message.get("_id") or doc.get("event_id") or "")

    if kind is EventKind.UNKNOWN:
        return Event(kind=kind, source=source, raw_id=raw_id)

    amount: Optional[Decimal] = None
    if kind.has_amount:
        if "amount" not in message or message["amount"] is None:
            raise MalformedPayloadError(f"{event_type} payload has no amount")
        amount = parse_amount(message["amount"])

    return Event(kind=kind, source=source, amount=amount, raw_id=raw_id)


def parse_amount(value: Any) -> Decimal:
    """
    Parse an amount field (string or JSON number) into a :class:`Decimal`.

    Raises:
        InvalidAmountError: For booleans, unparsable text, NaN/infinity, or
            negative values. Never defaults to zero.
    """
    original = value if isinstance(value, str) else json.dumps(value)
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidAmountError(original)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidAmountError(original) from exc
    if not amount.is_finite() or amount < 0:
        raise InvalidAmountError(original)
    return amount


def _first_message(message: Any) -> Dict[str, Any]:
    """Return the first message entry, ``{}`` when the list is empty or absent."""
    if message is None:
        return {}
    if isinstance(message, dict):
        return message
    if isinstance(message, list):
        if not message:
            return {}
        first = message[0]
        if not isinstance(first, dict):
            raise MalformedPayloadError("'message' entries must be objects")
        return first
    raise MalformedPayloadError("'message' must be a list or an object")
