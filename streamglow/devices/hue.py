"""
streamglow/devices/hue.py — Blocking client for the Philips Hue bridge REST API.

Only the three calls the pipeline needs: locate the bridge, list its lights,
and set one light's state. Every call is a plain synchronous HTTP request
with a timeout; the pipeline thread is the only caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from streamglow.core.constants import C
from streamglow.core.errors import DeviceError
from streamglow.core.logger import get_logger
from streamglow.effects.models import EffectCommand

_log = get_logger()

DISCOVERY_URL = "https://discovery.meethue.com/"


class BridgeError(DeviceError):
    """Base class for bridge client failures."""


class BridgeNotFoundError(BridgeError):
    """No bridge could be located or it refused our username."""


class BridgeRequestError(BridgeError):
    """An HTTP request failed or the bridge answered with an ``error`` entry."""


@dataclass(frozen=True)
class Light:
    """One light known to the bridge."""

    id: str
    name: str = ""
    reachable: bool = True


class HueBridge:
    """
    Hue bridge handle bound to one address and whitelisted username.

    Args:
        address: Bridge IP or host name.
        username: Whitelisted API username.
        timeout: Per-request timeout in seconds.
        session: Optional :class:`requests.Session` (tests inject one).

    Usage::

        bridge = HueBridge.discover(username="abc123")
        for light in bridge.list_lights():
            bridge.set_light_state(light.id, command)
        bridge.close()
    """

    def __init__(
        self,
        address: str,
        username: str,
        timeout: float = C.REQUEST_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._address = address
        self._username = username
        self._timeout = timeout
        self._session = session or requests.Session()
        self._base_url = f"http://{address}/api/{username}"

    # ──────────────────────────────────────────
    # Discovery
    # ──────────────────────────────────────────

    @classmethod
    def discover(
        cls,
        username: str,
        address: Optional[str] = None,
        timeout: float = C.REQUEST_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ) -> "HueBridge":
        """
        Locate the bridge and confirm *username* can list its lights.

        When *address* is ``None`` the bridge is looked up through the Hue
        discovery service and the first entry is used.

        Raises:
            BridgeNotFoundError: If no bridge answers, or it rejects us.
        """
        session = session or requests.Session()
        if address is None:
            address = cls._lookup_address(session, timeout)

        bridge = cls(address, username, timeout=timeout, session=session)
        try:
            lights = bridge.list_lights()
        except BridgeRequestError as exc:
            raise BridgeNotFoundError(f"Bridge at {address} unusable: {exc}") from exc

        _log.info("device", "bridge_connected", {
            "address": address,
            "lights": len(lights),
        })
        return bridge

    @staticmethod
    def _lookup_address(session: requests.Session, timeout: float) -> str:
        try:
            response = session.get(DISCOVERY_URL, timeout=timeout)
            response.raise_for_status()
            entries = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise BridgeNotFoundError(f"Bridge discovery failed: {exc}") from exc

        if not isinstance(entries, list) or not entries:
            raise BridgeNotFoundError("Bridge discovery returned no bridges")
        address = entries[0].get("internalipaddress") if isinstance(entries[0], dict) else None
        if not address:
            raise BridgeNotFoundError("Bridge discovery entry has no address")
        _log.info("device", "bridge_discovered", {"address": address, "candidates": len(entries)})
        return address

    # ──────────────────────────────────────────
    # Device API
    # ──────────────────────────────────────────

    @property
    def address(self) -> str:
        return self._address

    def list_lights(self) -> List[Light]:
        """
        Return every light the bridge knows, ordered by ID.

        Raises:
            BridgeRequestError: On transport failure or an API error body.
        """
        body = self._request("GET", "/lights")
        if not isinstance(body, dict):
            raise BridgeRequestError(f"Unexpected /lights response: {body!r}")

        lights = []
        for light_id, info in body.items():
            info = info if isinstance(info, dict) else {}
            state = info.get("state") or {}
            lights.append(Light(
                id=str(light_id),
                name=str(info.get("name", "")),
                reachable=bool(state.get("reachable", True)),
            ))
        return sorted(lights, key=_light_sort_key)

    def set_light_state(self, light_id: str, command: EffectCommand) -> None:
        """
        Apply *command* to one light.

        Raises:
            BridgeRequestError: On transport failure or any ``error`` entry in
                the bridge's response.
        """
        self._request("PUT", f"/lights/{light_id}/state", json=command.to_payload())

    def close(self) -> None:
        """Release the HTTP session."""
        self._session.close()

    # ──────────────────────────────────────────
    # Internal helpers
    # ──────────────────────────────────────────

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        url = self._base_url + path
        try:
            response = self._session.request(method, url, json=json, timeout=self._timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise BridgeRequestError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise BridgeRequestError(f"{method} {path} returned invalid JSON") from exc

        errors = _extract_errors(body)
        if errors:
            raise BridgeRequestError(f"{method} {path}: {'; '.join(errors)}")
        return body

    def __repr__(self) -> str:
        return f"HueBridge(address={self._address!r})"


def _extract_errors(body: Any) -> List[str]:
    """Collect ``description`` strings from a Hue ``[{"error": {...}}]`` body."""
    if not isinstance(body, list):
        return []
    errors = []
    for entry in body:
        if isinstance(entry, dict) and "error" in entry:
            detail = entry["error"] or {}
            errors.append(str(detail.get("description", detail)))
    return errors


def _light_sort_key(light: Light) -> tuple:
    return (0, int(light.id), "") if light.id.isdigit() else (1, 0, light.id)
