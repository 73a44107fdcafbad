"""
tests/test_hue_bridge.py — pytest unit tests for streamglow.devices.hue.

The requests session is a MagicMock; no bridge or network is touched.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from streamglow.devices.hue import (
    DISCOVERY_URL,
    BridgeNotFoundError,
    BridgeRequestError,
    HueBridge,
)
from streamglow.effects.models import AlertMode, EffectCommand

_LIGHTS = {
    "10": {"name": "Desk", "state": {"reachable": True}},
    "2": {"name": "Shelf", "state": {"reachable": False}},
    "1": {"name": "Ceiling", "state": {"reachable": True}},
}


def _response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = body
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


@pytest.fixture()
def session() -> MagicMock:
    sess = MagicMock(spec=requests.Session)
    sess.request.return_value = _response(_LIGHTS)
    return sess


@pytest.fixture()
def bridge(session: MagicMock) -> HueBridge:
    return HueBridge("192.168.1.20", "user", timeout=2.0, session=session)


class TestLights:

    def test_list_lights_sorted_by_numeric_id(self, bridge: HueBridge, session: MagicMock) -> None:
        lights = bridge.list_lights()
        assert [l.id for l in lights] == ["1", "2", "10"]
        assert lights[1].reachable is False
        session.request.assert_called_once_with(
            "GET", "http://192.168.1.20/api/user/lights", json=None, timeout=2.0
        )

    def test_set_light_state_payload(self, bridge: HueBridge, session: MagicMock) -> None:
        session.request.return_value = _response([{"success": {"/lights/1/state/on": True}}])
        command = EffectCommand(on=True, brightness=254, hue=0, saturation=254,
                                alert_mode=AlertMode.REPEATING)
        bridge.set_light_state("1", command)
        session.request.assert_called_once_with(
            "PUT",
            "http://192.168.1.20/api/user/lights/1/state",
            json={"on": True, "bri": 254, "hue": 0, "sat": 254, "alert": "lselect"},
            timeout=2.0,
        )

    def test_api_error_body(self, bridge: HueBridge, session: MagicMock) -> None:
        session.request.return_value = _response(
            [{"error": {"type": 1, "description": "unauthorized user"}}]
        )
        with pytest.raises(BridgeRequestError, match="unauthorized user"):
            bridge.list_lights()

    def test_transport_error(self, bridge: HueBridge, session: MagicMock) -> None:
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(BridgeRequestError):
            bridge.list_lights()

    def test_http_error_status(self, bridge: HueBridge, session: MagicMock) -> None:
        session.request.return_value = _response({}, status=503)
        with pytest.raises(BridgeRequestError):
            bridge.list_lights()

    def test_close(self, bridge: HueBridge, session: MagicMock) -> None:
        bridge.close()
        session.close.assert_called_once()


class TestDiscover:

    def test_explicit_address(self, session: MagicMock) -> None:
        bridge = HueBridge.discover("user", address="10.0.0.3", session=session)
        assert bridge.address == "10.0.0.3"
        session.get.assert_not_called()

    def test_discovery_service(self, session: MagicMock) -> None:
        session.get.return_value = _response([{"id": "abc", "internalipaddress": "10.0.0.7"}])
        bridge = HueBridge.discover("user", session=session)
        assert bridge.address == "10.0.0.7"
        assert session.get.call_args.args[0] == DISCOVERY_URL

    def test_discovery_empty(self, session: MagicMock) -> None:
        session.get.return_value = _response([])
        with pytest.raises(BridgeNotFoundError):
            HueBridge.discover("user", session=session)

    def test_discovery_network_failure(self, session: MagicMock) -> None:
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(BridgeNotFoundError):
            HueBridge.discover("user", session=session)

    def test_rejected_username(self, session: MagicMock) -> None:
        session.request.return_value = _response(
            [{"error": {"type": 1, "description": "unauthorized user"}}]
        )
        with pytest.raises(BridgeNotFoundError):
            HueBridge.discover("bad-user", address="10.0.0.3", session=session)
