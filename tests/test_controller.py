"""
tests/test_controller.py — Integration tests for streamglow.pipeline.controller.

Runs the real decode → queue → resolve → apply path with a RecordingController
in place of the Hue bridge. Effects are shortened to tens of milliseconds.
"""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import pytest

from streamglow.core.constants import PipelineState
from streamglow.core.errors import StartupError
from streamglow.devices.hue import BridgeNotFoundError, BridgeRequestError
from streamglow.pipeline.controller import PipelineController
from streamglow.pipeline.debug_cycle import DEBUG_PAYLOADS, run_debug_cycle
from helpers import (
    BASELINE_HUE,
    BLUE_HUE,
    GREEN_HUE,
    RED_HUE,
    RecordingController,
    donation,
    make_config,
    platform_event,
    wait_until,
)


@pytest.fixture()
def device() -> RecordingController:
    return RecordingController()


@pytest.fixture()
def controller(device: RecordingController):
    ctrl = PipelineController(make_config(duration_ms=40), device)
    ctrl.start()
    yield ctrl
    ctrl.stop()


# ──────────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────────

class TestLifecycle:

    def test_starts_running(self, controller: PipelineController) -> None:
        assert controller.state is PipelineState.RUNNING

    def test_stop_releases_device(self, device: RecordingController) -> None:
        ctrl = PipelineController(make_config(), device)
        ctrl.start()
        ctrl.stop()
        assert ctrl.state is PipelineState.STOPPED
        assert device.closed
        states = [h["to"] for h in ctrl.fsm.get_history()]
        assert states == ["RUNNING", "DRAINING", "STOPPED"]

    def test_stop_is_idempotent(self, device: RecordingController) -> None:
        ctrl = PipelineController(make_config(), device)
        ctrl.start()
        ctrl.request_shutdown()
        ctrl.request_shutdown()
        ctrl.stop()
        ctrl.stop()
        assert ctrl.state is PipelineState.STOPPED

    def test_transport_started_and_stopped(self, device: RecordingController) -> None:
        transport = MagicMock()
        ctrl = PipelineController(make_config(), device)
        ctrl.start(transport)
        transport.start.assert_called_once()
        ctrl.stop()
        transport.stop.assert_called_once()

    def test_transport_failure_is_startup_error(self, device: RecordingController) -> None:
        transport = MagicMock()
        transport.start.side_effect = OSError("address in use")
        ctrl = PipelineController(make_config(), device)
        with pytest.raises(StartupError):
            ctrl.start(transport)
        assert ctrl.state is PipelineState.STOPPED
        assert device.closed

    def test_cannot_start_twice(self, controller: PipelineController) -> None:
        with pytest.raises(RuntimeError):
            controller.start()

    def test_from_config_discovery_failure(self) -> None:
        with patch(
            "streamglow.pipeline.controller.HueBridge.discover",
            side_effect=BridgeNotFoundError("no bridge"),
        ):
            with pytest.raises(StartupError):
                PipelineController.from_config(make_config())

    def test_from_config_uses_credentials(self) -> None:
        bridge = RecordingController()
        bridge.address = "10.0.0.5"
        config = make_config()
        with patch(
            "streamglow.pipeline.controller.HueBridge.discover", return_value=bridge
        ) as discover:
            ctrl = PipelineController.from_config(config)
        discover.assert_called_once_with(
            username="test-user",
            address=None,
            timeout=config.pipeline.request_timeout_s,
        )
        assert ctrl.state is PipelineState.STARTING


# ──────────────────────────────────────────────────────────────
# Event handling
# ──────────────────────────────────────────────────────────────

class TestHandlePayload:

    def test_donation_applied_then_reset(
        self, controller: PipelineController, device: RecordingController
    ) -> None:
        assert controller.handle_payload(donation("150")) is True
        assert wait_until(lambda: len(device.calls) == 6)
        assert device.hues() == [RED_HUE] * 3 + [BASELINE_HUE] * 3

    def test_unknown_event_never_queued(
        self, controller: PipelineController, device: RecordingController
    ) -> None:
        assert controller.handle_payload(platform_event("cheer")) is False
        assert len(controller.queue) == 0
        assert controller.stats()["unknown"] == 1
        time.sleep(0.1)
        assert device.calls == []

    def test_malformed_payload_dropped(self, controller: PipelineController) -> None:
        assert controller.handle_payload(b"{not json") is False
        assert controller.handle_payload(donation("lots")) is False
        assert controller.stats()["decode_errors"] == 2

    def test_queue_full_drops_newest(self, device: RecordingController) -> None:
        # Not started: nothing consumes, so the queue fills.
        ctrl = PipelineController(make_config(), device)
        for _ in range(32):
            assert ctrl.handle_payload(donation("1")) is True
        t0 = time.monotonic()
        assert ctrl.handle_payload(donation("1")) is False
        assert time.monotonic() - t0 < 0.1
        assert ctrl.stats()["queue_full"] == 1
        ctrl.stop()

    def test_disabled_feature_resolves_to_nothing(self, device: RecordingController) -> None:
        ctrl = PipelineController(make_config(twitch_follow={"enabled": False}), device)
        ctrl.start()
        try:
            assert ctrl.handle_payload(platform_event("follow")) is True
            assert wait_until(lambda: ctrl.stats()["no_effect"] == 1)
            assert device.calls == []
        finally:
            ctrl.stop()

    def test_effects_never_overlap(
        self, controller: PipelineController, device: RecordingController
    ) -> None:
        controller.handle_payload(donation("150"))
        controller.handle_payload(donation("75"))
        controller.handle_payload(platform_event("follow"))
        assert wait_until(lambda: len(device.calls) == 18)
        assert device.hues() == (
            [RED_HUE] * 3 + [BASELINE_HUE] * 3
            + [GREEN_HUE] * 3 + [BASELINE_HUE] * 3
            + [BLUE_HUE] * 3 + [BASELINE_HUE] * 3
        )
        calls = device.snapshot()
        # Next effect starts only after the previous reset finished
        assert calls[6].at >= calls[5].at
        assert calls[12].at >= calls[11].at

    def test_device_error_does_not_stop_loop(
        self, controller: PipelineController, device: RecordingController
    ) -> None:
        device.list_error = BridgeRequestError("bridge offline")
        controller.handle_payload(donation("150"))
        assert wait_until(lambda: controller.stats()["failed"] == 1)

        device.list_error = None
        controller.handle_payload(donation("10"))
        assert wait_until(lambda: len(device.calls) == 6)
        assert device.hues()[0] == BLUE_HUE
        assert controller.state is PipelineState.RUNNING


# ──────────────────────────────────────────────────────────────
# Shutdown
# ──────────────────────────────────────────────────────────────

class TestShutdown:

    def test_shutdown_interrupts_long_effect(self, device: RecordingController) -> None:
        ctrl = PipelineController(make_config(duration_ms=10_000), device)
        ctrl.start()
        ctrl.handle_payload(donation("150"))
        ctrl.handle_payload(donation("75"))
        assert wait_until(lambda: len(device.calls) == 3)

        t0 = time.monotonic()
        ctrl.request_shutdown("test")
        ctrl.stop()
        assert time.monotonic() - t0 < 2.0

        # In-flight effect was reset; the queued one was discarded.
        assert device.hues() == [RED_HUE] * 3 + [BASELINE_HUE] * 3
        assert ctrl.stats()["discarded"] == 1
        assert ctrl.state is PipelineState.STOPPED

    def test_payload_after_shutdown_rejected(self, controller: PipelineController) -> None:
        controller.request_shutdown()
        assert controller.state is PipelineState.DRAINING
        assert controller.handle_payload(donation("5")) is False

    def test_shutdown_before_start(self, device: RecordingController) -> None:
        ctrl = PipelineController(make_config(), device)
        ctrl.request_shutdown("early")
        assert ctrl.wait_for_shutdown(timeout=0)
        ctrl.stop()
        assert ctrl.state is PipelineState.STOPPED
        assert device.closed

    def test_start_after_shutdown_request_starts_nothing(self, device: RecordingController) -> None:
        ctrl = PipelineController(make_config(), device)
        transport = MagicMock()
        ctrl.request_shutdown("early")
        ctrl.start(transport)
        transport.start.assert_not_called()
        assert ctrl.state is PipelineState.STOPPED
        assert device.closed
        assert [h["to"] for h in ctrl.fsm.get_history()] == ["STOPPED"]
        ctrl.stop()
        transport.stop.assert_not_called()


# ──────────────────────────────────────────────────────────────
# Debug cycle
# ──────────────────────────────────────────────────────────────

class TestDebugCycle:

    def test_feeds_every_payload(self) -> None:
        ctrl = MagicMock()
        ctrl.wait_for_shutdown.return_value = False
        assert run_debug_cycle(ctrl, interval_s=0) == len(DEBUG_PAYLOADS)
        assert ctrl.handle_payload.call_count == 5

    def test_stops_on_shutdown(self) -> None:
        ctrl = MagicMock()
        ctrl.wait_for_shutdown.side_effect = [False, False, True]
        assert run_debug_cycle(ctrl, interval_s=0) == 2

    def test_payloads_reach_the_lights(self, device: RecordingController) -> None:
        ctrl = PipelineController(make_config(duration_ms=5), device)
        ctrl.start()
        try:
            run_debug_cycle(ctrl, interval_s=0)
            assert wait_until(lambda: len(device.calls) == 30)
            effect_hues = device.hues()[0::6]
            assert effect_hues == [RED_HUE, GREEN_HUE, BLUE_HUE, BLUE_HUE, GREEN_HUE]
        finally:
            ctrl.stop()
