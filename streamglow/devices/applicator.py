"""
streamglow/devices/applicator.py — Show one effect on every light, then revert.

The applicator is the only component that issues device commands. The
pipeline thread calls :meth:`EffectApplicator.apply` synchronously, one event
at a time, so an effect and its baseline reset never interleave with another
event's effect.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from streamglow.core.errors import PartialCommandFailure, UnreachableError
from streamglow.core.logger import get_logger
from streamglow.devices.hue import Light
from streamglow.effects.color import effect_to_command
from streamglow.effects.models import BaselineState, EffectCommand, LightEffect

_log = get_logger()


class LightController(Protocol):
    """What the applicator needs from a device handle (``HueBridge`` fits)."""

    def list_lights(self) -> Sequence[Light]: ...

    def set_light_state(self, light_id: str, command: EffectCommand) -> None: ...

    def close(self) -> None: ...


@dataclass
class ApplyReport:
    """
    Outcome of one :meth:`EffectApplicator.apply` call.

    Per-light failures are reported here and logged; they never fail the call.
    """

    lights: int = 0
    effect_failures: List[str] = field(default_factory=list)
    reset_failures: List[str] = field(default_factory=list)
    interrupted: bool = False
    waited_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lights": self.lights,
            "effect_failures": self.effect_failures,
            "reset_failures": self.reset_failures,
            "interrupted": self.interrupted,
            "waited_ms": round(self.waited_ms, 1),
        }


class EffectApplicator:
    """
    Owns the device handle and applies effects with a timed baseline reset.

    Args:
        controller: Device handle; exclusively owned from here on.
        baseline: State every light returns to after an effect.
        cancel_event: Set on shutdown; cuts the display wait short.
    """

    def __init__(
        self,
        controller: LightController,
        baseline: BaselineState,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._controller: Optional[LightController] = controller
        self._baseline = baseline
        self._baseline_command = baseline.to_command()
        self._cancel = cancel_event or threading.Event()

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    def apply(self, effect: LightEffect) -> ApplyReport:
        """
        Show *effect* on every light, hold it, then restore the baseline.

        Steps: convert the color, enumerate lights, fan out the effect, wait
        ``effect.duration_ms`` (or until cancelled), re-enumerate, fan out the
        baseline.

        Args:
            effect: The resolved effect.

        Returns:
            An :class:`ApplyReport`; partial per-light failures are listed
            there, not raised.

        Raises:
            InvalidColorError: Before any device call if the color is bad.
            UnreachableError: If lights cannot be enumerated, or the handle
                has been released.
        """
        command = effect_to_command(effect)
        controller = self._require_controller()
        report = ApplyReport()

        lights = self._enumerate(controller, "effect")
        report.lights = len(lights)
        report.effect_failures = self._fan_out(controller, lights, command, "effect")

        _t = time.monotonic()
        report.interrupted = self._cancel.wait(effect.duration_ms / 1000.0)
        report.waited_ms = (time.monotonic() - _t) * 1000.0
        if report.interrupted:
            _log.info("applicator", "wait_interrupted", {
                "waited_ms": round(report.waited_ms, 1),
                "duration_ms": effect.duration_ms,
            })

        reset_lights = self._enumerate(controller, "reset")
        report.reset_failures = self._fan_out(
            controller, reset_lights, self._baseline_command, "reset"
        )
        return report

    def release(self) -> None:
        """Close and forget the device handle. Idempotent."""
        controller, self._controller = self._controller, None
        if controller is None:
            return
        try:
            controller.close()
        except Exception as exc:  # noqa: BLE001
            _log.warn("applicator", "release_error", {"error": str(exc)})
        _log.info("applicator", "device_released", {})

    @property
    def baseline(self) -> BaselineState:
        return self._baseline

    # ──────────────────────────────────────────
    # Internal helpers
    # ──────────────────────────────────────────

    def _require_controller(self) -> LightController:
        if self._controller is None:
            raise UnreachableError("Device handle has been released")
        return self._controller

    def _enumerate(self, controller: LightController, stage: str) -> List[Light]:
        try:
            return list(controller.list_lights())
        except Exception as exc:  # noqa: BLE001
            _log.error("applicator", "enumeration_failed", {"stage": stage, "error": str(exc)})
            raise UnreachableError(f"Could not list lights ({stage}): {exc}") from exc

    def _fan_out(
        self,
        controller: LightController,
        lights: Sequence[Light],
        command: EffectCommand,
        stage: str,
    ) -> List[str]:
        """Send *command* to each light; one failure never stops the rest."""
        failed: List[str] = []
        payload = command.to_payload()
        for light in lights:
            try:
                controller.set_light_state(light.id, command)
            except Exception as exc:  # noqa: BLE001
                failed.append(light.id)
                _log.warn("applicator", f"{stage}_light_failed", {
                    "light_id": light.id,
                    "error": str(exc),
                })
                continue
            _log.info("applicator", f"{stage}_light_applied", {
                "light_id": light.id,
                "command": payload,
            })

        if failed:
            partial = PartialCommandFailure(failed)
            _log.warn("applicator", "partial_command_failure", {
                "stage": stage,
                "failed": partial.failed_ids,
                "total": len(lights),
            })
        return failed
