"""
streamglow/core/fsm.py — Lifecycle state machine for the StreamGlow pipeline.

Thread-safe FSM with an explicit validated transition map, per-state enter
callbacks, transition history (last 50), and structured logging. The signal
handler, the pipeline thread and the main thread may all touch it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from streamglow.core.constants import PipelineState

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────
# Custom exception
# ──────────────────────────────────────────────────────────────

class InvalidTransitionError(RuntimeError):
    """
    Raised when a requested transition is not in the valid transition map.

    Args:
        from_state: Current state at the time of the illegal attempt.
        to_state: Requested (invalid) target state.
        reason: Caller-supplied reason string.
    """

    def __init__(
        self,
        from_state: PipelineState,
        to_state: PipelineState,
        reason: str = "",
    ) -> None:
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        super().__init__(
            f"Invalid transition {from_state.value} → {to_state.value}"
            + (f" (reason: {reason})" if reason else "")
        )


# ──────────────────────────────────────────────────────────────
# Valid transition map
# ──────────────────────────────────────────────────────────────

_VALID_TRANSITIONS: dict[PipelineState, list[PipelineState]] = {
    PipelineState.STARTING: [
        PipelineState.RUNNING,
        PipelineState.STOPPED,  # startup failure
    ],
    PipelineState.RUNNING: [
        PipelineState.DRAINING,
    ],
    PipelineState.DRAINING: [
        PipelineState.STOPPED,
    ],
    PipelineState.STOPPED: [],
}

# Maximum number of transition records kept in history
_MAX_HISTORY = 50


# ──────────────────────────────────────────────────────────────
# FSM class
# ──────────────────────────────────────────────────────────────

class PipelineFSM:
    """
    Thread-safe lifecycle state machine ``STARTING → RUNNING → DRAINING → STOPPED``.

    Illegal transitions raise :class:`InvalidTransitionError` immediately.
    Each transition fires the per-state ``_on_enter_<state>`` callback and the
    optional external callback. The last 50 transitions are retained in
    :meth:`get_history`.

    Args:
        on_transition: Optional callback invoked after every successful
            transition with signature ``(from_state, to_state, reason)``.
    """

    def __init__(
        self,
        on_transition: Callable[[PipelineState, PipelineState, str], None] | None = None,
    ) -> None:
        """Initialise the FSM in STARTING."""
        self._state: PipelineState = PipelineState.STARTING
        self._lock = threading.Lock()
        self._history: list[dict] = []
        self._external_callback = on_transition

        logger.info("PipelineFSM initialised in state: %s", PipelineState.STARTING.value)

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    @property
    def current_state(self) -> PipelineState:
        """Return the current state (thread-safe read)."""
        with self._lock:
            return self._state

    def transition(self, new_state: PipelineState, reason: str = "") -> None:
        """
        Attempt a validated state transition.

        Args:
            new_state: Target state.
            reason: Human-readable reason (for logs/history).

        Raises:
            InvalidTransitionError: If the transition is not in the valid map.
        """
        with self._lock:
            from_state = self._state
            if new_state not in _VALID_TRANSITIONS.get(from_state, []):
                raise InvalidTransitionError(from_state, new_state, reason)

            self._state = new_state
            self._history.append({
                "from": from_state.value,
                "to": new_state.value,
                "reason": reason,
                "timestamp": time.time(),
            })
            if len(self._history) > _MAX_HISTORY:
                self._history.pop(0)

        logger.info(
            "FSM: %s → %s%s",
            from_state.value,
            new_state.value,
            f" [{reason}]" if reason else "",
        )

        # Callbacks run outside the lock
        self._fire_on_enter(new_state)

        if self._external_callback is not None:
            try:
                self._external_callback(from_state, new_state, reason)
            except Exception as exc:  # noqa: BLE001
                logger.warning("FSM external callback raised: %s", exc)

    def try_transition(self, new_state: PipelineState, reason: str = "") -> bool:
        """
        Like :meth:`transition` but returns ``False`` instead of raising.

        Used on shutdown paths where a concurrent caller may already have
        moved the FSM on.
        """
        try:
            self.transition(new_state, reason)
        except InvalidTransitionError:
            return False
        return True

    def get_history(self) -> list[dict]:
        """
        Return a copy of the last (up to 50) transition records.

        Each record has keys ``from``, ``to``, ``reason`` and ``timestamp``.
        """
        with self._lock:
            return list(self._history)

    # ──────────────────────────────────────────
    # on_enter callbacks (override in subclass)
    # ──────────────────────────────────────────

    def _on_enter_running(self) -> None:
        logger.debug("FSM enter: RUNNING — consuming events")

    def _on_enter_draining(self) -> None:
        logger.debug("FSM enter: DRAINING — queue closed, finishing in-flight effect")

    def _on_enter_stopped(self) -> None:
        logger.debug("FSM enter: STOPPED")

    # ──────────────────────────────────────────
    # Internal dispatch helpers
    # ──────────────────────────────────────────

    def _fire_on_enter(self, state: PipelineState) -> None:
        """
        Dispatch to the ``_on_enter_<state>`` callback, if one exists.

        Name-based dispatch lets subclasses override individual callbacks.
        """
        method_name = f"_on_enter_{state.value.lower()}"
        method = getattr(self, method_name, None)
        if callable(method):
            try:
                method()
            except Exception as exc:  # noqa: BLE001
                logger.warning("on_enter callback %r raised: %s", method_name, exc)

    def __repr__(self) -> str:
        with self._lock:
            state_str = self._state.value
            last = self._history[-1] if self._history else None
        if last is None:
            return f"PipelineFSM(state={state_str}, last=none)"
        return f"PipelineFSM(state={state_str}, last={last['from']}→{last['to']})"
