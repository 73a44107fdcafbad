"""
streamglow/pipeline/controller.py — PipelineController: event → light orchestrator.

Owns the event queue, the effect applicator (and through it the only handle
to the lighting bridge), the lifecycle FSM and the shutdown signal::

    transport ─► handle_payload ─► decode ─► EventQueue ─► [pipeline thread]
                                                              resolve ─► apply

The transport thread only ever runs :meth:`PipelineController.handle_payload`,
which decodes and does a non-blocking enqueue. Every device call and every
timed wait happens on the dedicated pipeline thread.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, Optional, Protocol

from streamglow.core.config import GlowConfig
from streamglow.core.constants import C, PipelineState
from streamglow.core.errors import (
    DecodeError,
    DeviceError,
    QueueClosedError,
    QueueFullError,
    StartupError,
)
from streamglow.core.fsm import PipelineFSM
from streamglow.core.logger import get_logger
from streamglow.devices.applicator import EffectApplicator, LightController
from streamglow.devices.hue import BridgeError, HueBridge
from streamglow.effects.resolver import resolve
from streamglow.events.decoder import Event, EventKind, decode
from streamglow.events.event_queue import EventQueue

_log = get_logger()


class Transport(Protocol):
    """Push-event source; delivers payloads to the callback it was built with."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


class PipelineController:
    """
    Pipeline coordinator: ``STARTING → RUNNING → DRAINING → STOPPED``.

    Shutdown policy: the effect being shown when shutdown is requested is
    finished (its display wait is cut short and the baseline reset still
    runs); events still waiting in the queue are discarded.

    Args:
        config: Loaded configuration (read-only).
        controller: Device handle; handed to the applicator and never
            touched from any other thread.

    Example::

        ctrl = PipelineController.from_config(load_config())
        transport = WebhookTransport(create_app(ctrl.handle_payload), port=8080)
        ctrl.start(transport)
        ...
        ctrl.request_shutdown("signal")
        ctrl.stop()
    """

    def __init__(self, config: GlowConfig, controller: LightController) -> None:
        self._config = config
        self._fsm = PipelineFSM(on_transition=self._on_fsm_transition)
        self._shutdown = threading.Event()
        self._queue = EventQueue(capacity=config.pipeline.queue_capacity)
        self._applicator = EffectApplicator(
            controller,
            baseline=config.default_state,
            cancel_event=self._shutdown,
        )
        self._transport: Optional[Transport] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "received": 0,
            "queued": 0,
            "decode_errors": 0,
            "unknown": 0,
            "queue_full": 0,
            "applied": 0,
            "no_effect": 0,
            "failed": 0,
            "discarded": 0,
        }

        _log.info("pipeline", "controller_ready", {
            "queue_capacity": self._queue.capacity,
        })

    @classmethod
    def from_config(cls, config: GlowConfig) -> "PipelineController":
        """
        Discover the bridge named by *config* and build a controller around it.

        Raises:
            StartupError: If the bridge cannot be found or rejects the username.
        """
        _t = time.perf_counter()
        creds = config.credentials
        try:
            bridge = HueBridge.discover(
                username=creds.hue_username,
                address=creds.hue_bridge_ip,
                timeout=config.pipeline.request_timeout_s,
            )
        except BridgeError as exc:
            _log.critical("pipeline", "device_discovery_failed", {"error": str(exc)})
            raise StartupError(f"Hue bridge unavailable: {exc}") from exc
        _log.perf("pipeline", "init_device", (time.perf_counter() - _t) * 1_000.0, {
            "address": bridge.address,
        })
        return cls(config, bridge)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self, transport: Optional[Transport] = None) -> None:
        """
        Start the pipeline thread, then the transport; enter RUNNING.

        If shutdown was already requested, nothing is started and the
        controller goes straight to STOPPED.

        Args:
            transport: Event source to start and later stop. ``None`` for
                callers that feed :meth:`handle_payload` themselves.

        Raises:
            StartupError: If the transport fails to start. The pipeline is
                torn down and left in STOPPED.
            RuntimeError: If called outside STARTING.
        """
        if self._fsm.current_state is not PipelineState.STARTING:
            raise RuntimeError(f"Cannot start from {self._fsm.current_state.value}")

        if self._shutdown.is_set():
            _log.info("pipeline", "start_skipped", {"reason": "shutdown_requested"})
            self._applicator.release()
            self._fsm.transition(PipelineState.STOPPED, reason="shutdown_before_start")
            return

        self._thread = threading.Thread(
            target=self._run_loop,
            name="streamglow-pipeline",
            daemon=True,
        )
        self._thread.start()

        if transport is not None:
            try:
                transport.start()
            except Exception as exc:  # noqa: BLE001
                _log.critical("pipeline", "transport_start_failed", {"error": str(exc)})
                self._shutdown.set()
                self._queue.close()
                self._thread.join(timeout=C.SHUTDOWN_JOIN_S)
                self._applicator.release()
                self._fsm.try_transition(PipelineState.STOPPED, reason="startup_failed")
                raise StartupError(f"Transport failed to start: {exc}") from exc
            self._transport = transport
            _log.info("pipeline", "transport_connected", {})

        self._fsm.transition(PipelineState.RUNNING, reason="started")

    def request_shutdown(self, reason: str = "requested") -> None:
        """
        Enter DRAINING: close the queue and interrupt any in-flight wait.

        Idempotent and safe to call from any thread.
        """
        if self._fsm.current_state is PipelineState.STARTING:
            # Not running yet: start() will find the flag and exit at once.
            if not self._shutdown.is_set():
                _log.info("pipeline", "shutdown_requested", {"reason": reason, "state": "STARTING"})
            self._queue.close()
            self._shutdown.set()
            return
        if not self._fsm.try_transition(PipelineState.DRAINING, reason=reason):
            return
        _log.info("pipeline", "shutdown_requested", {
            "reason": reason,
            "queue_depth": len(self._queue),
        })
        self._queue.close()
        self._shutdown.set()

    def stop(self, timeout: float = C.SHUTDOWN_JOIN_S) -> None:
        """
        Finish shutdown: join the pipeline thread, release the bridge, stop the
        transport, and enter STOPPED. Requests shutdown first if needed.
        """
        with self._stop_lock:
            if self._fsm.current_state is PipelineState.STOPPED:
                return
            if self._fsm.current_state is PipelineState.RUNNING:
                self.request_shutdown("stop")

            _t = time.perf_counter()
            if self._thread is not None and self._thread.is_alive():
                self._thread.join(timeout=timeout)
                if self._thread.is_alive():
                    _log.error("pipeline", "thread_join_timeout", {"timeout_s": timeout})
            _log.perf("pipeline", "loop_joined", (time.perf_counter() - _t) * 1_000.0, {})

            self._applicator.release()

            if self._transport is not None:
                try:
                    self._transport.stop()
                except Exception as exc:  # noqa: BLE001
                    _log.error("pipeline", "transport_stop_error", {"error": str(exc)})
                else:
                    _log.info("pipeline", "transport_disconnected", {})
                self._transport = None

            self._fsm.try_transition(PipelineState.STOPPED, reason="stopped")
            _log.info("pipeline", "controller_shutdown", self.stats())
            _log.flush()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown is requested; returns False on timeout."""
        return self._shutdown.wait(timeout)

    # ── Transport callback ────────────────────────────────────────────────────

    def handle_payload(self, raw: str | bytes) -> bool:
        """
        Decode *raw* and enqueue the event without blocking.

        Runs on the transport's thread. Malformed payloads, unknown event
        kinds and queue overflow are logged and dropped.

        Returns:
            True if the event was queued.
        """
        self._bump("received")
        _log.info("transport", "payload_received", {"bytes": len(raw)})

        try:
            event = decode(raw)
        except DecodeError as exc:
            self._bump("decode_errors")
            _log.warn("decoder", "event_dropped", {
                "reason": "decode_error",
                "error_type": type(exc).__name__,
                "error": str(exc),
            })
            return False

        _log.info("decoder", "event_classified", event.to_dict())

        if event.kind is EventKind.UNKNOWN:
            self._bump("unknown")
            _log.info("decoder", "event_dropped", {"reason": "unknown_kind", **event.to_dict()})
            return False

        try:
            self._queue.enqueue(event)
        except QueueFullError:
            self._bump("queue_full")
            _log.warn("queue", "event_dropped", {
                "reason": "queue_full",
                "capacity": self._queue.capacity,
                **event.to_dict(),
            })
            return False
        except QueueClosedError:
            self._bump("discarded")
            _log.info("queue", "event_dropped", {"reason": "shutting_down", **event.to_dict()})
            return False

        self._bump("queued")
        _log.info("queue", "event_queued", {"depth": len(self._queue), **event.to_dict()})
        return True

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def state(self) -> PipelineState:
        return self._fsm.current_state

    @property
    def queue(self) -> EventQueue:
        return self._queue

    @property
    def fsm(self) -> PipelineFSM:
        return self._fsm

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return dict(self._stats)

    def status(self) -> Dict[str, Any]:
        """Snapshot for the transport's health endpoint."""
        return {
            "state": self.state.value,
            "queue_depth": len(self._queue),
            "stats": self.stats(),
        }

    # ── Pipeline thread ───────────────────────────────────────────────────────

    def _run_loop(self) -> None:
        """Dequeue → resolve → apply until shutdown; then discard the backlog."""
        _log.info("pipeline", "loop_start", {})
        while not self._shutdown.is_set():
            event = self._queue.dequeue(timeout=C.CONSUMER_POLL_S)
            if event is None:
                if self._queue.closed:
                    break
                continue
            if self._shutdown.is_set():
                # Dequeued just as shutdown arrived; not started, so drop it.
                self._bump("discarded")
                break
            try:
                self._process(event)
            except Exception as exc:  # noqa: BLE001
                self._bump("failed")
                _log.error("pipeline", "process_unhandled_error", {
                    "error": str(exc),
                    **event.to_dict(),
                })

        discarded = self._queue.discard_pending()
        if discarded:
            self._bump("discarded", discarded)
        _log.info("pipeline", "loop_exit", {"discarded": discarded})

    def _process(self, event: Event) -> None:
        effect = resolve(event, self._config.events)
        if effect is None:
            self._bump("no_effect")
            _log.info("resolver", "no_effect", event.to_dict())
            return

        _log.info("resolver", "effect_resolved", {
            **event.to_dict(),
            "color": effect.color,
            "brightness": effect.brightness,
            "alert": effect.alert_mode.value,
            "duration_ms": effect.duration_ms,
        })

        _t = time.perf_counter()
        try:
            report = self._applicator.apply(effect)
        except DeviceError as exc:
            self._bump("failed")
            _log.error("applicator", "apply_failed", {
                "error_type": type(exc).__name__,
                "error": str(exc),
                **event.to_dict(),
            })
            return

        self._bump("applied")
        _log.perf("applicator", "effect_applied", (time.perf_counter() - _t) * 1_000.0, {
            **report.to_dict(),
            "kind": event.kind.value,
        })

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _bump(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] += amount

    def _on_fsm_transition(
        self,
        from_state: PipelineState,
        to_state: PipelineState,
        reason: str,
    ) -> None:
        _log.info("pipeline", "fsm_transition", {
            "from": from_state.value,
            "to": to_state.value,
            "reason": reason,
        })
