"""
streamglow/transport/webhook.py — FastAPI webhook receiver for StreamGlow.

Accepts pushed event payloads over HTTP and hands the raw body to a callback
(normally :meth:`PipelineController.handle_payload`). The callback only
decodes and enqueues, so the request handler never waits on a light.

Endpoints:

    POST /webhook   raw event payload → ``{"ok": true, "queued": bool}``
    GET  /health    ``{"status": "ok", "state": ..., "queue_depth": n}``

The webhook always answers 200: the sender has no use for our error detail
and retrying a malformed payload would not help.

Usage::

    app = create_app(controller.handle_payload, status=controller.status)
    transport = WebhookTransport(app, host="0.0.0.0", port=8080)
    transport.start()
    ...
    transport.stop()
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from streamglow.core.constants import C
from streamglow.core.errors import StartupError
from streamglow.core.logger import get_logger

_log = get_logger()

PayloadHandler = Callable[[bytes], bool]
StatusProvider = Callable[[], Dict[str, Any]]

_STARTUP_TIMEOUT_S = 10.0


# ── FastAPI app ───────────────────────────────────────────────────────────────

def create_app(
    on_payload: PayloadHandler,
    path: str = C.DEFAULT_WEBHOOK_PATH,
    status: Optional[StatusProvider] = None,
) -> FastAPI:
    """
    Build the webhook application.

    Args:
        on_payload: Called with the raw request body; returns True if the
            event was queued. Must not block.
        path: Route for event deliveries.
        status: Optional snapshot provider for ``/health``.
    """
    app = FastAPI(title="StreamGlow", version="1.0")

    @app.post(path)
    async def webhook(request: Request) -> JSONResponse:
        body = await request.body()
        try:
            queued = bool(on_payload(body))
        except Exception as exc:  # noqa: BLE001
            _log.error("transport", "payload_handler_error", {"error": str(exc)})
            queued = False
        return JSONResponse({"ok": True, "queued": queued})

    @app.get("/health")
    async def health() -> JSONResponse:
        snapshot = status() if status is not None else {}
        return JSONResponse({
            "status": "ok",
            "state": snapshot.get("state"),
            "queue_depth": snapshot.get("queue_depth", 0),
        })

    return app


# ── Threaded server ───────────────────────────────────────────────────────────

class WebhookTransport:
    """
    Run *app* under uvicorn on a daemon thread.

    Args:
        app: Application from :func:`create_app`.
        host: Bind address.
        port: TCP port.
    """

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = C.DEFAULT_PORT) -> None:
        self._host = host
        self._port = port
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._thread: Optional[threading.Thread] = None

    def start(self, timeout: float = _STARTUP_TIMEOUT_S) -> None:
        """
        Start serving and wait until the socket is bound.

        Raises:
            StartupError: If uvicorn exits or does not come up in *timeout*.
        """
        self._thread = threading.Thread(
            target=self._server.run,
            name="streamglow-webhook",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive():
                raise StartupError(f"Webhook server exited during startup ({self._host}:{self._port})")
            if time.monotonic() > deadline:
                self._server.should_exit = True
                raise StartupError(f"Webhook server did not start within {timeout:.1f}s")
            time.sleep(0.05)

        _log.info("transport", "server_start", {"host": self._host, "port": self._port})

    def stop(self, timeout: float = C.SHUTDOWN_JOIN_S) -> None:
        """Ask uvicorn to exit and join its thread. No-op if not serving."""
        if not self.running:
            self._thread = None
            return
        self._server.should_exit = True
        self._thread.join(timeout=timeout)
        self._thread = None
        _log.info("transport", "server_stop", {"port": self._port})

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
