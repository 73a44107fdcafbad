"""
streamglow/main.py — StreamGlow application entry point.

Parses CLI args, loads configuration, connects to the Hue bridge, and runs
the webhook transport and pipeline until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import signal
import sys
import threading
import traceback
from typing import List, Optional

# ──────────────────────────────────────────────────────────────
# ASCII banner
# ──────────────────────────────────────────────────────────────

_BANNER = r"""
  ____  _                            ____ _
 / ___|| |_ _ __ ___  __ _ _ __ ___ / ___| | _____      __
 \___ \| __| '__/ _ \/ _` | '_ ` _ \ |  _| |/ _ \ \ /\ / /
  ___) | |_| | |  __/ (_| | | | | | | |_| | | (_) \ V  V /
 |____/ \__|_|  \___|\__,_|_| |_| |_|\____|_|\___/ \_/\_/

        StreamGlow v1.0 · stream events → Hue lights
"""

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


# ──────────────────────────────────────────────────────────────
# Argument parsing
# ──────────────────────────────────────────────────────────────

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="streamglow",
        description="StreamGlow — flash Hue lights on stream donations, follows and subs",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to streamglow.yaml (default: STREAMGLOW_CONFIG or config/streamglow.yaml)",
    )
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default=None,
        help="Minimum log level for stderr output (overrides logging.level)",
    )
    p.add_argument(
        "--debug-cycle",
        action="store_true",
        help="Replay a fixed sequence of synthetic events after startup",
    )
    p.add_argument(
        "--port",
        type=int,
        default=None,
        help="Webhook port (overrides transport.port and PORT)",
    )
    p.add_argument(
        "--list-lights",
        action="store_true",
        help="Connect to the bridge, print its lights, and exit",
    )
    return p


# ──────────────────────────────────────────────────────────────
# Sub-commands
# ──────────────────────────────────────────────────────────────

def _list_lights(config) -> int:
    """Print every light the bridge reports. Returns exit code."""
    from streamglow.devices.hue import BridgeError, HueBridge

    try:
        bridge = HueBridge.discover(
            username=config.credentials.hue_username,
            address=config.credentials.hue_bridge_ip,
            timeout=config.pipeline.request_timeout_s,
        )
    except BridgeError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    try:
        lights = bridge.list_lights()
    except BridgeError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    finally:
        bridge.close()

    print(f"[OK] Bridge {bridge.address}: {len(lights)} light(s)")
    for light in lights:
        flag = "" if light.reachable else "  (unreachable)"
        print(f"  {light.id:>4}  {light.name}{flag}")
    return 0


def _run(config, debug_cycle: bool) -> int:
    """Start transport + pipeline and block until a shutdown signal."""
    from streamglow.core.constants import PipelineState
    from streamglow.core.logger import get_logger
    from streamglow.pipeline.controller import PipelineController
    from streamglow.pipeline.debug_cycle import run_debug_cycle
    from streamglow.transport.webhook import WebhookTransport, create_app

    log = get_logger()
    controller = PipelineController.from_config(config)

    def _handle_signal(signum, _frame) -> None:
        controller.request_shutdown(reason=signal.Signals(signum).name)

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    app = create_app(
        controller.handle_payload,
        path=config.transport.path,
        status=controller.status,
    )
    transport = WebhookTransport(app, host=config.transport.host, port=config.transport.port)
    controller.start(transport)
    if controller.state is not PipelineState.RUNNING:
        print("[INFO] Shutdown requested during startup.")
        return 0
    print(f"[INFO] Listening on http://{config.transport.host}:{config.transport.port}"
          f"{config.transport.path}")
    print("       Press Ctrl-C to stop.")

    if debug_cycle:
        threading.Thread(
            target=run_debug_cycle,
            args=(controller, config.debug.interval_s),
            name="streamglow-debug",
            daemon=True,
        ).start()
        log.info("main", "debug_cycle_started", {"interval_s": config.debug.interval_s})

    # Short waits so signal handlers get a chance to run on the main thread.
    while not controller.wait_for_shutdown(timeout=0.5):
        pass

    print("\n[INFO] Shutting down…")
    controller.stop()
    return 0


# ──────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point. Returns process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    from streamglow.core.config import load_config
    from streamglow.core.errors import ConfigError, StartupError
    from streamglow.core.logger import get_logger

    try:
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"[ERROR] Configuration: {exc}", file=sys.stderr)
        return 1

    if args.port is not None:
        config = dataclasses.replace(
            config, transport=dataclasses.replace(config.transport, port=args.port)
        )
    if args.debug_cycle:
        config = dataclasses.replace(
            config, debug=dataclasses.replace(config.debug, enabled=True)
        )

    level_name = (args.log_level or config.logging.level).upper()
    logging.basicConfig(level=_LEVELS.get(level_name, logging.INFO))
    logging.getLogger("streamglow").setLevel(_LEVELS.get(level_name, logging.INFO))

    log = get_logger()
    if "STREAMGLOW_LOG_DIR" not in os.environ:
        log.set_log_dir(config.logging.dir)

    if args.list_lights:
        return _list_lights(config)

    print(_BANNER)
    print(f"[INFO] Log file: {log.log_path}")
    log.info("main", "args_parsed", {
        "config": args.config,
        "port": config.transport.port,
        "debug_cycle": config.debug.enabled,
        "log_level": level_name,
    })

    exit_code = 0
    try:
        exit_code = _run(config, debug_cycle=config.debug.enabled)
    except StartupError as exc:
        print(f"[ERROR] Startup failed: {exc}", file=sys.stderr)
        exit_code = 1
    except Exception:  # noqa: BLE001
        tb = traceback.format_exc()
        print(tb, file=sys.stderr)
        log.critical("main", "unhandled_exception", {"traceback": tb})
        exit_code = 1
    finally:
        log.flush()

    print(f"[INFO] StreamGlow exited with code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
