"""
streamglow/core/config.py — Typed configuration loader for StreamGlow.

Loads config/streamglow.yaml (plus ``.env`` / environment overrides) and
validates all values into frozen dataclasses. Loaded once at startup; the
result is shared read-only between threads. Never read YAML anywhere else.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from streamglow.core.constants import C
from streamglow.core.errors import ConfigError
from streamglow.effects.models import AlertMode, BaselineState, EffectTier, LightEffect

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Dataclass hierarchy, mirrors streamglow.yaml
# ──────────────────────────────────────────────

_RED = LightEffect(color="#FF0000", brightness=254, alert_mode=AlertMode.REPEATING)
_GREEN = LightEffect(color="#00FF00", brightness=254, alert_mode=AlertMode.SINGLE)
_BLUE = LightEffect(color="#0000FF", brightness=254, alert_mode=AlertMode.SINGLE)


@dataclass(frozen=True)
class CredentialsConfig:
    """Transport token and bridge access."""

    streamlabs_token: Optional[str] = None
    hue_username: str = ""
    hue_bridge_ip: Optional[str] = None


@dataclass(frozen=True)
class TransportConfig:
    """Where the webhook receiver listens."""

    host: str = "0.0.0.0"
    port: int = C.DEFAULT_PORT
    path: str = C.DEFAULT_WEBHOOK_PATH


@dataclass(frozen=True)
class SingleEffectConfig:
    """A feature that always shows the same effect (follow, subscription)."""

    enabled: bool = True
    effect: Optional[LightEffect] = None


@dataclass(frozen=True)
class TieredEffectConfig:
    """A feature whose effect scales with the event amount (donation, bits)."""

    enabled: bool = True
    tiers: Tuple[EffectTier, ...] = ()


@dataclass(frozen=True)
class EventsConfig:
    """Per-kind enable flags and effects."""

    streamlabs_donation: TieredEffectConfig = field(default_factory=lambda: TieredEffectConfig(
        enabled=True,
        tiers=(
            EffectTier(Decimal("100"), _RED),
            EffectTier(Decimal("50"), _GREEN),
            EffectTier(Decimal("0"), _BLUE),
        ),
    ))
    twitch_follow: SingleEffectConfig = field(
        default_factory=lambda: SingleEffectConfig(enabled=True, effect=_BLUE)
    )
    twitch_subscription: SingleEffectConfig = field(
        default_factory=lambda: SingleEffectConfig(enabled=True, effect=_GREEN)
    )
    twitch_bits: TieredEffectConfig = field(default_factory=lambda: TieredEffectConfig(
        enabled=False,
        tiers=(
            EffectTier(Decimal("1000"), _RED),
            EffectTier(Decimal("100"), _GREEN),
            EffectTier(Decimal("0"), _BLUE),
        ),
    ))


@dataclass(frozen=True)
class PipelineConfig:
    """Queue sizing and bridge request timeout."""

    queue_capacity: int = C.QUEUE_CAPACITY
    request_timeout_s: float = C.REQUEST_TIMEOUT_S


@dataclass(frozen=True)
class LoggingConfig:
    """Structured log destination and stderr level."""

    level: str = "INFO"
    dir: str = "logs"


@dataclass(frozen=True)
class DebugConfig:
    """Synthetic event cycle run at startup (``DEBUG_MODE``)."""

    enabled: bool = False
    interval_s: float = C.DEBUG_INTERVAL_S


@dataclass(frozen=True)
class GlowConfig:
    """Root configuration object — single source of truth for all settings."""

    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    default_state: BaselineState = field(default_factory=BaselineState)
    events: EventsConfig = field(default_factory=EventsConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)


# Declared YAML type of every scalar key, per flat section.
_SCHEMAS: Dict[str, Dict[str, type]] = {
    "credentials": {"streamlabs_token": str, "hue_username": str, "hue_bridge_ip": str},
    "transport": {"host": str, "port": int, "path": str},
    "pipeline": {"queue_capacity": int, "request_timeout_s": float},
    "logging": {"level": str, "dir": str},
    "debug": {"enabled": bool, "interval_s": float},
}
_NULLABLE_SECTIONS = frozenset({"credentials"})

_BASELINE_FIELDS: Dict[str, type] = {"on": bool, "brightness": int, "hue": int, "saturation": int}

_KIND_NAMES: Dict[type, str] = {
    str: "a string",
    int: "an integer",
    float: "a number",
    bool: "true or false",
}


# ──────────────────────────────────────────────
# Loader
# ──────────────────────────────────────────────

def load_config(
    config_path: Path | str | None = None,
    use_env: bool = True,
) -> GlowConfig:
    """
    Load, validate, and return a :class:`GlowConfig`.

    The search order for the config file is:

    1. *config_path* argument (if provided)
    2. ``STREAMGLOW_CONFIG`` environment variable
    3. ``config/streamglow.yaml`` in the project root
    4. Built-in defaults (no file required)

    When *use_env* is true, ``.env`` is loaded first and the variables
    ``HUE_USERNAME``, ``HUE_BRIDGE_IP``, ``STREAMLABS_TOKEN``, ``PORT`` and
    ``DEBUG_MODE`` override the file.

    Args:
        config_path: Optional path to a YAML file.
        use_env: Apply ``.env`` / environment overrides.

    Returns:
        A fully populated and frozen :class:`GlowConfig`.

    Raises:
        FileNotFoundError: If an explicitly given path does not exist.
        ConfigError: If any value is missing, mistyped, or out of range.
    """
    if use_env:
        load_dotenv(override=False)

    resolved_path = _resolve_path(config_path, use_env)

    raw: dict = {}
    if resolved_path is not None:
        logger.info("Loading config from: %s", resolved_path)
        with resolved_path.open("r", encoding="utf-8") as fh:
            try:
                loaded = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Config file is not valid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file must be a YAML mapping, got: {type(loaded).__name__}")
        raw = loaded
    else:
        logger.info("No config file found — using built-in defaults")

    config = build_config(raw)
    if use_env:
        config = _apply_env(config, os.environ)

    _validate_config(config)
    logger.debug("Config loaded: %s", config)
    return config


def build_config(raw: Mapping[str, Any]) -> GlowConfig:
    """
    Build a :class:`GlowConfig` from an already-parsed mapping.

    Missing sections fall back to defaults. Does not read the environment.

    Raises:
        ConfigError: On unknown keys or invalid values.
    """
    try:
        # Null credentials fall back to the dataclass defaults.
        credentials = CredentialsConfig(**{
            key: value
            for key, value in _typed_section(raw, "credentials").items()
            if value is not None
        })
        transport = TransportConfig(**_typed_section(raw, "transport"))
        baseline = _parse_baseline(_section(raw, "default_state"))
        events = _parse_events(_section(raw, "events"))
        pipeline = PipelineConfig(**_typed_section(raw, "pipeline"))
        log_cfg = LoggingConfig(**_typed_section(raw, "logging"))
        debug = DebugConfig(**_typed_section(raw, "debug"))
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return GlowConfig(
        credentials=credentials,
        transport=transport,
        default_state=baseline,
        events=events,
        pipeline=pipeline,
        logging=log_cfg,
        debug=debug,
    )


# ──────────────────────────────────────────────
# Section parsers
# ──────────────────────────────────────────────

def _resolve_path(config_path: Path | str | None, use_env: bool) -> Path | None:
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path
    if use_env and "STREAMGLOW_CONFIG" in os.environ:
        path = Path(os.environ["STREAMGLOW_CONFIG"])
        if not path.exists():
            raise FileNotFoundError(f"STREAMGLOW_CONFIG points to missing file: {path}")
        return path
    # Auto-discover: walk up from this file to find config/streamglow.yaml
    here = Path(__file__).resolve()
    for parent in (here.parent.parent.parent, Path.cwd()):
        candidate = parent / "config" / "streamglow.yaml"
        if candidate.exists():
            return candidate
    return None


def _section(raw: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return dict(value)



def _typed_section(raw: Mapping[str, Any], name: str) -> Dict[str, Any]:
    """Return section *name* with every key known and every value of its declared type."""
    schema = _SCHEMAS[name]
    data = _section(raw, name)
    unknown = set(data) - set(schema)
    if unknown:
        raise ConfigError(f"{name}: unknown keys {sorted(map(str, unknown))}")
    return {
        key: _scalar(value, schema[key], f"{name}.{key}", nullable=name in _NULLABLE_SECTIONS)
        for key, value in data.items()
    }


def _scalar(value: Any, kind: type, where: str, nullable: bool = False) -> Any:
    """
    Type-check one YAML scalar.

    Quoted numbers are rejected rather than coerced, and ``bool`` never
    passes as an integer. Integers are accepted where a float is expected.

    Raises:
        ConfigError: If *value* is not of *kind*.
    """
    if value is None and nullable:
        return None
    if kind is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, kind) and not (kind is int and isinstance(value, bool)):
        return value
    raise ConfigError(f"{where} must be {_KIND_NAMES[kind]}, got {value!r}")


def _parse_effect(raw: Any, where: str) -> LightEffect:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: effect must be a mapping")
    data = dict(raw)
    if "color" not in data:
        raise ConfigError(f"{where}: effect has no 'color'")
    alert = data.pop("alert", data.pop("alert_mode", AlertMode.SINGLE.value))
    kwargs: Dict[str, Any] = {
        "color": str(data.pop("color")),
        "alert_mode": AlertMode.parse(alert),
    }
    if "brightness" in data:
        kwargs["brightness"] = _scalar(data.pop("brightness"), int, f"{where}.brightness")
    if "duration_ms" in data:
        kwargs["duration_ms"] = _scalar(data.pop("duration_ms"), int, f"{where}.duration_ms")
    if data:
        raise ConfigError(f"{where}: unknown effect keys {sorted(data)}")
    try:
        return LightEffect(**kwargs)
    except ValueError as exc:
        raise ConfigError(f"{where}: {exc}") from exc


def _parse_threshold(value: Any, where: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigError(f"{where}: threshold must be a number, got {value!r}")
    try:
        threshold = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigError(f"{where}: threshold must be a number, got {value!r}") from exc
    if not threshold.is_finite() or threshold < 0:
        raise ConfigError(f"{where}: threshold must be a non-negative number, got {value!r}")
    return threshold


def _parse_single(raw: Dict[str, Any], name: str, default: SingleEffectConfig) -> SingleEffectConfig:
    if not raw:
        return default
    enabled = _scalar(raw.get("enabled", True), bool, f"events.{name}.enabled")
    effect = _parse_effect(raw["effect"], f"events.{name}") if "effect" in raw else default.effect
    unknown = set(raw) - {"enabled", "effect"}
    if unknown:
        raise ConfigError(f"events.{name}: unknown keys {sorted(unknown)}")
    return SingleEffectConfig(enabled=enabled, effect=effect)


def _parse_tiered(raw: Dict[str, Any], name: str, default: TieredEffectConfig) -> TieredEffectConfig:
    if not raw:
        return default
    unknown = set(raw) - {"enabled", "tiers"}
    if unknown:
        raise ConfigError(f"events.{name}: unknown keys {sorted(unknown)}")
    enabled = _scalar(raw.get("enabled", True), bool, f"events.{name}.enabled")
    if "tiers" not in raw:
        return TieredEffectConfig(enabled=enabled, tiers=default.tiers)
    raw_tiers = raw["tiers"] or []
    if not isinstance(raw_tiers, list):
        raise ConfigError(f"events.{name}.tiers must be a list")
    tiers = []
    for index, entry in enumerate(raw_tiers):
        where = f"events.{name}.tiers[{index}]"
        if not isinstance(entry, dict) or "threshold" not in entry or "effect" not in entry:
            raise ConfigError(f"{where}: needs 'threshold' and 'effect'")
        tiers.append(EffectTier(
            threshold=_parse_threshold(entry["threshold"], where),
            effect=_parse_effect(entry["effect"], where),
        ))
    return TieredEffectConfig(enabled=enabled, tiers=tuple(tiers))


def _parse_events(raw: Dict[str, Any]) -> EventsConfig:
    defaults = EventsConfig()
    unknown = set(raw) - {"streamlabs_donation", "twitch_follow", "twitch_subscription", "twitch_bits"}
    if unknown:
        raise ConfigError(f"events: unknown event kinds {sorted(unknown)}")
    return EventsConfig(
        streamlabs_donation=_parse_tiered(
            _section(raw, "streamlabs_donation"), "streamlabs_donation", defaults.streamlabs_donation
        ),
        twitch_follow=_parse_single(
            _section(raw, "twitch_follow"), "twitch_follow", defaults.twitch_follow
        ),
        twitch_subscription=_parse_single(
            _section(raw, "twitch_subscription"), "twitch_subscription", defaults.twitch_subscription
        ),
        twitch_bits=_parse_tiered(
            _section(raw, "twitch_bits"), "twitch_bits", defaults.twitch_bits
        ),
    )


def _parse_baseline(raw: Dict[str, Any]) -> BaselineState:
    if not raw:
        return BaselineState()
    data = dict(raw)
    if True in data:
        # YAML 1.1 reads an unquoted ``on:`` key as boolean true.
        data["on"] = data.pop(True)
    alert = data.pop("alert", data.pop("alert_mode", AlertMode.NONE.value))
    unknown = set(data) - set(_BASELINE_FIELDS)
    if unknown:
        raise ConfigError(f"default_state: unknown keys {sorted(map(str, unknown))}")
    fields = {
        key: _scalar(value, _BASELINE_FIELDS[key], f"default_state.{key}")
        for key, value in data.items()
    }
    try:
        return BaselineState(alert_mode=AlertMode.parse(alert), **fields)
    except ValueError as exc:
        raise ConfigError(f"default_state: {exc}") from exc


def _apply_env(config: GlowConfig, env: Mapping[str, str]) -> GlowConfig:
    """Overlay HUE_USERNAME, HUE_BRIDGE_IP, STREAMLABS_TOKEN, PORT and DEBUG_MODE."""
    credentials = config.credentials
    if env.get("HUE_USERNAME"):
        credentials = replace(credentials, hue_username=env["HUE_USERNAME"])
    if env.get("HUE_BRIDGE_IP"):
        credentials = replace(credentials, hue_bridge_ip=env["HUE_BRIDGE_IP"])
    if env.get("STREAMLABS_TOKEN"):
        credentials = replace(credentials, streamlabs_token=env["STREAMLABS_TOKEN"])

    transport = config.transport
    if env.get("PORT"):
        try:
            transport = replace(transport, port=int(env["PORT"]))
        except ValueError as exc:
            raise ConfigError(f"PORT must be an integer, got {env['PORT']!r}") from exc

    debug = config.debug
    if "DEBUG_MODE" in env:
        debug = replace(debug, enabled=env["DEBUG_MODE"].strip().lower() == "true")

    return replace(config, credentials=credentials, transport=transport, debug=debug)


def _validate_config(config: GlowConfig) -> None:
    """
    Validate cross-field constraints on the loaded configuration.

    Raises:
        ConfigError: If any configured value violates a hard constraint.
    """
    if not config.credentials.hue_username:
        raise ConfigError("credentials.hue_username is required (or set HUE_USERNAME)")
    if not 0 < config.transport.port < 65536:
        raise ConfigError(f"transport.port must be in 1..65535, got {config.transport.port}")
    if not config.transport.path.startswith("/"):
        raise ConfigError(f"transport.path must start with '/', got {config.transport.path!r}")
    if config.pipeline.queue_capacity <= 0:
        raise ConfigError(
            f"pipeline.queue_capacity must be positive, got {config.pipeline.queue_capacity}"
        )
    if config.pipeline.request_timeout_s <= 0:
        raise ConfigError(
            f"pipeline.request_timeout_s must be positive, got {config.pipeline.request_timeout_s}"
        )
    if config.debug.interval_s < 0:
        raise ConfigError(f"debug.interval_s must be ≥ 0, got {config.debug.interval_s}")
    if config.logging.level.upper() not in {"DEBUG", "INFO", "WARN", "WARNING", "ERROR"}:
        raise ConfigError(f"logging.level not recognised: {config.logging.level!r}")

    events = config.events
    for name in ("streamlabs_donation", "twitch_bits"):
        validate_tiers(getattr(events, name), name)
    for name in ("twitch_follow", "twitch_subscription"):
        feature: SingleEffectConfig = getattr(events, name)
        if feature.enabled and feature.effect is None:
            raise ConfigError(f"events.{name} is enabled but has no effect")


def validate_tiers(feature: TieredEffectConfig, name: str) -> None:
    """
    Require strictly decreasing thresholds on an enabled tiered feature.

    Tier order decides which effect an amount gets, so a mis-ordered list is
    rejected at startup rather than re-sorted.

    Raises:
        ConfigError: If the feature is enabled with no tiers, or thresholds
            are not strictly decreasing.
    """
    if not feature.enabled:
        return
    if not feature.tiers:
        raise ConfigError(f"events.{name} is enabled but has no tiers")
    thresholds = [tier.threshold for tier in feature.tiers]
    for higher, lower in zip(thresholds, thresholds[1:]):
        if not lower < higher:
            raise ConfigError(
                f"events.{name}.tiers thresholds must be strictly decreasing, got "
                + ", ".join(str(t) for t in thresholds)
            )
