"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

QUERY_ENDPOINT_ENV = "SUBGRAPH_QUERY_ENDPOINT"
SUBSCRIPTION_ENDPOINT_ENV = "SUBGRAPH_SUBSCRIPTION_ENDPOINT"

DEFAULT_REJECTED_HEADERS = ("challenge-bypass-token", "x_proxy_id")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UpstreamConfig:
    query_endpoint: str = ""
    subscription_endpoint: str = ""
    timeout: int = 30


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 9500
    path: str = "/"
    cors_origin: str = "*"


@dataclass(frozen=True)
class FiltersConfig:
    rejected_headers: tuple[str, ...] = DEFAULT_REJECTED_HEADERS


@dataclass(frozen=True)
class AppConfig:
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    filters: FiltersConfig = field(default_factory=FiltersConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_upstream(raw: dict[str, Any]) -> UpstreamConfig:
    return UpstreamConfig(
        query_endpoint=raw.get("query_endpoint")
        or os.environ.get(QUERY_ENDPOINT_ENV, ""),
        subscription_endpoint=raw.get("subscription_endpoint")
        or os.environ.get(SUBSCRIPTION_ENDPOINT_ENV, ""),
        timeout=int(raw.get("timeout", 30)),
    )


def _build_server(raw: dict[str, Any]) -> ServerConfig:
    return ServerConfig(
        host=raw.get("host", "0.0.0.0"),
        port=int(raw.get("port", 9500)),
        path=raw.get("path", "/"),
        cors_origin=raw.get("cors_origin", "*"),
    )


def _build_filters(raw: dict[str, Any]) -> FiltersConfig:
    headers = raw.get("rejected_headers", DEFAULT_REJECTED_HEADERS)
    return FiltersConfig(rejected_headers=tuple(h.lower() for h in headers))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate gateway configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root; when that default is absent the configuration comes
            from environment variables alone.
    """
    load_dotenv()

    if config_path is None:
        default_path = Path(__file__).resolve().parent.parent / "config.yaml"
        config_path = default_path if default_path.exists() else None

    raw: dict[str, Any] = {}
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        upstream=_build_upstream(raw.get("upstream") or {}),
        server=_build_server(raw.get("server") or {}),
        filters=_build_filters(raw.get("filters") or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path or "environment")
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.upstream.query_endpoint:
        raise ValueError(
            f"Upstream query endpoint is not set (upstream.query_endpoint or {QUERY_ENDPOINT_ENV})"
        )
    if not cfg.upstream.subscription_endpoint:
        raise ValueError(
            "Upstream subscription endpoint is not set "
            f"(upstream.subscription_endpoint or {SUBSCRIPTION_ENDPOINT_ENV})"
        )
    if cfg.upstream.timeout <= 0:
        raise ValueError("upstream.timeout must be positive")
    if not cfg.server.path.startswith("/"):
        raise ValueError(f"server.path must start with '/': {cfg.server.path!r}")
