from __future__ import annotations

import os
from dataclasses import dataclass, field


DEFAULT_CONFIG_FILE = "sentry_exporter.yml"
DEFAULT_LISTEN_ADDRESS = ":9412"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    s = str(raw).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(str(raw).strip())
    except ValueError:
        return float(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


def parse_listen_address(address: str) -> tuple[str, int]:
    """
    Split "host:port" (host optional, "[::1]:9412" for IPv6) into parts.
    An empty host listens on all interfaces.
    """
    s = str(address or "").strip()
    host, sep, port_raw = s.rpartition(":")
    if not sep:
        raise ValueError(f"invalid listen address (missing port): {address!r}")
    host = host.strip()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"invalid listen address port: {address!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"invalid listen address port: {address!r}")
    return host or "0.0.0.0", port


@dataclass(frozen=True)
class ExporterSettings:
    config_file: str = field(default_factory=lambda: _env_str("SENTRY_EXPORTER_CONFIG_FILE", DEFAULT_CONFIG_FILE))
    listen_address: str = field(
        default_factory=lambda: _env_str("SENTRY_EXPORTER_LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS)
    )
    # Upper bound for reading + parsing the config on reload. 0 disables the bound.
    reload_timeout_seconds: float = field(
        default_factory=lambda: _env_float("SENTRY_EXPORTER_RELOAD_TIMEOUT_SECONDS", 30.0)
    )
    # Install a SIGHUP handler on startup. Only possible on the main thread.
    handle_sighup: bool = field(default_factory=lambda: _env_bool("SENTRY_EXPORTER_HANDLE_SIGHUP", True))
