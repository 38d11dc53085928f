from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from sentry_exporter.errors import ConfigIOError, ConfigParseError


LOGGER = logging.getLogger("sentry-exporter")

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


@dataclass(frozen=True)
class HTTPProbeConfig:
    # Empty means "any 2xx".
    valid_status_codes: tuple[int, ...] = ()
    prefix: str = ""
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    follow_redirects: bool = True


@dataclass(frozen=True)
class Module:
    prober: str = ""
    timeout: float = 0.0
    http: HTTPProbeConfig = field(default_factory=HTTPProbeConfig)


@dataclass(frozen=True)
class Config:
    modules: Mapping[str, Module] = field(default_factory=lambda: MappingProxyType({}))


def parse_duration(value: Any) -> float:
    """
    Parse a timeout into seconds.

    Accepts bare numbers (seconds) and Go-style duration strings such as
    "5s", "1m30s" or "250ms".
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        s = str(value or "").strip()
        if not s:
            raise ValueError("invalid duration: empty")
        try:
            seconds = float(s)
        except ValueError:
            sign = 1.0
            if s[0] in "+-":
                sign = -1.0 if s[0] == "-" else 1.0
                s = s[1:]
            pos = 0
            total = 0.0
            while pos < len(s):
                m = _DURATION_PART_RE.match(s, pos)
                if m is None:
                    raise ValueError(f"invalid duration: {value!r}") from None
                total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
                pos = m.end()
            if pos == 0:
                raise ValueError(f"invalid duration: {value!r}") from None
            seconds = sign * total
    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration: {value!r}")
    if seconds < 0:
        raise ValueError(f"negative duration: {value!r}")
    return seconds


def _parse_status_codes(raw: Any, *, where: str) -> tuple[int, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigParseError(f"{where}.valid_status_codes must be a list of ints")
    codes: list[int] = []
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, int):
            raise ConfigParseError(f"{where}.valid_status_codes: invalid status code {item!r}")
        codes.append(item)
    return tuple(codes)


def _parse_headers(raw: Any, *, where: str) -> Mapping[str, str]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, dict):
        raise ConfigParseError(f"{where}.headers must be a mapping")
    headers: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, (dict, list)):
            raise ConfigParseError(f"{where}.headers.{key}: value must be a scalar")
        headers[str(key)] = "" if value is None else str(value)
    return MappingProxyType(headers)


def _parse_http(raw: Any, *, where: str) -> HTTPProbeConfig:
    if raw is None:
        return HTTPProbeConfig()
    if not isinstance(raw, dict):
        raise ConfigParseError(f"{where} must be a mapping")

    follow_redirects = raw.get("follow_redirects", True)
    if not isinstance(follow_redirects, bool):
        raise ConfigParseError(f"{where}.follow_redirects must be a boolean")

    prefix = raw.get("prefix")
    if isinstance(prefix, (dict, list)):
        raise ConfigParseError(f"{where}.prefix must be a string")

    return HTTPProbeConfig(
        valid_status_codes=_parse_status_codes(raw.get("valid_status_codes"), where=where),
        prefix="" if prefix is None else str(prefix),
        headers=_parse_headers(raw.get("headers"), where=where),
        follow_redirects=follow_redirects,
    )


def _parse_module(name: str, raw: Any) -> Module:
    where = f"modules.{name}"
    if raw is None:
        return Module()
    if not isinstance(raw, dict):
        raise ConfigParseError(f"{where} must be a mapping")

    prober = raw.get("prober")
    if isinstance(prober, (dict, list)):
        raise ConfigParseError(f"{where}.prober must be a string")

    timeout_raw = raw.get("timeout")
    try:
        timeout = 0.0 if timeout_raw is None else parse_duration(timeout_raw)
    except ValueError as exc:
        raise ConfigParseError(f"{where}.timeout: {exc}") from exc

    return Module(
        prober="" if prober is None else str(prober),
        timeout=timeout,
        http=_parse_http(raw.get("http"), where=f"{where}.http"),
    )


def parse_config(text: str) -> Config:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigParseError(f"error parsing config file: {exc}") from exc

    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigParseError("config file must contain a mapping at the top level")

    modules_raw = data.get("modules")
    if modules_raw is None:
        return Config()
    if not isinstance(modules_raw, dict):
        raise ConfigParseError("modules must be a mapping of module name to module")

    modules = {str(name): _parse_module(str(name), raw) for name, raw in modules_raw.items()}
    return Config(modules=MappingProxyType(modules))


def load_config(path: str | Path) -> Config:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigIOError(str(p), exc) from exc
    except UnicodeDecodeError as exc:
        raise ConfigParseError(f"error parsing config file: {exc}") from exc
    return parse_config(text)


class ConfigStore:
    """
    Holds the active Config.

    Readers take one reference per request and keep using it; replace() swaps
    the reference in a single assignment, so a reader sees either the old or the
    new Config in full. Writes are serialized by the ReloadCoordinator.
    """

    def __init__(self, config: Config | None = None) -> None:
        self._config = config if config is not None else Config()

    def current(self) -> Config:
        return self._config

    def replace(self, config: Config) -> None:
        self._config = config
        LOGGER.info("Loaded config file modules=%s", len(config.modules))
