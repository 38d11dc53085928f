from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sentry_exporter.config import Module


@dataclass(frozen=True)
class ProbeResult:
    success: bool
    # 0 when no response was obtained.
    status_code: int = 0
    # -1 when the response did not announce a length.
    content_length: int = 0
    error_received: int = 0
    duration_seconds: float = 0.0


class Prober(Protocol):
    """
    One check family. Implementations perform a single check of `target` using
    the module's settings and must finish within `module.timeout` seconds
    (0 means no deadline).
    """

    async def probe(self, target: str, module: Module) -> ProbeResult: ...
