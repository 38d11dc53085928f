from __future__ import annotations

import time
from dataclasses import replace

from sentry_exporter.config import Config
from sentry_exporter.errors import MissingTargetError, UnknownModuleError
from sentry_exporter.prober import ProbeResult
from sentry_exporter.registry import ProberRegistry


DEFAULT_MODULE = "sentry"


async def run_probe(
    config: Config,
    registry: ProberRegistry,
    *,
    target: str,
    module_name: str | None = None,
) -> ProbeResult:
    if not target:
        raise MissingTargetError()

    name = module_name or DEFAULT_MODULE
    module = config.modules.get(name)
    if module is None:
        raise UnknownModuleError(name)
    prober = registry.resolve(module.prober)

    started = time.perf_counter()
    result = await prober.probe(target, module)
    return replace(result, duration_seconds=time.perf_counter() - started)


def render_probe(result: ProbeResult) -> str:
    lines: list[str] = []
    if result.success:
        lines.append(f"probe_sentry_error_received {result.error_received}")
    lines.append(f"probe_sentry_status_code {result.status_code}")
    lines.append(f"probe_sentry_content_length {result.content_length}")
    lines.append(f"probe_duration_seconds {result.duration_seconds:f}")
    lines.append(f"probe_success {1 if result.success else 0}")
    return "\n".join(lines) + "\n"
