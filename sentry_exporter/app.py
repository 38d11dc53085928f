from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from sentry_exporter import __version__
from sentry_exporter.config import ConfigStore, load_config
from sentry_exporter.errors import ConfigError, ProbeRequestError
from sentry_exporter.metrics import ExporterMetrics
from sentry_exporter.probe import render_probe, run_probe
from sentry_exporter.registry import ProberRegistry, default_registry
from sentry_exporter.reload import ReloadCoordinator
from sentry_exporter.settings import ExporterSettings


LOGGER = logging.getLogger("sentry-exporter")

INDEX_HTML = """<html>
<head><title>Sentry Exporter</title></head>
<body>
<h1>Sentry Exporter</h1>
<p><a href="/probe?target=apimutate">Probe sentry project</a></p>
<p><a href="/metrics">Metrics</a></p>
</body>
</html>
"""


def create_app(
    settings: ExporterSettings | None = None,
    *,
    store: ConfigStore | None = None,
    registry: ProberRegistry | None = None,
    metrics: ExporterMetrics | None = None,
) -> FastAPI:
    settings = settings or ExporterSettings()
    if store is None:
        # Raises ConfigError: an unusable config at startup is fatal.
        store = ConfigStore(load_config(settings.config_file))

    app = FastAPI(title="Sentry Exporter", version=__version__)
    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry or default_registry()
    app.state.metrics = metrics or ExporterMetrics()
    app.state.metrics.reload_succeeded()
    app.state.reloader = ReloadCoordinator(
        store,
        settings.config_file,
        timeout_seconds=settings.reload_timeout_seconds,
        metrics=app.state.metrics,
    )

    @app.on_event("startup")
    async def _startup() -> None:
        await app.state.reloader.start()
        if app.state.settings.handle_sighup:
            app.state.reloader.install_signal_handler()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.reloader.stop()

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(INDEX_HTML)

    @app.get("/probe", response_class=PlainTextResponse)
    async def probe(target: str = "", module: str = "") -> PlainTextResponse:
        # One snapshot per request; a concurrent reload does not affect it.
        config = app.state.store.current()
        try:
            result = await run_probe(config, app.state.registry, target=target, module_name=module)
        except ProbeRequestError as exc:
            return PlainTextResponse(f"{exc}\n", status_code=400)
        return PlainTextResponse(render_probe(result))

    @app.api_route("/-/reload", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def reload_config(req: Request) -> PlainTextResponse:
        if req.method != "POST":
            return PlainTextResponse("This endpoint requires a POST request.\n", status_code=405)
        try:
            await app.state.reloader.reload()
        except ConfigError as exc:
            return PlainTextResponse(f"failed to reload config: {exc}\n", status_code=500)
        return PlainTextResponse("")

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        m: ExporterMetrics = app.state.metrics
        return Response(content=m.render(), media_type=m.content_type)

    return app
