from __future__ import annotations

import argparse
import logging
import os
import platform

import uvicorn

from sentry_exporter import __version__
from sentry_exporter.app import create_app
from sentry_exporter.config import ConfigStore, load_config
from sentry_exporter.errors import ConfigError
from sentry_exporter.settings import ExporterSettings, parse_listen_address


LOGGER = logging.getLogger("sentry-exporter")

_UVICORN_LOG_LEVELS = {"critical", "error", "warning", "info", "debug", "trace"}


def version_string() -> str:
    return f"sentry_exporter, version {__version__} (python {platform.python_version()})"


def build_parser(defaults: ExporterSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sentry_exporter", description="Sentry Exporter")
    parser.add_argument(
        "--config.file",
        dest="config_file",
        default=defaults.config_file,
        help="Sentry exporter configuration file.",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=defaults.listen_address,
        help="The address to listen on for HTTP requests.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    parser.add_argument("--version", action="store_true", help="Print version information.")
    return parser


def main(argv: list[str] | None = None) -> int:
    defaults = ExporterSettings()
    args = build_parser(defaults).parse_args(argv)

    if args.version:
        print(version_string())
        return 0

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    settings = ExporterSettings(
        config_file=args.config_file,
        listen_address=args.listen_address,
        reload_timeout_seconds=defaults.reload_timeout_seconds,
        handle_sighup=defaults.handle_sighup,
    )

    LOGGER.info("Starting sentry_exporter version=%s", __version__)
    try:
        host, port = parse_listen_address(settings.listen_address)
    except ValueError as exc:
        LOGGER.error("Invalid listen address error=%s", exc)
        return 1

    try:
        store = ConfigStore(load_config(settings.config_file))
    except ConfigError as exc:
        LOGGER.error("Error loading config path=%s error=%s", settings.config_file, exc)
        return 1

    app = create_app(settings, store=store)
    LOGGER.info("Listening on address=%s", settings.listen_address)
    uvicorn_level = str(args.log_level).lower()
    if uvicorn_level not in _UVICORN_LOG_LEVELS:
        uvicorn_level = "info"
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
