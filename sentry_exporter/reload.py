from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from sentry_exporter.config import Config, ConfigStore, load_config
from sentry_exporter.errors import ConfigError, ConfigReloadTimeoutError
from sentry_exporter.metrics import ExporterMetrics


LOGGER = logging.getLogger("sentry-exporter")


@dataclass(frozen=True)
class _ReloadRequest:
    # None for fire-and-forget triggers (SIGHUP).
    done: asyncio.Future[None] | None = None


class ReloadCoordinator:
    """
    Single consumer for config reloads.

    Signal triggers and awaited reload requests share one queue and are
    processed one at a time in arrival order, so two reloads never overlap and
    the store only ever sees one writer.
    """

    def __init__(
        self,
        store: ConfigStore,
        config_path: str | Path,
        *,
        timeout_seconds: float | None = 30.0,
        metrics: ExporterMetrics | None = None,
        loader: Callable[[str | Path], Config] = load_config,
    ) -> None:
        self._store = store
        self._config_path = config_path
        self._timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
        self._metrics = metrics
        self._loader = loader
        self._queue: asyncio.Queue[_ReloadRequest] | None = None
        self._task: asyncio.Task[None] | None = None
        self._signal: signal.Signals | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="config-reload")

    async def stop(self) -> None:
        self.remove_signal_handler()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        queue, self._queue = self._queue, None
        while queue is not None and not queue.empty():
            req = queue.get_nowait()
            if req.done is not None and not req.done.done():
                req.done.set_exception(ConfigError("reload coordinator stopped"))

    def trigger(self) -> None:
        if self._queue is None:
            LOGGER.warning("Reload requested before coordinator start; ignoring")
            return
        self._queue.put_nowait(_ReloadRequest())

    async def reload(self) -> None:
        if self._queue is None or not self.running:
            raise RuntimeError("reload coordinator is not running")
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_ReloadRequest(done=done))
        await done

    def install_signal_handler(self, sig: signal.Signals = signal.SIGHUP) -> bool:
        try:
            asyncio.get_running_loop().add_signal_handler(sig, self.trigger)
        except (NotImplementedError, RuntimeError, ValueError) as exc:
            LOGGER.warning("Could not install reload signal handler signal=%s error=%s", sig.name, exc)
            return False
        self._signal = sig
        return True

    def remove_signal_handler(self) -> None:
        sig, self._signal = self._signal, None
        if sig is None:
            return
        try:
            asyncio.get_running_loop().remove_signal_handler(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            pass

    async def _run(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            req = await queue.get()
            try:
                await self._reload_once()
            except ConfigError as exc:
                LOGGER.error("Error reloading config path=%s error=%s", self._config_path, exc)
                self._finish(req, exc)
            except Exception as exc:
                LOGGER.exception("Config reload crashed path=%s", self._config_path)
                self._finish(req, exc)
            else:
                self._finish(req, None)
            finally:
                queue.task_done()

    async def _reload_once(self) -> None:
        load = asyncio.to_thread(self._loader, self._config_path)
        try:
            try:
                if self._timeout is None:
                    config = await load
                else:
                    config = await asyncio.wait_for(load, self._timeout)
            except asyncio.TimeoutError:
                raise ConfigReloadTimeoutError(
                    f"timed out after {self._timeout:g}s loading config file {self._config_path}"
                ) from None
        except Exception:
            if self._metrics is not None:
                self._metrics.reload_failed()
            raise

        self._store.replace(config)
        if self._metrics is not None:
            self._metrics.reload_succeeded()

    @staticmethod
    def _finish(req: _ReloadRequest, exc: BaseException | None) -> None:
        if req.done is None or req.done.done():
            return
        if exc is None:
            req.done.set_result(None)
        else:
            req.done.set_exception(exc)
