from __future__ import annotations

from types import MappingProxyType
from typing import Iterator, Mapping

from sentry_exporter.errors import UnknownProberError
from sentry_exporter.http_probe import HTTPProber
from sentry_exporter.prober import Prober


class ProberRegistry:
    def __init__(self, probers: Mapping[str, Prober]) -> None:
        self._probers: Mapping[str, Prober] = MappingProxyType(dict(probers))

    def resolve(self, name: str) -> Prober:
        prober = self._probers.get(name)
        if prober is None:
            raise UnknownProberError(name)
        return prober

    def names(self) -> list[str]:
        return sorted(self._probers)

    def __contains__(self, name: object) -> bool:
        return name in self._probers

    def __iter__(self) -> Iterator[str]:
        return iter(self._probers)

    def __len__(self) -> int:
        return len(self._probers)


def default_registry() -> ProberRegistry:
    return ProberRegistry({"http": HTTPProber()})
