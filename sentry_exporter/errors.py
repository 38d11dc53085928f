from __future__ import annotations


class SentryExporterError(Exception):
    pass


class ConfigError(SentryExporterError):
    pass


class ConfigIOError(ConfigError):
    def __init__(self, path: str, cause: OSError) -> None:
        super().__init__(f"error reading config file {path}: {cause}")
        self.path = path
        self.cause = cause


class ConfigParseError(ConfigError):
    pass


class ConfigReloadTimeoutError(ConfigError):
    pass


class ProbeRequestError(SentryExporterError):
    """
    Raised for problems with a single probe request. The process keeps serving.
    """


class MissingTargetError(ProbeRequestError):
    def __init__(self) -> None:
        super().__init__("Target parameter is missing")


class UnknownModuleError(ProbeRequestError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Unknown module "{name}"')
        self.name = name


class UnknownProberError(ProbeRequestError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Unknown prober "{name}"')
        self.name = name
