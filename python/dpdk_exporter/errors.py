from __future__ import annotations


class TelemetryError(RuntimeError):
    """Base for every fault that leaves the telemetry socket unusable."""


class ConnectError(TelemetryError):
    pass


class TransportError(TelemetryError):
    pass


class FramingError(TransportError):
    pass


class DecodeError(TelemetryError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Invalid {path} response: {reason}")
        self.path = path
        self.reason = reason
