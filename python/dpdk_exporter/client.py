from __future__ import annotations

import json
import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import ConnectError, DecodeError, FramingError, TelemetryError, TransportError
from .responses import decode

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/var/run/dpdk/rte/dpdk_telemetry.v2"

T = TypeVar("T")


@dataclass(frozen=True)
class TelemetryClientConfig:
    socket_path: str = DEFAULT_SOCKET_PATH
    connect_attempts: int = 5
    retry_delay_s: float = 10.0
    read_timeout_s: Optional[float] = 10.0
    greeting_bytes: int = 1024
    read_chunk_bytes: int = 1024 * 16
    max_response_bytes: int = 1024 * 1024


def _unix_seqpacket() -> socket.socket:
    return socket.socket(socket.AF_UNIX, socket.SOCK_SEQPACKET)


def command_path(command: str) -> str:
    """Return the part of ``command`` before its argument, e.g. ``/ethdev/info``."""
    return command.split(",", 1)[0]


class TelemetryClient:
    """Request/response client for the engine's telemetry socket.

    One command is in flight at a time. Responses carry no length header, so a
    response is considered complete once the queried path shows up in the
    bytes read so far; the server echoes it as the top-level JSON key.
    """

    def __init__(
        self,
        cfg: TelemetryClientConfig,
        sock: Optional[socket.socket] = None,
        socket_factory: Callable[[], socket.socket] = _unix_seqpacket,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._cfg = cfg
        self._sock = sock
        self._socket_factory = socket_factory
        self._sleep = sleep
        self._chunk_bytes = cfg.read_chunk_bytes

    @property
    def config(self) -> TelemetryClientConfig:
        return self._cfg

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def read_size(self) -> int:
        return self._chunk_bytes

    def connect(self) -> None:
        attempts = self._cfg.connect_attempts
        last_err: Optional[OSError] = None
        for attempt in range(1, attempts + 1):
            s = self._socket_factory()
            s.settimeout(self._cfg.read_timeout_s)
            try:
                s.connect(self._cfg.socket_path)
            except OSError as e:
                s.close()
                last_err = e
                logger.warning(
                    "Failed to connect to %s: %s (attempt %d of %d)",
                    self._cfg.socket_path,
                    e,
                    attempt,
                    attempts,
                )
                if attempt < attempts:
                    self._sleep(self._cfg.retry_delay_s)
                continue

            self._sock = s
            logger.info("Connected to %s", self._cfg.socket_path)
            self._flush_greeting()
            return

        raise ConnectError(
            f"Could not connect to {self._cfg.socket_path} after {attempts} attempts: {last_err}"
        )

    def _flush_greeting(self) -> None:
        try:
            greeting = self._require_sock().recv(self._cfg.greeting_bytes)
        except OSError as e:
            self.close()
            raise ConnectError(f"Failed to read greeting from {self._cfg.socket_path}: {e}") from e
        if not greeting:
            self.close()
            raise ConnectError(f"{self._cfg.socket_path} closed before sending a greeting")

        try:
            info = json.loads(greeting)
        except ValueError:
            logger.debug("Discarded non-JSON greeting (%d bytes)", len(greeting))
            return
        if isinstance(info, dict):
            logger.debug(
                "Telemetry server version=%s pid=%s max_output_len=%s",
                info.get("version"),
                info.get("pid"),
                info.get("max_output_len"),
            )
            max_output = info.get("max_output_len")
            # Each response is one packet; a short recv would drop its tail.
            if isinstance(max_output, int) and max_output > self._chunk_bytes:
                self._chunk_bytes = max_output

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None

    def __enter__(self) -> "TelemetryClient":
        if self._sock is None:
            self.connect()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _require_sock(self) -> socket.socket:
        if self._sock is None:
            raise TransportError("Telemetry client is not connected")
        return self._sock

    def request(self, command: str) -> bytes:
        s = self._require_sock()
        try:
            data = command.encode("ascii")
        except UnicodeEncodeError as e:
            raise TransportError(f"Command {command!r} is not ASCII") from e
        try:
            sent = s.send(data)
        except OSError as e:
            raise TransportError(f"Failed to send {command!r} to {self._cfg.socket_path}: {e}") from e
        if sent != len(data):
            raise TransportError(f"Short write for {command!r}: {sent} of {len(data)} bytes")

        return self._read_frame(s, command_path(command).encode("ascii"))

    def _read_frame(self, s: socket.socket, path: bytes) -> bytes:
        buf = bytearray()
        while True:
            try:
                chunk = s.recv(self._chunk_bytes)
            except socket.timeout as e:
                raise FramingError(
                    f"Timed out after {self._cfg.read_timeout_s}s waiting for {path.decode()} response"
                ) from e
            except OSError as e:
                raise FramingError(f"Failed to read response from {self._cfg.socket_path}: {e}") from e
            if not chunk:
                raise FramingError(
                    f"{self._cfg.socket_path} closed mid-response after {len(buf)} bytes"
                )

            # Look at the new chunk plus enough of the previous tail to catch a
            # path split across two reads.
            start = max(0, len(buf) - (len(path) - 1))
            buf += chunk
            if path in buf[start:]:
                return bytes(buf)
            if len(buf) > self._cfg.max_response_bytes:
                raise FramingError(
                    f"Response for {path.decode()} exceeded {self._cfg.max_response_bytes} bytes"
                )

    def query(self, command: str, shape: type[T]) -> T:
        raw = self.request(command)
        return decode(raw, shape)


__all__ = [
    "DEFAULT_SOCKET_PATH",
    "ConnectError",
    "DecodeError",
    "FramingError",
    "TelemetryClient",
    "TelemetryClientConfig",
    "TelemetryError",
    "TransportError",
    "command_path",
]
