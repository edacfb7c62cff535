"""Shared fakes for the exporter tests.

``python/`` is prepended to sys.path so the in-repo package wins over any
installed copy when running a single test file directly.
"""

from __future__ import annotations

import json
import os
import shutil
import socket
import sys
import tempfile
import threading

import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
PKG_ROOT = os.path.join(REPO_ROOT, "python")
if PKG_ROOT not in sys.path:
    sys.path.insert(0, PKG_ROOT)

GREETING = b'{"version": "DPDK 22.11.0", "pid": 4242, "max_output_len": 16384}'


class ScriptedSocket:
    """Socket double: every send() queues the next scripted list of chunks."""

    def __init__(self, replies=(), greeting=GREETING, fail_connect=None):
        self.sent: list[bytes] = []
        self.timeout = "unset"
        self.timeout_at_connect = "unset"
        self.closed = False
        self._replies = [list(r) for r in replies]
        self._pending: list = [greeting] if greeting is not None else []
        self._fail_connect = fail_connect

    def connect(self, path):
        self.timeout_at_connect = self.timeout
        if self._fail_connect is not None:
            raise self._fail_connect

    def settimeout(self, value):
        self.timeout = value

    def send(self, data):
        self.sent.append(bytes(data))
        if self._replies:
            self._pending.extend(self._replies.pop(0))
        return len(data)

    def recv(self, n):
        if not self._pending:
            return b""
        item = self._pending.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True


class TelemetryResponder(ScriptedSocket):
    """Socket double answering commands from a path -> payload table."""

    def __init__(self, table, greeting=GREETING):
        super().__init__(greeting=greeting)
        self.table = table

    def send(self, data):
        self.sent.append(bytes(data))
        command = data.decode("ascii")
        payload = self.table[command]
        if isinstance(payload, BaseException):
            self._pending.append(payload)
        else:
            path = command.split(",", 1)[0]
            self._pending.append(json.dumps({path: payload}).encode())
        return len(data)

    @property
    def commands(self) -> list[str]:
        return [s.decode("ascii") for s in self.sent]


class SeqpacketServer:
    """A real AF_UNIX/SOCK_SEQPACKET listener that replays canned messages.

    ``replies`` is a list of message lists: one list per expected command,
    each message sent as its own packet. A callable entry is called once the
    command arrives and its return value is sent instead.
    """

    def __init__(self, replies, greeting=GREETING):
        self.dir = tempfile.mkdtemp(prefix="dpdk")
        self.path = os.path.join(self.dir, "t.sock")
        self.received: list[bytes] = []
        self._replies = replies
        self._greeting = greeting
        self._listener = socket.socket(socket.AF_UNIX, socket.SOCK_SEQPACKET)
        self._listener.bind(self.path)
        self._listener.listen(1)
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        conn, _ = self._listener.accept()
        with conn:
            conn.sendall(self._greeting)
            for messages in self._replies:
                cmd = conn.recv(1024)
                if not cmd:
                    return
                self.received.append(cmd)
                if callable(messages):
                    messages = messages()
                for m in messages:
                    conn.sendall(m)
            # Keep the peer open until the client hangs up.
            conn.recv(1024)

    def close(self):
        self._listener.close()
        self._thread.join(timeout=5)
        shutil.rmtree(self.dir, ignore_errors=True)


@pytest.fixture
def scripted_socket():
    return ScriptedSocket


@pytest.fixture
def responder():
    return TelemetryResponder


@pytest.fixture
def seqpacket_server():
    servers = []

    def make(replies, greeting=GREETING):
        srv = SeqpacketServer(replies, greeting=greeting)
        servers.append(srv)
        return srv

    yield make
    for srv in servers:
        srv.close()
