# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Test Configuration
==================

Pytest fixtures for running a live broker on an ephemeral port.
"""

import socket
import threading

import pytest

from pykafkalite.models import ServerConfig
from pykafkalite.protocol import read_frame, write_frame
from pykafkalite.server import KafkaLiteServer


def start_server(**overrides) -> tuple:
    """Bind a server on 127.0.0.1:0 and run its accept loop in a thread."""
    config = ServerConfig(**{"host": "127.0.0.1", "port": 0, "idle_timeout_s": 5.0, **overrides})
    server = KafkaLiteServer(config)
    server.bind()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, thread


@pytest.fixture
def server():
    """A running broker, shut down after the test."""
    srv, thread = start_server()
    yield srv
    srv.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def connect(server):
    """Factory for client sockets connected to the running broker."""
    sockets = []

    def _connect() -> socket.socket:
        sock = socket.create_connection(server.server_address, timeout=5)
        sockets.append(sock)
        return sock

    yield _connect
    for sock in sockets:
        sock.close()


def roundtrip(sock: socket.socket, payload: bytes) -> bytes:
    """Send one framed request and read one framed response."""
    write_frame(SocketWriter(sock), payload)
    return read_frame(SocketReader(sock))


class SocketReader:
    """Unbuffered reader so no bytes of the next frame are swallowed."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def read(self, size: int) -> bytes:
        return self._sock.recv(size)


class SocketWriter:
    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def write(self, data: bytes) -> int:
        self._sock.sendall(data)
        return len(data)
