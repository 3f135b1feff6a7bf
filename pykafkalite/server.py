# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pykafkalite TCP server.

One listening socket, one thread per accepted connection. Each connection
worker runs a blocking read -> dispatch -> write loop until the peer goes
away or sends something the broker cannot frame or parse. Workers share
only the read-only handler table and config, so no locks are needed on the
request path.

Run it:
    $ pykafkalite --port 9092
    $ python -m pykafkalite --log-level DEBUG
"""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading
from typing import Mapping, Sequence

from pydantic import ValidationError

from .exceptions import (
    ConnectionClosedError,
    IdleTimeoutError,
    IoFailure,
    MalformedRequestError,
)
from .handlers import HANDLERS, Handler, handle_request
from .models import ServerConfig
from .protocol import read_frame, write_frame

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# How often the accept loop wakes up to check for shutdown.
_POLL_INTERVAL_S = 0.5


class ConnectionWorker:
    """Serves every request on a single client connection, in arrival order."""

    def __init__(
        self,
        sock: socket.socket,
        address: tuple,
        config: ServerConfig,
        handlers: Mapping[int, Handler] = HANDLERS,
    ) -> None:
        self._sock = sock
        self._address = address
        self._config = config
        self._handlers = handlers
        self.requests_served = 0

    @property
    def peer(self) -> str:
        return f"{self._address[0]}:{self._address[1]}"

    def run(self) -> None:
        """Process frames until the connection ends, then close the socket."""
        logger.info("Connection opened from %s", self.peer)
        self._sock.settimeout(self._config.idle_timeout_s)
        reader = self._sock.makefile("rb")
        writer = self._sock.makefile("wb")
        try:
            while True:
                payload = read_frame(
                    reader, self._config.max_frame_size, self._config.idle_timeout_s
                )
                logger.debug("[%s] request: %s", self.peer, payload.hex())

                response = handle_request(payload, self._handlers)
                logger.debug("[%s] response: %s", self.peer, response.hex())

                write_frame(writer, response)
                self.requests_served += 1
        except ConnectionClosedError:
            logger.info("Connection closed by %s", self.peer)
        except IdleTimeoutError as e:
            logger.info("Closing %s: %s", self.peer, e)
        except IoFailure as e:
            logger.warning("I/O failure on %s: %s", self.peer, e)
        except MalformedRequestError as e:
            logger.warning("Malformed request from %s, closing without reply: %s", self.peer, e)
        except Exception:
            logger.exception("Unexpected error serving %s", self.peer)
        finally:
            self._close(reader, writer)
            logger.info(
                "Connection to %s finished after %d request(s)", self.peer, self.requests_served
            )

    def _close(self, reader, writer) -> None:
        for f in (reader, writer):
            try:
                f.close()
            except OSError:
                pass
        try:
            self._sock.close()
        except OSError:
            pass


class KafkaLiteServer:
    """
    Thread-per-connection broker listener.

    Example:
        >>> with KafkaLiteServer(ServerConfig(port=0)) as server:
        ...     threading.Thread(target=server.serve_forever, daemon=True).start()
        ...     host, port = server.server_address
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        handlers: Mapping[int, Handler] = HANDLERS,
    ) -> None:
        self._config = config or ServerConfig()
        self._handlers = handlers
        self._sock: socket.socket | None = None
        self._lock = threading.RLock()
        self._shutdown = threading.Event()
        self._workers: set[threading.Thread] = set()

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def server_address(self) -> tuple:
        """Address the listener is bound to (resolves port 0)."""
        if self._sock is None:
            raise RuntimeError("Server is not bound")
        return self._sock.getsockname()[:2]

    @property
    def active_connections(self) -> int:
        with self._lock:
            return len(self._workers)

    def bind(self) -> None:
        """Create the listening socket. Safe to call more than once."""
        with self._lock:
            if self._sock is not None:
                return
            address = (self._config.host, self._config.port)
            self._sock = socket.create_server(address, backlog=self._config.backlog)
            self._sock.settimeout(_POLL_INTERVAL_S)
            logger.info("Listening on %s:%d", *self.server_address)

    def serve_forever(self) -> None:
        """Accept connections until shutdown() is called."""
        self.bind()
        while not self._shutdown.is_set():
            try:
                conn, address = self._sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._shutdown.is_set():
                    break
                logger.error("Error accepting connection: %s", e)
                raise
            self._spawn(conn, address)
        logger.info("Accept loop stopped")

    def _spawn(self, conn: socket.socket, address: tuple) -> None:
        # Accepted sockets inherit the listener's timeout; the worker sets its own.
        conn.settimeout(None)
        worker = ConnectionWorker(conn, address, self._config, self._handlers)
        thread = threading.Thread(
            target=self._run_worker,
            args=(worker,),
            name=f"pykafkalite-conn-{address[0]}:{address[1]}",
            daemon=True,
        )
        with self._lock:
            self._workers.add(thread)
        thread.start()

    def _run_worker(self, worker: ConnectionWorker) -> None:
        try:
            worker.run()
        finally:
            with self._lock:
                self._workers.discard(threading.current_thread())

    def shutdown(self) -> None:
        """Stop accepting connections and close the listener."""
        self._shutdown.set()
        with self._lock:
            if self._sock is not None:
                try:
                    self._sock.close()
                except OSError:
                    pass

    def __enter__(self) -> KafkaLiteServer:
        self.bind()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pykafkalite",
        description="Minimal Kafka-protocol broker serving ApiVersions and DescribeTopicPartitions",
    )
    parser.add_argument("--host", help="Bind host (env PYKAFKALITE_HOST, default 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Bind port (env PYKAFKALITE_PORT, default 9092)")
    parser.add_argument(
        "--max-frame-size",
        type=int,
        help="Largest request payload in bytes (env PYKAFKALITE_MAX_FRAME_SIZE, default 1MiB)",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        help="Seconds before an idle connection is closed (env PYKAFKALITE_IDLE_TIMEOUT)",
    )
    parser.add_argument("--log-level", help="Log level (env PYKAFKALITE_LOG_LEVEL, default INFO)")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Console entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ServerConfig.from_env(
            host=args.host,
            port=args.port,
            max_frame_size=args.max_frame_size,
            idle_timeout_s=args.idle_timeout,
            log_level=args.log_level,
        )
    except ValidationError as e:
        parser.error(str(e))

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    server = KafkaLiteServer(config)
    try:
        server.bind()
    except OSError as e:
        logger.error("Failed to bind to %s:%d: %s", config.host, config.port, e)
        return 1

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        server.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
