# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Kafka Wire Protocol Framing.

Frame Format:
    +-------+-------+-------+-------+
    | Length (4 bytes, big-endian)  |
    +-------+-------+-------+-------+
    |   Payload (Length bytes)      |
    +-------------------------------+

Request Header (first 8 bytes of a request payload):
    +-------+-------+-------+-------+-------+-------+-------+-------+
    | API Key (u16) | Version (i16) |     Correlation ID (i32)      |
    +-------+-------+-------+-------+-------+-------+-------+-------+

Everything after the first 8 bytes (client id, tagged fields, request body)
is parsed by the operation handler.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from .exceptions import (
    ConnectionClosedError,
    FrameTooLargeError,
    IdleTimeoutError,
    IncompleteFrameError,
    IoFailure,
    MalformedRequestError,
)

if TYPE_CHECKING:
    from typing import BinaryIO

# Protocol constants
LENGTH_PREFIX_SIZE: int = 4
REQUEST_HEADER_SIZE: int = 8
MAX_FRAME_SIZE: int = 1024 * 1024  # 1MiB

_LENGTH = struct.Struct(">I")
_REQUEST_HEADER = struct.Struct(">Hhi")


class ApiKey(IntEnum):
    """API keys served by this broker."""

    API_VERSIONS = 18
    DESCRIBE_TOPIC_PARTITIONS = 75


class ErrorCode(IntEnum):
    """
    In-band error codes carried inside response bodies.

    UNSUPPORTED_VERSION answers a known API key at a version outside its
    range. INVALID_REQUEST answers an API key with no handler at all.
    """

    NONE = 0
    UNKNOWN_TOPIC_OR_PARTITION = 3
    UNSUPPORTED_VERSION = 35
    INVALID_REQUEST = 42


@dataclass(frozen=True)
class RequestHeader:
    """Routing fields at the front of every request payload."""

    api_key: int
    api_version: int
    correlation_id: int

    def to_bytes(self) -> bytes:
        """Serialize header to bytes."""
        return _REQUEST_HEADER.pack(self.api_key, self.api_version, self.correlation_id)

    @classmethod
    def from_bytes(cls, data: bytes) -> RequestHeader:
        """Deserialize header from the first 8 bytes of a payload."""
        if len(data) < REQUEST_HEADER_SIZE:
            raise MalformedRequestError(
                f"Request too short: {len(data)} bytes, header needs {REQUEST_HEADER_SIZE}"
            )
        api_key, api_version, correlation_id = _REQUEST_HEADER.unpack_from(data, 0)
        return cls(api_key=api_key, api_version=api_version, correlation_id=correlation_id)


def parse_header(payload: bytes) -> tuple[RequestHeader, int]:
    """
    Extract routing fields from a request payload.

    Args:
        payload: Frame payload (without the length prefix).

    Returns:
        Tuple of the parsed header and the offset where the body starts.

    Raises:
        MalformedRequestError: If the payload is shorter than 8 bytes.
    """
    return RequestHeader.from_bytes(payload), REQUEST_HEADER_SIZE


def _read_exact(reader: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(
    reader: BinaryIO,
    max_frame_size: int = MAX_FRAME_SIZE,
    idle_timeout: float | None = None,
) -> bytes:
    """
    Read one length-prefixed frame from a binary stream.

    Args:
        reader: Binary stream to read from (e.g. ``socket.makefile("rb")``).
        max_frame_size: Largest payload accepted, in bytes.
        idle_timeout: Timeout configured on the underlying socket, reported
            in IdleTimeoutError.

    Returns:
        The frame payload. Empty if the declared length is zero.

    Raises:
        ConnectionClosedError: If the stream ends before a new frame starts.
        IncompleteFrameError: If the stream ends inside a frame.
        FrameTooLargeError: If the declared length exceeds max_frame_size.
        IdleTimeoutError: If the underlying socket timed out.
        IoFailure: For any other transport error.
    """
    try:
        prefix = _read_exact(reader, LENGTH_PREFIX_SIZE)
        if not prefix:
            raise ConnectionClosedError()
        if len(prefix) < LENGTH_PREFIX_SIZE:
            raise IncompleteFrameError("length prefix", len(prefix), LENGTH_PREFIX_SIZE)

        (length,) = _LENGTH.unpack(prefix)
        if length > max_frame_size:
            raise FrameTooLargeError(length, max_frame_size)
        if length == 0:
            return b""

        payload = _read_exact(reader, length)
        if len(payload) < length:
            raise IncompleteFrameError("payload", len(payload), length)
        return payload
    except TimeoutError as e:
        raise IdleTimeoutError(idle_timeout) from e
    except OSError as e:
        raise IoFailure(f"Read failed: {e}") from e


def encode_frame(payload: bytes) -> bytes:
    """Prepend the 4-byte big-endian length to a payload."""
    return _LENGTH.pack(len(payload)) + payload


def write_frame(writer: BinaryIO, payload: bytes) -> None:
    """
    Write one length-prefixed frame to a binary stream.

    The prefix and payload go out in a single write so a frame is never
    split across two transport writes.

    Args:
        writer: Binary stream to write to.
        payload: Frame payload.

    Raises:
        IoFailure: If the transport rejects the write.
    """
    try:
        writer.write(encode_frame(payload))
        flush = getattr(writer, "flush", None)
        if flush is not None:
            flush()
    except OSError as e:
        raise IoFailure(f"Write failed: {e}") from e
