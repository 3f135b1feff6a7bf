# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Custom exceptions for the pykafkalite broker.

All exceptions inherit from KafkaLiteError, so a connection worker can catch
every broker-level failure with a single except clause:

    try:
        payload = read_frame(reader)
    except KafkaLiteError as e:
        logger.warning("closing connection: %s", e)

The hierarchy mirrors how each failure is handled on the wire:

- IoFailure and its subclasses terminate the connection.
- MalformedRequestError terminates the connection without a response.
- UnsupportedOperationError is answered with a minimal error frame.
"""

from __future__ import annotations


class KafkaLiteError(Exception):
    """
    Base exception for all pykafkalite errors.

    Carries an optional hint that is appended to the message, so log lines
    tell the operator what to look at next.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.hint = hint
        if hint:
            message = f"{message}\n\n  Hint: {hint}"
        super().__init__(message)


class IoFailure(KafkaLiteError):
    """
    Raised when reading from or writing to a connection fails.

    Common causes:
    - Peer closed the socket
    - Peer sent a partial frame and went away
    - Declared frame length is absurdly large
    - Connection sat idle past the configured timeout
    """


class ConnectionClosedError(IoFailure):
    """Raised when the peer closes the connection between frames."""

    def __init__(self, message: str = "Connection closed by peer") -> None:
        super().__init__(message)


class IncompleteFrameError(IoFailure):
    """Raised when the stream ends in the middle of a frame."""

    def __init__(self, part: str, received: int, expected: int) -> None:
        self.part = part
        self.received = received
        self.expected = expected
        super().__init__(
            f"Incomplete {part}: got {received} bytes, expected {expected}",
            hint="The client disconnected mid-request or is not speaking the Kafka protocol",
        )


class FrameTooLargeError(IoFailure):
    """
    Raised when a frame's declared length exceeds the configured maximum.

    The length prefix is read before any payload is buffered, so a garbled or
    hostile prefix is rejected without allocating the declared size.
    """

    def __init__(self, size: int, max_size: int) -> None:
        self.size = size
        self.max_size = max_size
        super().__init__(
            f"Frame too large: {size} bytes, maximum is {max_size} bytes",
            hint="Raise max_frame_size if legitimate clients send larger requests",
        )


class IdleTimeoutError(IoFailure):
    """Raised when a connection produces no data within the idle timeout."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout
        if timeout is None:
            message = "Connection timed out waiting for data"
        else:
            message = f"Connection idle for more than {timeout} seconds"
        super().__init__(message)


class MalformedRequestError(KafkaLiteError):
    """
    Raised when a request payload cannot be parsed.

    This happens when:
    - The payload is shorter than the 8-byte request header
    - A length field points past the end of the payload
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UnsupportedOperationError(KafkaLiteError):
    """Raised when a request names an API key the broker does not implement."""

    def __init__(self, api_key: int) -> None:
        self.api_key = api_key
        super().__init__(
            f"Unsupported API key: {api_key}",
            hint="Only ApiVersions (18) and DescribeTopicPartitions (75) are implemented",
        )
