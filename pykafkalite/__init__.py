# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pykafkalite - A minimal Kafka-protocol broker.

Speaks just enough of the Kafka wire protocol for clients to discover
capabilities and look up topics:
- ApiVersions (key 18, v0-v4)
- DescribeTopicPartitions (key 75, v0)

Every other API key is answered with an INVALID_REQUEST error frame.
There is no topic store; every topic is reported as unknown.

Quick Start:
    >>> from pykafkalite import KafkaLiteServer, ServerConfig
    >>>
    >>> server = KafkaLiteServer(ServerConfig(port=9092))
    >>> server.serve_forever()

Handling a payload without a socket:
    >>> from pykafkalite import handle_request, encode_api_versions_request
    >>>
    >>> response = handle_request(encode_api_versions_request(correlation_id=7))
    >>> response[:4]
    b'\\x00\\x00\\x00\\x07'
"""

from .binary import (
    SUPPORTED_APIS,
    ApiVersion,
    ApiVersionsResponse,
    BinaryReader,
    BinaryWriter,
    DescribeTopicPartitionsRequest,
    DescribeTopicPartitionsResponse,
    TopicQuery,
    TopicResult,
    decode_describe_topic_partitions_request,
    encode_api_versions_request,
    encode_api_versions_response,
    encode_describe_topic_partitions_request,
    encode_describe_topic_partitions_response,
    encode_error_response,
)
from .exceptions import (
    ConnectionClosedError,
    FrameTooLargeError,
    IdleTimeoutError,
    IncompleteFrameError,
    IoFailure,
    KafkaLiteError,
    MalformedRequestError,
    UnsupportedOperationError,
)
from .handlers import (
    HANDLERS,
    dispatch,
    handle_api_versions,
    handle_describe_topic_partitions,
    handle_request,
)
from .models import ServerConfig
from .protocol import (
    MAX_FRAME_SIZE,
    ApiKey,
    ErrorCode,
    RequestHeader,
    encode_frame,
    parse_header,
    read_frame,
    write_frame,
)
from .server import ConnectionWorker, KafkaLiteServer, main

__version__ = "0.1.0"

__all__ = [
    # Server
    "KafkaLiteServer",
    "ConnectionWorker",
    "ServerConfig",
    "main",
    # Framing
    "MAX_FRAME_SIZE",
    "ApiKey",
    "ErrorCode",
    "RequestHeader",
    "encode_frame",
    "parse_header",
    "read_frame",
    "write_frame",
    # Dispatch
    "HANDLERS",
    "dispatch",
    "handle_api_versions",
    "handle_describe_topic_partitions",
    "handle_request",
    # Binary
    "SUPPORTED_APIS",
    "ApiVersion",
    "ApiVersionsResponse",
    "BinaryReader",
    "BinaryWriter",
    "DescribeTopicPartitionsRequest",
    "DescribeTopicPartitionsResponse",
    "TopicQuery",
    "TopicResult",
    "decode_describe_topic_partitions_request",
    "encode_api_versions_request",
    "encode_api_versions_response",
    "encode_describe_topic_partitions_request",
    "encode_describe_topic_partitions_response",
    "encode_error_response",
    # Exceptions
    "KafkaLiteError",
    "IoFailure",
    "ConnectionClosedError",
    "IncompleteFrameError",
    "FrameTooLargeError",
    "IdleTimeoutError",
    "MalformedRequestError",
    "UnsupportedOperationError",
]
