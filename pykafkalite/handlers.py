# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Request handlers and the API key dispatch table.

A handler takes the parsed header and the full request payload and returns
the response payload (correlation id first, no length prefix).
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Mapping

from .binary import (
    API_VERSIONS_MAX_VERSION,
    API_VERSIONS_MIN_VERSION,
    ApiVersionsResponse,
    DescribeTopicPartitionsResponse,
    TopicResult,
    decode_describe_topic_partitions_request,
    encode_api_versions_response,
    encode_describe_topic_partitions_response,
    encode_error_response,
)
from .exceptions import UnsupportedOperationError
from .protocol import REQUEST_HEADER_SIZE, ApiKey, ErrorCode, RequestHeader, parse_header

logger = logging.getLogger(__name__)

Handler = Callable[[RequestHeader, bytes], bytes]


def handle_api_versions(header: RequestHeader, payload: bytes) -> bytes:
    """
    Answer an ApiVersions request.

    Versions outside [0, 4] get UNSUPPORTED_VERSION; the advertised API list
    is sent either way so the client can pick a version and retry.
    """
    if API_VERSIONS_MIN_VERSION <= header.api_version <= API_VERSIONS_MAX_VERSION:
        error_code = ErrorCode.NONE
    else:
        error_code = ErrorCode.UNSUPPORTED_VERSION
        logger.debug("ApiVersions v%d not supported", header.api_version)

    return encode_api_versions_response(
        ApiVersionsResponse(correlation_id=header.correlation_id, error_code=error_code)
    )


def handle_describe_topic_partitions(header: RequestHeader, payload: bytes) -> bytes:
    """
    Answer a DescribeTopicPartitions request.

    No topic store exists, so every named topic is reported as
    UNKNOWN_TOPIC_OR_PARTITION with a zero topic id and no partitions.
    """
    request = decode_describe_topic_partitions_request(payload, REQUEST_HEADER_SIZE)
    logger.debug(
        "DescribeTopicPartitions client_id=%r topics=%s",
        request.client_id,
        [t.name for t in request.topics],
    )

    topics = [TopicResult(name=query.name) for query in request.topics]
    return encode_describe_topic_partitions_response(
        DescribeTopicPartitionsResponse(correlation_id=header.correlation_id, topics=topics)
    )


HANDLERS: Mapping[int, Handler] = MappingProxyType({
    ApiKey.API_VERSIONS: handle_api_versions,
    ApiKey.DESCRIBE_TOPIC_PARTITIONS: handle_describe_topic_partitions,
})


def dispatch(api_key: int, handlers: Mapping[int, Handler] = HANDLERS) -> Handler:
    """
    Look up the handler for an API key.

    Raises:
        UnsupportedOperationError: If no handler is registered for the key.
    """
    try:
        return handlers[api_key]
    except KeyError:
        raise UnsupportedOperationError(api_key) from None


def handle_request(payload: bytes, handlers: Mapping[int, Handler] = HANDLERS) -> bytes:
    """
    Turn one request payload into one response payload.

    An unknown API key still has a readable correlation id, so it is answered
    with a minimal INVALID_REQUEST error frame instead of a dropped
    connection.

    Raises:
        MalformedRequestError: If the header or body cannot be parsed.
    """
    header, _ = parse_header(payload)
    try:
        handler = dispatch(header.api_key, handlers)
    except UnsupportedOperationError as e:
        logger.warning(
            "Unsupported API key %d (correlation_id=%d)", e.api_key, header.correlation_id
        )
        return encode_error_response(header.correlation_id, ErrorCode.INVALID_REQUEST)
    return handler(header, payload)
