# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Kafka Binary Encoding/Decoding.

This module provides a small typed writer/reader pair plus the request and
response codecs for the operations the broker serves.

Binary Format Conventions:
- All multi-byte integers are big-endian
- Compact strings/arrays store (length + 1) as an unsigned varint; 0 = null
- Legacy nullable strings store a 2-byte signed length; -1 = null
- Tagged fields are a varint count followed by (tag, size, data) entries;
  a single 0x00 byte means "no tagged fields"
- UUIDs are 16 raw bytes
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from .exceptions import MalformedRequestError
from .protocol import ApiKey, ErrorCode, RequestHeader

# Placeholder values for topic metadata; there is no topic store.
ZERO_UUID: bytes = bytes(16)
NO_NEXT_CURSOR: int = 0xFF
DEFAULT_AUTHORIZED_OPERATIONS: int = 0x00000DF8


# =============================================================================
# Writer / Reader
# =============================================================================

class BinaryWriter:
    """Accumulates big-endian protocol fields into a byte buffer."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def to_bytes(self) -> bytes:
        return bytes(self._buf)

    def write_int8(self, value: int) -> BinaryWriter:
        self._buf += struct.pack(">b", value)
        return self

    def write_uint8(self, value: int) -> BinaryWriter:
        self._buf += struct.pack(">B", value)
        return self

    def write_int16(self, value: int) -> BinaryWriter:
        self._buf += struct.pack(">h", value)
        return self

    def write_int32(self, value: int) -> BinaryWriter:
        self._buf += struct.pack(">i", value)
        return self

    def write_uint32(self, value: int) -> BinaryWriter:
        self._buf += struct.pack(">I", value)
        return self

    def write_bool(self, value: bool) -> BinaryWriter:
        return self.write_uint8(1 if value else 0)

    def write_raw(self, data: bytes) -> BinaryWriter:
        self._buf += data
        return self

    def write_unsigned_varint(self, value: int) -> BinaryWriter:
        if value < 0:
            raise ValueError(f"Unsigned varint cannot be negative: {value}")
        while value > 0x7F:
            self._buf.append((value & 0x7F) | 0x80)
            value >>= 7
        self._buf.append(value)
        return self

    def write_nullable_string(self, value: str | None) -> BinaryWriter:
        """Write a legacy string: 2-byte signed length (-1 = null) then the bytes."""
        if value is None:
            return self.write_int16(-1)
        data = value.encode("utf-8")
        self.write_int16(len(data))
        return self.write_raw(data)

    def write_compact_string(self, value: str | bytes | None) -> BinaryWriter:
        """Write a compact nullable string: varint(len + 1) then the bytes."""
        if value is None:
            return self.write_unsigned_varint(0)
        data = value.encode("utf-8") if isinstance(value, str) else value
        self.write_unsigned_varint(len(data) + 1)
        return self.write_raw(data)

    def write_compact_array_length(self, count: int | None) -> BinaryWriter:
        return self.write_unsigned_varint(0 if count is None else count + 1)

    def write_uuid(self, value: bytes) -> BinaryWriter:
        if len(value) != 16:
            raise ValueError(f"UUID must be 16 bytes, got {len(value)}")
        return self.write_raw(value)

    def write_tagged_fields(self) -> BinaryWriter:
        """Write an empty tagged-field section."""
        return self.write_unsigned_varint(0)


class BinaryReader:
    """
    Bounds-checked cursor over a request payload.

    Every read past the end of the buffer raises MalformedRequestError, so a
    truncated or lying request never turns into an IndexError deep in a
    handler.
    """

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = data
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def _take(self, size: int, what: str) -> bytes:
        if size < 0 or self.offset + size > len(self._data):
            raise MalformedRequestError(
                f"Truncated {what}: need {size} bytes at offset {self.offset}, "
                f"payload is {len(self._data)} bytes"
            )
        chunk = self._data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def read_uint8(self) -> int:
        return self._take(1, "int8")[0]

    def read_int16(self) -> int:
        return struct.unpack(">h", self._take(2, "int16"))[0]

    def read_uint16(self) -> int:
        return struct.unpack(">H", self._take(2, "uint16"))[0]

    def read_int32(self) -> int:
        return struct.unpack(">i", self._take(4, "int32"))[0]

    def read_bytes(self, size: int) -> bytes:
        return self._take(size, "bytes")

    def read_unsigned_varint(self) -> int:
        value = 0
        shift = 0
        while True:
            b = self._take(1, "varint")[0]
            value |= (b & 0x7F) << shift
            if not (b & 0x80):
                return value
            shift += 7
            if shift > 28:
                raise MalformedRequestError("Varint is longer than 5 bytes")

    def read_nullable_string(self) -> str | None:
        """Read a legacy string with a 2-byte signed length (-1 = null)."""
        length = self.read_int16()
        if length == -1:
            return None
        if length < 0:
            raise MalformedRequestError(f"Invalid string length: {length}")
        return self._take(length, "string").decode("utf-8", errors="replace")

    def read_compact_bytes(self) -> bytes | None:
        """Read a compact nullable string as raw bytes, without decoding."""
        length = self.read_unsigned_varint()
        if length == 0:
            return None
        return self._take(length - 1, "compact string")

    def read_compact_string(self) -> str | None:
        """Read a compact nullable string (varint len + 1, 0 = null)."""
        raw = self.read_compact_bytes()
        return None if raw is None else raw.decode("utf-8", errors="replace")

    def read_compact_array_length(self) -> int:
        """Read a compact array length; a null array counts as empty."""
        length = self.read_unsigned_varint()
        return 0 if length == 0 else length - 1

    def skip_tagged_fields(self) -> None:
        count = self.read_unsigned_varint()
        for _ in range(count):
            self.read_unsigned_varint()  # tag
            size = self.read_unsigned_varint()
            self._take(size, "tagged field")


# =============================================================================
# ApiVersions (key 18)
# =============================================================================

API_VERSIONS_MIN_VERSION: int = 0
API_VERSIONS_MAX_VERSION: int = 4


@dataclass(frozen=True)
class ApiVersion:
    """One advertised API key and the version range it supports."""
    api_key: int
    min_version: int
    max_version: int


SUPPORTED_APIS: tuple[ApiVersion, ...] = (
    ApiVersion(ApiKey.API_VERSIONS, 3, 4),
    ApiVersion(ApiKey.DESCRIBE_TOPIC_PARTITIONS, 0, 0),
)


@dataclass
class ApiVersionsResponse:
    """ApiVersions response body."""
    correlation_id: int
    error_code: int = ErrorCode.NONE
    api_keys: tuple[ApiVersion, ...] = SUPPORTED_APIS
    throttle_time_ms: int = 0


def encode_api_versions_request(
    correlation_id: int,
    api_version: int = API_VERSIONS_MAX_VERSION,
    client_id: str | None = "pykafkalite",
    software_name: str = "pykafkalite",
    software_version: str = "0.1.0",
) -> bytes:
    """
    Build a full ApiVersions request payload (no length prefix).

    Format:
        [8B header][2B client_id_len][client_id][tagged]
        [varint len+1][software_name][varint len+1][software_version][tagged]
    """
    w = BinaryWriter()
    w.write_raw(RequestHeader(ApiKey.API_VERSIONS, api_version, correlation_id).to_bytes())
    w.write_nullable_string(client_id)
    w.write_tagged_fields()
    w.write_compact_string(software_name)
    w.write_compact_string(software_version)
    w.write_tagged_fields()
    return w.to_bytes()


def encode_api_versions_response(resp: ApiVersionsResponse) -> bytes:
    """
    Encode ApiVersions response (header v0 + body v3/v4).

    Format:
        [4B correlation_id][2B error_code][varint N+1]
        N x ([2B api_key][2B min][2B max][tagged])
        [4B throttle_time_ms][tagged]
    """
    w = BinaryWriter()
    w.write_int32(resp.correlation_id)
    w.write_int16(resp.error_code)
    w.write_compact_array_length(len(resp.api_keys))
    for api in resp.api_keys:
        w.write_int16(api.api_key)
        w.write_int16(api.min_version)
        w.write_int16(api.max_version)
        w.write_tagged_fields()
    w.write_int32(resp.throttle_time_ms)
    w.write_tagged_fields()
    return w.to_bytes()


# =============================================================================
# DescribeTopicPartitions (key 75)
# =============================================================================

@dataclass(frozen=True)
class TopicQuery:
    """A topic named in a DescribeTopicPartitions request.

    The name is kept as the raw bytes the client sent so it can be echoed
    back unchanged, even when it is not valid UTF-8.
    """
    name: bytes | None


@dataclass
class DescribeTopicPartitionsRequest:
    """DescribeTopicPartitions request (header v2 tail + body v0)."""
    client_id: str | None
    topics: list[TopicQuery] = field(default_factory=list)


def decode_describe_topic_partitions_request(
    data: bytes, offset: int
) -> DescribeTopicPartitionsRequest:
    """
    Decode DescribeTopicPartitions request starting after the 8-byte header.

    Format:
        [2B client_id_len][client_id][tagged]
        [varint N+1] N x ([varint len+1][name][tagged])
        ...partition limit and cursor are not read
    """
    r = BinaryReader(data, offset)
    client_id = r.read_nullable_string()
    r.skip_tagged_fields()

    topics = []
    for _ in range(r.read_compact_array_length()):
        name = r.read_compact_bytes()
        r.skip_tagged_fields()
        topics.append(TopicQuery(name=name))

    return DescribeTopicPartitionsRequest(client_id=client_id, topics=topics)


def encode_describe_topic_partitions_request(
    correlation_id: int,
    topics: list[str | bytes],
    client_id: str | None = None,
    api_version: int = 0,
) -> bytes:
    """Build a full DescribeTopicPartitions request payload (no length prefix)."""
    w = BinaryWriter()
    w.write_raw(RequestHeader(ApiKey.DESCRIBE_TOPIC_PARTITIONS, api_version, correlation_id).to_bytes())
    w.write_nullable_string(client_id)
    w.write_tagged_fields()
    w.write_compact_array_length(len(topics))
    for name in topics:
        w.write_compact_string(name)
        w.write_tagged_fields()
    w.write_int32(100)  # response_partition_limit
    w.write_uint8(NO_NEXT_CURSOR)  # cursor = null
    w.write_tagged_fields()
    return w.to_bytes()


@dataclass(frozen=True)
class TopicResult:
    """Per-topic entry in a DescribeTopicPartitions response."""
    name: str | bytes | None
    error_code: int = ErrorCode.UNKNOWN_TOPIC_OR_PARTITION
    topic_id: bytes = ZERO_UUID
    is_internal: bool = False
    partitions: tuple = ()
    authorized_operations: int = DEFAULT_AUTHORIZED_OPERATIONS


@dataclass
class DescribeTopicPartitionsResponse:
    """DescribeTopicPartitions response body."""
    correlation_id: int
    topics: list[TopicResult] = field(default_factory=list)
    throttle_time_ms: int = 0


def encode_describe_topic_partitions_response(resp: DescribeTopicPartitionsResponse) -> bytes:
    """
    Encode DescribeTopicPartitions response (header v1 + body v0).

    Format:
        [4B correlation_id][tagged]
        [4B throttle_time_ms][varint N+1]
        N x ([2B error_code][varint len+1][name][16B topic_id][1B is_internal]
             [varint 0+1 partitions][4B authorized_ops][tagged])
        [1B next_cursor=0xFF][tagged]
    """
    w = BinaryWriter()
    w.write_int32(resp.correlation_id)
    w.write_tagged_fields()
    w.write_int32(resp.throttle_time_ms)
    w.write_compact_array_length(len(resp.topics))
    for topic in resp.topics:
        w.write_int16(topic.error_code)
        w.write_compact_string(topic.name)
        w.write_uuid(topic.topic_id)
        w.write_bool(topic.is_internal)
        w.write_compact_array_length(len(topic.partitions))
        w.write_uint32(topic.authorized_operations)
        w.write_tagged_fields()
    w.write_uint8(NO_NEXT_CURSOR)
    w.write_tagged_fields()
    return w.to_bytes()


# =============================================================================
# Error Response
# =============================================================================

def encode_error_response(correlation_id: int, error_code: int) -> bytes:
    """
    Encode the minimal reply sent for API keys the broker does not serve.

    Format: [4B correlation_id][2B error_code]
    """
    return BinaryWriter().write_int32(correlation_id).write_int16(error_code).to_bytes()
