# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Tests for dispatch and the ApiVersions / DescribeTopicPartitions handlers."""

import struct
from types import MappingProxyType

import pytest

from pykafkalite.binary import (
    encode_api_versions_request,
    encode_describe_topic_partitions_request,
)
from pykafkalite.exceptions import MalformedRequestError, UnsupportedOperationError
from pykafkalite.handlers import (
    HANDLERS,
    dispatch,
    handle_api_versions,
    handle_describe_topic_partitions,
    handle_request,
)
from pykafkalite.protocol import RequestHeader


def _error_code(response: bytes) -> int:
    return struct.unpack_from(">h", response, 4)[0]


class TestDispatch:
    """Tests for the dispatch table."""

    def test_supported_keys(self) -> None:
        """Test both served API keys resolve to their handlers."""
        assert dispatch(18) is handle_api_versions
        assert dispatch(75) is handle_describe_topic_partitions

    @pytest.mark.parametrize("api_key", [0, 1, 3, 17, 19, 74, 76, 0xFFFF])
    def test_unsupported_keys(self, api_key: int) -> None:
        """Test any other key is rejected."""
        with pytest.raises(UnsupportedOperationError) as exc_info:
            dispatch(api_key)
        assert exc_info.value.api_key == api_key

    def test_all_other_u16_values_rejected(self) -> None:
        """Test the table is closed over the full 16-bit key space."""
        supported = {k for k in range(0x10000) if k in HANDLERS}
        assert supported == {18, 75}

    def test_table_is_read_only(self) -> None:
        """Test the shared table cannot be mutated at runtime."""
        assert isinstance(HANDLERS, MappingProxyType)
        with pytest.raises(TypeError):
            HANDLERS[3] = handle_api_versions  # type: ignore[index]

    def test_custom_table(self) -> None:
        """Test an explicit table can be passed in."""
        table = MappingProxyType({3: handle_api_versions})
        assert dispatch(3, table) is handle_api_versions
        with pytest.raises(UnsupportedOperationError):
            dispatch(18, table)


class TestApiVersions:
    """Tests for the ApiVersions handler."""

    def test_version_4_scenario(self) -> None:
        """Test the full response to a v4 request with correlation id 7."""
        payload = bytes.fromhex("0012000400000007") + b"\x00\x00\x00"
        response = handle_request(payload)
        assert response == bytes.fromhex(
            "00000007" "0000" "03"
            "0012" "0003" "0004" "00"
            "004b" "0000" "0000" "00"
            "00000000" "00"
        )

    @pytest.mark.parametrize("version", [0, 1, 2, 3, 4])
    def test_supported_versions(self, version: int) -> None:
        """Test versions 0 through 4 succeed."""
        response = handle_request(encode_api_versions_request(1, api_version=version))
        assert _error_code(response) == 0

    @pytest.mark.parametrize("version", [-32768, -2, -1, 5, 7, 32767])
    def test_unsupported_versions(self, version: int) -> None:
        """Test versions outside [0, 4], including negatives, get error 35."""
        response = handle_request(encode_api_versions_request(1, api_version=version))
        assert _error_code(response) == 35

    def test_version_7_scenario(self) -> None:
        """Test a version-7 request returns 00 23 in the error code field."""
        response = handle_request(bytes.fromhex("0012000700000007"))
        assert response[4:6] == b"\x00\x23"

    def test_descriptors_always_listed(self) -> None:
        """Test the API list is present even with an error code."""
        ok = handle_api_versions(RequestHeader(18, 4, 1), b"")
        bad = handle_api_versions(RequestHeader(18, 9, 1), b"")
        assert ok[6:] == bad[6:]
        assert ok[6] == 3
        assert struct.unpack_from(">hhh", ok, 7) == (18, 3, 4)
        assert struct.unpack_from(">hhh", ok, 14) == (75, 0, 0)


class TestDescribeTopicPartitions:
    """Tests for the DescribeTopicPartitions handler."""

    def test_single_topic(self) -> None:
        """Test a request for "foo" reports it as an unknown topic."""
        payload = encode_describe_topic_partitions_request(11, ["foo"], client_id="kafka-cli")
        response = handle_request(payload)

        assert response[:4] == b"\x00\x00\x00\x0b"
        assert response[4] == 0  # header tagged fields
        assert response[5:9] == b"\x00\x00\x00\x00"  # throttle time
        assert response[9] == 2  # one topic
        assert response[10:12] == b"\x00\x03"
        assert response[12:16] == b"\x04foo"
        assert response[16:32] == b"\x00" * 16
        assert response[32] == 0  # is internal
        assert response[33] == 1  # empty partitions
        assert response[34:38] == b"\x00\x00\x0d\xf8"
        assert response[38] == 0
        assert response[39:] == b"\xff\x00"

    def test_multiple_topics_echo_names_in_order(self) -> None:
        """Test every requested topic is echoed, in request order."""
        names = ["alpha", "b", "topic-with-a-longer-name"]
        response = handle_request(encode_describe_topic_partitions_request(2, names))
        assert response[9] == len(names) + 1

        offset = 10
        echoed = []
        for _ in names:
            assert response[offset:offset + 2] == b"\x00\x03"
            length = response[offset + 2] - 1
            echoed.append(response[offset + 3:offset + 3 + length].decode())
            offset += 3 + length + 16 + 1 + 1 + 4 + 1
        assert echoed == names
        assert response[offset:] == b"\xff\x00"

    def test_non_utf8_name_echoed_byte_exact(self) -> None:
        """Test a topic name that is not valid UTF-8 is echoed byte for byte."""
        response = handle_request(encode_describe_topic_partitions_request(6, [b"\xff\xfe"]))
        assert response[10:12] == b"\x00\x03"
        assert response[12:15] == b"\x03\xff\xfe"
        assert response[15:31] == b"\x00" * 16
        assert response[-2:] == b"\xff\x00"

    def test_zero_topics(self) -> None:
        """Test a request naming no topics yields an empty topic array."""
        response = handle_request(encode_describe_topic_partitions_request(4, []))
        assert response == bytes.fromhex("00000004" "00" "00000000" "01" "ff" "00")

    def test_null_topic_array(self) -> None:
        """Test a null topic array does not underflow the count."""
        payload = bytes.fromhex("004b000000000004" "0000" "00" "00")
        response = handle_request(payload)
        assert response == bytes.fromhex("00000004" "00" "00000000" "01" "ff" "00")

    def test_identical_queries_identical_results(self) -> None:
        """Test results are fabricated deterministically."""
        payload = encode_describe_topic_partitions_request(8, ["foo", "bar"])
        assert handle_request(payload) == handle_request(payload)

    def test_truncated_body(self) -> None:
        """Test a body that stops mid-field is malformed."""
        payload = encode_describe_topic_partitions_request(8, ["foo"])
        with pytest.raises(MalformedRequestError):
            handle_request(payload[:14])


class TestHandleRequest:
    """Tests for the request-level entry point."""

    @pytest.mark.parametrize("correlation_id", [0, 1, 7, 2**31 - 1, -1, -(2**31)])
    def test_correlation_id_echoed(self, correlation_id: int) -> None:
        """Test every operation echoes the correlation id unchanged."""
        expected = struct.pack(">i", correlation_id)
        for payload in (
            encode_api_versions_request(correlation_id),
            encode_describe_topic_partitions_request(correlation_id, ["x"]),
            RequestHeader(0, 0, correlation_id).to_bytes(),
        ):
            assert handle_request(payload)[:4] == expected

    def test_unsupported_operation_error_frame(self) -> None:
        """Test an unknown key is answered with a minimal error frame."""
        response = handle_request(RequestHeader(3, 12, 99).to_bytes())
        assert response == bytes.fromhex("00000063" "002a")

    @pytest.mark.parametrize("size", [0, 3, 7])
    def test_short_header(self, size: int) -> None:
        """Test payloads shorter than the header are malformed."""
        with pytest.raises(MalformedRequestError):
            handle_request(b"\x00" * size)
