from __future__ import annotations

import struct

import pytest

from homiebridge.core.decoder import decode_advertisement
from homiebridge.core.errors import (
    DecodeError,
    MalformedAdvertisementError,
    UnknownReadingKindError,
    UnsupportedEncodingError,
)
from homiebridge.core.model import Battery, Humidity, Power, Temperature, Voltage
from homiebridge.core.publisher import encode_value

HEADER = bytes([0x40, 0x00, 0x00])


def _segment(encoding: int, reading_id: int, value: bytes) -> bytes:
    length = 1 + len(value)
    return bytes([(encoding << 5) | length, reading_id]) + value


def test_battery_example() -> None:
    assert decode_advertisement(HEADER + bytes([0x03, 0x01, 0x55])) == [Battery(85.0)]


def test_temperature_example() -> None:
    assert decode_advertisement(HEADER + bytes([0x03, 0x02, 0xC4, 0x09])) == [Temperature(25.0)]


def test_header_only_yields_no_readings() -> None:
    assert decode_advertisement(HEADER) == []


@pytest.mark.parametrize(
    ("encoding", "fmt", "raw"),
    [
        (0, "<B", 200),
        (0, "<H", 51234),
        (1, "<b", -100),
        (1, "<h", -31000),
        (2, "<f", 12.5),
    ],
)
def test_supported_encodings_roundtrip(encoding: int, fmt: str, raw: float) -> None:
    data = HEADER + _segment(encoding, 0x01, struct.pack(fmt, raw))
    assert decode_advertisement(data) == [Battery(float(raw))]


def test_scaling_per_reading_kind() -> None:
    data = (
        HEADER
        + _segment(1, 0x02, struct.pack("<h", -550))
        + _segment(0, 0x03, struct.pack("<H", 4520))
        + _segment(0, 0x0C, struct.pack("<H", 3012))
        + _segment(0, 0x10, bytes([1]))
        + _segment(0, 0x10, bytes([0]))
    )
    readings = decode_advertisement(data)

    assert [type(r) for r in readings[:3]] == [Temperature, Humidity, Voltage]
    assert readings[0].value == pytest.approx(-5.5)
    assert readings[1].value == pytest.approx(45.2)
    assert readings[2].value == pytest.approx(3.012)
    assert readings[3] == Power(True)
    assert readings[4] == Power(False)


def test_float_encoding_is_scaled() -> None:
    data = HEADER + _segment(2, 0x02, struct.pack("<f", 2150.0))
    (reading,) = decode_advertisement(data)
    assert isinstance(reading, Temperature)
    assert reading.value == pytest.approx(21.5)


def test_unknown_reading_id_discards_whole_payload() -> None:
    data = HEADER + _segment(0, 0x01, bytes([0x55])) + _segment(0, 0x99, bytes([0x01]))
    with pytest.raises(UnknownReadingKindError):
        decode_advertisement(data)


@pytest.mark.parametrize(
    "segment",
    [
        bytes([0x04, 0x01, 0x00, 0x00, 0x00]),  # unsigned, 3 value bytes
        bytes([0x42, 0x01, 0x00]),  # float with one value byte
        bytes([0x62, 0x01, 0x00]),  # encoding 3
        bytes([0x01, 0x01]),  # reading id only
    ],
)
def test_unsupported_encodings_rejected(segment: bytes) -> None:
    with pytest.raises(UnsupportedEncodingError):
        decode_advertisement(HEADER + segment)


def test_encoding_checked_before_reading_id() -> None:
    with pytest.raises(UnsupportedEncodingError):
        decode_advertisement(HEADER + bytes([0x04, 0x99, 0x00, 0x00, 0x00]))


def test_short_header_is_malformed() -> None:
    with pytest.raises(MalformedAdvertisementError):
        decode_advertisement(b"\x40\x00")


def test_zero_length_segment_is_malformed() -> None:
    with pytest.raises(MalformedAdvertisementError):
        decode_advertisement(HEADER + bytes([0x00]))


def test_truncated_float_is_malformed() -> None:
    with pytest.raises(MalformedAdvertisementError):
        decode_advertisement(HEADER + bytes([0x45, 0x01, 0x00, 0x00]))


def test_all_decode_errors_share_base_class() -> None:
    with pytest.raises(DecodeError):
        decode_advertisement(HEADER + bytes([0x02, 0x42, 0x00]))


@pytest.mark.parametrize(
    ("reading_id", "raw", "expected"),
    [
        (0x02, 57, b"0.57"),
        (0x02, 2151, b"21.51"),
        (0x03, 4999, b"49.99"),
        (0x0C, 3012, b"3.012"),
    ],
)
def test_scaled_values_encode_as_short_decimals(reading_id: int, raw: int, expected: bytes) -> None:
    [reading] = decode_advertisement(HEADER + _segment(0, reading_id, struct.pack("<H", raw)))
    assert encode_value(reading.value) == expected
