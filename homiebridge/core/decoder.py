"""BTHome service-data decoder.

A payload starts with a 3-byte device-info header, followed by segments.
Each segment starts with a header byte: the low 5 bits give the segment
length (reading id included), the top 3 bits the numeric encoding. The
first segment that fails to decode aborts the whole payload.

Some senders cut the last integer segment short; its value is then read
from the bytes that are present.
"""

from __future__ import annotations

import struct

from homiebridge.core.errors import (
    MalformedAdvertisementError,
    UnknownReadingKindError,
    UnsupportedEncodingError,
)
from homiebridge.core.model import Battery, Humidity, Power, Reading, Temperature, Voltage

HEADER_SIZE = 3

ENCODING_UNSIGNED = 0
ENCODING_SIGNED = 1
ENCODING_FLOAT = 2

_INTEGER_ENCODINGS = {
    (2, ENCODING_UNSIGNED): False,
    (3, ENCODING_UNSIGNED): False,
    (2, ENCODING_SIGNED): True,
    (3, ENCODING_SIGNED): True,
}
_FLOAT_ENCODINGS = {(5, ENCODING_FLOAT): "<f"}

SUPPORTED_ENCODINGS = frozenset(_INTEGER_ENCODINGS) | frozenset(_FLOAT_ENCODINGS)


def _battery(raw: float) -> Reading:
    return Battery(raw)


def _temperature(raw: float) -> Reading:
    return Temperature(raw / 100)


def _humidity(raw: float) -> Reading:
    return Humidity(raw / 100)


def _voltage(raw: float) -> Reading:
    return Voltage(raw / 1000)


def _power(raw: float) -> Reading:
    return Power(raw > 0)


_READING_KINDS = {
    0x01: _battery,
    0x02: _temperature,
    0x03: _humidity,
    0x0C: _voltage,
    0x10: _power,
}


def _decode_value(length: int, encoding: int, value_bytes: bytes, *, offset: int) -> float:
    signed = _INTEGER_ENCODINGS.get((length, encoding))
    if signed is not None:
        if not value_bytes:
            raise MalformedAdvertisementError(f"Segment at offset {offset} has no value bytes")
        return float(int.from_bytes(value_bytes, "little", signed=signed))

    float_format = _FLOAT_ENCODINGS.get((length, encoding))
    if float_format is None:
        raise UnsupportedEncodingError(
            f"Unsupported encoding {encoding} with segment length {length}"
        )
    if len(value_bytes) != struct.calcsize(float_format):
        raise MalformedAdvertisementError(f"Float segment at offset {offset} is truncated")
    (value,) = struct.unpack(float_format, value_bytes)
    return float(value)


def decode_advertisement(data: bytes) -> list[Reading]:
    payload = bytes(data)
    if len(payload) < HEADER_SIZE:
        raise MalformedAdvertisementError(
            f"Payload of {len(payload)} bytes is shorter than the {HEADER_SIZE}-byte header"
        )

    readings: list[Reading] = []
    offset = HEADER_SIZE
    while offset < len(payload):
        segment_offset = offset
        header = payload[offset]
        length = header & 0b11111
        encoding = header >> 5
        offset += 1

        if length == 0:
            raise MalformedAdvertisementError(f"Empty segment at offset {segment_offset}")
        segment = payload[offset : offset + length]
        if not segment:
            raise MalformedAdvertisementError(
                f"Segment at offset {segment_offset} has no reading id"
            )
        offset += length

        reading_id = segment[0]
        raw = _decode_value(length, encoding, segment[1:], offset=segment_offset)

        kind = _READING_KINDS.get(reading_id)
        if kind is None:
            raise UnknownReadingKindError(f"Unknown reading id 0x{reading_id:02x}")
        readings.append(kind(raw))

    return readings
