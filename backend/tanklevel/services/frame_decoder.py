"""
Telemetry frame decoder.

Wire format (hex characters, after cleaning):

    [0:4]   magic header "FEDC"
    [4:6]   protocol version (x10)
    [6:18]  sensor hardware id
    [18:26] session id
    [26:28] sequence order
    [28:32] declared body length (bytes)
    [32:]   body: big-endian signed 32-bit fields, 8 hex chars each

Body field order: temperature (x10), humidity (x10), pm2.5, pm10,
noise (x10), primary reading (mm), signal strength, error code and an
optional secondary reading (mm).

A line may carry a leading ISO-8601 timestamp separated from the payload by
whitespace; otherwise the caller's fallback timestamp (or decode time) is used.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional

from tanklevel.models.frame import SensorType, TelemetryFrame

logger = logging.getLogger(__name__)


MAGIC_HEADER = "FEDC"
HEADER_HEX_LENGTH = 32
FIELD_HEX_LENGTH = 8
MAX_HEX_LENGTH = int(os.getenv("TANKLEVEL_MAX_HEX_LENGTH", "2048"))

# Hardware id -> sensor type. Ids missing here decode as UNREGISTERED.
SENSOR_ID_TYPES = {
    "16098522754E": SensorType.ULTRASONIC,
    "124A7DA90849": SensorType.ULTRASONIC,
    "160985227550": SensorType.PRESSURE,
    "160985227551": SensorType.RADAR,
}

_TIMESTAMPED_LINE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}[\sT]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})?)\s+([0-9A-Fa-f:\s]+)$"
)
_SEPARATORS = re.compile(r"[\s:]")
_HEX = re.compile(r"^[0-9A-F]+$")

_INT32_MAX = 2**31 - 1


class DecodeError(ValueError):
    """Raw input is not a valid telemetry frame."""


class EmptyOrNonString(DecodeError):
    pass


class InvalidHexCharacters(DecodeError):
    pass


class TooShortForHeader(DecodeError):
    pass


class BadMagicHeader(DecodeError):
    pass


class TruncatedField(DecodeError):
    pass


class OversizedPayload(DecodeError):
    pass


def resolve_sensor_type(sensor_id: str) -> SensorType:
    return SENSOR_ID_TYPES.get(sensor_id.upper(), SensorType.UNREGISTERED)


def to_signed32(value: int) -> int:
    """Two's-complement interpretation of an unsigned 32-bit value."""
    if value > _INT32_MAX:
        return value - 2**32
    return value


def rssi_to_dbm(raw: int) -> int:
    """Map the raw signal-strength field onto [-100, 0] dBm (0 means no signal)."""
    if raw == 0:
        return -100
    return max(-100, min(0, -(100 - raw)))


def read_header_field(hex_payload: str, start: int, end: int, name: str) -> int:
    """Unsigned big-endian integer at hex positions [start:end]."""
    chunk = hex_payload[start:end]
    if len(chunk) != end - start:
        raise TruncatedField(
            f"Header field '{name}' needs hex [{start}:{end}], payload has {len(hex_payload)} chars"
        )
    return int(chunk, 16)


def parse_line_timestamp(text: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def split_timestamp(raw_line: str) -> tuple[Optional[datetime], str]:
    """Split an optional leading timestamp off a line."""
    line = raw_line.strip()
    match = _TIMESTAMPED_LINE.match(line)
    if not match:
        return None, line
    timestamp = parse_line_timestamp(match.group(1))
    if timestamp is None:
        logger.debug(f"Unparseable line timestamp '{match.group(1)}', ignoring it")
    return timestamp, match.group(2)


def clean_hex(payload: str) -> str:
    return _SEPARATORS.sub("", payload).upper()


def decode(raw_line, fallback_timestamp: Optional[datetime] = None) -> TelemetryFrame:
    """
    Decode one hex-encoded wire payload.

    Args:
        raw_line: Hex payload, optionally prefixed with an ISO-8601 timestamp.
            Whitespace and ':' separators are ignored, case-insensitive.
        fallback_timestamp: Used when the line has no timestamp of its own

    Returns:
        TelemetryFrame

    Raises:
        DecodeError: one of its subclasses; no partial frame is ever returned
    """
    if not isinstance(raw_line, str) or not raw_line.strip():
        raise EmptyOrNonString(f"Expected a non-empty string, got {type(raw_line).__name__}")

    line_timestamp, payload = split_timestamp(raw_line)
    hex_payload = clean_hex(payload)

    if not hex_payload:
        raise EmptyOrNonString("No payload after removing separators")
    if not _HEX.match(hex_payload):
        raise InvalidHexCharacters(f"Payload contains non-hex characters: {payload[:40]!r}")
    if len(hex_payload) > MAX_HEX_LENGTH:
        raise OversizedPayload(
            f"Payload is {len(hex_payload)} hex chars, maximum is {MAX_HEX_LENGTH}"
        )
    if len(hex_payload) < HEADER_HEX_LENGTH:
        raise TooShortForHeader(
            f"Payload is {len(hex_payload)} hex chars, header needs {HEADER_HEX_LENGTH}"
        )

    header = hex_payload[0:4]
    if header != MAGIC_HEADER:
        raise BadMagicHeader(f"Expected header {MAGIC_HEADER}, got {header}")

    version = read_header_field(hex_payload, 4, 6, "version")
    sensor_id = hex_payload[6:18]
    session_id = read_header_field(hex_payload, 18, 26, "session_id")
    sequence_order = read_header_field(hex_payload, 26, 28, "sequence_order")
    declared_length = read_header_field(hex_payload, 28, 32, "declared_length")

    # Body fields are optional: stop at the first incomplete field
    fields = []
    position = HEADER_HEX_LENGTH
    while position + FIELD_HEX_LENGTH <= len(hex_payload):
        fields.append(to_signed32(int(hex_payload[position:position + FIELD_HEX_LENGTH], 16)))
        position += FIELD_HEX_LENGTH

    def field_at(index: int, scale: Optional[float] = None):
        if index >= len(fields):
            return None
        if scale is None:
            return fields[index]
        return fields[index] / scale

    if line_timestamp is not None:
        timestamp, timestamp_source = line_timestamp, "line"
    elif fallback_timestamp is not None:
        # Naive fallbacks are UTC, like naive line timestamps
        if fallback_timestamp.tzinfo is None:
            fallback_timestamp = fallback_timestamp.replace(tzinfo=timezone.utc)
        timestamp, timestamp_source = fallback_timestamp, "fallback"
    else:
        timestamp, timestamp_source = datetime.now(timezone.utc), "decode_time"

    rssi_raw = field_at(6)
    sensor_type = resolve_sensor_type(sensor_id)
    if sensor_type is SensorType.UNREGISTERED:
        logger.debug(f"Sensor id {sensor_id} not in lookup table, treating as ultrasonic")

    frame = TelemetryFrame(
        header=header,
        protocol_version=version / 10,
        sensor_id=sensor_id,
        sensor_type=sensor_type,
        session_id=session_id,
        sequence_order=sequence_order,
        declared_length=declared_length,
        timestamp=timestamp,
        raw_hex=hex_payload,
        fields=tuple(fields),
        temperature=field_at(0, 10),
        humidity=field_at(1, 10),
        pm2_5=field_at(2),
        pm10=field_at(3),
        noise=field_at(4, 10),
        primary_reading=field_at(5, 1000),
        signal_rssi_raw=rssi_raw,
        signal_rssi_dbm=rssi_to_dbm(rssi_raw) if rssi_raw is not None else None,
        error_code=field_at(7),
        secondary_reading=field_at(8, 1000),
        timestamp_source=timestamp_source,
    )

    if not frame.declared_length_matches:
        logger.debug(
            f"Frame {sensor_id}: declared length {declared_length} != body bytes {frame.body_length}"
        )
    return frame


def try_decode(raw_line, fallback_timestamp: Optional[datetime] = None) -> Optional[TelemetryFrame]:
    """Like decode(), but returns None for invalid input."""
    try:
        return decode(raw_line, fallback_timestamp)
    except DecodeError as e:
        logger.debug(f"Discarding undecodable line: {e}")
        return None
