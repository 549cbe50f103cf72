"""
Tests for batch decoding of gateway logs.
"""

from datetime import datetime, timezone

import pytest
from numpy.testing import assert_allclose

from tanklevel.services.log_reader import FRAME_COLUMNS, decode_log_file, decode_log_lines


FRAME_HEX = (
    "FEDC0A16098522754E00000001030020"
    "000000FA000001F40000000A00000014000001C200000BB80000001F00000000"
)


def _spaced(hex_string):
    return " ".join(hex_string[i:i + 2] for i in range(0, len(hex_string), 2))


@pytest.fixture
def log_lines():
    """Mixed gateway, timestamped, bare and garbage lines."""
    return [
        "2025-06-22 14:17:53.950 [nioEventLoopGroup-3-1] INFO  i.e.processors.IoTByteProcessor"
        " - PORT[WeatherS-8700] Bytes in Hex: " + _spaced(FRAME_HEX),
        "2025-06-22 14:17:50.000 [nioEventLoopGroup-3-1] INFO  connection accepted",
        "2025-06-22T14:20:00Z " + FRAME_HEX,
        "",
        FRAME_HEX.lower(),
        "2025-06-22 14:21:00.000 [main] WARN - Bytes in Hex: AB CD 00 00",
    ]


class TestDecodeLogLines:
    """Tests for decode_log_lines."""

    def test_decodes_valid_lines(self, log_lines):
        df = decode_log_lines(log_lines)

        assert len(df) == 3
        assert list(df.columns) == FRAME_COLUMNS
        assert df.attrs["decoded"] == 3
        assert df.attrs["skipped"] == 2
        assert list(df["line_number"]) == [1, 3, 5]
        assert_allclose(df["primary_reading"].to_numpy(dtype=float), [3.0, 3.0, 3.0])

    def test_gateway_timestamp_used(self, log_lines):
        df = decode_log_lines(log_lines)
        first = df.iloc[0]

        assert first["timestamp"] == datetime(2025, 6, 22, 14, 17, 53, 950000, tzinfo=timezone.utc)
        assert first["timestamp_source"] == "fallback"
        assert first["sensor_type"] == "ultrasonic_level_sensor"

    def test_fallback_for_bare_lines(self, log_lines):
        fallback = datetime(2025, 1, 1, tzinfo=timezone.utc)
        df = decode_log_lines(log_lines, fallback_timestamp=fallback)

        assert df.iloc[1]["timestamp_source"] == "line"
        assert df.iloc[2]["timestamp"] == fallback

    def test_nothing_decodable(self):
        df = decode_log_lines(["garbage", "FEDC", ""])

        assert df.empty
        assert list(df.columns) == FRAME_COLUMNS
        assert df.attrs["skipped"] == 2


class TestDecodeLogFile:
    """Tests for decode_log_file."""

    def test_reads_file(self, log_lines, tmp_path):
        log_file = tmp_path / "gateway.log"
        log_file.write_text("\n".join(log_lines) + "\n")

        df = decode_log_file(log_file)

        assert len(df) == 3
        assert df.attrs["source_file"] == str(log_file)
        assert (df["sensor_id"] == "16098522754E").all()
