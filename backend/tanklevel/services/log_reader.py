"""
Batch decoding of gateway log files into a DataFrame.

Accepted line formats:
- gateway log:  2025-06-22 14:17:53.950 [thread] INFO ... Bytes in Hex: FE DC 01 ...
- timestamped:  2025-06-22T14:17:53Z FEDC01...
- bare hex:     FEDC01...

Lines that do not decode are skipped and counted in `df.attrs["skipped"]`.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

from tanklevel.services.frame_decoder import DecodeError, decode, parse_line_timestamp

logger = logging.getLogger(__name__)


HEX_MARKER = "Bytes in Hex:"
_LEADING_TIMESTAMP = re.compile(r"^(\d{4}-\d{2}-\d{2}[\sT]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})?)")

FRAME_COLUMNS = [
    "line_number",
    "timestamp",
    "timestamp_source",
    "sensor_id",
    "sensor_type",
    "sensor_id_known",
    "session_id",
    "sequence_order",
    "protocol_version",
    "declared_length",
    "temperature",
    "humidity",
    "pm2_5",
    "pm10",
    "noise",
    "primary_reading",
    "secondary_reading",
    "distance_reading",
    "signal_rssi_raw",
    "signal_rssi_dbm",
    "error_code",
    "raw_hex",
]


def _split_gateway_line(line: str) -> tuple[Optional[str], Optional[datetime]]:
    """Payload and log timestamp from a gateway line, or (None, None) if not one."""
    marker = line.find(HEX_MARKER)
    if marker < 0:
        return None, None
    payload = line[marker + len(HEX_MARKER):].strip()
    match = _LEADING_TIMESTAMP.match(line)
    timestamp = parse_line_timestamp(match.group(1)) if match else None
    return payload, timestamp


def decode_log_lines(lines: Iterable[str], fallback_timestamp=None) -> pd.DataFrame:
    """
    Decode every frame found in `lines`.

    Args:
        lines: Raw log lines (gateway, timestamped or bare hex)
        fallback_timestamp: Used for lines that carry no timestamp

    Returns:
        DataFrame with one row per decoded frame (FRAME_COLUMNS), in input order.
        attrs["decoded"] / attrs["skipped"] hold the line counts.
    """
    records = []
    skipped = 0

    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue

        payload, log_timestamp = _split_gateway_line(line)
        if payload is None:
            payload = line
        try:
            frame = decode(payload, log_timestamp or fallback_timestamp)
        except DecodeError as e:
            skipped += 1
            logger.debug(f"Line {line_number}: {e}")
            continue

        record = frame.to_record()
        record["line_number"] = line_number
        records.append(record)

    df = pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)
    df.attrs["decoded"] = len(records)
    df.attrs["skipped"] = skipped

    if skipped:
        logger.info(f"Decoded {len(records)} frames, skipped {skipped} lines")
    return df


def decode_log_file(filepath: Union[str, Path], fallback_timestamp=None) -> pd.DataFrame:
    filepath = Path(filepath)
    with open(filepath, "r", encoding="utf-8-sig", errors="replace") as f:
        lines = f.read().splitlines()
    df = decode_log_lines(lines, fallback_timestamp)
    df.attrs["source_file"] = str(filepath)
    return df
