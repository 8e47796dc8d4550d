"""
Turn Ting usage exports (minutes, messages, megabytes CSVs) into per-device usage maps.

Each parser takes a path or an open text buffer and returns an ordered
dict of device id → quantity, in the order devices first appear.
"""
import logging
from typing import Dict, Optional

import pandas as pd

from .datatypes import MINUTES, MESSAGES, MEGABYTES
from .errors import UsageFormatError

logger = logging.getLogger(__name__)

# category → (device column, quantity column); None means count rows
USAGE_COLUMNS = {
    MINUTES: ('Phone', 'Duration (min)'),
    MESSAGES: ('Phone', None),
    MEGABYTES: ('Device', 'Kilobytes'),
}


def parse_minutes(src) -> Dict[str, int]:
    return parse_usage(src, MINUTES)


def parse_messages(src) -> Dict[str, int]:
    return parse_usage(src, MESSAGES)


def parse_megabytes(src) -> Dict[str, int]:
    """Kilobytes used per device (the export is named megabytes but counts KB)."""
    return parse_usage(src, MEGABYTES)


def parse_usage(src, category: str) -> Dict[str, int]:
    device_col, qty_col = USAGE_COLUMNS[category]
    df = _read_csv(src, category)

    for col in (device_col, qty_col):
        if col is not None and col not in df.columns:
            raise UsageFormatError(f'missing "{col}" header in {category} csv file')

    usage: Dict[str, int] = {}
    for line_no, row in df.iterrows():
        device_id = row[device_col]
        if pd.isna(device_id) or str(device_id).strip() == '':
            raise UsageFormatError(f'{category} csv row {line_no + 2} has no {device_col}')
        device_id = str(device_id).strip()
        qty = 1 if qty_col is None else _parse_qty(row[qty_col], category, line_no)
        usage[device_id] = usage.get(device_id, 0) + qty

    logger.debug(f'Parsed {len(df)} {category} rows across {len(usage)} devices')
    return usage

# -------------------- helpers --------------------

def _read_csv(src, category: str) -> pd.DataFrame:
    try:
        # ids stay strings so leading zeros survive
        return pd.read_csv(src, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError as e:
        raise UsageFormatError(f'{category} csv is empty!') from e
    except pd.errors.ParserError as e:
        raise UsageFormatError(f'Error parsing {category} csv: {e}') from e


def _parse_qty(value, category: str, line_no: int) -> int:
    text: Optional[str] = None if pd.isna(value) else str(value).strip()
    try:
        return int(text)
    except (TypeError, ValueError) as e:
        raise UsageFormatError(
            f'{category} csv row {line_no + 2}: quantity {value!r} is not a whole number'
        ) from e
