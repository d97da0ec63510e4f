"""
Shared utilities for record ingestion: date normalisation, whole-day
arithmetic, nested field access.
"""

import logging
import math
import numbers
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

EXCEL_EPOCH = pd.Timestamp("1899-12-30")
_ONE_DAY = pd.Timedelta(days=1)


def normalise_date(val: Any) -> pd.Timestamp | None:
    """Convert a date-like value to a naive UTC pd.Timestamp.

    Accepts Timestamps, datetimes, dates, ISO-like strings (including the
    Salesforce ``+0000`` offset form) and Excel serial numbers from workbook
    exports. Returns None for missing or unparseable values; never raises.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
    if isinstance(val, numbers.Real):
        if math.isnan(val):
            return None
        try:
            ts = EXCEL_EPOCH + pd.Timedelta(days=float(val))
        except (ValueError, OverflowError):
            logger.debug("Could not convert serial number %s to date", val)
            return None
    else:
        try:
            ts = pd.Timestamp(val)
        except (ValueError, TypeError, OverflowError):
            logger.debug("Could not parse date value: %r", val)
            return None

    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def whole_days(start: pd.Timestamp | None, end: pd.Timestamp | None) -> int | None:
    """Floor of whole days between two instants; None when either is unknown."""
    if start is None or end is None:
        return None
    days = (end - start) / _ONE_DAY
    if math.isnan(days):
        return None
    return math.floor(days)


def to_calendar_date(val: Any) -> str | None:
    """Serialise an instant as YYYY-MM-DD for the presentation layer."""
    ts = normalise_date(val)
    if ts is None:
        return None
    return ts.strftime("%Y-%m-%d")


def get_path(row: dict, path: str) -> Any:
    """Read a dotted relationship path (``Project__r.Account__r.Name``) from a row."""
    node: Any = row
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
        if node is None:
            return None
    return node


def clean_str(val: Any) -> str | None:
    """Strip a value to a non-empty string, or None."""
    if val is None:
        return None
    if isinstance(val, float) and math.isnan(val):
        return None
    s = str(val).strip()
    return s or None


def find_header_row(
    sheet,
    signature: set[str],
    max_rows: int = 20,
) -> int | None:
    """Scan an openpyxl sheet for the row carrying the export's column names.

    Returns the 1-based row index where every name in ``signature`` appears,
    or None if not found within ``max_rows``.
    """
    for row_idx in range(1, max_rows + 1):
        values = {
            str(cell.value).strip()
            for cell in sheet[row_idx]
            if cell.value is not None
        }
        if signature <= values:
            return row_idx
    return None


def nest_dotted(flat: dict[str, Any]) -> dict[str, Any]:
    """Fold ``Project__r.Name``-style columns into nested relationship dicts."""
    row: dict[str, Any] = {}
    for key, value in flat.items():
        parts = key.split(".")
        node = row
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return row


def flatten_keys(row: dict[str, Any], prefix: str = "") -> set[str]:
    """Dotted names of every leaf column in a (possibly nested) row."""
    keys = set()
    for key, value in row.items():
        if key == "attributes":
            continue
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            keys |= flatten_keys(value, prefix=f"{name}.")
        else:
            keys.add(name)
    return keys
