"""
Coercion helpers for loosely typed spreadsheet cell values.

Nothing here raises on malformed input: unknown booleans become ``False``,
unparseable dates are kept as text, unknown employment statuses pass through.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any

# Cells holding only these markers are treated as empty
BLANK_MARKERS = frozenset({"", "-", "--", "n/a", "#n/a"})

AFFIRMATIVE_TOKENS = frozenset(
    {"yes", "y", "ya", "iya", "sudah", "done", "v", "true", "1", "lulus", "ok", "certified"}
)

# Spreadsheet day zero (serial 1 == 1899-12-31, matching the 1900 leap-year quirk)
SPREADSHEET_EPOCH = date(1899, 12, 30)
_MIN_TEXT_SERIAL = 10000
_MAX_SERIAL = 2958465

MONTHS = {
    "januari": 1,
    "january": 1,
    "jan": 1,
    "februari": 2,
    "february": 2,
    "pebruari": 2,
    "feb": 2,
    "peb": 2,
    "maret": 3,
    "march": 3,
    "mar": 3,
    "april": 4,
    "apr": 4,
    "mei": 5,
    "may": 5,
    "juni": 6,
    "june": 6,
    "jun": 6,
    "juli": 7,
    "july": 7,
    "jul": 7,
    "agustus": 8,
    "august": 8,
    "agu": 8,
    "agt": 8,
    "aug": 8,
    "september": 9,
    "sep": 9,
    "sept": 9,
    "oktober": 10,
    "october": 10,
    "okt": 10,
    "oct": 10,
    "november": 11,
    "nopember": 11,
    "nov": 11,
    "nop": 11,
    "desember": 12,
    "december": 12,
    "des": 12,
    "dec": 12,
}

_DMY_PATTERN = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")
_ISO_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_NAMED_MONTH_PATTERN = re.compile(r"^(\d{1,2})[\s\-/.]+([A-Za-z]+)\.?[\s\-/.]+(\d{4})$")

# Ordered: the first group with a matching fragment wins
_STATUS_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("gty", "tetap yayasan"), "GTY"),
    (("pns", "asn"), "PNS"),
    (("pppk", "p3k"), "PPPK"),
    (("tendik", "tenaga kependidikan"), "Tendik"),
    (("honorer", "gtt", "tidak tetap"), "GTT"),
)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip().lower() in BLANK_MARKERS
    return False


def coerce_text(value: Any) -> str | None:
    """Render a cell as trimmed text; whole floats lose their ``.0`` suffix."""

    if is_blank(value):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = re.sub(r"\s+", " ", str(value)).strip()
    return text or None


def coerce_boolean(value: Any) -> bool | None:
    """Affirmative tokens map to True, anything else non-blank to False."""

    if is_blank(value):
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    token = str(value).strip().lower()
    if token in AFFIRMATIVE_TOKENS:
        return True
    # "Sertifikasi 2019", "sudah sertifikasi" and friends
    return "sertifi" in token and not token.startswith(("belum", "tidak", "non"))


def _serial_to_iso(serial: float) -> str | None:
    if not 0 < serial <= _MAX_SERIAL:
        return None
    return (SPREADSHEET_EPOCH + timedelta(days=int(serial))).isoformat()


def _safe_date(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def coerce_date(value: Any) -> str | None:
    """
    Parse a date-like cell into ``YYYY-MM-DD``.

    Accepts date objects, spreadsheet serials, ``DD/MM/YYYY`` (also with ``-``
    or ``.``), ISO strings and ``DD <month> YYYY`` with Indonesian or English
    month names. Anything else is returned as the original trimmed text.
    """

    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return coerce_text(value)
    if isinstance(value, (int, float)):
        return _serial_to_iso(float(value)) or coerce_text(value)

    text = coerce_text(value)
    if text is None:
        return None

    try:
        serial = float(text)
    except ValueError:
        serial = None
    if serial is not None:
        if serial >= _MIN_TEXT_SERIAL:
            return _serial_to_iso(serial) or text
        return text

    match = _DMY_PATTERN.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _safe_date(year, month, day) or text

    match = _ISO_PATTERN.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day) or text

    match = _NAMED_MONTH_PATTERN.match(text)
    if match:
        month = MONTHS.get(match.group(2).lower())
        if month is not None:
            return _safe_date(int(match.group(3)), month, int(match.group(1))) or text

    return text


def coerce_employment_status(value: Any) -> str | None:
    text = coerce_text(value)
    if text is None:
        return None
    lowered = text.lower()
    for fragments, label in _STATUS_RULES:
        if any(fragment in lowered for fragment in fragments):
            return label
    return text


COERCERS = {
    "text": coerce_text,
    "date": coerce_date,
    "boolean": coerce_boolean,
    "status": coerce_employment_status,
}
