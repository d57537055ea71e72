"""
Timestamp detection for flattened CRM fields.

A (field name, value) pair is classified as a timestamp when the name looks
like a date field and the value parses, or when the value is unmistakably an
ISO-8601 string. Accepted values are returned as UTC epoch milliseconds.
Detection is best effort: every failure is reported as None, never raised.
"""

import re
from datetime import datetime, timezone
from typing import Any, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Unix seconds for 2000-01-01 and 2100-01-01; anything numeric outside this
# window is treated as a count or an ID rather than a date.
MIN_REASONABLE_SECONDS = 946684800
MAX_REASONABLE_SECONDS = 4102444800
MILLIS_THRESHOLD = 1e12

DATE_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r'_at$',         # created_at, updated_at
        r'_date$',       # birth_date, start_date
        r'^date_',       # date_created, date_modified
        r'_time$',       # start_time
        r'_timestamp$',  # last_login_timestamp
        r'birthday',
        r'expir',        # expires, expiration
        r'_on$',         # subscribed_on
        r'^last_',       # last_login, last_activity
        r'due',
        r'scheduled',
        r'created',
        r'updated',
        r'modified',
        r'published',
        r'deleted',
    )
]

_RFC3339 = re.compile(
    r'^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$'
)

# (shape guard, strptime format) in priority order. The guard keeps strptime
# from accepting single-digit months or days.
DATE_FORMATS = [
    (re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$'), '%Y-%m-%dT%H:%M:%SZ'),
    (re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$'), '%Y-%m-%dT%H:%M:%S'),
    (re.compile(r'^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$'), '%Y-%m-%d %H:%M:%S'),
    (re.compile(r'^\d{4}-\d{2}-\d{2} \d{2}:\d{2}$'), '%Y-%m-%d %H:%M'),
    (re.compile(r'^\d{4}-\d{2}-\d{2}$'), '%Y-%m-%d'),
    (re.compile(r'^\d{2}/\d{2}/\d{4}$'), '%m/%d/%Y'),
    (re.compile(r'^\d{8}T\d{6}Z$'), '%Y%m%dT%H%M%SZ'),
    (re.compile(r'^\d{8}$'), '%Y%m%d'),
]

_INTEGER_STRING = re.compile(r'^[+-]?\d+$')
_FLOAT_STRING = re.compile(r'^[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?$')


def is_likely_date_field(field_name: str) -> bool:
    """Check whether a column name suggests date or time content."""
    return any(pattern.search(field_name) for pattern in DATE_FIELD_PATTERNS)


def to_epoch_millis(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive datetimes are UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - EPOCH
    return delta.days * 86400000 + delta.seconds * 1000 + delta.microseconds // 1000


def parse_numeric_timestamp(value) -> Optional[int]:
    """
    Interpret a number as an epoch timestamp.

    Values above 1e12 are epoch milliseconds; values inside the 2000-2100
    window are epoch seconds. Everything else is rejected.
    """
    if value != value or value <= 0:  # NaN or non-positive
        return None

    if value > MILLIS_THRESHOLD:
        if value == float('inf'):
            return None
        epoch_millis = int(value)
    elif MIN_REASONABLE_SECONDS <= value <= MAX_REASONABLE_SECONDS:
        epoch_millis = int(value * 1000)
    else:
        return None

    if not MIN_REASONABLE_SECONDS * 1000 <= epoch_millis <= MAX_REASONABLE_SECONDS * 1000:
        return None
    return epoch_millis


def _parse_rfc3339(value: str) -> Optional[datetime]:
    match = _RFC3339.match(value)
    if not match:
        return None
    date_part, time_part, fraction, offset = match.groups()
    # fromisoformat only understands microseconds, so nanoseconds are cut
    micros = (fraction or '')[:6].ljust(6, '0')
    if offset in ('Z', 'z'):
        offset = '+00:00'
    try:
        return datetime.fromisoformat(f"{date_part}T{time_part}.{micros}{offset}")
    except ValueError:
        return None


def parse_string_timestamp(value: str) -> Optional[int]:
    """Parse a date/time string into epoch milliseconds."""
    value = value.strip()
    if not value:
        return None

    if _INTEGER_STRING.match(value) or _FLOAT_STRING.match(value):
        number = int(value) if _INTEGER_STRING.match(value) else float(value)
        epoch_millis = parse_numeric_timestamp(number)
        if epoch_millis is not None:
            return epoch_millis
        # compact YYYYMMDD values are numeric too, so fall through

    parsed = _parse_rfc3339(value)
    if parsed is not None:
        return to_epoch_millis(parsed)

    for shape, date_format in DATE_FORMATS:
        if not shape.match(value):
            continue
        try:
            parsed = datetime.strptime(value, date_format)
        except ValueError:
            continue
        return to_epoch_millis(parsed.replace(tzinfo=timezone.utc))
    return None


def try_parse_timestamp(value: Any) -> Optional[int]:
    """Attempt to read any scalar as a timestamp, regardless of field name."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return parse_string_timestamp(value)
    if isinstance(value, (int, float)):
        return parse_numeric_timestamp(value)
    if isinstance(value, datetime):
        return to_epoch_millis(value)
    return None


def detect_timestamp(field_name: str, value: Any) -> Optional[int]:
    """
    Combine field-name heuristics with value parsing.

    Args:
        field_name (str): Flattened column name
        value: Raw scalar value for that column

    Returns:
        int or None: Epoch milliseconds (UTC) when the pair is a timestamp
    """
    if value is None:
        return None
    if is_likely_date_field(field_name):
        return try_parse_timestamp(value)

    # Unconventional names only qualify with an unmistakable ISO-8601 value
    if isinstance(value, str):
        candidate = value.strip()
        if 6 <= len(candidate) <= 50 and 'T' in candidate and '-' in candidate:
            return parse_string_timestamp(candidate)
    return None
