"""Header normalization and lenient value coercion for exported CSV rows.

Exporters disagree on column spelling ("Impresiones", " impresiones ",
"Impresión") and on number formatting ("1.234", "1 234,5"). Everything in
this module degrades to a documented empty value instead of raising, so one
messy cell never aborts the import of a file.
"""

import math
import re
import time
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping

_WHITESPACE_RE = re.compile(r"\s+")

# Spanish vowel diacritics folded to their base letter. "ñ" is kept.
_ACCENT_TABLE = str.maketrans(
    {
        "á": "a", "à": "a", "ä": "a",
        "é": "e", "è": "e", "ë": "e",
        "í": "i", "ì": "i", "ï": "i",
        "ó": "o", "ò": "o", "ö": "o",
        "ú": "u", "ù": "u", "ü": "u",
    }
)

# Leading numeric prefix, the way lenient float parsers read "12%" as 12.
_NUMERIC_PREFIX_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_DECIMAL_COMMA_RE = re.compile(r",(\d+)")
_INTEGER_LITERAL_RE = re.compile(r"^[+-]?\d+$")

# post_id is stored in a signed 64-bit column
_BIGINT_MIN = -(2**63)
_BIGINT_MAX = 2**63 - 1

_DATE_FORMATS = (
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%a, %b %d, %Y",
    "%b %d, %Y",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
)


def normalize_key(key: Any) -> str:
    """Normalize a column label into a lookup key.

    Trims, lowercases, collapses whitespace runs to a single underscore and
    folds accented vowels: " Impresión " -> "impresion".
    """
    text = str(key).strip().lower()
    text = _WHITESPACE_RE.sub("_", text)
    return text.translate(_ACCENT_TABLE)


def normalize_row(raw: Mapping[Any, Any]) -> dict[str, str]:
    """Normalize every key of a decoded row and trim its string values.

    When two labels normalize to the same key, the later one in file order
    wins. Missing cells (short rows) become empty strings.
    """
    out: dict[str, str] = {}
    for key, value in raw.items():
        if key is None:
            # Surplus cells beyond the header have no label to map to
            continue
        if value is None:
            value = ""
        out[normalize_key(key)] = value.strip() if isinstance(value, str) else str(value)
    return out


def resolve_field(row: Mapping[str, str], aliases: Iterable[str]) -> str | None:
    """Return the first non-empty value among the aliases, in declared order."""
    for alias in aliases:
        value = row.get(normalize_key(alias))
        if value is not None and value != "":
            return value
    return None


def has_any(keys: Iterable[str], candidates: Iterable[str]) -> bool:
    key_set = set(keys)
    return any(normalize_key(c) in key_set for c in candidates)


def coerce_int(value: Any) -> int | None:
    """Convert locale-formatted numeric text into an integer.

    Periods and spaces (including non-breaking ones) are thousands grouping,
    a comma followed by digits is the decimal mark. The result is truncated
    toward zero: "1.234" -> 1234, "1 234,5" -> 1234. Empty, unparseable or
    out-of-range (beyond signed 64-bit) input gives None.
    """
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    cleaned = str(value).strip()
    if not cleaned:
        return None
    cleaned = cleaned.replace("\u00a0", " ")
    cleaned = re.sub(r"[.\s]", "", cleaned)
    cleaned = _DECIMAL_COMMA_RE.sub(r".\1", cleaned, count=1)

    match = _NUMERIC_PREFIX_RE.match(cleaned)
    if not match:
        return None
    number = float(match.group(0))
    if not math.isfinite(number):
        # e.g. "1e999"
        return None
    result = int(number)
    # Metric columns are signed 64-bit integers
    if not _BIGINT_MIN <= result <= _BIGINT_MAX:
        return None
    return result


def current_millis() -> int:
    return time.time_ns() // 1_000_000


def parse_post_id(value: Any) -> int | None:
    """Parse a post identifier if it is an integer literal fitting a 64-bit column."""
    if isinstance(value, int) and not isinstance(value, bool):
        candidate = value
    else:
        text = "" if value is None else str(value).strip()
        if not _INTEGER_LITERAL_RE.match(text):
            return None
        candidate = int(text)
    if _BIGINT_MIN <= candidate <= _BIGINT_MAX:
        return candidate
    return None


def coerce_post_id(value: Any, now_ms: int | None = None) -> int:
    """Convert an exporter post identifier into an integer key.

    Absent or malformed identifiers fall back to the current wall-clock time
    in milliseconds. Two such rows coerced within the same millisecond get
    the same fallback.
    """
    parsed = parse_post_id(value)
    if parsed is not None:
        return parsed
    return now_ms if now_ms is not None else current_millis()


def coerce_datetime(value: Any) -> datetime | None:
    """Parse a date cell. Returns None when absent or unrecognized."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None