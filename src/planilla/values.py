"""Locale-aware coercion of raw cell text into typed scalars.

Spreadsheets authored by hand mix ``"2,74%"``, ``"0.0274"``, ``"$ 1,234.50"``
and ``"-"`` freely.  Two entry points cover the engine's needs:

- :func:`parse_percent_value` for percentage curves, which detects the
  decimal separator from the text itself.
- :func:`coerce_value` for vertical extraction, which maps a raw value to a
  target column type and falls back to the original text instead of
  dropping anything it cannot parse.
"""

from __future__ import annotations

import math
import re
from typing import Any, Literal

ColumnType = Literal["text", "numeric", "date", "int"]

COLUMN_TYPES: tuple[str, ...] = ("text", "numeric", "date", "int")

# Full-string decimal literal.  Stricter than float(): no "inf", "nan" or "1_000".
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_INT_PREFIX_RE = re.compile(r"^-?\d+")
_CURRENCY_SPACE_RE = re.compile(r"[\s$€£¥]")
_NON_INT_RE = re.compile(r"[^0-9-]")

_EMPTY_MARKERS = ("", "-")


def round2(value: float) -> float:
    """Round half up to 2 decimals (``2.675`` style ties go up, not to even)."""
    return math.floor(value * 100 + 0.5) / 100


def parse_float(text: str) -> float | None:
    """Parse *text* as a finite float, or return None."""
    text = text.strip()
    if not _FLOAT_RE.match(text):
        return None
    number = float(text)
    return number if math.isfinite(number) else None


def _unify_decimal_separator(text: str) -> str:
    """Rewrite *text* so ``.`` is the decimal separator.

    Whichever of ``.`` and ``,`` appears last is taken as the decimal
    separator; the other one is a thousands separator and is removed.
    ``"1.234,56"`` → ``"1234.56"``, ``"1,234.56"`` → ``"1234.56"``,
    ``"2,74"`` → ``"2.74"``.
    """
    last_dot = text.rfind(".")
    last_comma = text.rfind(",")
    if last_comma > last_dot:
        return text.replace(".", "").replace(",", ".", 1)
    if last_dot > last_comma:
        return text.replace(",", "")
    return text


def parse_percent_value(raw: Any) -> float:
    """Parse a percentage written as ``"2,74%"``, ``"2.00%"`` or ``0.0274``.

    Text carrying a ``%`` sign is already a percentage and is only rounded to
    2 decimals.  A bare number strictly between -1 and 1 (excluding 0) is read
    as a fraction and scaled by 100; any other bare number is used as is.
    Empty or non-numeric input yields ``0``.

    Examples:
        >>> parse_percent_value("2,74%")
        2.74
        >>> parse_percent_value("0.0274")
        2.74
        >>> parse_percent_value("")
        0.0
    """
    if raw is None:
        return 0.0
    text = str(raw)
    had_percent = "%" in text
    text = text.strip().replace("%", "").strip()
    if not text:
        return 0.0

    number = parse_float(_unify_decimal_separator(text))
    if number is None:
        return 0.0

    if had_percent:
        return round2(number)
    if 0 < abs(number) < 1:
        return math.floor(number * 10000 + 0.5) / 100
    return round2(number)


def coerce_value(raw: Any, col_type: str) -> Any:
    """Coerce a raw cell value to the declared target column type.

    - ``None``, empty text and a lone ``"-"`` → ``None``
    - ``numeric``: currency symbols, whitespace and commas are stripped
      (commas are always thousands separators here), then parsed as float
    - ``int``: everything but digits and ``-`` is stripped, then the leading
      integer is parsed
    - ``date``: passed through as trimmed text (no date parsing)
    - ``text`` (and unknown types): trimmed text

    A numeric or int value that cannot be parsed is returned as the original
    trimmed text so nothing is silently dropped.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if text in _EMPTY_MARKERS:
        return None

    if col_type == "numeric":
        cleaned = _CURRENCY_SPACE_RE.sub("", text).replace(",", "")
        number = parse_float(cleaned)
        return text if number is None else number

    if col_type == "int":
        match = _INT_PREFIX_RE.match(_NON_INT_RE.sub("", text))
        return int(match.group()) if match else text

    return text


def is_blank(value: Any) -> bool:
    """True for ``None`` and for values whose text is empty after trimming."""
    return value is None or str(value).strip() == ""
