"""Centralized text normalization for header and cell matching.

Two levels are provided:

- :func:`clean_cell_text` is lossless-ish cleanup applied to raw cell text
  (NBSP, smart quotes, dashes, zero-width characters, runs of spaces).
- :func:`normalize_text` is the aggressive form used for comparisons:
  diacritics stripped, lowercased, non-alphanumerics turned into spaces,
  whitespace collapsed.  ``"Montó  CERTIFICADO"`` and ``"monto certificado"``
  normalize to the same string.

Both are idempotent.
"""

from __future__ import annotations

import re
import unicodedata

# Character-level replacements via str.translate
_TRANSLATE = str.maketrans({
    "\u00a0": " ",    # NBSP → space
    "\u2018": "'",    # left single quote → ASCII
    "\u2019": "'",    # right single quote → ASCII
    "\u201c": '"',    # left double quote → ASCII
    "\u201d": '"',    # right double quote → ASCII
    "\u2013": "-",    # en-dash → hyphen-minus
    "\u2014": "-",    # em-dash → hyphen-minus
    "\u200b": None,   # ZWSP → remove
    "\u200c": None,   # ZWNJ → remove
    "\u200d": None,   # ZWJ → remove
    "\ufeff": None,   # BOM → remove
    "\u2060": None,   # Word Joiner → remove
})

_MULTI_SPACE_RE = re.compile(r"[ \t]{2,}")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]")
_WHITESPACE_RE = re.compile(r"\s+")


def cell_text(value: object) -> str:
    """Return the trimmed text of a raw cell value (``None`` → ``""``)."""
    if value is None:
        return ""
    return str(value).strip()


def clean_cell_text(text: str) -> str:
    """Normalize typographic noise in a cell without changing its meaning.

    Performs:
    1. NBSP → regular space
    2. Smart quotes → ASCII equivalents
    3. En-dash / em-dash → hyphen-minus
    4. Zero-width characters removed (ZWSP, ZWNJ, ZWJ, BOM, WJ)
    5. Runs of 2+ spaces/tabs → single space
    6. Leading/trailing whitespace stripped
    """
    text = text.translate(_TRANSLATE)
    return _MULTI_SPACE_RE.sub(" ", text).strip()


def strip_diacritics(text: str) -> str:
    """Decompose *text* (NFD) and drop combining marks: ``"Período"`` → ``"Periodo"``."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Normalize *text* for case-, accent- and punctuation-insensitive matching.

    Diacritics are stripped, the text is lowercased, every character outside
    ``[a-z0-9 ]`` becomes a space and whitespace runs collapse to one space.
    Symbol-only input (``"%"``, ``"$"``) normalizes to ``""``.
    """
    text = strip_diacritics(text.translate(_TRANSLATE)).lower()
    text = _NON_ALNUM_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()
