"""Normalization functions for competition results ingestion.

All functions accept str | None (or loosely-typed source values) and return
the appropriate type or None.  Category label parsing never fails: labels it
cannot understand fall back to documented defaults.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

DEFAULT_GROUP = "Groupe A"
OPEN_WEIGHT_CLASS = "Open"


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: slug_name
# ---------------------------------------------------------------------------

def slug_name(value: str | None) -> str | None:
    """Lowercase ASCII alnum with '-' separators.

    Accented characters are decomposed and their combining marks dropped,
    so 'Élodie Dupré' becomes 'elodie-dupre'.
    """
    v = trim(value)
    if v is None:
        return None
    v = unicodedata.normalize("NFKD", v)
    v = "".join(c for c in v if not unicodedata.combining(c))
    v = v.lower()
    v = re.sub(r"[^a-z0-9]+", "-", v)
    v = v.strip("-")
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 4: athlete names
# ---------------------------------------------------------------------------

def _title_word(word: str) -> str:
    return "-".join(
        part[:1].upper() + part[1:].lower() for part in word.split("-")
    )


def title_case_name(value: str | None) -> str | None:
    """Trim, collapse whitespace and title-case every word and hyphen segment.

    'jean-PIERRE  de la  tour' → 'Jean-Pierre De La Tour'
    """
    v = normalize_space(value)
    if v is None:
        return None
    return " ".join(_title_word(w) for w in v.split(" "))


def normalize_athlete_name(first: str | None, last: str | None) -> tuple[str, str]:
    """Return the canonical (first, last) pair.

    The caller's ordering is preserved; names are never swapped.  Missing
    parts come back as empty strings so callers can validate them.
    """
    return (title_case_name(first) or "", title_case_name(last) or "")


# ---------------------------------------------------------------------------
# Rule 5: to_decimal
# ---------------------------------------------------------------------------

def to_decimal(value: Any) -> Decimal | None:
    """Parse a decimal from a str/int/float, returning None on failure.

    Floats go through str() so 72.5 becomes Decimal('72.5') rather than its
    binary expansion.  A comma decimal separator is accepted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    v = trim(value)
    if v is None:
        return None
    try:
        d = Decimal(v.replace(",", "."))
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


# ---------------------------------------------------------------------------
# Rule 6: dates
# ---------------------------------------------------------------------------

def parse_date(value: Any) -> date | None:
    """Parse an ISO 'YYYY-MM-DD' date (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    v = trim(value)
    if v is None:
        return None
    try:
        return date.fromisoformat(v[:10])
    except ValueError:
        return None


def extract_date_from_name(name: str | None) -> date | None:
    """Return Jan 1 of the first 20xx year mentioned in a competition name."""
    v = trim(name)
    if v is None:
        return None
    m = re.search(r"(?<!\d)(20\d{2})(?!\d)", v)
    if m is None:
        return None
    return date(int(m.group(1)), 1, 1)


# ---------------------------------------------------------------------------
# Rule 7: gender
# ---------------------------------------------------------------------------

_GENDER_MAP = {
    "homme": "M", "hommes": "M", "men": "M", "man": "M", "male": "M", "m": "M",
    "femme": "F", "femmes": "F", "women": "F", "woman": "F", "female": "F", "f": "F",
}


def map_gender(value: str | None) -> str | None:
    """Map a source gender label ('Hommes', 'female', 'F', ...) to 'M' / 'F'."""
    v = trim(value)
    if v is None:
        return None
    return _GENDER_MAP.get(v.lower())


# ---------------------------------------------------------------------------
# Rule 8: category labels
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParsedCategory:
    weight_class: str
    group: str
    weight_class_min: Decimal | None
    weight_class_max: Decimal | None


_NUM = r"\d+(?:[.,]\d+)?"
_RANGE_RE = re.compile(rf"(?<![\d.,+-])({_NUM})\s*-\s*({_NUM})\s*(?:kg)?", re.IGNORECASE)
_SIGNED_RE = re.compile(rf"([+-])\s*({_NUM})\s*(?:kg)?|({_NUM})\s*(?:kg)?\s*\+", re.IGNORECASE)
_GROUP_RE = re.compile(r"\bgroupe?\s+([A-Za-z0-9]+)\b", re.IGNORECASE)


def _canon_number(raw: str) -> str:
    d = Decimal(raw.replace(",", "."))
    return format(d.normalize(), "f")


def parse_weight_class(token: str | None) -> tuple[Decimal | None, Decimal | None]:
    """Return (min, max) bounds for a weight-class token.

    '-73' → (None, 73); '+101' / '101+' → (101, None); '66-73' → (66, 73);
    anything else → (None, None).
    """
    v = trim(token)
    if v is None:
        return None, None
    m = _RANGE_RE.search(v)
    if m:
        return to_decimal(m.group(1)), to_decimal(m.group(2))
    m = _SIGNED_RE.search(v)
    if m:
        if m.group(3) is not None:
            return to_decimal(m.group(3)), None
        if m.group(1) == "+":
            return to_decimal(m.group(2)), None
        return None, to_decimal(m.group(2))
    return None, None


def parse_category_label(label: str | None) -> ParsedCategory:
    """Extract the weight class and sub-group from a free-text category label.

    'Catégorie -73 Groupe B' → weight_class '-73', group 'Groupe B'.
    Labels without a weight marker map to 'Open'; labels without a group
    marker map to 'Groupe A'.
    """
    v = normalize_space(label) or ""

    group = DEFAULT_GROUP
    gm = _GROUP_RE.search(v)
    if gm:
        group = f"Groupe {gm.group(1).upper()}"
        v = (v[: gm.start()] + v[gm.end():]).strip()

    m = _RANGE_RE.search(v)
    if m:
        lo, hi = _canon_number(m.group(1)), _canon_number(m.group(2))
        return ParsedCategory(f"{lo}-{hi}", group, Decimal(lo), Decimal(hi))

    m = _SIGNED_RE.search(v)
    if m:
        if m.group(3) is not None:
            n = _canon_number(m.group(3))
            return ParsedCategory(f"+{n}", group, Decimal(n), None)
        n = _canon_number(m.group(2))
        if m.group(1) == "+":
            return ParsedCategory(f"+{n}", group, Decimal(n), None)
        return ParsedCategory(f"-{n}", group, None, Decimal(n))

    return ParsedCategory(OPEN_WEIGHT_CLASS, group, None, None)
