from __future__ import annotations

import re

import pycountry

from rank_tracker.core.exceptions import InvalidTerritory

_TERRITORY_PATTERN = re.compile(r"^[a-z]{2}$")
_REJECTED_LITERALS = {"unknown"}
_LABEL_OVERRIDES = {"XK": "Kosovo"}


def normalize_territory(raw: object) -> str:
    """Return the canonical two-letter lowercase territory code.

    Raises ``InvalidTerritory`` for missing values, the literal ``unknown`` and
    anything that is not exactly two ASCII letters after trimming. No default is
    ever substituted here.
    """
    if not isinstance(raw, str):
        raise InvalidTerritory(raw)
    normalized = raw.strip().lower()
    if not normalized or normalized in _REJECTED_LITERALS:
        raise InvalidTerritory(raw)
    if not _TERRITORY_PATTERN.match(normalized):
        raise InvalidTerritory(raw)
    return normalized


def is_valid_territory(raw: object) -> bool:
    try:
        normalize_territory(raw)
    except InvalidTerritory:
        return False
    return True


def territory_label(code: str) -> str:
    normalized = (code or "").strip().upper()
    if not normalized:
        return code
    if normalized in _LABEL_OVERRIDES:
        return _LABEL_OVERRIDES[normalized]
    country = pycountry.countries.get(alpha_2=normalized)
    return country.name if country else normalized
