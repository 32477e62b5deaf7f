"""Extraction of quantities, names and addresses from free text."""

from __future__ import annotations

import re

from rose.engine.phrases import normalize

NUMBER_WORDS = {
    "un": 1,
    "une": 1,
    "deux": 2,
    "trois": 3,
    "quatre": 4,
    "cinq": 5,
    "six": 6,
    "sept": 7,
    "huit": 8,
    "neuf": 9,
    "dix": 10,
}

_DIGITS = re.compile(r"(?<!\d)(\d{1,4})(?!\d)")
_NAME_PART = re.compile(r"[^\W\d_]+(?:[-'][^\W\d_]+)*")


def parse_quantity(text: str) -> int | None:
    """First number in ``text``, as digits or a French number word."""

    normalized = normalize(text)
    match = _DIGITS.search(normalized)
    if match:
        return int(match.group(1))
    for token in re.findall(r"[^\W\d_]+", normalized):
        if token in NUMBER_WORDS:
            return NUMBER_WORDS[token]
    return None


def parse_full_name(text: str) -> tuple[str, str] | None:
    """Split "prénom nom" into title-cased parts; ``None`` when not a full name."""

    parts = text.strip().split()
    if len(" ".join(parts)) < 3 or len(parts) < 2:
        return None
    if not all(_NAME_PART.fullmatch(part) for part in parts):
        return None
    first_name = parts[0].title()
    last_name = " ".join(part.title() for part in parts[1:])
    return first_name, last_name


def split_address(text: str, default_city: str) -> tuple[str, str] | None:
    """Split "street, city"; a missing city falls back to ``default_city``."""

    parts = [part.strip() for part in text.strip().split(",") if part.strip()]
    if not parts:
        return None
    if len(parts) >= 2:
        address = ", ".join(parts[:-1])
        city = parts[-1]
    else:
        address = parts[0]
        city = default_city

    city = city.title() if city.islower() else city
    if len(address) < 3 or len(city) < 2:
        return None
    return address, city
