"""Phone number validation for West-African and French numbers."""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_COUNTRY_CODE = "221"

# Country code -> (ISO country, national number pattern)
COUNTRY_PATTERNS: dict[str, tuple[str, re.Pattern[str]]] = {
    "221": ("SN", re.compile(r"7[0-8]\d{7}")),
    "225": ("CI", re.compile(r"(?:01|05|07|21|25|27)\d{8}")),
    "226": ("BF", re.compile(r"[5-7]\d{7}")),
    "223": ("ML", re.compile(r"[5-9]\d{7}")),
    "224": ("GN", re.compile(r"6\d{8}")),
    "33": ("FR", re.compile(r"[1-9]\d{8}")),
}


@dataclass(frozen=True, slots=True)
class PhoneNumber:
    country: str
    country_code: str
    national: str

    @property
    def e164(self) -> str:
        return f"+{self.country_code}{self.national}"


def parse_phone(text: str) -> PhoneNumber | None:
    """Normalise ``text`` to a known number; bare 9-digit numbers are Senegalese."""

    compact = re.sub(r"[\s.\-()/]", "", text.strip())
    if compact.startswith("00"):
        compact = "+" + compact[2:]
    if not re.fullmatch(r"\+?\d{7,15}", compact):
        return None

    if compact.startswith("+"):
        digits = compact[1:]
        for code, (country, pattern) in COUNTRY_PATTERNS.items():
            if digits.startswith(code):
                national = digits[len(code):]
                if code == "33" and national.startswith("0"):
                    national = national[1:]
                if pattern.fullmatch(national):
                    return PhoneNumber(country=country, country_code=code, national=national)
        return None

    country, pattern = COUNTRY_PATTERNS[DEFAULT_COUNTRY_CODE]
    if compact.startswith(DEFAULT_COUNTRY_CODE) and pattern.fullmatch(compact[len(DEFAULT_COUNTRY_CODE):]):
        compact = compact[len(DEFAULT_COUNTRY_CODE):]
    if pattern.fullmatch(compact):
        return PhoneNumber(country=country, country_code=DEFAULT_COUNTRY_CODE, national=compact)
    return None
