"""Declarative phrase tables for fixed-choice and free-text replies.

Matching is whole-word on normalised text (lower-cased, typographic
apostrophes folded, whitespace collapsed), so "changer" does not fire on
"changeurs".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class AddressReply(str, Enum):
    CONFIRM = "confirm"
    CHANGE = "change"
    NEW_ADDRESS = "new_address"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True, slots=True)
class PhraseRule:
    kind: AddressReply
    phrases: tuple[str, ...]


# Evaluated top to bottom; the first rule with a matching phrase wins.
ADDRESS_PHRASE_RULES: tuple[PhraseRule, ...] = (
    PhraseRule(
        AddressReply.CHANGE,
        (
            "changer d'adresse",
            "changer",
            "modifier",
            "nouvelle adresse",
            "autre adresse",
            "adresse différente",
            "pas la même",
            "pas cette adresse",
        ),
    ),
    PhraseRule(
        AddressReply.CONFIRM,
        (
            "même adresse",
            "garder la même",
            "garder cette adresse",
            "conserver l'adresse",
            "cette adresse",
            "la même",
        ),
    ),
    PhraseRule(
        AddressReply.AMBIGUOUS,
        ("peut-être", "je ne sais pas", "sais pas", "hésite", "aucune idée", "?"),
    ),
)

CONFIRM_TOKENS: tuple[str, ...] = (
    "oui",
    "ok",
    "d'accord",
    "parfait",
    "confirmer",
    "valider",
    "c'est bon",
    "ça va",
    "correct",
    "yes",
)
REFUSAL_TOKENS: tuple[str, ...] = ("non", "no", "nope")

# Replies with a comma and more words than this read as a structured
# address, so a leading "oui"/"non" does not decide them.
STRUCTURED_ADDRESS_MIN_WORDS = 5
MIN_FREE_ADDRESS_LENGTH = 10


def normalize(text: str) -> str:
    folded = text.replace("’", "'").replace("‘", "'").lower()
    return " ".join(folded.split())


def contains_phrase(text: str, phrase: str) -> bool:
    """Whole-word containment for ``phrase`` in already-normalised ``text``."""

    if not phrase[:1].isalnum():
        return phrase in text
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


def classify_address_reply(message: str) -> AddressReply:
    text = normalize(message)
    if not text:
        return AddressReply.AMBIGUOUS

    for rule in ADDRESS_PHRASE_RULES:
        if any(contains_phrase(text, phrase) for phrase in rule.phrases):
            return rule.kind

    structured = "," in text and len(text.split()) >= STRUCTURED_ADDRESS_MIN_WORDS
    if not structured:
        confirms = any(contains_phrase(text, token) for token in CONFIRM_TOKENS)
        refuses = any(contains_phrase(text, token) for token in REFUSAL_TOKENS)
        if confirms and refuses:
            return AddressReply.AMBIGUOUS
        if confirms:
            return AddressReply.CONFIRM
        if refuses:
            return AddressReply.CHANGE

    if "," in text or len(text) > MIN_FREE_ADDRESS_LENGTH:
        return AddressReply.NEW_ADDRESS
    return AddressReply.AMBIGUOUS


_LEADING_SYMBOLS = re.compile(r"^[^\w]+", re.UNICODE)


def normalize_choice(text: str) -> str:
    """Strip emoji/punctuation prefixes so button labels compare equal to typed text."""

    cleaned = _LEADING_SYMBOLS.sub("", normalize(text))
    return cleaned.rstrip(" !?.")


def matches_choice(message: str, *labels: str) -> bool:
    value = normalize_choice(message)
    return bool(value) and any(value == normalize_choice(label) for label in labels)
