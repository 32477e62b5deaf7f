"""Keyword intent classifier and buyer-profile extraction."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from rose.engine.phrases import normalize
from rose.engine.types import Intent
from rose.sessions.models import (
    CommunicationStyle,
    MessageTurn,
    PriceSensitivity,
    RelationshipContext,
    UserProfile,
    utcnow,
)

MAX_INTERESTS = 10
MAX_CONCERNS = 5
MAX_TOPICS = 15
MAX_BUYING_SIGNALS = 10


def _keywords(*words: str) -> re.Pattern[str]:
    """Whole-word alternation; a trailing ``*`` makes a word a prefix."""

    parts = []
    for word in words:
        if word.endswith("*"):
            parts.append(re.escape(word[:-1]) + r"\w*")
        else:
            parts.append(re.escape(word))
    return re.compile(r"(?<!\w)(?:" + "|".join(parts) + r")(?!\w)")


# Checked before the buying words: a refusal or an order follow-up often
# contains "acheter", "commande" or "maintenant" without being a purchase.
OVERRIDING_KEYWORDS: tuple[tuple[Intent, re.Pattern[str]], ...] = (
    (
        Intent.SUPPORT,
        _keywords(
            "ma commande", "mon colis", "ma livraison", "suivre ma commande", "suivi de commande",
            "où en est", "pas reçu", "toujours pas reçu", "numéro de commande",
        ),
    ),
    (
        Intent.HESITATION,
        _keywords(
            "pas maintenant", "non merci", "plus tard", "pas intéressé", "pas intéressée",
            "ne veux pas", "veux pas", "ne vais pas", "pas pour moi", "pas besoin",
            "not now", "no thanks",
        ),
    ),
)

# Classification order matters: the first matching set wins.
INTENT_KEYWORDS: tuple[tuple[Intent, re.Pattern[str]], ...] = (
    (
        Intent.PURCHASE,
        _keywords(
            "acheter", "achète", "commander", "commande", "je prends", "je le prends",
            "je le veux", "je veux commander", "buy", "want", "maintenant", "rapidement",
            "express", "direct", "tout de suite",
        ),
    ),
    (
        Intent.QUESTION,
        _keywords(
            "comment", "pourquoi", "quand", "où", "qui", "quoi", "combien", "expliquer",
            "explique*", "marche", "fonctionne", "règles", "jouer", "joue",
        ),
    ),
    (
        Intent.INFORMATION,
        _keywords(
            "détails", "présentation", "description", "caractéristiques", "contenu",
            "plus d'infos", "en savoir plus", "tell me more", "dites-m'en plus",
        ),
    ),
    (
        Intent.HESITATION,
        _keywords(
            "pas sûr", "pas sûre", "hésit*", "peut-être", "réfléchir", "voir", "not sure",
            "thinking", "maybe",
        ),
    ),
    (
        Intent.OBJECTION,
        _keywords(
            "cher", "prix", "coût", "expensive", "pas convaincu", "pas convaincue", "doute",
            "sceptique", "pas certain", "worth it",
        ),
    ),
    (
        Intent.SUPPORT,
        _keywords(
            "conseiller", "conseillère", "support", "humain", "whatsapp", "problème",
            "réclamation", "contacter", "joindre",
        ),
    ),
)

UNCERTAIN = _keywords("peut-être", "maybe", "not sure", "hésite", "pas sûr", "pas sûre", "je ne sais pas")
CERTAIN = _keywords("oui", "yes", "absolument", "certainement", "sûr", "sûre", "évidemment")
AFFIRMATION = _keywords("oui", "ok", "d'accord", "yes", "allons-y", "go")

RELATIONSHIP_PATTERNS: tuple[tuple[RelationshipContext, re.Pattern[str]], ...] = (
    (
        RelationshipContext.COUPLE,
        _keywords("couple", "mari", "femme", "époux", "épouse", "fiancé", "fiancée",
                  "copain", "copine", "chéri", "chérie", "amoureux"),
    ),
    (
        RelationshipContext.FAMILY,
        _keywords("famille", "enfant", "enfants", "parent", "parents", "papa", "maman",
                  "fils", "fille", "frère", "sœur", "soeur"),
    ),
    (RelationshipContext.FRIENDS, _keywords("ami", "amie", "amis", "amies", "pote", "potes", "copains")),
    (
        RelationshipContext.PROFESSIONAL,
        _keywords("équipe", "collègue", "collègues", "travail", "bureau", "entreprise", "professionnel"),
    ),
    (RelationshipContext.SINGLE, _keywords("célibataire", "seul", "seule", "solo")),
)

INTEREST_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("communication", _keywords("communic*", "parler", "dialogu*", "échang*", "discuter")),
    ("intimité", _keywords("intim*", "proche", "proches", "connexion", "complicité")),
    ("famille", _keywords("famille", "enfant", "enfants")),
    ("couple", _keywords("couple", "amour", "romanti*")),
    ("jeux", _keywords("jeu", "jeux", "jouer", "ludique", "soirée")),
    ("développement", _keywords("développement", "grandir", "apprendre", "personnel")),
)

CONCERN_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("prix", _keywords("cher", "prix", "coût", "budget", "argent")),
    ("temps", _keywords("temps", "durée", "long", "longtemps")),
    ("complexité", _keywords("compliqué", "difficile", "complexe")),
    ("efficacité", _keywords("efficace", "marche vraiment", "résultat", "résultats", "utile")),
    ("livraison", _keywords("livraison", "livrer", "livré", "délai", "délais", "expédition")),
)

TOPIC_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("rules", _keywords("règle*", "jouer", "joue", "fonctionne", "marche")),
    ("delivery", _keywords("livraison", "livrer", "délai*")),
    ("payment", _keywords("paiement", "payer", "wave", "carte", "espèces")),
    ("pricing", _keywords("prix", "coût", "combien", "réduction", "promo")),
    ("gift", _keywords("cadeau", "offrir", "anniversaire", "saint-valentin")),
    ("reviews", _keywords("avis", "témoignage*", "commentaires")),
)

BUYING_SIGNALS = _keywords(
    "acheter", "commander", "prendre", "intéressé", "intéressée", "cadeau", "offrir",
    "combien", "livraison", "disponible", "stock", "payer",
)

FORMAL_STYLE = _keywords("veuillez", "pourriez", "souhaiteriez", "je vous prie", "auriez-vous")
CASUAL_STYLE = _keywords("salut", "coucou", "ok", "cool", "super", "mdr", "lol", "top")
EMOJI = re.compile("[\U0001F300-\U0001FAFF☀-➿]")

BUDGET_SIGNALS = _keywords("cher", "trop", "budget", "pas les moyens", "moins cher", "réduction", "promo")
PREMIUM_SIGNALS = _keywords("premium", "qualité", "meilleur", "haut de gamme", "luxe")


@dataclass(slots=True)
class ProfileDelta:
    """New evidence extracted from one message."""

    relationship: RelationshipContext | None = None
    communication_style: CommunicationStyle | None = None
    price_sensitivity: PriceSensitivity | None = None
    interests: list[str] = field(default_factory=list)
    concerns: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    buying_signals: list[str] = field(default_factory=list)


@dataclass(slots=True)
class IntentAnalysis:
    intent: Intent
    confidence: float
    delta: ProfileDelta


class IntentAnalyzer(ABC):
    """Classifies a message and extracts profile evidence."""

    @abstractmethod
    def analyze(self, message: str, history: Sequence[MessageTurn] = ()) -> IntentAnalysis:
        """Return the intent, confidence and profile delta for ``message``."""

    @abstractmethod
    def describe(self) -> str:
        """Human-readable summary of the analyzer strategy."""


class KeywordIntentAnalyzer(IntentAnalyzer):
    """Deterministic keyword analyzer. Performs no I/O."""

    def describe(self) -> str:
        return "Ordered keyword-set intent analyzer"

    def analyze(self, message: str, history: Sequence[MessageTurn] = ()) -> IntentAnalysis:
        text = normalize(message)
        intent = self._classify_intent(text)
        if intent is None:
            intent = self._contextual_intent(text, history)
        return IntentAnalysis(
            intent=intent,
            confidence=self._confidence(text),
            delta=self.extract_profile(message),
        )

    def _classify_intent(self, text: str) -> Intent | None:
        for intent, pattern in (*OVERRIDING_KEYWORDS, *INTENT_KEYWORDS):
            if pattern.search(text):
                return intent
        return None

    def _contextual_intent(self, text: str, history: Sequence[MessageTurn]) -> Intent:
        # A bare "oui" right after the buyer talked about buying continues the purchase.
        if AFFIRMATION.search(text) and len(text.split()) <= 3:
            recent_user_turns = [turn for turn in history if turn.role == "user"][-3:]
            for turn in recent_user_turns:
                if BUYING_SIGNALS.search(normalize(turn.content)):
                    return Intent.PURCHASE
        return Intent.QUESTION

    def _confidence(self, text: str) -> float:
        if UNCERTAIN.search(text):
            return 0.4
        if CERTAIN.search(text):
            return 0.9
        return 0.7

    def extract_profile(self, message: str) -> ProfileDelta:
        text = normalize(message)
        delta = ProfileDelta()

        for relationship, pattern in RELATIONSHIP_PATTERNS:
            if pattern.search(text):
                delta.relationship = relationship
                break

        delta.interests = [name for name, pattern in INTEREST_PATTERNS if pattern.search(text)]
        delta.concerns = [name for name, pattern in CONCERN_PATTERNS if pattern.search(text)]
        delta.topics = [name for name, pattern in TOPIC_PATTERNS if pattern.search(text)]
        delta.buying_signals = list(dict.fromkeys(match.group(0) for match in BUYING_SIGNALS.finditer(text)))

        if FORMAL_STYLE.search(text):
            delta.communication_style = CommunicationStyle.FORMAL
        elif CASUAL_STYLE.search(text) or EMOJI.search(message):
            delta.communication_style = CommunicationStyle.CASUAL

        if BUDGET_SIGNALS.search(text):
            delta.price_sensitivity = PriceSensitivity.BUDGET
        elif PREMIUM_SIGNALS.search(text):
            delta.price_sensitivity = PriceSensitivity.PREMIUM

        return delta


def _append_bounded(items: list[str], new_items: Sequence[str], limit: int) -> None:
    for item in new_items:
        if item in items:
            continue
        items.append(item)
    if len(items) > limit:
        del items[:-limit]


def apply_profile_delta(profile: UserProfile, delta: ProfileDelta, now: datetime | None = None) -> UserProfile:
    """Merge ``delta`` into ``profile``; tags only change when new evidence exists."""

    _append_bounded(profile.interests, delta.interests, MAX_INTERESTS)
    _append_bounded(profile.concerns, delta.concerns, MAX_CONCERNS)
    _append_bounded(profile.topics, delta.topics, MAX_TOPICS)
    _append_bounded(profile.buying_signals, delta.buying_signals, MAX_BUYING_SIGNALS)

    if delta.relationship is not None:
        profile.relationship = delta.relationship
    if delta.communication_style is not None:
        profile.communication_style = delta.communication_style
    if delta.price_sensitivity is not None:
        profile.price_sensitivity = delta.price_sensitivity

    profile.message_count += 1
    profile.last_activity = now or utcnow()
    return profile
