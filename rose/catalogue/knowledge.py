"""TF-IDF lookup over knowledge-base questions."""

from __future__ import annotations

import re
import unicodedata
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from rose.catalogue.models import KnowledgeEntry

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

STOPWORDS = {
    "a", "au", "aux", "avec", "ce", "ces", "c", "d", "de", "des", "du", "elle", "en", "est",
    "et", "il", "j", "je", "l", "la", "le", "les", "leur", "m", "ma", "mes", "mon", "ne",
    "on", "ou", "par", "pas", "pour", "qu", "que", "quel", "quelle", "quels", "qui", "s",
    "sa", "se", "ses", "son", "sont", "sur", "t", "ta", "te", "tu", "un", "une", "vos",
    "votre", "vous", "y",
}

# Answers available even when the store holds no knowledge rows.
STATIC_FAQ: tuple[KnowledgeEntry, ...] = (
    KnowledgeEntry(
        id="faq-rules",
        question="Comment jouer au jeu, quelles sont les règles ?",
        answer=(
            "C'est très simple : on tire une carte à tour de rôle, on lit la question "
            "à voix haute et on y répond avec sincérité. Pas de gagnant ni de perdant, "
            "juste de vraies conversations !"
        ),
        category="rules",
        tags=["jouer", "règles", "fonctionne", "marche"],
    ),
    KnowledgeEntry(
        id="faq-delivery",
        question="Quels sont les délais et frais de livraison ?",
        answer=(
            "Nous livrons à Dakar en 24h (livraison gratuite) et partout au Sénégal "
            "en 48 à 72h. Abidjan et les autres pays sont livrés sous 3 à 5 jours."
        ),
        category="delivery",
        tags=["livraison", "livrer", "délai", "expédition"],
    ),
    KnowledgeEntry(
        id="faq-price",
        question="Quel est le prix, combien coûte le jeu ?",
        answer=(
            "Nos jeux sont à partir de 14 000 FCFA, avec des remises dès 2 exemplaires : "
            "-10% pour 2, -15% pour 3 et -20% à partir de 4."
        ),
        category="pricing",
        tags=["prix", "coût", "combien", "tarif"],
    ),
    KnowledgeEntry(
        id="faq-guarantee",
        question="Y a-t-il une garantie satisfaction ?",
        answer=(
            "Oui ! Si le jeu ne vous plaît pas, contactez-nous sous 7 jours et nous "
            "trouverons une solution ensemble."
        ),
        category="guarantee",
        tags=["garantie", "remboursement", "satisfait"],
    ),
    KnowledgeEntry(
        id="faq-payment",
        question="Quels sont les moyens de paiement acceptés ?",
        answer=(
            "Vous pouvez payer par Wave, par carte bancaire ou en espèces à la livraison."
        ),
        category="payment",
        tags=["paiement", "payer", "wave", "carte", "espèces"],
    ),
)


def tokenize(text: str) -> list[str]:
    folded = unicodedata.normalize("NFKD", text.lower())
    ascii_text = "".join(char for char in folded if not unicodedata.combining(char))
    return [token for token in TOKEN_PATTERN.findall(ascii_text) if token not in STOPWORDS]


@dataclass(slots=True)
class KnowledgeMatch:
    entry: KnowledgeEntry
    score: float


class KnowledgeIndex:
    """Cosine similarity between a query and each entry's question and tags."""

    def __init__(self, entries: Iterable[KnowledgeEntry]) -> None:
        self.entries = list(entries)
        documents = [
            tokenize(" ".join([entry.question, entry.category, *entry.tags])) for entry in self.entries
        ]
        vocabulary = sorted({token for document in documents for token in document})
        self._vocab_index = {token: idx for idx, token in enumerate(vocabulary)}

        document_frequency = np.zeros(len(vocabulary), dtype=np.float32)
        for document in documents:
            for token in set(document):
                document_frequency[self._vocab_index[token]] += 1
        total = max(len(documents), 1)
        self._idf = np.log((1 + total) / (1 + document_frequency)) + 1.0

        matrix = np.zeros((len(documents), len(vocabulary)), dtype=np.float32)
        for row, document in enumerate(documents):
            if not document:
                continue
            for token, count in Counter(document).items():
                idx = self._vocab_index[token]
                matrix[row, idx] = (count / len(document)) * self._idf[idx]
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        self._matrix = matrix / norms

    def __len__(self) -> int:
        return len(self.entries)

    def _vectorize(self, text: str) -> np.ndarray | None:
        tokens = tokenize(text)
        if not tokens or not self._vocab_index:
            return None

        vector = np.zeros(len(self._vocab_index), dtype=np.float32)
        for token, count in Counter(tokens).items():
            idx = self._vocab_index.get(token)
            if idx is None:
                continue
            vector[idx] = (count / len(tokens)) * self._idf[idx]
        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            return None
        return vector / norm

    def best_match(self, query: str, min_score: float = 0.2) -> KnowledgeMatch | None:
        vector = self._vectorize(query)
        if vector is None or not self.entries:
            return None

        scores = self._matrix @ vector
        best = int(np.argmax(scores))
        score = float(scores[best])
        if score < min_score:
            return None
        return KnowledgeMatch(entry=self.entries[best], score=score)
