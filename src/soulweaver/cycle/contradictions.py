"""Contradiction detection between existing axioms and new principles.

The bundled detector is a heuristic, not a prover: two statements on the
same topic (high token overlap) where exactly one carries a negation
marker are flagged. Anything implementing ContradictionDetector can replace
it without touching cycle mode decisions.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from soulweaver.core.types import Axiom, Principle

_NON_WORD = re.compile(r"[^a-z0-9\s]")

NEGATION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bnot\b",
        r"\bnever\b",
        r"\bavoid\b",
        r"\bdon't\b",
        r"\bshouldn't\b",
        r"\bwon't\b",
        r"\bexcept\b",
    )
)

SAME_TOPIC_SIMILARITY = 0.5


def _tokens(text: str) -> set[str]:
    return set(_NON_WORD.sub("", text.lower()).split())


def text_similarity(first: str, second: str) -> float:
    """Jaccard similarity of normalized word sets."""
    a, b = _tokens(first), _tokens(second)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def has_negation(text: str) -> bool:
    return any(p.search(text) for p in NEGATION_PATTERNS)


@dataclass(frozen=True, slots=True)
class Contradiction:
    axiom_id: str
    principle_id: str
    similarity: float


@runtime_checkable
class ContradictionDetector(Protocol):
    def detect(
        self,
        axioms: Sequence[Axiom],
        principles: Sequence[Principle],
    ) -> list[Contradiction]:
        """Return every (axiom, principle) pair judged contradictory."""
        ...


@dataclass(frozen=True, slots=True)
class NegationContradictionDetector:
    """Same topic, opposite polarity."""

    similarity_floor: float = SAME_TOPIC_SIMILARITY

    def detect(
        self,
        axioms: Sequence[Axiom],
        principles: Sequence[Principle],
    ) -> list[Contradiction]:
        found = []
        for axiom in axioms:
            axiom_negated = has_negation(axiom.text)
            for principle in principles:
                similarity = text_similarity(axiom.text, principle.text)
                if similarity <= self.similarity_floor:
                    continue
                if axiom_negated != has_negation(principle.text):
                    found.append(Contradiction(axiom.id, principle.id, similarity))
        return found
