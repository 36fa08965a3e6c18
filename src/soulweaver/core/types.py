"""Core synthesis types: signals, principles, axioms and the persisted soul.

Three tiers of compression:
- Signal: one atomic observation about the subject (immutable)
- Principle: a cluster of signals expressing one belief, tracked by N
- Axiom: a principle promoted past an evidence bar

Serialized field names are camelCase to match the soul state document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Timezone-aware current time used for every history stamp."""
    return datetime.now(UTC)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return utc_now()


# =============================================================================
# Vocabularies
# =============================================================================


class Provenance(str, Enum):
    """Where the evidence came from.

    - self: the subject reflecting on its own experience
    - curated: content the subject selected or endorsed
    - external: content that exists independently of the subject's preference
    """

    SELF = "self"
    CURATED = "curated"
    EXTERNAL = "external"


PROVENANCE_WEIGHT: dict[Provenance, float] = {
    Provenance.EXTERNAL: 2.0,
    Provenance.CURATED: 1.0,
    Provenance.SELF: 0.5,
}


class Stance(str, Enum):
    """How a signal is presented."""

    ASSERT = "assert"
    DENY = "deny"
    QUESTION = "question"
    QUALIFY = "qualify"
    TENSIONING = "tensioning"

    @classmethod
    def from_canonical(cls, name: str) -> Stance:
        """Map canonical stance vocabulary (AFFIRMING, DENYING, ...) to a Stance.

        Unknown names map to ASSERT.
        """
        return _CANONICAL_STANCES.get(name.strip().upper(), cls.ASSERT)


_CANONICAL_STANCES: dict[str, Stance] = {
    "AFFIRMING": Stance.ASSERT,
    "ASSERT": Stance.ASSERT,
    "QUALIFYING": Stance.QUALIFY,
    "QUALIFY": Stance.QUALIFY,
    "TENSIONING": Stance.TENSIONING,
    "QUESTIONING": Stance.QUESTION,
    "QUESTION": Stance.QUESTION,
    "DENYING": Stance.DENY,
    "DENY": Stance.DENY,
}


class Dimension(str, Enum):
    """Identity dimensions used to partition principles."""

    IDENTITY_CORE = "identity-core"
    CHARACTER_TRAITS = "character-traits"
    VOICE_PRESENCE = "voice-presence"
    HONESTY_FRAMEWORK = "honesty-framework"
    BOUNDARIES_ETHICS = "boundaries-ethics"
    RELATIONSHIP_DYNAMICS = "relationship-dynamics"
    CONTINUITY_GROWTH = "continuity-growth"


class AxiomTier(str, Enum):
    """Axiom confidence level, a pure function of final N."""

    CORE = "core"
    DOMAIN = "domain"
    EMERGING = "emerging"


TIER_RANK: dict[AxiomTier, int] = {
    AxiomTier.CORE: 0,
    AxiomTier.DOMAIN: 1,
    AxiomTier.EMERGING: 2,
}


# =============================================================================
# Signals
# =============================================================================


@dataclass(frozen=True, slots=True)
class SignalSource:
    """Location a signal was extracted from."""

    file: str
    line: int | None = None
    section: str | None = None
    context: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "section": self.section,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignalSource:
        return cls(
            file=data.get("file", ""),
            line=data.get("line"),
            section=data.get("section"),
            context=data.get("context", ""),
        )


@dataclass(frozen=True, slots=True)
class Signal:
    """An atomic observation about the subject's behavior."""

    id: str
    text: str
    provenance: Provenance = Provenance.SELF
    stance: Stance = Stance.ASSERT
    dimension: Dimension | None = None
    source: SignalSource | None = None


# =============================================================================
# Principles
# =============================================================================


@dataclass(slots=True)
class SignalRef:
    """A signal merged into a principle, keeping its own provenance and stance."""

    id: str
    text: str
    similarity: float
    provenance: Provenance = Provenance.SELF
    stance: Stance = Stance.ASSERT
    source: SignalSource | None = None

    @classmethod
    def from_signal(cls, signal: Signal, similarity: float) -> SignalRef:
        return cls(
            id=signal.id,
            text=signal.text,
            similarity=similarity,
            provenance=signal.provenance,
            stance=signal.stance,
            source=signal.source,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "similarity": self.similarity,
            "provenance": self.provenance.value,
            "stance": self.stance.value,
            "source": self.source.to_dict() if self.source else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignalRef:
        source = data.get("source")
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            similarity=data.get("similarity", 1.0),
            provenance=Provenance(data.get("provenance", "self")),
            stance=Stance(data.get("stance", "assert")),
            source=SignalSource.from_dict(source) if source else None,
        )


@dataclass(slots=True)
class HistoryEvent:
    """One entry in a principle or axiom history log."""

    type: str
    details: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEvent:
        return cls(
            type=data["type"],
            details=data.get("details", ""),
            timestamp=_parse_datetime(data.get("timestamp")),
        )


@dataclass(slots=True)
class Principle:
    """A cluster of signals judged to express the same belief.

    The reinforcement count N is derived from the merged signals, so it
    cannot drift from them. Canonical text is the founding signal's text.
    """

    id: str
    text: str
    dimension: Dimension
    similarity_threshold: float
    signals: list[SignalRef] = field(default_factory=list)
    history: list[HistoryEvent] = field(default_factory=list)

    @property
    def n_count(self) -> int:
        """Reinforcement count: number of merged signals."""
        return len(self.signals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "dimension": self.dimension.value,
            "nCount": self.n_count,
            "similarityThreshold": self.similarity_threshold,
            "signals": [s.to_dict() for s in self.signals],
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Principle:
        return cls(
            id=data["id"],
            text=data["text"],
            dimension=Dimension(data["dimension"]),
            similarity_threshold=data.get("similarityThreshold", 0.7),
            signals=[SignalRef.from_dict(s) for s in data.get("signals", [])],
            history=[HistoryEvent.from_dict(h) for h in data.get("history", [])],
        )


# =============================================================================
# Axioms
# =============================================================================


@dataclass(slots=True)
class CanonicalForm:
    """Plain text plus a compact notated rendering (emoji, CJK anchor, math)."""

    native: str
    notated: str


@dataclass(slots=True)
class PrincipleLink:
    """Back-reference from an axiom to a contributing principle."""

    id: str
    text: str
    n_count: int


@dataclass(slots=True)
class AxiomTension:
    """A detected tension with another axiom."""

    axiom_id: str
    description: str
    severity: str  # high | medium | low


@dataclass(slots=True)
class PromotionStatus:
    """Anti-echo-chamber admission result."""

    promotable: bool
    diversity: int
    blocker: str | None = None


@dataclass(slots=True)
class Axiom:
    """A principle promoted into the identity tier."""

    id: str
    text: str
    tier: AxiomTier
    dimension: Dimension
    canonical: CanonicalForm
    derived_from: list[PrincipleLink]
    promotion: PromotionStatus
    promoted_at: datetime = field(default_factory=utc_now)
    history: list[HistoryEvent] = field(default_factory=list)
    tensions: list[AxiomTension] = field(default_factory=list)

    @property
    def n_count(self) -> int:
        """Evidence behind the axiom (strongest contributing principle)."""
        return max((p.n_count for p in self.derived_from), default=0)

    @property
    def principle_ids(self) -> set[str]:
        return {p.id for p in self.derived_from}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "tier": self.tier.value,
            "dimension": self.dimension.value,
            "canonical": {
                "native": self.canonical.native,
                "notated": self.canonical.notated,
            },
            "derivedFrom": {
                "principles": [
                    {"id": p.id, "text": p.text, "nCount": p.n_count}
                    for p in self.derived_from
                ],
                "promotedAt": self.promoted_at.isoformat(),
            },
            "promotion": {
                "promotable": self.promotion.promotable,
                "diversity": self.promotion.diversity,
                "blocker": self.promotion.blocker,
            },
            "history": [h.to_dict() for h in self.history],
            "tensions": [
                {
                    "axiomId": t.axiom_id,
                    "description": t.description,
                    "severity": t.severity,
                }
                for t in self.tensions
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Axiom:
        derived = data.get("derivedFrom", {})
        promotion = data.get("promotion", {})
        return cls(
            id=data["id"],
            text=data["text"],
            tier=AxiomTier(data["tier"]),
            dimension=Dimension(data["dimension"]),
            canonical=CanonicalForm(
                native=data["canonical"]["native"],
                notated=data["canonical"]["notated"],
            ),
            derived_from=[
                PrincipleLink(id=p["id"], text=p["text"], n_count=p["nCount"])
                for p in derived.get("principles", [])
            ],
            promoted_at=_parse_datetime(derived.get("promotedAt")),
            promotion=PromotionStatus(
                promotable=promotion.get("promotable", False),
                diversity=promotion.get("diversity", 0),
                blocker=promotion.get("blocker"),
            ),
            history=[HistoryEvent.from_dict(h) for h in data.get("history", [])],
            tensions=[
                AxiomTension(
                    axiom_id=t["axiomId"],
                    description=t["description"],
                    severity=t["severity"],
                )
                for t in data.get("tensions", [])
            ],
        )


# =============================================================================
# Soul
# =============================================================================


@dataclass(slots=True)
class Soul:
    """Persisted synthesis state for one subject."""

    id: str
    updated_at: datetime
    axioms: list[Axiom]
    principles: list[Principle]
    cycle_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "updatedAt": self.updated_at.isoformat(),
            "axioms": [a.to_dict() for a in self.axioms],
            "principles": [p.to_dict() for p in self.principles],
            "cycleCount": self.cycle_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Soul:
        return cls(
            id=data["id"],
            updated_at=_parse_datetime(data.get("updatedAt")),
            axioms=[Axiom.from_dict(a) for a in data.get("axioms", [])],
            principles=[Principle.from_dict(p) for p in data.get("principles", [])],
            cycle_count=data["cycleCount"],
        )
