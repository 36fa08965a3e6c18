"""Cycle management: how a new synthesis run relates to the persisted soul.

Modes:
- initial: no valid soul exists yet
- full-resynthesis: a trigger fired (force flag, too many new principles,
  axiom priority ordering changed, too many contradictions)
- incremental: new evidence is merged into the existing soul and axiom ids
  stay stable
"""

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from itertools import combinations

from soulweaver.config import CycleConfig
from soulweaver.core.types import TIER_RANK, Axiom, HistoryEvent, Principle, Soul, utc_now
from soulweaver.cycle.contradictions import (
    Contradiction,
    ContradictionDetector,
    NegationContradictionDetector,
    text_similarity,
)

logger = logging.getLogger(__name__)

NEW_PRINCIPLE_SIMILARITY = 0.7
"""Token overlap above which a candidate counts as already known."""


class CycleMode(str, Enum):
    INITIAL = "initial"
    INCREMENTAL = "incremental"
    FULL_RESYNTHESIS = "full-resynthesis"


@dataclass(frozen=True, slots=True)
class CycleThresholds:
    new_principle_ratio: float = 0.3
    contradiction_count: int = 2
    hierarchy_changed: bool = False

    @classmethod
    def from_config(cls, config: CycleConfig, *, hierarchy_changed: bool = False) -> "CycleThresholds":
        return cls(
            new_principle_ratio=config.new_principle_ratio,
            contradiction_count=config.contradiction_count,
            hierarchy_changed=hierarchy_changed,
        )


@dataclass(frozen=True, slots=True)
class CycleDecision:
    mode: CycleMode
    reason: str
    triggers: tuple[str, ...] = ()
    new_principle_count: int = 0
    contradictions: tuple[Contradiction, ...] = field(default_factory=tuple)


# =============================================================================
# Soul lifecycle
# =============================================================================


def create_soul(axioms: Sequence[Axiom], principles: Sequence[Principle]) -> Soul:
    """A fresh soul at cycle 1."""
    return Soul(
        id=str(uuid.uuid4()),
        updated_at=utc_now(),
        axioms=list(axioms),
        principles=list(principles),
        cycle_count=1,
    )


def update_soul(soul: Soul, axioms: Sequence[Axiom], principles: Sequence[Principle]) -> Soul:
    """Same soul, new content, cycle count advanced by one."""
    return replace(
        soul,
        updated_at=utc_now(),
        axioms=list(axioms),
        principles=list(principles),
        cycle_count=soul.cycle_count + 1,
    )


# =============================================================================
# Mode decision
# =============================================================================


def find_new_principles(
    existing: Sequence[Principle],
    candidates: Sequence[Principle],
    similarity_threshold: float = NEW_PRINCIPLE_SIMILARITY,
) -> list[Principle]:
    """Candidates the soul does not already hold, by id or by near-identical text."""
    known_ids = {p.id for p in existing}
    return [
        c for c in candidates
        if c.id not in known_ids
        and not any(text_similarity(e.text, c.text) > similarity_threshold for e in existing)
    ]


def _tier_ranks(axioms: Sequence[Axiom]) -> dict[str, int]:
    ranks: dict[str, int] = {}
    for axiom in axioms:
        for principle_id in axiom.principle_ids:
            ranks[principle_id] = min(ranks.get(principle_id, 2), TIER_RANK[axiom.tier])
    return ranks


def axiom_hierarchy_changed(previous: Sequence[Axiom], current: Sequence[Axiom]) -> bool:
    """Whether any two axioms present in both sets swapped priority.

    Axioms are identified by their source principles (axiom ids are not
    stable across compressions). Priority is the tier; a pair strictly
    ordered one way before and strictly the other way now is a change.
    """
    before = _tier_ranks(previous)
    after = _tier_ranks(current)
    shared = sorted(before.keys() & after.keys())
    for a, b in combinations(shared, 2):
        old = before[a] - before[b]
        new = after[a] - after[b]
        if old * new < 0:
            return True
    return False


def decide_cycle_mode(
    existing_soul: Soul | None,
    candidate_principles: Sequence[Principle],
    thresholds: CycleThresholds | None = None,
    *,
    force: bool = False,
    detector: ContradictionDetector | None = None,
) -> CycleDecision:
    """Choose the cycle mode for this run.

    Args:
        existing_soul: Previously persisted soul (None on first run)
        candidate_principles: Principles produced by this run
        thresholds: Trigger thresholds and the hierarchy-changed flag
        force: Force full resynthesis
        detector: Contradiction detector (negation heuristic by default)

    Returns:
        CycleDecision with mode, reason, and every trigger that fired
    """
    thresholds = thresholds or CycleThresholds()
    detector = detector or NegationContradictionDetector()

    if existing_soul is None:
        return CycleDecision(mode=CycleMode.INITIAL, reason="No existing soul state")

    triggers: list[str] = []
    if force:
        triggers.append("Force resynthesis flag set")

    new_principles = find_new_principles(existing_soul.principles, candidate_principles)
    existing_count = len(existing_soul.principles)
    if existing_count > 0:
        ratio = len(new_principles) / existing_count
        if ratio > thresholds.new_principle_ratio:
            triggers.append(
                f"New principles ({ratio:.0%}) exceed threshold "
                f"({thresholds.new_principle_ratio:.0%})"
            )

    if thresholds.hierarchy_changed:
        triggers.append("Axiom hierarchy has changed")

    contradictions = detector.detect(existing_soul.axioms, new_principles)
    if len(contradictions) >= thresholds.contradiction_count:
        triggers.append(f"{len(contradictions)} axiom contradictions from new evidence")

    if triggers:
        decision = CycleDecision(
            mode=CycleMode.FULL_RESYNTHESIS,
            reason="Manual override" if len(triggers) == 1 and force else "Significant changes detected",
            triggers=tuple(triggers),
            new_principle_count=len(new_principles),
            contradictions=tuple(contradictions),
        )
    else:
        decision = CycleDecision(
            mode=CycleMode.INCREMENTAL,
            reason="Merge new principles into existing soul",
            new_principle_count=len(new_principles),
            contradictions=tuple(contradictions),
        )

    logger.info("Cycle mode %s: %s", decision.mode.value, "; ".join(decision.triggers) or decision.reason)
    return decision


def format_cycle_decision(decision: CycleDecision) -> str:
    lines = [f"Mode: {decision.mode.value}", f"Reason: {decision.reason}"]
    if decision.triggers:
        lines.append("Triggers:")
        lines.extend(f"  - {t}" for t in decision.triggers)
    return "\n".join(lines)


# =============================================================================
# Incremental merge
# =============================================================================


def merge_incremental(existing: Sequence[Axiom], fresh: Sequence[Axiom]) -> list[Axiom]:
    """Fold freshly compressed axioms into the existing ones.

    A fresh axiom sharing a source principle with an existing axiom updates
    that axiom in place: the id, notation and history are kept, evidence
    links, tier and promotion status are refreshed, and `refined` (N grew)
    or `elevated` (tier rose) events are appended. Unmatched fresh axioms
    are appended as new. Existing axioms with no fresh counterpart are kept
    unchanged.
    """
    merged = list(existing)
    by_principle: dict[str, Axiom] = {}
    for axiom in merged:
        for principle_id in axiom.principle_ids:
            by_principle.setdefault(principle_id, axiom)

    for axiom in fresh:
        target = next((by_principle[p] for p in axiom.principle_ids if p in by_principle), None)
        if target is None:
            merged.append(axiom)
            for principle_id in axiom.principle_ids:
                by_principle[principle_id] = axiom
            continue

        old_n, old_tier = target.n_count, target.tier
        target.derived_from = list(axiom.derived_from)
        target.promotion = axiom.promotion
        target.tier = axiom.tier

        if target.n_count > old_n:
            target.history.append(
                HistoryEvent(type="refined", details=f"N {old_n} -> {target.n_count}")
            )
        if TIER_RANK[target.tier] < TIER_RANK[old_tier]:
            target.history.append(
                HistoryEvent(
                    type="elevated",
                    details=f"Tier {old_tier.value} -> {target.tier.value}",
                )
            )

    return merged
