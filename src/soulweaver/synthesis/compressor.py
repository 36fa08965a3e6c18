"""Compressor: promotes converged principles into tiered axioms.

Tier is a pure function of a principle's final N (core N>=5, domain
3<=N<5, emerging N<3) and never of the threshold that admitted it.
Principles below the threshold come back as `unconverged`; nothing is
discarded and nothing is fabricated to pad a sparse result.

Promotion admission (can_promote) is the anti-echo-chamber gate. It is
recorded on every axiom and is independent of N: self-sourced,
self-affirming evidence cannot make an axiom promotable however often it
repeats.
"""

import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

from soulweaver.config import CompressionConfig, PromotionCriteria
from soulweaver.core.errors import (
    ErrorCode,
    SoulweaverError,
    provider_error,
    require_provider,
)
from soulweaver.core.types import (
    TIER_RANK,
    Axiom,
    AxiomTier,
    CanonicalForm,
    HistoryEvent,
    Principle,
    PrincipleLink,
    PromotionStatus,
    Provenance,
    Stance,
)
from soulweaver.models.protocol import TextGenerator
from soulweaver.synthesis.guardrails import GuardrailWarnings, check_guardrails
from soulweaver.synthesis.tensions import attach_tensions_to_axioms, detect_tensions

logger = logging.getLogger(__name__)

CORE_TIER_MIN_N = 5
DOMAIN_TIER_MIN_N = 3

DEFAULT_PROMOTION_CRITERIA = PromotionCriteria()
DEFAULT_COMPRESSION = CompressionConfig()

_NOTATION_PROMPT = """Express this principle in compact notation with:
1. An emoji indicator that captures the essence (e.g., 🎯 for focus, 💎 for truth, 🛡️ for safety)
2. A single CJK character anchor (e.g., 誠 for honesty, 安 for safety, 明 for clarity)
3. Mathematical notation if there's a relationship (e.g., "A > B" for priority, "¬X" for negation)

Principle: {text}

Format your response as: [emoji] [CJK]: [math or brief summary]
Example: "🎯 誠: honesty > performance"

If no clear mathematical relationship, use a brief 2-3 word summary instead.
Respond with ONLY the formatted notation, nothing else."""


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class CompressionMetrics:
    principles_processed: int
    axioms_created: int
    compression_ratio: float
    """Principle word count over notated word count (0 when nothing was notated)."""


@dataclass(slots=True)
class CompressionResult:
    axioms: list[Axiom]
    unconverged: list[Principle]
    metrics: CompressionMetrics


@dataclass(frozen=True, slots=True)
class CascadeMetadata:
    effective_threshold: int
    """The N-threshold that produced the final result."""

    axiom_count_by_threshold: dict[int, int]
    """How many principles qualified at each threshold tried."""


@dataclass(slots=True)
class CascadeCompressionResult(CompressionResult):
    cascade: CascadeMetadata = field(default_factory=lambda: CascadeMetadata(1, {}))
    guardrails: GuardrailWarnings = field(default_factory=GuardrailWarnings)
    pruned: list[Axiom] = field(default_factory=list)
    """Axioms cut to respect the axiom cap, kept for auditing."""


# =============================================================================
# Tiering and admission
# =============================================================================


def determine_tier(n_count: int) -> AxiomTier:
    if n_count >= CORE_TIER_MIN_N:
        return AxiomTier.CORE
    if n_count >= DOMAIN_TIER_MIN_N:
        return AxiomTier.DOMAIN
    return AxiomTier.EMERGING


def get_provenance_diversity(principle: Principle) -> int:
    """Number of distinct provenance tags among a principle's signals."""
    return len({s.provenance for s in principle.signals})


def can_promote(
    principle: Principle,
    criteria: PromotionCriteria = DEFAULT_PROMOTION_CRITERIA,
) -> PromotionStatus:
    """Anti-echo-chamber admission check.

    All must hold:
    1. N >= min_principle_count
    2. provenance diversity >= min_provenance_diversity
    3. (when required) an external signal, or a questioning/denying stance
    """
    diversity = get_provenance_diversity(principle)

    if principle.n_count < criteria.min_principle_count:
        return PromotionStatus(
            promotable=False,
            diversity=diversity,
            blocker=(
                f"Insufficient evidence: N={principle.n_count} "
                f"below minimum {criteria.min_principle_count}"
            ),
        )

    if diversity < criteria.min_provenance_diversity:
        return PromotionStatus(
            promotable=False,
            diversity=diversity,
            blocker=(
                f"Insufficient provenance diversity: {diversity}/"
                f"{criteria.min_provenance_diversity} types"
            ),
        )

    if criteria.require_external_or_questioning:
        has_external = any(s.provenance is Provenance.EXTERNAL for s in principle.signals)
        has_challenge = any(
            s.stance in (Stance.QUESTION, Stance.DENY) for s in principle.signals
        )
        if not has_external and not has_challenge:
            return PromotionStatus(
                promotable=False,
                diversity=diversity,
                blocker=(
                    "Anti-echo-chamber: requires EXTERNAL provenance "
                    "or QUESTIONING/DENYING stance"
                ),
            )

    return PromotionStatus(promotable=True, diversity=diversity)


# =============================================================================
# Axiom synthesis
# =============================================================================


def generate_axiom_id() -> str:
    return f"ax_{uuid.uuid4()}"


def placeholder_notation(text: str) -> str:
    return f"📌 理: {text[:30]}"


async def generate_notated_form(generator: TextGenerator | None, text: str) -> str:
    """Compact emoji + CJK anchor + math rendering of a principle."""
    require_provider(generator, "text generator", "generate_notated_form")
    try:
        result = await generator.generate(_NOTATION_PROMPT.format(text=text))
    except SoulweaverError:
        raise
    except Exception as e:
        raise provider_error(
            ErrorCode.GENERATOR_UNAVAILABLE,
            operation="generate_notated_form",
            entity=text[:60],
            detail=str(e),
            cause=e,
        ) from e
    return result.content.strip() or placeholder_notation(text)


async def synthesize_axiom(
    generator: TextGenerator | None,
    principle: Principle,
    criteria: PromotionCriteria = DEFAULT_PROMOTION_CRITERIA,
) -> Axiom:
    """Build an axiom for one converged principle."""
    notated = await generate_notated_form(generator, principle.text)
    return Axiom(
        id=generate_axiom_id(),
        text=principle.text,
        tier=determine_tier(principle.n_count),
        dimension=principle.dimension,
        canonical=CanonicalForm(native=principle.text, notated=notated),
        derived_from=[
            PrincipleLink(id=principle.id, text=principle.text, n_count=principle.n_count)
        ],
        promotion=can_promote(principle, criteria),
        history=[
            HistoryEvent(
                type="created",
                details=f"Promoted from principle {principle.id} (N={principle.n_count})",
            )
        ],
    )


def _word_count(text: str) -> int:
    return len(text.split())


async def compress_principles(
    principles: Sequence[Principle],
    threshold: int,
    generator: TextGenerator | None,
    criteria: PromotionCriteria = DEFAULT_PROMOTION_CRITERIA,
) -> CompressionResult:
    """Promote every principle with N >= threshold.

    Args:
        principles: Principles to compress
        threshold: Minimum N for promotion
        generator: Text generator for the notated form (required)
        criteria: Anti-echo-chamber admission criteria

    Returns:
        CompressionResult with axioms (input order), unconverged principles
        and metrics
    """
    require_provider(generator, "text generator", "compress_principles")
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
        raise SoulweaverError(
            ErrorCode.THRESHOLD_INVALID,
            context={
                "operation": "compress_principles",
                "detail": f"N-threshold must be a positive integer, got {threshold!r}",
            },
        )

    converged = [p for p in principles if p.n_count >= threshold]
    unconverged = [p for p in principles if p.n_count < threshold]

    axioms = list(
        await asyncio.gather(*(synthesize_axiom(generator, p, criteria) for p in converged))
    )

    original_words = sum(_word_count(p.text) for p in principles)
    compressed_words = sum(_word_count(a.canonical.notated) for a in axioms)

    logger.debug(
        "Compressed %d principles at N>=%d: %d axioms, %d unconverged",
        len(principles),
        threshold,
        len(axioms),
        len(unconverged),
    )

    return CompressionResult(
        axioms=axioms,
        unconverged=unconverged,
        metrics=CompressionMetrics(
            principles_processed=len(principles),
            axioms_created=len(axioms),
            compression_ratio=original_words / compressed_words if compressed_words else 0.0,
        ),
    )


def count_axioms_at_threshold(principles: Sequence[Principle], threshold: int) -> int:
    return sum(1 for p in principles if p.n_count >= threshold)


def select_cascade_threshold(
    principles: Sequence[Principle],
    compression: CompressionConfig = DEFAULT_COMPRESSION,
) -> CascadeMetadata:
    """Pick the strictest threshold yielding at least min_axiom_target axioms.

    Falls back to 1 when no level reaches the target.
    """
    counts = {t: count_axioms_at_threshold(principles, t) for t in compression.cascade_thresholds}
    effective = next(
        (t for t in compression.cascade_thresholds if counts[t] >= compression.min_axiom_target),
        1,
    )
    return CascadeMetadata(effective_threshold=effective, axiom_count_by_threshold=counts)


def prune_axioms(axioms: Sequence[Axiom], cap: int) -> tuple[list[Axiom], list[Axiom]]:
    """Keep the `cap` strongest axioms (by N, then tier); return (kept, pruned)."""
    if len(axioms) <= cap:
        return list(axioms), []
    ranked = sorted(axioms, key=lambda a: (-a.n_count, TIER_RANK[a.tier]))
    logger.info("Pruned %d axioms to meet the axiom cap (%d)", len(ranked) - cap, cap)
    return ranked[:cap], ranked[cap:]


async def compress_principles_with_cascade(
    principles: Sequence[Principle],
    generator: TextGenerator | None,
    *,
    criteria: PromotionCriteria = DEFAULT_PROMOTION_CRITERIA,
    compression: CompressionConfig = DEFAULT_COMPRESSION,
    signal_count: int | None = None,
    with_tensions: bool = False,
) -> CascadeCompressionResult:
    """Compress with adaptive threshold selection.

    Tries each cascade threshold (3, 2, 1 by default) and accepts the first
    that yields enough axioms. Tier still comes from each principle's raw N.

    Args:
        principles: Principles to compress
        generator: Text generator for notation and tension checks (required)
        criteria: Anti-echo-chamber admission criteria
        compression: Cascade levels, axiom target and caps
        signal_count: Input signal count for the guardrails; defaults to
            the sum of N over the principles
        with_tensions: Run pairwise tension detection on the final axioms
    """
    require_provider(generator, "text generator", "compress_principles_with_cascade")

    cascade = select_cascade_threshold(principles, compression)
    result = await compress_principles(
        principles, cascade.effective_threshold, generator, criteria
    )

    axioms, pruned = prune_axioms(result.axioms, compression.axiom_cap)

    if with_tensions:
        tensions = await detect_tensions(generator, axioms)
        if tensions:
            axioms = attach_tensions_to_axioms(axioms, tensions)

    if signal_count is None:
        signal_count = sum(p.n_count for p in principles)
    guardrails = check_guardrails(
        len(axioms),
        signal_count,
        cascade.effective_threshold,
        cognitive_load_cap=compression.cognitive_load_cap,
    )

    logger.info(
        "Cascade selected N>=%d (%s): %d axioms, %d unconverged",
        cascade.effective_threshold,
        ", ".join(f"N>={t}: {c}" for t, c in cascade.axiom_count_by_threshold.items()),
        len(axioms),
        len(result.unconverged),
    )

    return CascadeCompressionResult(
        axioms=axioms,
        unconverged=result.unconverged,
        metrics=result.metrics,
        cascade=cascade,
        guardrails=guardrails,
        pruned=pruned,
    )


# =============================================================================
# Rendering
# =============================================================================

_TIER_HEADINGS = (
    (AxiomTier.CORE, "### Core (N≥5)"),
    (AxiomTier.DOMAIN, "### Domain (N≥3)"),
    (AxiomTier.EMERGING, "### Emerging (N<3)"),
)


def render_soul_markdown(axioms: Sequence[Axiom], *, notated: bool = False) -> str:
    """Render axioms as a SOUL.md outline grouped by tier."""
    lines = ["# SOUL.md", "", "## Core Axioms", ""]
    for tier, heading in _TIER_HEADINGS:
        members = [a for a in axioms if a.tier is tier]
        if not members:
            continue
        lines.extend([heading, ""])
        for axiom in members:
            text = axiom.canonical.notated if notated else axiom.canonical.native
            lines.append(f"- {text}")
        lines.append("")
    return "\n".join(lines)
