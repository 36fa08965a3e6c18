"""Compression-health guardrails.

Advisory only: warnings are logged and attached to results, never raised.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

COGNITIVE_LOAD_CAP = 30
"""Absolute ceiling used by the cognitive-load check."""


@dataclass(frozen=True, slots=True)
class GuardrailWarnings:
    """Independent guardrail flags plus their messages."""

    expansion_warning: bool = False
    """More axioms than input signals: expansion instead of compression."""

    cognitive_load_warning: bool = False
    """Axiom count above min(signals * 0.5, cap)."""

    fallback_warning: bool = False
    """The cascade fell back to threshold 1."""

    messages: tuple[str, ...] = ()

    @property
    def any(self) -> bool:
        return self.expansion_warning or self.cognitive_load_warning or self.fallback_warning


NO_WARNINGS = GuardrailWarnings()


def check_guardrails(
    axiom_count: int,
    signal_count: int,
    effective_threshold: int,
    *,
    cognitive_load_cap: int = COGNITIVE_LOAD_CAP,
) -> GuardrailWarnings:
    """Evaluate the three guardrails and log any that fire."""
    messages: list[str] = []

    expansion = axiom_count > signal_count
    if expansion:
        messages.append(
            f"Expansion instead of compression: {axiom_count} axioms > {signal_count} signals"
        )

    cognitive_limit = min(signal_count * 0.5, cognitive_load_cap)
    cognitive_load = axiom_count > cognitive_limit
    if cognitive_load:
        messages.append(
            f"Exceeds cognitive load limit: {axiom_count} axioms > {cognitive_limit:.0f} "
            f"(min(signals*0.5, {cognitive_load_cap}))"
        )

    fallback = effective_threshold == 1
    if fallback:
        messages.append("Fell back to minimum threshold (N>=1): sparse evidence in input")

    for message in messages:
        logger.warning("[guardrail] %s", message)

    return GuardrailWarnings(
        expansion_warning=expansion,
        cognitive_load_warning=cognitive_load,
        fallback_warning=fallback,
        messages=tuple(messages),
    )
