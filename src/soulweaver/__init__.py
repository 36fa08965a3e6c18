"""Soulweaver - signals to principles to axioms.

Distills short observations about a subject into reinforced principles and
a vetted tier of identity axioms, across repeated, incremental cycles.

Key components:
- synthesis.matcher: oracle-backed restatement matching
- synthesis.store: signal accumulation into principles
- synthesis.compressor: cascading promotion into tiered axioms
- cycle: mode decision, soul persistence and the synthesis lock

Applications call configure_logging() once at startup; the library itself
only logs to `soulweaver.*` loggers.
"""

from soulweaver.core.errors import ErrorCode, SoulweaverError
from soulweaver.core.types import (
    Axiom,
    AxiomTier,
    Dimension,
    Principle,
    Provenance,
    Signal,
    SignalSource,
    Soul,
    Stance,
)
from soulweaver.cycle.manager import CycleDecision, CycleMode, decide_cycle_mode
from soulweaver.cycle.runner import CycleSynthesisResult, SynthesisRun
from soulweaver.foundation.logging import configure_logging
from soulweaver.synthesis.compressor import (
    can_promote,
    compress_principles,
    compress_principles_with_cascade,
)
from soulweaver.synthesis.guardrails import check_guardrails
from soulweaver.synthesis.matcher import Matcher, MatchResult, match_best
from soulweaver.synthesis.store import AddAction, AddSignalResult, PrincipleStore

__version__ = "0.3.0"

__all__ = [
    # Errors
    "ErrorCode",
    "SoulweaverError",
    # Types
    "Axiom",
    "AxiomTier",
    "Dimension",
    "Principle",
    "Provenance",
    "Signal",
    "SignalSource",
    "Soul",
    "Stance",
    # Synthesis
    "Matcher",
    "MatchResult",
    "match_best",
    "PrincipleStore",
    "AddAction",
    "AddSignalResult",
    "compress_principles",
    "compress_principles_with_cascade",
    "can_promote",
    "check_guardrails",
    # Cycle
    "CycleMode",
    "CycleDecision",
    "decide_cycle_mode",
    "SynthesisRun",
    "CycleSynthesisResult",
    # Logging
    "configure_logging",
]
