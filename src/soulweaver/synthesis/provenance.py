"""Audit trail from an axiom back to the signals that produced it."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from soulweaver.core.types import Axiom, Principle, Signal, SignalSource


@dataclass(frozen=True, slots=True)
class TracedSignal:
    id: str
    text: str
    source: SignalSource | None


@dataclass(slots=True)
class ProvenanceChain:
    """axiom -> principles -> signals."""

    axiom_id: str
    axiom_text: str
    principles: list[dict[str, Any]] = field(default_factory=list)
    signals: list[TracedSignal] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "axiom": {"id": self.axiom_id, "text": self.axiom_text},
            "principles": self.principles,
            "signals": [
                {
                    "id": s.id,
                    "text": s.text,
                    "source": s.source.to_dict() if s.source else None,
                }
                for s in self.signals
            ],
        }


def trace_to_source(
    axiom: Axiom,
    principles: Mapping[str, Principle],
    signals: Mapping[str, Signal] | None = None,
) -> ProvenanceChain:
    """Build the provenance chain for one axiom.

    Signals are resolved from `signals` when given, otherwise from the
    reference records the principle keeps. Unknown ids are skipped.
    """
    chain = ProvenanceChain(axiom_id=axiom.id, axiom_text=axiom.text)

    for link in axiom.derived_from:
        chain.principles.append({"id": link.id, "text": link.text, "nCount": link.n_count})
        principle = principles.get(link.id)
        if principle is None:
            continue
        for ref in principle.signals:
            if signals is None:
                chain.signals.append(TracedSignal(ref.id, ref.text, ref.source))
                continue
            signal = signals.get(ref.id)
            if signal is not None:
                chain.signals.append(TracedSignal(signal.id, signal.text, signal.source))

    return chain
