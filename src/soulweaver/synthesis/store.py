"""Principle store: accumulates signals into principles.

Each signal either reinforces the principle it restates (within the same
dimension) or founds a new one. Canonical text is the founding signal's
text and never changes afterwards. Threshold changes apply to future
matches only; existing clusters are never re-clustered, so a principle's
provenance always reads as "whatever matched at call time".

The store is an explicit per-run object. It is not internally synchronized:
callers serialize mutation within one lock-protected run.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from soulweaver.core.errors import ErrorCode, SoulweaverError, require_provider
from soulweaver.core.types import Dimension, HistoryEvent, Principle, Signal, SignalRef
from soulweaver.models.protocol import Classifier, SemanticOracle
from soulweaver.synthesis.dimensions import classify_dimension, classify_dimensions
from soulweaver.synthesis.matcher import DEFAULT_MATCH_THRESHOLD, Matcher, validate_threshold

logger = logging.getLogger(__name__)


class AddAction(str, Enum):
    CREATED = "created"
    REINFORCED = "reinforced"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class AddSignalResult:
    """What add_signal() did with a signal."""

    action: AddAction
    principle_id: str
    similarity: float


def generate_principle_id() -> str:
    return f"pri_{uuid.uuid4()}"


class PrincipleStore:
    """Accumulates signals into principles.

    Example:
        store = PrincipleStore(oracle, classifier, threshold=0.7)
        result = await store.add_signal(signal)
        if result.action is AddAction.REINFORCED:
            ...
    """

    def __init__(
        self,
        oracle: SemanticOracle | None,
        classifier: Classifier | None,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ):
        require_provider(oracle, "semantic oracle", "PrincipleStore")
        require_provider(classifier, "classifier", "PrincipleStore")
        validate_threshold(threshold, "PrincipleStore")

        self._matcher = Matcher(oracle)
        self._classifier = classifier
        self._threshold = threshold
        self._principles: dict[str, Principle] = {}
        self._signal_index: dict[str, str] = {}

    @classmethod
    def from_principles(
        cls,
        principles: Iterable[Principle],
        oracle: SemanticOracle | None,
        classifier: Classifier | None,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> PrincipleStore:
        """Seed a store from persisted principles.

        The signal-id index is rebuilt so re-ingesting already merged
        signals stays a no-op.
        """
        store = cls(oracle, classifier, threshold)
        for principle in principles:
            store._principles[principle.id] = principle
            for ref in principle.signals:
                store._signal_index[ref.id] = principle.id
        return store

    # -------------------------------------------------------------------------
    # Threshold
    # -------------------------------------------------------------------------

    @property
    def threshold(self) -> float:
        return self._threshold

    def set_threshold(self, threshold: float) -> None:
        """Change the match threshold for future signals only.

        Existing principles and their N are untouched.
        """
        validate_threshold(threshold, "set_threshold")
        logger.debug("Match threshold %.2f -> %.2f", self._threshold, threshold)
        self._threshold = threshold

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def add_signal(
        self,
        signal: Signal,
        dimension: Dimension | None = None,
    ) -> AddSignalResult:
        """Merge a signal into the store.

        Args:
            signal: The signal to add
            dimension: Optional dimension hint; otherwise the signal's own
                dimension, otherwise the classifier decides

        Returns:
            AddSignalResult describing whether a principle was created,
            reinforced, or the signal was already known
        """
        if not signal.id or not signal.text.strip():
            raise SoulweaverError(
                ErrorCode.SIGNAL_INVALID,
                context={
                    "operation": "add_signal",
                    "entity": signal.id or "<no id>",
                    "detail": "signals need an id and non-empty text",
                },
            )

        known = self._signal_index.get(signal.id)
        if known is not None:
            ref = next(r for r in self._principles[known].signals if r.id == signal.id)
            return AddSignalResult(AddAction.SKIPPED, known, ref.similarity)

        resolved = dimension or signal.dimension
        if resolved is None:
            resolved = await classify_dimension(self._classifier, signal.text)

        candidates = [p for p in self._principles.values() if p.dimension == resolved]
        match = await self._matcher.match_best(
            signal.text,
            [p.text for p in candidates],
            self._threshold,
        )

        if match.is_match:
            principle = candidates[match.index]
            principle.signals.append(SignalRef.from_signal(signal, match.confidence))
            principle.history.append(
                HistoryEvent(
                    type="reinforced",
                    details=f"Reinforced by signal {signal.id} (similarity: {match.confidence:.3f})",
                )
            )
            self._signal_index[signal.id] = principle.id
            return AddSignalResult(AddAction.REINFORCED, principle.id, match.confidence)

        principle = Principle(
            id=generate_principle_id(),
            text=signal.text,
            dimension=resolved,
            similarity_threshold=self._threshold,
            signals=[SignalRef.from_signal(signal, 1.0)],
            history=[
                HistoryEvent(
                    type="created",
                    details=f"Created from signal {signal.id} (best match was {match.confidence:.3f})",
                )
            ],
        )
        self._principles[principle.id] = principle
        self._signal_index[signal.id] = principle.id
        return AddSignalResult(AddAction.CREATED, principle.id, match.confidence)

    async def add_signals(self, signals: Sequence[Signal]) -> list[AddSignalResult]:
        """Add signals in order.

        Dimensions for unknown, untagged signals are classified up front so
        a batch-capable classifier answers them in one request.
        """
        pending = [
            s for s in signals
            if s.dimension is None and s.id not in self._signal_index
        ]
        hints: dict[str, Dimension] = {}
        if pending:
            dimensions = await classify_dimensions(self._classifier, [s.text for s in pending])
            hints = {s.id: d for s, d in zip(pending, dimensions, strict=True)}

        results = []
        for signal in signals:
            results.append(await self.add_signal(signal, hints.get(signal.id)))

        created = sum(1 for r in results if r.action is AddAction.CREATED)
        reinforced = sum(1 for r in results if r.action is AddAction.REINFORCED)
        logger.info(
            "Added %d signals: %d created, %d reinforced, %d skipped",
            len(results),
            created,
            reinforced,
            len(results) - created - reinforced,
        )
        return results

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, principle_id: str) -> Principle | None:
        return self._principles.get(principle_id)

    def get_principles(self) -> list[Principle]:
        return list(self._principles.values())

    def get_principles_above_n(self, threshold: int) -> list[Principle]:
        """Principles with N >= threshold."""
        return [p for p in self._principles.values() if p.n_count >= threshold]

    @property
    def signal_count(self) -> int:
        """Number of distinct signals merged into the store."""
        return len(self._signal_index)

    def __len__(self) -> int:
        return len(self._principles)

    def __contains__(self, principle_id: object) -> bool:
        return principle_id in self._principles
