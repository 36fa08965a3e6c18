"""Semantic matching for principle deduplication.

The oracle computes every confidence; the matcher only picks the argmax
and compares it to the threshold. Ties go to the first-listed text so the
result is deterministic. There is no keyword fallback: an oracle that is
missing, raises, or answers malformed data fails the operation.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from soulweaver.core.errors import (
    ErrorCode,
    SoulweaverError,
    provider_error,
    require_provider,
)
from soulweaver.models.protocol import SemanticOracle

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.7
"""Equivalent to a "medium" oracle confidence."""


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Outcome of matching one candidate against existing texts."""

    index: int
    """Index of the matched text, or -1 when nothing reached the threshold."""

    confidence: float
    """Best confidence seen, even when below the threshold."""

    is_match: bool

    @classmethod
    def none(cls, confidence: float = 0.0) -> "MatchResult":
        return cls(index=-1, confidence=confidence, is_match=False)


def validate_threshold(threshold: float, operation: str) -> None:
    """Reject thresholds outside [0, 1]."""
    if not 0.0 <= threshold <= 1.0 or math.isnan(threshold):
        raise SoulweaverError(
            ErrorCode.THRESHOLD_INVALID,
            context={"operation": operation, "detail": f"{threshold} is outside [0, 1]"},
        )


class Matcher:
    """Selects the best restatement of a candidate among canonical texts."""

    def __init__(self, oracle: SemanticOracle | None):
        require_provider(oracle, "semantic oracle", "Matcher")
        self.oracle = oracle

    async def match_best(
        self,
        candidate_text: str,
        existing_texts: Sequence[str],
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> MatchResult:
        """Find the existing text the candidate restates, if any.

        Args:
            candidate_text: Text to match (e.g. a signal's text)
            existing_texts: Canonical texts to compare against
            threshold: Minimum confidence for a match

        Returns:
            MatchResult with the winning index and its confidence

        Raises:
            ProviderUnavailableError: The oracle failed or answered malformed data
        """
        validate_threshold(threshold, "match_best")
        if not existing_texts:
            return MatchResult.none()

        try:
            scores = await self.oracle.score(candidate_text, existing_texts)
        except SoulweaverError:
            raise
        except Exception as e:
            raise provider_error(
                ErrorCode.ORACLE_UNAVAILABLE,
                operation="match_best",
                entity=candidate_text[:60],
                detail=str(e),
                cause=e,
            ) from e

        scores = list(scores)
        if len(scores) != len(existing_texts):
            raise provider_error(
                ErrorCode.ORACLE_RESPONSE_INVALID,
                operation="match_best",
                entity=candidate_text[:60],
                detail=f"expected {len(existing_texts)} scores, got {len(scores)}",
            )

        best_index = -1
        best_confidence = -1.0
        for i, score in enumerate(scores):
            if not isinstance(score, int | float) or math.isnan(score) or not 0.0 <= score <= 1.0:
                raise provider_error(
                    ErrorCode.ORACLE_RESPONSE_INVALID,
                    operation="match_best",
                    entity=candidate_text[:60],
                    detail=f"score {score!r} at index {i} is outside [0, 1]",
                )
            if score > best_confidence:
                best_index = i
                best_confidence = float(score)

        is_match = best_confidence >= threshold
        logger.debug(
            "%s: confidence=%.3f threshold=%.2f candidate=%r",
            "MATCH" if is_match else "NO_MATCH",
            best_confidence,
            threshold,
            candidate_text[:50],
        )

        if not is_match:
            return MatchResult.none(best_confidence)
        return MatchResult(index=best_index, confidence=best_confidence, is_match=True)


async def match_best(
    candidate_text: str,
    existing_texts: Sequence[str],
    threshold: float,
    oracle: SemanticOracle | None,
) -> MatchResult:
    """Functional form of Matcher.match_best()."""
    return await Matcher(oracle).match_best(candidate_text, existing_texts, threshold)
