"""Provider protocols - the external services synthesis depends on.

Three capabilities are consumed, all of which must be supplied explicitly:
- SemanticOracle: "is this candidate equivalent to each of these texts?"
- Classifier: "which of these categories does this text belong to?"
- TextGenerator: "generate free text from this prompt"

There is no fallback to keyword heuristics when a provider is missing.
Batch classification is an optional capability declared through the
BatchClassifier protocol; classify_many() falls back to sequential calls.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Result of classifying text into one category.

    category is None when the provider's answer could not be parsed into
    one of the offered categories; confidence is then 0.
    """

    category: str | None
    confidence: float
    reasoning: str | None = None


@dataclass(frozen=True, slots=True)
class GenerateResult:
    """Result of a text generation request."""

    content: str


@runtime_checkable
class SemanticOracle(Protocol):
    """Judges semantic equivalence of a candidate against a list of texts."""

    async def score(self, candidate: str, texts: Sequence[str]) -> list[float]:
        """Return one equivalence confidence in [0, 1] per text, in input order."""
        ...


@runtime_checkable
class Classifier(Protocol):
    """Classifies text into one of an enumerated set of categories."""

    async def classify(
        self,
        text: str,
        categories: Sequence[str],
        *,
        context: str | None = None,
    ) -> ClassificationResult:
        ...


@runtime_checkable
class BatchClassifier(Classifier, Protocol):
    """Classifier that can also answer many texts in one request."""

    async def classify_batch(
        self,
        texts: Sequence[str],
        categories: Sequence[str],
        *,
        context: str | None = None,
    ) -> list[ClassificationResult]:
        """Return results in the same order as texts."""
        ...


@runtime_checkable
class TextGenerator(Protocol):
    """Generates free text from a prompt."""

    async def generate(self, prompt: str) -> GenerateResult:
        ...


def supports_batch(classifier: Classifier) -> bool:
    """Whether the classifier declares the batch capability."""
    return isinstance(classifier, BatchClassifier)


async def classify_many(
    classifier: Classifier,
    texts: Sequence[str],
    categories: Sequence[str],
    *,
    context: str | None = None,
) -> list[ClassificationResult]:
    """Classify several texts, batching when the provider supports it.

    The sequential path is always correct; batching is an optimization.
    A batch answer of the wrong length is discarded in favor of the
    sequential path.
    """
    if not texts:
        return []

    if supports_batch(classifier):
        results = await classifier.classify_batch(texts, categories, context=context)
        if len(results) == len(texts):
            return list(results)
        logger.warning(
            "Batch classification returned %d results for %d texts, classifying sequentially",
            len(results),
            len(texts),
        )

    return [
        await classifier.classify(text, categories, context=context)
        for text in texts
    ]
