"""Dimension assignment for signals.

The classifier is mandatory. An unparseable answer is retried with
corrective context; after MAX_CLASSIFICATION_RETRIES the signal falls back
to identity-core with a warning. A classifier that raises is fatal.
"""

import logging
from collections.abc import Sequence

from soulweaver.core.errors import ErrorCode, SoulweaverError, provider_error, require_provider
from soulweaver.core.types import Dimension
from soulweaver.models.protocol import Classifier, classify_many

logger = logging.getLogger(__name__)

MAX_CLASSIFICATION_RETRIES = 2
DEFAULT_DIMENSION = Dimension.IDENTITY_CORE

DIMENSION_NAMES: tuple[str, ...] = tuple(d.value for d in Dimension)

_CONTEXT = "Identity dimension classification"


async def _classify_once(
    classifier: Classifier,
    text: str,
    context: str,
) -> str | None:
    try:
        result = await classifier.classify(text, DIMENSION_NAMES, context=context)
    except SoulweaverError:
        raise
    except Exception as e:
        raise provider_error(
            ErrorCode.CLASSIFIER_UNAVAILABLE,
            operation="classify_dimension",
            entity=text[:60],
            detail=str(e),
            cause=e,
        ) from e
    return result.category if result.category in DIMENSION_NAMES else None


async def classify_dimension(classifier: Classifier | None, text: str) -> Dimension:
    """Classify text into one identity dimension."""
    require_provider(classifier, "classifier", "classify_dimension")

    context = _CONTEXT
    for attempt in range(MAX_CLASSIFICATION_RETRIES + 1):
        category = await _classify_once(classifier, text, context)
        if category is not None:
            return Dimension(category)
        context = (
            f"{_CONTEXT}. The previous answer was not one of the listed names; "
            "answer with one name exactly as written."
        )
        logger.debug("Dimension answer unparseable (attempt %d) for %r", attempt + 1, text[:50])

    logger.warning(
        "Dimension classification failed after %d attempts, defaulting to %s: %r",
        MAX_CLASSIFICATION_RETRIES + 1,
        DEFAULT_DIMENSION.value,
        text[:50],
    )
    return DEFAULT_DIMENSION


async def classify_dimensions(
    classifier: Classifier | None,
    texts: Sequence[str],
) -> list[Dimension]:
    """Classify many texts, using the batch capability when declared.

    Texts whose batch answer is unparseable go through classify_dimension()
    for the retry loop.
    """
    require_provider(classifier, "classifier", "classify_dimensions")
    if not texts:
        return []

    try:
        results = await classify_many(classifier, texts, DIMENSION_NAMES, context=_CONTEXT)
    except SoulweaverError:
        raise
    except Exception as e:
        raise provider_error(
            ErrorCode.CLASSIFIER_UNAVAILABLE,
            operation="classify_dimensions",
            entity=f"{len(texts)} texts",
            detail=str(e),
            cause=e,
        ) from e

    dimensions: list[Dimension] = []
    for text, result in zip(texts, results, strict=True):
        if result.category in DIMENSION_NAMES:
            dimensions.append(Dimension(result.category))
        else:
            dimensions.append(await classify_dimension(classifier, text))
    return dimensions
