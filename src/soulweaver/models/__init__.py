"""Provider protocols and adapters for the external services synthesis consumes."""

from soulweaver.models.protocol import (
    BatchClassifier,
    ClassificationResult,
    Classifier,
    GenerateResult,
    SemanticOracle,
    TextGenerator,
    classify_many,
    supports_batch,
)

__all__ = [
    "SemanticOracle",
    "Classifier",
    "BatchClassifier",
    "TextGenerator",
    "ClassificationResult",
    "GenerateResult",
    "classify_many",
    "supports_batch",
]
