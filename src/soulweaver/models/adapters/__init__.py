"""Provider adapters."""

from soulweaver.models.adapters.generator import GeneratorClassifier, GeneratorOracle
from soulweaver.models.adapters.mock import (
    ScriptedBatchClassifier,
    ScriptedClassifier,
    ScriptedGenerator,
    ScriptedOracle,
)

__all__ = [
    "GeneratorOracle",
    "GeneratorClassifier",
    "ScriptedOracle",
    "ScriptedClassifier",
    "ScriptedBatchClassifier",
    "ScriptedGenerator",
]
