"""Scripted providers for testing.

Each provider records the calls it receives so tests can assert whether
(and how often) the external service was consulted.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from soulweaver.models.protocol import ClassificationResult, GenerateResult


@dataclass(slots=True)
class ScriptedOracle:
    """Oracle that judges equivalence from declared groups of texts.

    Texts in the same group score match_confidence, identical texts score
    1.0 and everything else scores miss_confidence. Explicit pair scores
    override the groups.
    """

    groups: list[set[str]] = field(default_factory=list)
    pairs: dict[tuple[str, str], float] = field(default_factory=dict)
    match_confidence: float = 0.9
    miss_confidence: float = 0.1
    error: Exception | None = None
    _calls: list[tuple[str, tuple[str, ...]]] = field(default_factory=list, init=False)

    @property
    def calls(self) -> list[tuple[str, tuple[str, ...]]]:
        """(candidate, texts) for every score() call."""
        return self._calls

    @property
    def call_count(self) -> int:
        return len(self._calls)

    def judge(self, candidate: str, text: str) -> float:
        if (candidate, text) in self.pairs:
            return self.pairs[(candidate, text)]
        if (text, candidate) in self.pairs:
            return self.pairs[(text, candidate)]
        if candidate == text:
            return 1.0
        for group in self.groups:
            if candidate in group and text in group:
                return self.match_confidence
        return self.miss_confidence

    async def score(self, candidate: str, texts: Sequence[str]) -> list[float]:
        self._calls.append((candidate, tuple(texts)))
        if self.error is not None:
            raise self.error
        return [self.judge(candidate, text) for text in texts]


@dataclass(slots=True)
class ScriptedClassifier:
    """Classifier answering from a text -> category table."""

    assignments: dict[str, str] = field(default_factory=dict)
    default: str | None = "identity-core"
    error: Exception | None = None
    _calls: list[str] = field(default_factory=list, init=False)

    @property
    def calls(self) -> list[str]:
        return self._calls

    def _answer(self, text: str, categories: Sequence[str]) -> ClassificationResult:
        category = self.assignments.get(text, self.default)
        if category is None or category not in categories:
            return ClassificationResult(category=None, confidence=0.0, reasoning=category)
        return ClassificationResult(category=category, confidence=0.9)

    async def classify(
        self,
        text: str,
        categories: Sequence[str],
        *,
        context: str | None = None,
    ) -> ClassificationResult:
        self._calls.append(text)
        if self.error is not None:
            raise self.error
        return self._answer(text, categories)


@dataclass(slots=True)
class ScriptedBatchClassifier(ScriptedClassifier):
    """ScriptedClassifier that also declares the batch capability."""

    _batches: list[tuple[str, ...]] = field(default_factory=list, init=False)

    @property
    def batches(self) -> list[tuple[str, ...]]:
        return self._batches

    async def classify_batch(
        self,
        texts: Sequence[str],
        categories: Sequence[str],
        *,
        context: str | None = None,
    ) -> list[ClassificationResult]:
        self._batches.append(tuple(texts))
        if self.error is not None:
            raise self.error
        return [self._answer(text, categories) for text in texts]


@dataclass(slots=True)
class ScriptedGenerator:
    """Generator that replays queued responses, then asks a responder.

    With neither queued responses nor a responder it echoes a fixed
    notation string.
    """

    responses: list[str] = field(default_factory=list)
    responder: Callable[[str], str] | None = None
    default: str = "📌 理: scripted"
    error: Exception | None = None
    _prompts: list[str] = field(default_factory=list, init=False)

    @property
    def prompts(self) -> list[str]:
        return self._prompts

    @property
    def call_count(self) -> int:
        return len(self._prompts)

    async def generate(self, prompt: str) -> GenerateResult:
        self._prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.responses:
            return GenerateResult(content=self.responses.pop(0))
        if self.responder is not None:
            return GenerateResult(content=self.responder(prompt))
        return GenerateResult(content=self.default)
