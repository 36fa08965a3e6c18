"""Tests for dimensions, guardrails, tensions and provenance tracing."""

import pytest

from soulweaver.core.errors import ErrorCode, ProviderRequiredError, ProviderUnavailableError
from soulweaver.core.types import (
    Axiom,
    AxiomTension,
    AxiomTier,
    CanonicalForm,
    Dimension,
    PrincipleLink,
    PromotionStatus,
    Signal,
)
from soulweaver.models.adapters.mock import (
    ScriptedBatchClassifier,
    ScriptedClassifier,
    ScriptedGenerator,
)
from soulweaver.synthesis.dimensions import (
    DEFAULT_DIMENSION,
    MAX_CLASSIFICATION_RETRIES,
    classify_dimension,
    classify_dimensions,
)
from soulweaver.synthesis.guardrails import NO_WARNINGS, check_guardrails
from soulweaver.synthesis.provenance import trace_to_source
from soulweaver.synthesis.tensions import (
    MAX_AXIOMS_FOR_TENSIONS,
    ValueTension,
    attach_tensions_to_axioms,
    detect_tensions,
    tension_severity,
)


def _axiom(id: str, text: str, tier=AxiomTier.DOMAIN, dimension=Dimension.IDENTITY_CORE) -> Axiom:
    return Axiom(
        id=id,
        text=text,
        tier=tier,
        dimension=dimension,
        canonical=CanonicalForm(native=text, notated=text),
        derived_from=[PrincipleLink(id=f"pri_{id}", text=text, n_count=3)],
        promotion=PromotionStatus(promotable=False, diversity=1, blocker="fixture"),
    )


class TestDimensions:
    @pytest.mark.asyncio
    async def test_valid_answer(self):
        classifier = ScriptedClassifier(assignments={"Speak warmly": "voice-presence"})
        assert await classify_dimension(classifier, "Speak warmly") is Dimension.VOICE_PRESENCE

    @pytest.mark.asyncio
    async def test_unparseable_answer_retries_then_defaults(self, caplog):
        classifier = ScriptedClassifier(default="astrology")

        with caplog.at_level("WARNING", logger="soulweaver.synthesis.dimensions"):
            dimension = await classify_dimension(classifier, "Something odd")

        assert dimension is DEFAULT_DIMENSION
        assert len(classifier.calls) == MAX_CLASSIFICATION_RETRIES + 1
        assert "defaulting" in caplog.text

    @pytest.mark.asyncio
    async def test_classifier_failure_is_fatal(self):
        classifier = ScriptedClassifier(error=RuntimeError("down"))

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await classify_dimension(classifier, "text")
        assert exc_info.value.code == ErrorCode.CLASSIFIER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_missing_classifier(self):
        with pytest.raises(ProviderRequiredError):
            await classify_dimension(None, "text")

    @pytest.mark.asyncio
    async def test_batch_path_with_retry_for_bad_answers(self):
        classifier = ScriptedBatchClassifier(
            assignments={"a": "continuity-growth", "b": "nonsense"}
        )

        dimensions = await classify_dimensions(classifier, ["a", "b"])

        assert dimensions == [Dimension.CONTINUITY_GROWTH, DEFAULT_DIMENSION]
        assert classifier.batches == [("a", "b")]
        assert classifier.calls == ["b"] * (MAX_CLASSIFICATION_RETRIES + 1)

    @pytest.mark.asyncio
    async def test_sequential_path_without_batch_capability(self):
        classifier = ScriptedClassifier(assignments={"a": "character-traits"})

        dimensions = await classify_dimensions(classifier, ["a", "b"])

        assert dimensions == [Dimension.CHARACTER_TRAITS, Dimension.IDENTITY_CORE]
        assert classifier.calls == ["a", "b"]


class TestGuardrails:
    def test_healthy_compression(self):
        assert check_guardrails(3, 20, 3) == NO_WARNINGS

    def test_expansion(self):
        warnings = check_guardrails(5, 4, 3)
        assert warnings.expansion_warning
        assert warnings.any

    def test_cognitive_load_uses_half_signals(self):
        assert check_guardrails(6, 10, 3).cognitive_load_warning
        assert not check_guardrails(5, 10, 3).cognitive_load_warning

    def test_cognitive_load_absolute_cap(self):
        warnings = check_guardrails(31, 1000, 3)
        assert warnings.cognitive_load_warning
        assert not warnings.expansion_warning

    def test_fallback(self, caplog):
        with caplog.at_level("WARNING", logger="soulweaver.synthesis.guardrails"):
            warnings = check_guardrails(1, 10, 1)

        assert warnings.fallback_warning
        assert len(warnings.messages) == 1
        assert "[guardrail]" in caplog.text


class TestTensions:
    def test_severity(self):
        a = _axiom("a", "x", tier=AxiomTier.CORE, dimension=Dimension.IDENTITY_CORE)
        b = _axiom("b", "y", tier=AxiomTier.CORE, dimension=Dimension.VOICE_PRESENCE)
        c = _axiom("c", "z", tier=AxiomTier.DOMAIN, dimension=Dimension.IDENTITY_CORE)
        d = _axiom("d", "w", tier=AxiomTier.DOMAIN, dimension=Dimension.VOICE_PRESENCE)

        assert tension_severity(a, c) == "high"
        assert tension_severity(a, b) == "medium"
        assert tension_severity(c, d) == "low"

    @pytest.mark.asyncio
    async def test_detects_only_reported_conflicts(self):
        generator = ScriptedGenerator(
            responder=lambda p: "Directness can feel unkind." if "Be blunt" in p else "none"
        )
        axioms = [_axiom("a", "Be blunt"), _axiom("b", "Be kind"), _axiom("c", "Be curious")]

        tensions = await detect_tensions(generator, axioms)

        assert generator.call_count == 3
        assert {(t.first_id, t.second_id) for t in tensions} == {("a", "b"), ("a", "c")}

    @pytest.mark.asyncio
    async def test_skips_large_sets(self, generator):
        axioms = [_axiom(str(i), f"axiom {i}") for i in range(MAX_AXIOMS_FOR_TENSIONS + 1)]

        assert await detect_tensions(generator, axioms) == []
        assert generator.call_count == 0

    @pytest.mark.asyncio
    async def test_requires_generator(self):
        with pytest.raises(ProviderRequiredError):
            await detect_tensions(None, [])

    def test_attach_merges_without_duplicates(self):
        a, b = _axiom("a", "x"), _axiom("b", "y")
        a.tensions.append(AxiomTension(axiom_id="b", description="old", severity="low"))
        tension = ValueTension("a", "b", "new", "high")

        attach_tensions_to_axioms([a, b], [tension, tension])

        assert [t.description for t in a.tensions] == ["old"]
        assert [(t.axiom_id, t.description) for t in b.tensions] == [("a", "new")]


class TestProvenance:
    def test_trace_to_source(self, make_principle):
        principle = make_principle(2, text="Be direct")
        axiom = _axiom("ax", "Be direct")
        axiom.derived_from = [PrincipleLink(id=principle.id, text=principle.text, n_count=2)]

        chain = trace_to_source(axiom, {principle.id: principle})

        assert chain.axiom_id == "ax"
        assert chain.principles == [{"id": principle.id, "text": "Be direct", "nCount": 2}]
        assert [s.id for s in chain.signals] == [ref.id for ref in principle.signals]

    def test_trace_resolves_signal_map(self, make_principle):
        principle = make_principle(2, text="Be direct")
        axiom = _axiom("ax", "Be direct")
        axiom.derived_from = [PrincipleLink(id=principle.id, text=principle.text, n_count=2)]
        first = principle.signals[0]
        signals = {first.id: Signal(id=first.id, text="I say what I mean")}

        chain = trace_to_source(axiom, {principle.id: principle}, signals)

        assert [s.text for s in chain.signals] == ["I say what I mean"]
        assert chain.to_dict()["axiom"] == {"id": "ax", "text": "Be direct"}
