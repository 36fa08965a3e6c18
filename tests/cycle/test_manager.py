"""Tests for cycle mode decisions and incremental merging."""

import pytest

from conftest import build_principle
from soulweaver.core.types import (
    Axiom,
    AxiomTier,
    CanonicalForm,
    Dimension,
    PrincipleLink,
    PromotionStatus,
)
from soulweaver.cycle.contradictions import (
    Contradiction,
    ContradictionDetector,
    NegationContradictionDetector,
    has_negation,
    text_similarity,
)
from soulweaver.cycle.manager import (
    CycleDecision,
    CycleMode,
    CycleThresholds,
    axiom_hierarchy_changed,
    create_soul,
    decide_cycle_mode,
    find_new_principles,
    format_cycle_decision,
    merge_incremental,
    update_soul,
)


def make_axiom(id: str, text: str, tier: AxiomTier, principle_id: str, n: int = 3) -> Axiom:
    return Axiom(
        id=id,
        text=text,
        tier=tier,
        dimension=Dimension.IDENTITY_CORE,
        canonical=CanonicalForm(native=text, notated=f"📌 理: {text}"),
        derived_from=[PrincipleLink(id=principle_id, text=text, n_count=n)],
        promotion=PromotionStatus(promotable=False, diversity=1),
    )


def existing_principles(count: int):
    return [build_principle(3, id=f"pri_{i}", text=f"Existing value {i}") for i in range(count)]


class TestContradictionHeuristic:
    def test_text_similarity(self):
        assert text_similarity("Always share opinions directly", "Never share opinions directly") == 0.6
        assert text_similarity("", "") == 1.0
        assert text_similarity("words", "") == 0.0
        assert text_similarity("Be Honest!", "be honest") == 1.0

    def test_negation_markers(self):
        assert has_negation("Never lie")
        assert has_negation("Don't overpromise")
        assert not has_negation("Nothing is certain")

    def test_same_topic_opposite_polarity(self):
        axiom = make_axiom("ax_1", "Always share opinions directly", AxiomTier.CORE, "pri_a")
        flip = build_principle(1, id="pri_new", text="Never share opinions directly")
        agree = build_principle(1, id="pri_agree", text="Always share opinions very directly")
        unrelated = build_principle(1, id="pri_other", text="Never skip breakfast")

        found = NegationContradictionDetector().detect([axiom], [flip, agree, unrelated])

        assert found == [Contradiction("ax_1", "pri_new", 0.6)]

    def test_detector_protocol(self):
        assert isinstance(NegationContradictionDetector(), ContradictionDetector)


class TestFindNewPrinciples:
    def test_by_id_and_text(self):
        existing = existing_principles(2)
        renamed = build_principle(1, id="pri_renamed", text="existing value 1.")
        fresh = build_principle(1, id="pri_fresh", text="Protect quiet time")

        new = find_new_principles(existing, [*existing, renamed, fresh])

        assert [p.id for p in new] == ["pri_fresh"]


class TestDecideCycleMode:
    def test_no_soul_is_initial_even_when_forced(self):
        decision = decide_cycle_mode(None, existing_principles(3), force=True)

        assert decision.mode is CycleMode.INITIAL
        assert decision.triggers == ()

    def test_unchanged_evidence_is_incremental(self):
        principles = existing_principles(4)
        soul = create_soul([], principles)

        decision = decide_cycle_mode(soul, principles)

        assert decision.mode is CycleMode.INCREMENTAL
        assert decision.new_principle_count == 0

    def test_new_principle_ratio_trigger(self):
        principles = existing_principles(4)
        soul = create_soul([], principles)
        candidates = [
            *principles,
            build_principle(1, id="pri_x", text="Protect quiet time"),
            build_principle(1, id="pri_y", text="Question every deadline"),
        ]

        decision = decide_cycle_mode(soul, candidates)

        assert decision.mode is CycleMode.FULL_RESYNTHESIS
        assert decision.reason == "Significant changes detected"
        assert decision.triggers == ("New principles (50%) exceed threshold (30%)",)
        assert decision.new_principle_count == 2

    def test_ratio_at_threshold_is_incremental(self):
        principles = existing_principles(10)
        soul = create_soul([], principles)
        candidates = [
            *principles,
            build_principle(1, id="pri_x", text="Protect quiet time"),
            build_principle(1, id="pri_y", text="Question every deadline"),
            build_principle(1, id="pri_z", text="Celebrate small wins"),
        ]

        assert decide_cycle_mode(soul, candidates).mode is CycleMode.INCREMENTAL

    def test_force_alone_is_manual_override(self):
        principles = existing_principles(4)
        soul = create_soul([], principles)

        decision = decide_cycle_mode(soul, principles, force=True)

        assert decision.mode is CycleMode.FULL_RESYNTHESIS
        assert decision.reason == "Manual override"
        assert decision.triggers == ("Force resynthesis flag set",)

    def test_hierarchy_change_trigger(self):
        principles = existing_principles(4)
        soul = create_soul([], principles)

        decision = decide_cycle_mode(
            soul, principles, CycleThresholds(hierarchy_changed=True)
        )

        assert decision.mode is CycleMode.FULL_RESYNTHESIS
        assert "Axiom hierarchy has changed" in decision.triggers

    @pytest.mark.parametrize(("contradicting", "mode"), [(1, CycleMode.INCREMENTAL), (2, CycleMode.FULL_RESYNTHESIS)])
    def test_contradiction_trigger(self, contradicting, mode):
        principles = existing_principles(10)
        axioms = [
            make_axiom("ax_1", "Always share opinions directly", AxiomTier.CORE, "pri_0"),
            make_axiom("ax_2", "Always answer questions plainly", AxiomTier.DOMAIN, "pri_1"),
        ]
        soul = create_soul(axioms, principles)
        flips = [
            build_principle(1, id="pri_flip_1", text="Never share opinions directly"),
            build_principle(1, id="pri_flip_2", text="Never answer questions plainly"),
        ][:contradicting]

        decision = decide_cycle_mode(soul, [*principles, *flips])

        assert decision.mode is mode
        assert len(decision.contradictions) == contradicting

    def test_contradictions_only_count_new_principles(self):
        known = build_principle(3, id="pri_known", text="Never share opinions directly")
        axioms = [make_axiom("ax_1", "Always share opinions directly", AxiomTier.CORE, "pri_0")]
        soul = create_soul(axioms, [known])

        decision = decide_cycle_mode(soul, [known], CycleThresholds(contradiction_count=1))

        assert decision.mode is CycleMode.INCREMENTAL
        assert decision.contradictions == ()

    def test_custom_detector(self):
        class AlwaysContradicts:
            def detect(self, axioms, principles):
                return [Contradiction("ax", p.id, 1.0) for p in principles]

        principles = existing_principles(10)
        soul = create_soul([], principles)
        candidates = [
            *principles,
            build_principle(1, id="pri_x", text="Protect quiet time"),
            build_principle(1, id="pri_y", text="Question every deadline"),
        ]

        decision = decide_cycle_mode(soul, candidates, detector=AlwaysContradicts())

        assert decision.mode is CycleMode.FULL_RESYNTHESIS
        assert decision.triggers == ("2 axiom contradictions from new evidence",)

    def test_thresholds_from_config(self):
        from soulweaver.config import CycleConfig

        thresholds = CycleThresholds.from_config(
            CycleConfig(new_principle_ratio=0.5, contradiction_count=4), hierarchy_changed=True
        )

        assert thresholds == CycleThresholds(0.5, 4, True)


class TestAxiomHierarchy:
    def test_swapped_tiers(self):
        before = [
            make_axiom("a", "first", AxiomTier.CORE, "p1"),
            make_axiom("b", "second", AxiomTier.DOMAIN, "p2"),
        ]
        after = [
            make_axiom("c", "first", AxiomTier.DOMAIN, "p1"),
            make_axiom("d", "second", AxiomTier.CORE, "p2"),
        ]

        assert axiom_hierarchy_changed(before, after)

    def test_tie_is_not_inversion(self):
        before = [
            make_axiom("a", "first", AxiomTier.CORE, "p1"),
            make_axiom("b", "second", AxiomTier.DOMAIN, "p2"),
        ]
        after = [
            make_axiom("c", "first", AxiomTier.CORE, "p1"),
            make_axiom("d", "second", AxiomTier.CORE, "p2"),
        ]

        assert not axiom_hierarchy_changed(before, after)

    def test_new_and_dropped_axioms_are_ignored(self):
        before = [make_axiom("a", "first", AxiomTier.EMERGING, "p1")]
        after = [
            make_axiom("b", "first", AxiomTier.EMERGING, "p1"),
            make_axiom("c", "third", AxiomTier.CORE, "p3"),
        ]

        assert not axiom_hierarchy_changed(before, after)


class TestSoulLifecycle:
    def test_create_and_update(self):
        soul = create_soul([], existing_principles(1))
        updated = update_soul(soul, [], existing_principles(2))

        assert soul.cycle_count == 1
        assert updated.cycle_count == 2
        assert updated.id == soul.id
        assert len(updated.principles) == 2
        assert updated.updated_at >= soul.updated_at


class TestMergeIncremental:
    def test_keeps_id_and_records_growth(self):
        old = make_axiom("ax_old", "Be honest", AxiomTier.DOMAIN, "pri_h", n=3)
        fresh = make_axiom("ax_fresh", "Be honest", AxiomTier.CORE, "pri_h", n=6)

        merged = merge_incremental([old], [fresh])

        assert [a.id for a in merged] == ["ax_old"]
        assert merged[0].tier is AxiomTier.CORE
        assert merged[0].n_count == 6
        assert merged[0].canonical.notated == "📌 理: Be honest"
        assert [h.type for h in merged[0].history] == ["refined", "elevated"]
        assert merged[0].history[1].details == "Tier domain -> core"

    def test_unchanged_evidence_adds_no_events(self):
        old = make_axiom("ax_old", "Be honest", AxiomTier.DOMAIN, "pri_h", n=3)
        fresh = make_axiom("ax_fresh", "Be honest", AxiomTier.DOMAIN, "pri_h", n=3)

        merged = merge_incremental([old], [fresh])

        assert merged[0].history == []

    def test_appends_new_and_keeps_unmatched(self):
        kept = make_axiom("ax_kept", "Stay curious", AxiomTier.EMERGING, "pri_c", n=1)
        fresh = make_axiom("ax_new", "Rest well", AxiomTier.EMERGING, "pri_r", n=1)

        merged = merge_incremental([kept], [fresh])

        assert [a.id for a in merged] == ["ax_kept", "ax_new"]


class TestFormatDecision:
    def test_lists_triggers(self):
        decision = CycleDecision(
            mode=CycleMode.FULL_RESYNTHESIS,
            reason="Significant changes detected",
            triggers=("Force resynthesis flag set", "Axiom hierarchy has changed"),
        )

        assert format_cycle_decision(decision) == (
            "Mode: full-resynthesis\n"
            "Reason: Significant changes detected\n"
            "Triggers:\n"
            "  - Force resynthesis flag set\n"
            "  - Axiom hierarchy has changed"
        )

    def test_without_triggers(self):
        decision = CycleDecision(mode=CycleMode.INITIAL, reason="No existing soul state")
        assert format_cycle_decision(decision) == "Mode: initial\nReason: No existing soul state"
