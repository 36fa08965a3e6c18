"""One synthesis run: signals in, persisted soul out.

SynthesisRun is the explicit per-run context. It owns the principle store
for the duration of one lock-protected run; nothing is kept in module
state, so independent runs (different workspaces) can share a process.

Pipeline:
    acquire lock -> load soul -> seed store -> ingest signals ->
    cascade compression -> decide mode -> build or merge soul ->
    save atomically -> release lock
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from soulweaver.config import SoulweaverConfig, get_config
from soulweaver.core.errors import require_provider
from soulweaver.core.types import Signal, Soul
from soulweaver.cycle.contradictions import ContradictionDetector
from soulweaver.cycle.lock import LivenessCheck, hold_lock, is_process_alive
from soulweaver.cycle.manager import (
    CycleDecision,
    CycleMode,
    CycleThresholds,
    axiom_hierarchy_changed,
    create_soul,
    decide_cycle_mode,
    merge_incremental,
    update_soul,
)
from soulweaver.cycle.persistence import load_soul, save_soul
from soulweaver.models.protocol import Classifier, SemanticOracle, TextGenerator
from soulweaver.synthesis.compressor import CascadeCompressionResult, compress_principles_with_cascade
from soulweaver.synthesis.guardrails import GuardrailWarnings
from soulweaver.synthesis.store import AddAction, PrincipleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CycleStats:
    signals_received: int
    principles_created: int
    principles_reinforced: int
    signals_skipped: int
    principle_count: int
    axiom_count: int
    unconverged_count: int
    pruned_count: int
    effective_threshold: int


@dataclass(frozen=True, slots=True)
class CycleSynthesisResult:
    mode: CycleMode
    decision: CycleDecision
    soul: Soul
    stats: CycleStats
    guardrails: GuardrailWarnings
    compression: CascadeCompressionResult


class SynthesisRun:
    """Runs one synthesis cycle for a workspace.

    Example:
        run = SynthesisRun(workspace, oracle=oracle, classifier=classifier, generator=generator)
        result = await run.run(signals)
        print(format_cycle_decision(result.decision))
    """

    def __init__(
        self,
        workspace: Path,
        *,
        oracle: SemanticOracle | None,
        classifier: Classifier | None,
        generator: TextGenerator | None,
        config: SoulweaverConfig | None = None,
        detector: ContradictionDetector | None = None,
        is_alive: LivenessCheck = is_process_alive,
        with_tensions: bool = False,
    ):
        require_provider(oracle, "semantic oracle", "SynthesisRun")
        require_provider(classifier, "classifier", "SynthesisRun")
        require_provider(generator, "text generator", "SynthesisRun")

        self.workspace = Path(workspace)
        self.oracle = oracle
        self.classifier = classifier
        self.generator = generator
        self.config = config or get_config()
        self.detector = detector
        self.is_alive = is_alive
        self.with_tensions = with_tensions

    async def run(self, signals: Sequence[Signal], *, force: bool = False) -> CycleSynthesisResult:
        """Execute the pipeline under the workspace lock.

        Raises:
            SynthesisInProgressError: Another live process holds the lock
            ProviderUnavailableError: A provider failed; nothing is saved
        """
        dirname = self.config.cycle.state_dir

        async with hold_lock(self.workspace, dirname=dirname, is_alive=self.is_alive):
            existing = load_soul(self.workspace, dirname)

            store = PrincipleStore.from_principles(
                existing.principles if existing else [],
                self.oracle,
                self.classifier,
                threshold=self.config.matching.threshold,
            )
            added = await store.add_signals(signals)
            principles = store.get_principles()

            compression = await compress_principles_with_cascade(
                principles,
                self.generator,
                criteria=self.config.promotion,
                compression=self.config.compression,
                signal_count=store.signal_count,
                with_tensions=self.with_tensions,
            )

            hierarchy_changed = existing is not None and axiom_hierarchy_changed(
                existing.axioms, compression.axioms
            )
            decision = decide_cycle_mode(
                existing,
                principles,
                CycleThresholds.from_config(self.config.cycle, hierarchy_changed=hierarchy_changed),
                force=force,
                detector=self.detector,
            )

            if existing is None:
                soul = create_soul(compression.axioms, principles)
            elif decision.mode is CycleMode.INCREMENTAL:
                soul = update_soul(
                    existing,
                    merge_incremental(existing.axioms, compression.axioms),
                    principles,
                )
            else:
                soul = update_soul(existing, compression.axioms, principles)

            save_soul(self.workspace, soul, dirname)

        stats = CycleStats(
            signals_received=len(signals),
            principles_created=sum(1 for r in added if r.action is AddAction.CREATED),
            principles_reinforced=sum(1 for r in added if r.action is AddAction.REINFORCED),
            signals_skipped=sum(1 for r in added if r.action is AddAction.SKIPPED),
            principle_count=len(principles),
            axiom_count=len(soul.axioms),
            unconverged_count=len(compression.unconverged),
            pruned_count=len(compression.pruned),
            effective_threshold=compression.cascade.effective_threshold,
        )
        logger.info(
            "Cycle %d (%s): %d principles, %d axioms",
            soul.cycle_count,
            decision.mode.value,
            stats.principle_count,
            stats.axiom_count,
        )

        return CycleSynthesisResult(
            mode=decision.mode,
            decision=decision,
            soul=soul,
            stats=stats,
            guardrails=compression.guardrails,
            compression=compression,
        )
