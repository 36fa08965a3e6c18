"""Cycle management: mode decision, soul persistence and locking."""

from soulweaver.cycle.lock import SynthesisLock, acquire_lock, hold_lock, is_process_alive
from soulweaver.cycle.manager import (
    CycleDecision,
    CycleMode,
    CycleThresholds,
    axiom_hierarchy_changed,
    create_soul,
    decide_cycle_mode,
    format_cycle_decision,
    merge_incremental,
    update_soul,
)
from soulweaver.cycle.persistence import load_soul, save_soul

__all__ = [
    "CycleMode",
    "CycleDecision",
    "CycleThresholds",
    "decide_cycle_mode",
    "format_cycle_decision",
    "axiom_hierarchy_changed",
    "create_soul",
    "update_soul",
    "merge_incremental",
    "load_soul",
    "save_soul",
    "acquire_lock",
    "hold_lock",
    "is_process_alive",
    "SynthesisLock",
]
