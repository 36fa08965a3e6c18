"""Pytest fixtures for Soulweaver tests."""

import itertools
import os
from collections.abc import Callable, Sequence

import pytest

from soulweaver.config import reset_config
from soulweaver.core.types import (
    Dimension,
    HistoryEvent,
    Principle,
    Provenance,
    Signal,
    SignalRef,
    Stance,
)
from soulweaver.models.adapters.mock import (
    ScriptedClassifier,
    ScriptedGenerator,
    ScriptedOracle,
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep user config files and SOULWEAVER_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("SOULWEAVER_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path_factory.mktemp("home")))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def classifier() -> ScriptedClassifier:
    return ScriptedClassifier()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def make_signal() -> Callable[..., Signal]:
    """Factory for signals with sensible defaults."""
    counter = iter(range(1, 10_000))

    def _make(
        text: str,
        *,
        id: str | None = None,
        provenance: Provenance = Provenance.SELF,
        stance: Stance = Stance.ASSERT,
        dimension: Dimension | None = Dimension.IDENTITY_CORE,
    ) -> Signal:
        return Signal(
            id=id or f"sig_{next(counter)}",
            text=text,
            provenance=provenance,
            stance=stance,
            dimension=dimension,
        )

    return _make


_principle_ids = itertools.count(1)


def build_principle(
    n: int,
    *,
    id: str | None = None,
    text: str | None = None,
    dimension: Dimension = Dimension.IDENTITY_CORE,
    provenances: Sequence[Provenance] | None = None,
    stances: Sequence[Stance] | None = None,
) -> Principle:
    """Principle with n merged signals, cycling through the given tags."""
    provenances = provenances or [Provenance.SELF]
    stances = stances or [Stance.ASSERT]
    pid = id or f"pri_fixture_{next(_principle_ids)}"
    return Principle(
        id=pid,
        text=text or f"Principle with {n} signals",
        dimension=dimension,
        similarity_threshold=0.7,
        signals=[
            SignalRef(
                id=f"{pid}_sig_{i}",
                text=f"signal {i}",
                similarity=1.0 if i == 0 else 0.9,
                provenance=provenances[i % len(provenances)],
                stance=stances[i % len(stances)],
            )
            for i in range(n)
        ],
        history=[HistoryEvent(type="created", details="fixture")],
    )


@pytest.fixture
def make_principle() -> Callable[..., Principle]:
    return build_principle
