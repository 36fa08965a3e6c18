"""Soul state persistence.

One JSON document per workspace at <workspace>/<state_dir>/soul-state.json.
Loading validates against a strict schema first; anything that fails
validation is reported as "no soul" (logged, never raised), which forces an
initial cycle. Saving writes a temp file and renames it over the state file
so a killed process never leaves a half-written soul behind.
"""

import contextlib
import json
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    ValidationError,
    model_validator,
)

from soulweaver.core.errors import ErrorCode, SoulweaverError
from soulweaver.core.types import Dimension, Provenance, Soul, Stance

logger = logging.getLogger(__name__)

SOUL_STATE_FILE = "soul-state.json"
TEMP_PREFIX = ".tmp-soul-"
DEFAULT_STATE_DIR = ".soulweaver"


def _to_camel(string: str) -> str:
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    """Base schema reading camelCase keys."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Schema
# =============================================================================


class SignalSourceSchema(CamelModel):
    file: str
    line: int | None = None
    section: str | None = None
    context: str = ""


class SignalRefSchema(CamelModel):
    id: str
    text: str
    similarity: float = Field(ge=0.0, le=1.0)
    provenance: Provenance
    stance: Stance
    source: SignalSourceSchema | None = None


class HistoryEventSchema(CamelModel):
    type: str
    timestamp: datetime
    details: str


class PrincipleSchema(CamelModel):
    id: str
    text: str
    dimension: Dimension
    n_count: StrictInt = Field(ge=1)
    similarity_threshold: float = Field(ge=0.0, le=1.0)
    signals: list[SignalRefSchema]
    history: list[HistoryEventSchema]

    @model_validator(mode="after")
    def _n_matches_signals(self) -> "PrincipleSchema":
        if self.n_count != len(self.signals):
            raise ValueError(
                f"nCount {self.n_count} does not match {len(self.signals)} signals"
            )
        return self


class CanonicalSchema(CamelModel):
    native: str
    notated: str


class PrincipleLinkSchema(CamelModel):
    id: str
    text: str
    n_count: StrictInt = Field(ge=1)


class DerivedFromSchema(CamelModel):
    principles: list[PrincipleLinkSchema]
    promoted_at: datetime


class PromotionSchema(CamelModel):
    promotable: bool
    diversity: StrictInt = Field(ge=0)
    blocker: str | None = None


class TensionSchema(CamelModel):
    axiom_id: str
    description: str
    severity: Literal["high", "medium", "low"]


class AxiomSchema(CamelModel):
    id: str
    text: str
    tier: Literal["core", "domain", "emerging"]
    dimension: Dimension
    canonical: CanonicalSchema
    derived_from: DerivedFromSchema
    promotion: PromotionSchema
    history: list[HistoryEventSchema]
    tensions: list[TensionSchema] = Field(default_factory=list)


class SoulSchema(CamelModel):
    id: uuid.UUID
    updated_at: datetime
    axioms: list[AxiomSchema]
    principles: list[PrincipleSchema]
    cycle_count: StrictInt = Field(gt=0)


# =============================================================================
# Load / save
# =============================================================================


def state_dir(workspace: Path, dirname: str = DEFAULT_STATE_DIR) -> Path:
    return Path(workspace) / dirname


def soul_state_path(workspace: Path, dirname: str = DEFAULT_STATE_DIR) -> Path:
    return state_dir(workspace, dirname) / SOUL_STATE_FILE


def load_soul(workspace: Path, dirname: str = DEFAULT_STATE_DIR) -> Soul | None:
    """Load the persisted soul, or None when absent or invalid.

    The Soul is rebuilt from the validated (coerced) document, not the raw
    JSON, so anything the schema accepts also round-trips into the types.
    """
    path = soul_state_path(workspace, dirname)
    if not path.exists():
        return None

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read soul state %s: %s", path, e)
        return None

    try:
        document = SoulSchema.model_validate_json(content)
    except ValidationError as e:
        logger.warning(
            "Soul state validation failed for %s: %s",
            path,
            "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ),
        )
        return None

    try:
        soul = Soul.from_dict(document.model_dump(by_alias=True, mode="json"))
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Soul state %s could not be rebuilt: %s", path, e)
        return None

    logger.debug("Loaded soul %s (cycle %d) from %s", soul.id, soul.cycle_count, path)
    return soul


def save_soul(workspace: Path, soul: Soul, dirname: str = DEFAULT_STATE_DIR) -> Path:
    """Atomically write the soul state file.

    Raises:
        SoulweaverError: SOUL_WRITE_FAILED when the write or rename fails
    """
    directory = state_dir(workspace, dirname)
    path = directory / SOUL_STATE_FILE
    temp_path = directory / f"{TEMP_PREFIX}{uuid.uuid4()}"

    try:
        directory.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(
            json.dumps(soul.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(temp_path, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise SoulweaverError(
            ErrorCode.SOUL_WRITE_FAILED,
            context={"operation": "save_soul", "entity": str(workspace), "detail": str(e)},
            cause=e,
        ) from e

    logger.debug("Soul state saved to %s (cycle %d)", path, soul.cycle_count)
    return path


def cleanup_orphaned_temp_files(directory: Path) -> int:
    """Remove temp files left by interrupted saves. Returns the count removed."""
    if not directory.is_dir():
        return 0
    removed = 0
    for entry in directory.glob(f"{TEMP_PREFIX}*"):
        try:
            entry.unlink()
            removed += 1
            logger.debug("Cleaned orphaned temp file %s", entry.name)
        except OSError as e:
            logger.debug("Could not remove %s: %s", entry.name, e)
    return removed
