"""Synthesis lock: at most one writer touches a workspace's soul at a time.

The lock is a small JSON file created with O_CREAT | O_EXCL, so exactly one
of several concurrent attempts wins. A lock whose recorded process is no
longer alive is stale; it is renamed aside, re-checked, and acquisition
retried once, so a lock another process just created is never deleted. Release
is expected but optional after a crash: the liveness check on the next
attempt reclaims the lock.

Example:
    async with hold_lock(workspace):
        ...  # load, synthesize, save

    lock = await acquire_lock(workspace)
    try:
        ...
    finally:
        await lock.release()
"""

import contextlib
import json
import logging
import os
import uuid
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from soulweaver.core.errors import ErrorCode, SoulweaverError, SynthesisInProgressError
from soulweaver.core.types import utc_now
from soulweaver.cycle.persistence import DEFAULT_STATE_DIR, cleanup_orphaned_temp_files, state_dir

logger = logging.getLogger(__name__)

LOCK_FILE = "soul-synthesis.lock"
STALE_PREFIX = ".stale-lock-"

LivenessCheck = Callable[[int], bool]


def is_process_alive(pid: int) -> bool:
    """Whether a process with this id exists (checked with signal 0)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    except OverflowError:
        return False
    return True


def lock_path(workspace: Path, dirname: str = DEFAULT_STATE_DIR) -> Path:
    return state_dir(workspace, dirname) / LOCK_FILE


def read_lock_pid(path: Path) -> int | None:
    """Holder pid from a lock file, or None when unreadable.

    Accepts the JSON record written by acquire_lock() and a bare pid.
    """
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    if not content:
        return None
    if content.isdigit():
        return int(content)
    try:
        record = json.loads(content)
    except json.JSONDecodeError:
        return None
    pid = record.get("pid") if isinstance(record, dict) else None
    return pid if isinstance(pid, int) and not isinstance(pid, bool) else None


@dataclass(slots=True)
class SynthesisLock:
    """An acquired synthesis lock."""

    workspace: Path
    path: Path
    pid: int
    token: str
    acquired_at: datetime = field(default_factory=utc_now)
    released: bool = False

    async def release(self) -> None:
        """Remove the lock file if it is still ours.

        Raises:
            SoulweaverError: LOCK_RELEASE_FAILED when the file cannot be removed
        """
        if self.released:
            return
        self.released = True

        try:
            record = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.debug("Lock %s already gone", self.path)
            return
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Lock %s unreadable on release, leaving it: %s", self.path, e)
            return

        if not isinstance(record, dict) or record.get("token") != self.token:
            logger.warning("Lock %s is held by another run, not removing it", self.path)
            return

        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise SoulweaverError(
                ErrorCode.LOCK_RELEASE_FAILED,
                context={"operation": "release_lock", "entity": str(self.workspace), "detail": str(e)},
                cause=e,
            ) from e
        logger.debug("Released synthesis lock %s", self.path)


def _try_create(workspace: Path, path: Path) -> SynthesisLock | None:
    try:
        fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return None

    lock = SynthesisLock(workspace=workspace, path=path, pid=os.getpid(), token=uuid.uuid4().hex)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(
            {"pid": lock.pid, "acquiredAt": lock.acquired_at.isoformat(), "token": lock.token},
            f,
        )
    logger.debug("Acquired synthesis lock %s (pid %d)", path, lock.pid)
    return lock


def _busy(workspace: Path, path: Path, holder: int | None) -> SynthesisInProgressError:
    return SynthesisInProgressError(
        workspace=str(workspace),
        pid=str(holder) if holder is not None else "unknown",
        lock_path=str(path),
    )


def _set_aside_stale(path: Path, holder: int) -> bool:
    """Move the stale lock of `holder` out of the way.

    The file is renamed before it is judged again, so a lock freshly
    created by another process in the meantime is never deleted; it is
    linked back in place and False is returned.
    """
    aside = path.with_name(f"{STALE_PREFIX}{uuid.uuid4().hex}")
    try:
        os.rename(path, aside)
    except FileNotFoundError:
        # Already released or reclaimed; creation decides
        return True

    if read_lock_pid(aside) == holder:
        aside.unlink(missing_ok=True)
        return True

    try:
        os.link(aside, path)
    except FileExistsError:
        logger.warning("Lock %s changed hands twice during stale reclaim", path)
    aside.unlink(missing_ok=True)
    return False


async def acquire_lock(
    workspace: Path,
    *,
    dirname: str = DEFAULT_STATE_DIR,
    is_alive: LivenessCheck = is_process_alive,
) -> SynthesisLock:
    """Acquire the synthesis lock for a workspace.

    Args:
        workspace: Workspace whose soul state is guarded
        dirname: State directory under the workspace
        is_alive: Liveness predicate for the recorded holder pid

    Returns:
        The acquired SynthesisLock

    Raises:
        SynthesisInProgressError: A live process holds the lock
    """
    workspace = Path(workspace)
    directory = state_dir(workspace, dirname)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOCK_FILE

    lock = _try_create(workspace, path)
    if lock is None:
        holder = read_lock_pid(path)
        if holder is None or is_alive(holder):
            raise _busy(workspace, path, holder)

        logger.info("Reclaiming stale lock %s from dead process %d", path, holder)
        if not _set_aside_stale(path, holder):
            raise _busy(workspace, path, read_lock_pid(path))

        lock = _try_create(workspace, path)
        if lock is None:
            raise _busy(workspace, path, read_lock_pid(path))

    # Only the holder may touch temp files; a live save could own them
    cleanup_orphaned_temp_files(directory)
    return lock


@contextlib.asynccontextmanager
async def hold_lock(
    workspace: Path,
    *,
    dirname: str = DEFAULT_STATE_DIR,
    is_alive: LivenessCheck = is_process_alive,
) -> AsyncIterator[SynthesisLock]:
    """Hold the synthesis lock for the duration of the block."""
    lock = await acquire_lock(workspace, dirname=dirname, is_alive=is_alive)
    try:
        yield lock
    finally:
        await lock.release()
