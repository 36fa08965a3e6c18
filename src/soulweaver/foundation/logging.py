"""Logging setup for applications embedding Soulweaver.

Library modules only create `logging.getLogger(__name__)` loggers under the
`soulweaver` namespace; the host application calls configure_logging() once
(it is exported as `soulweaver.configure_logging`).

Level resolution, first match wins:
    1. explicit `level` argument
    2. SOULWEAVER_LOG_LEVEL
    3. SOULWEAVER_DEBUG=true
    4. `debug=True`
    5. `debug: true` in the loaded config
    6. WARNING
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

NAMESPACE = "soulweaver"
SESSION_LOGS_KEPT = 10

_VERBOSE = logging.Formatter("%(asctime)s %(name)s [%(levelname)s] %(message)s")
_TERSE = logging.Formatter("%(name)s: %(message)s")
_TRUTHY = {"1", "true", "yes"}


def _as_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    named = logging.getLevelName(value.strip().upper())
    if isinstance(named, int):
        return named
    return int(value) if value.strip().isdigit() else logging.WARNING


def _config_wants_debug() -> bool:
    from soulweaver.config import get_config
    from soulweaver.core.errors import SoulweaverError

    try:
        return get_config().debug
    except SoulweaverError:
        return False


def resolve_log_level(
    *,
    debug: bool = False,
    level: int | str | None = None,
    environ: dict[str, str] | None = None,
) -> int:
    """Effective console level for the given arguments and environment."""
    env = os.environ if environ is None else environ
    if level is not None:
        return _as_level(level)
    if env.get("SOULWEAVER_LOG_LEVEL"):
        return _as_level(env["SOULWEAVER_LOG_LEVEL"])
    if debug or env.get("SOULWEAVER_DEBUG", "").lower() in _TRUTHY:
        return logging.DEBUG
    return logging.DEBUG if _config_wants_debug() else logging.WARNING


def _session_log(root: Path) -> logging.Handler:
    """File handler for a new session log, pruning the oldest sessions."""
    directory = root / ".soulweaver" / "logs"
    directory.mkdir(parents=True, exist_ok=True)

    sessions = sorted(directory.glob("session_*.log"), key=lambda p: p.stat().st_mtime)
    for stale in sessions[: max(0, len(sessions) - (SESSION_LOGS_KEPT - 1))]:
        stale.unlink(missing_ok=True)

    name = f"session_{datetime.now():%Y-%m-%d_%H-%M-%S}.log"
    handler = logging.FileHandler(directory / name, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_VERBOSE)
    return handler


def configure_logging(
    *,
    debug: bool = False,
    level: int | str | None = None,
    stream: TextIO | None = None,
    persist: bool = False,
    log_root: Path | None = None,
) -> int:
    """Install console (and optionally session file) handlers.

    Args:
        debug: Verbose output at DEBUG
        level: Explicit level, overriding environment and config
        stream: Console stream (stderr by default)
        persist: Also keep a DEBUG session log under <log_root>/.soulweaver/logs/
        log_root: Directory holding .soulweaver/ (cwd by default)

    Returns:
        The resolved console level
    """
    resolved = resolve_log_level(debug=debug, level=level)

    console = logging.StreamHandler(stream or sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(_VERBOSE if resolved <= logging.DEBUG else _TERSE)
    handlers: list[logging.Handler] = [console]

    if persist:
        try:
            handlers.append(_session_log(log_root or Path.cwd()))
        except OSError as e:
            sys.stderr.write(f"soulweaver: session log disabled: {e}\n")

    logger = logging.getLogger(NAMESPACE)
    for old in logger.handlers:
        old.close()
    logger.handlers[:] = handlers
    logger.setLevel(logging.DEBUG if len(handlers) > 1 else resolved)

    logger.debug("Logging at %s (persist=%s)", logging.getLevelName(resolved), persist)
    return resolved
