"""Cancellation of restoration runs."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..services.exceptions import RestorationCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag owned by one restoration run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise RestorationCancelled if cancel() was called."""
        if self._event.is_set():
            raise RestorationCancelled("Restoration cancelled")


@dataclass
class RestorationRun:
    id: str
    capture_id: str
    token: CancellationToken = field(default_factory=CancellationToken)

    @classmethod
    def start(cls, capture_id: str) -> 'RestorationRun':
        return cls(id=f"restore-{capture_id}-{int(time.time() * 1000)}", capture_id=capture_id)


_lock = threading.Lock()
_runs: Dict[str, RestorationRun] = {}
_active_id: Optional[str] = None


def register_run(run: RestorationRun) -> None:
    """Make ``run`` the active run, cancelling the one it replaces."""
    global _active_id
    with _lock:
        previous = _runs.get(_active_id) if _active_id else None
        if previous and previous.id != run.id and not previous.token.cancelled:
            logger.info(f"Cancelling restoration {previous.id}, superseded by {run.id}")
            previous.token.cancel()
        _runs[run.id] = run
        _active_id = run.id


def finish_run(run: RestorationRun) -> None:
    global _active_id
    with _lock:
        _runs.pop(run.id, None)
        if _active_id == run.id:
            _active_id = None


def get_active_run() -> Optional[RestorationRun]:
    with _lock:
        return _runs.get(_active_id) if _active_id else None


def cancel_active_run() -> bool:
    """Cancel the active run, if any. Safe to call repeatedly."""
    run = get_active_run()
    if not run:
        logger.debug("No active restoration to cancel")
        return False
    if not run.token.cancelled:
        logger.info(f"Cancelling restoration {run.id}")
        run.token.cancel()
    return True
