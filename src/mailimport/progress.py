"""
Live progress of the running import, for an external polling display.

One ProgressState exists per process-wide import. The orchestrator is its
only writer: it starts it, patches it in place, and either clears it on
success or leaves it behind carrying the error.
"""

from __future__ import annotations
import json
import traceback
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from mailimport.exceptions import UnknownProgressField
from mailimport.logging import logger
from mailimport.models import ImportJob
from mailimport.storage.local_state import PropertyStore

PROGRESS_KEY = "IMPORT_PROGRESS"


@dataclass(frozen=True)
class ProgressState:
    month: int
    year: int
    start_time: str
    stage: str = "starting"
    threads_found: int = 0
    threads_processed: int = 0
    emails_collected: int = 0
    emails_written: int = 0
    status: str = ""
    complete: bool = False
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, payload: str) -> "ProgressState":
        data = json.loads(payload)
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


_FIELD_NAMES = frozenset(f.name for f in fields(ProgressState))


class ProgressTracker:
    """
    Owns the ProgressState of one invocation and mirrors it to the store.

    Updates are patches validated against the known field set; a typo in a
    field name raises instead of silently adding a new attribute.
    """

    def __init__(self, store: PropertyStore, key: str = PROGRESS_KEY) -> None:
        self.store = store
        self.key = key
        self._state: Optional[ProgressState] = None

    @property
    def state(self) -> Optional[ProgressState]:
        return self._state

    def start(self, job: ImportJob) -> ProgressState:
        self._state = ProgressState(
            month=job.month,
            year=job.year,
            start_time=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            stage="starting",
            status=f"Starting import of {job.label}",
        )
        self._persist()
        return self._state

    def update(self, **patch: Any) -> ProgressState:
        unknown = set(patch) - _FIELD_NAMES
        if unknown:
            raise UnknownProgressField(f"Unknown progress field(s): {', '.join(sorted(unknown))}")
        if self._state is None:
            raise RuntimeError("Progress not started. Call start() first.")
        self._state = replace(self._state, **patch)
        self._persist()
        logger.debug(f"Progress: stage={self._state.stage} status={self._state.status}")
        return self._state

    def fail(self, error: BaseException) -> Optional[ProgressState]:
        """Record `error` with its stack and mark the state complete."""
        if self._state is None:
            return None
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return self.update(
            stage="error",
            status=f"Import failed: {error}",
            error=f"{error}\n{stack}",
            complete=True,
        )

    def clear(self) -> None:
        self._state = None
        self.store.delete(self.key)

    def _persist(self) -> None:
        self.store.set(self.key, self._state.to_json())


def read_progress(store: PropertyStore, key: str = PROGRESS_KEY) -> Optional[Dict[str, Any]]:
    """Accessor for the display: the persisted state as a dict, or None."""
    payload = store.get(key)
    if not payload:
        return None
    return asdict(ProgressState.from_json(payload))
