"""
Batch cursor and count ledger, persisted per (month, year).

Both are plain integer counters living in the property store. Together they
let a re-invocation resume where the previous batch stopped instead of
restarting, and carry the expected row count to final reconciliation.
Single-writer discipline comes from the run-lock; nothing here locks.
"""

from __future__ import annotations
from typing import List

from mailimport.logging import logger
from mailimport.storage.local_state import PropertyStore

CURSOR_PREFIX = "BATCH_CURSOR_"
COUNT_PREFIX = "EMAIL_COUNT_"
JOB_KEY_PREFIXES = (CURSOR_PREFIX, COUNT_PREFIX)


def job_key(prefix: str, month: int, year: int) -> str:
    """The only place property keys for a (month, year) are derived."""
    return f"{prefix}{year:04d}_{month:02d}"


class _MonthCounter:
    prefix = ""

    def __init__(self, store: PropertyStore) -> None:
        self.store = store

    def get(self, month: int, year: int) -> int:
        """Stored value, or 0 when absent."""
        raw = self.store.get(job_key(self.prefix, month, year))
        if raw is None or raw == "":
            return 0
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"Corrupt {self.prefix} value for {year}-{month:02d}: {raw!r}") from None

    def set(self, month: int, year: int, value: int) -> None:
        self.store.set(job_key(self.prefix, month, year), str(int(value)))

    def clear(self, month: int, year: int) -> None:
        self.store.delete(job_key(self.prefix, month, year))


class BatchCursor(_MonthCounter):
    """Number of threads already processed for a (month, year)."""

    prefix = CURSOR_PREFIX


class CountLedger(_MonthCounter):
    """Cumulative number of rows produced for a (month, year) across batches."""

    prefix = COUNT_PREFIX

    def add(self, month: int, year: int, count: int) -> int:
        total = self.get(month, year) + count
        self.set(month, year, total)
        return total


def clear_job_state(store: PropertyStore, month: int, year: int) -> None:
    """Drop cursor and ledger of one (month, year)."""
    BatchCursor(store).clear(month, year)
    CountLedger(store).clear(month, year)


def clear_all_job_keys(store: PropertyStore) -> List[str]:
    """Delete every cursor and ledger key; returns the deleted keys."""
    removed: List[str] = []
    for prefix in JOB_KEY_PREFIXES:
        for key in store.list_keys(prefix):
            store.delete(key)
            removed.append(key)
    logger.info(f"Cleared {len(removed)} cursor/ledger keys")
    return removed
