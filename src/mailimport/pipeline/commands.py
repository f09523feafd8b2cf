"""
Operator entry points: import a month, list imported months, clear
everything, read live progress.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from mailimport.config import Clients, Config
from mailimport.logging import logger
from mailimport.models import DATA_HEADERS, ImportResult, MetadataRecord
from mailimport.pipeline.importer import ImportOrchestrator, Notifier
from mailimport.progress import ProgressTracker, read_progress
from mailimport.storage.ledger import clear_all_job_keys
from mailimport.utils.validation import build_job


def make_orchestrator(cfg: Config, clients: Clients, notifier: Optional[Notifier] = None) -> ImportOrchestrator:
    return ImportOrchestrator(
        messages=clients.messages,
        table=clients.table,
        metadata=clients.metadata,
        store=clients.store,
        lock=clients.lock,
        batch_size=cfg["BATCH_SIZE"],
        body_char_limit=cfg["BODY_CHAR_LIMIT"],
        tz=ZoneInfo(cfg["TIMEZONE"]),
        lock_timeout=cfg["LOCK_TIMEOUT"],
        notifier=notifier,
    )


def import_month(
    cfg: Config,
    clients: Clients,
    month: int,
    year: int,
    notifier: Optional[Notifier] = None,
) -> ImportResult:
    """
    Run one invocation (at most one batch) of the import for (month, year).

    Raises:
        InvalidJobError: If month or year is out of range
    """
    job = build_job(month, year, cfg["WORK_EMAIL"])
    return make_orchestrator(cfg, clients, notifier).run(job)


def view_imported_months(clients: Clients) -> List[MetadataRecord]:
    """Completed imports, oldest first."""
    return sorted(clients.metadata.records(), key=lambda r: (r.year, r.month))


def clear_all(clients: Clients) -> Dict[str, int]:
    """
    Remove imported rows, metadata rows, every cursor/ledger key and the
    progress state.
    """
    clients.table.clear_data_rows(len(DATA_HEADERS))
    clients.metadata.clear()
    removed = clear_all_job_keys(clients.store)
    ProgressTracker(clients.store).clear()
    logger.warning(f"Cleared all imported data and {len(removed)} state keys")
    return {"state_keys": len(removed)}


def get_progress(clients: Clients) -> Optional[Dict[str, Any]]:
    return read_progress(clients.store)
