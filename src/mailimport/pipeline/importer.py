# src/mailimport/pipeline/importer.py
"""
Resumable import of one month of sent mail.

One invocation does at most one batch:
- acquire the per-user run-lock (short wait, "busy" on failure)
- refuse months already present in the metadata ledger
- search the message store for the month's sent threads
- process threads [cursor, cursor + batch_size): verify sender, re-check the
  month, normalize the body
- write all rows of the batch with one bulk append
- advance cursor and count ledger; on the last batch, finalize and reconcile

A paused job is continued by invoking it again.
"""

from __future__ import annotations
from datetime import datetime, timezone, tzinfo
from typing import Callable, List, Optional, Protocol, Sequence

from mailimport.exceptions import LockContention, SearchFailure, TableWriteError
from mailimport.gmail.client import Message, MessageStore, Thread
from mailimport.logging import logger
from mailimport.models import (
    DATA_HEADERS,
    LABEL_COLUMN,
    SENT_DATE_FORMAT,
    BatchOutcome,
    ImportJob,
    ImportResult,
    ImportRow,
    ImportState,
    MessagePacket,
    ReconciliationReport,
    UnitOutcome,
    Verdict,
)
from mailimport.progress import ProgressTracker
from mailimport.sheets.client import TableStore
from mailimport.sheets.metadata import MetadataLedger
from mailimport.storage.ledger import BatchCursor, CountLedger, clear_job_state
from mailimport.storage.local_state import PropertyStore
from mailimport.storage.lock import RunLock
from mailimport.utils.sender import is_sent_by
from mailimport.utils.transform import DEFAULT_MAX_CHARS, normalize_body


class Notifier(Protocol):
    def notify(self, title: str, message: str) -> None: ...


class LogNotifier:
    """Surfaces operator notifications through the log."""

    def notify(self, title: str, message: str) -> None:
        logger.info(f"[{title}] {message}")


def build_query(job: ImportJob) -> str:
    """
    Gmail query for the job's month.

    `before` is the first day of the following month, so the range is
    correct for every month length.
    """
    return (
        f"from:{job.work_address} in:sent "
        f"after:{job.month_start().isoformat()} "
        f"before:{job.next_month_start().isoformat()}"
    )


class ImportOrchestrator:
    """
    Drives the import state machine for one invocation.

    Collaborators are passed in; nothing here knows about Gmail, Sheets or
    Redis specifically.
    """

    def __init__(
        self,
        messages: MessageStore,
        table: TableStore,
        metadata: MetadataLedger,
        store: PropertyStore,
        lock: RunLock,
        *,
        batch_size: int = 50,
        body_char_limit: int = DEFAULT_MAX_CHARS,
        tz: tzinfo = timezone.utc,
        lock_timeout: float = 1.0,
        notifier: Optional[Notifier] = None,
        progress: Optional[ProgressTracker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.messages = messages
        self.table = table
        self.metadata = metadata
        self.store = store
        self.lock = lock
        self.batch_size = batch_size
        self.body_char_limit = body_char_limit
        self.tz = tz
        self.lock_timeout = lock_timeout
        self.notifier = notifier or LogNotifier()
        self.progress = progress or ProgressTracker(store)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.cursor = BatchCursor(store)
        self.ledger = CountLedger(store)
        self.state = ImportState.INIT

    # ---- entry point ----
    def run(self, job: ImportJob) -> ImportResult:
        self.state = ImportState.INIT
        try:
            self._acquire_lock(job)
        except LockContention as e:
            return self._finish(ImportResult(ImportState.ERROR, "Import busy", str(e), busy=True))

        try:
            return self._run_locked(job)
        except Exception as e:
            failed_in = self.state
            self.state = ImportState.ERROR
            logger.exception(f"Import {job.label} failed in state {failed_in.value}: {e}")
            try:
                self.progress.fail(e)
            except Exception as progress_error:
                logger.error(f"Could not record failure in progress state: {progress_error}")
            return self._finish(ImportResult(ImportState.ERROR, _failure_title(e), str(e)))
        finally:
            self.lock.release()

    def _acquire_lock(self, job: ImportJob) -> None:
        if not self.lock.acquire(self.lock_timeout):
            raise LockContention(
                f"Another import is running for {job.work_address}. Try again when it has finished."
            )

    def _run_locked(self, job: ImportJob) -> ImportResult:
        self.progress.start(job)
        self.state = ImportState.CHECK_IMPORTED
        if self.metadata.is_imported(job.month, job.year):
            self.state = ImportState.ALREADY_IMPORTED
            self.progress.clear()
            return self._finish(ImportResult(
                ImportState.ALREADY_IMPORTED,
                "Already imported",
                f"{job.label} has already been imported. Delete its metadata row to import it again.",
            ))

        self.state = ImportState.SEARCH
        threads = self._search(job)
        if not threads:
            self.state = ImportState.NO_RESULTS
            self.progress.clear()
            return self._finish(ImportResult(
                ImportState.NO_RESULTS,
                "No emails found",
                f"No sent emails from {job.work_address} in {job.label}.",
            ))

        self.state = ImportState.PROCESS_BATCH
        batch = self._process_batch(job, threads)
        self._write_rows(batch)
        # rows are in the table now; cursor and ledger move past them together
        total = self.ledger.add(job.month, job.year, batch.count)
        self.cursor.set(job.month, job.year, batch.batch_end)

        if not batch.is_final:
            self.state = ImportState.BATCH_PAUSED
            message = (
                f"Processed threads {batch.batch_end}/{batch.total_threads}; "
                f"{total} emails imported so far. Run the import again to continue."
            )
            self.progress.update(stage="paused", status=message, emails_written=total)
            return self._finish(ImportResult(ImportState.BATCH_PAUSED, "Batch complete", message, emails_so_far=total))

        self.table.auto_resize_columns(len(DATA_HEADERS))
        self.state = ImportState.FINALIZE
        return self._finalize(job, batch.total_threads, total)

    # ---- SEARCH ----
    def _search(self, job: ImportJob) -> List[Thread]:
        query = build_query(job)
        self.progress.update(stage="searching", status=f"Searching: {query}")
        try:
            threads = list(self.messages.search(query))
        except Exception as e:
            clear_job_state(self.store, job.month, job.year)
            raise SearchFailure(f"Search failed for {job.label}: {e}") from e
        self.progress.update(threads_found=len(threads), status=f"Found {len(threads)} threads")
        return threads

    # ---- PROCESS_BATCH ----
    def _process_batch(self, job: ImportJob, threads: Sequence[Thread]) -> BatchOutcome:
        total = len(threads)
        offset = min(self.cursor.get(job.month, job.year), total)
        batch_end = min(offset + self.batch_size, total)
        batch = BatchOutcome(offset=offset, batch_end=batch_end, total_threads=total)
        logger.info(f"Processing {job.label} threads [{offset}, {batch_end}) of {total}")
        self.progress.update(stage="processing", threads_processed=offset)

        for index in range(offset, batch_end):
            for outcome in self._extract_thread(job, threads[index]):
                batch.add(outcome)
            batch.threads_processed += 1
            self.progress.update(
                threads_processed=index + 1,
                emails_collected=batch.count,
                status=f"Processed thread {index + 1}/{total}",
            )

        errors = [o for o in batch.skipped if o.skipped.startswith("error")]
        logger.info(
            f"Batch {job.label} [{offset}, {batch_end}): {batch.count} rows, "
            f"{len(batch.skipped)} skipped ({len(errors)} errors)"
        )
        return batch

    def _extract_thread(self, job: ImportJob, thread: Thread) -> List[UnitOutcome]:
        thread_id = getattr(thread, "id", "?")
        try:
            messages = thread.get_messages()
        except Exception as e:
            logger.warning(f"Skipping thread {thread_id}: {e}")
            return [UnitOutcome.skip(thread_id, f"error: thread unreadable: {e}")]
        return [self._extract_message(job, message) for message in messages]

    def _extract_message(self, job: ImportJob, message: Message) -> UnitOutcome:
        message_id = getattr(message, "id", "?")
        try:
            if not is_sent_by(message, job.work_address):
                return UnitOutcome.skip(message_id, "not sent by work address")
            sent = message.date
            if not job.contains(sent, self.tz):
                return UnitOutcome.skip(message_id, "outside job month")
            packet = MessagePacket(
                message_id=message_id,
                sender=message.sender,
                to=message.to,
                subject=message.subject,
                date=sent,
                raw_body=message.body,
            )
            return UnitOutcome(unit_id=message_id, rows=[self._to_row(job, packet)])
        except Exception as e:
            logger.warning(f"Skipping message {message_id}: {e}")
            return UnitOutcome.skip(message_id, f"error: {e}")

    def _to_row(self, job: ImportJob, packet: MessagePacket) -> ImportRow:
        return ImportRow(
            email_id=packet.message_id,
            sender=packet.sender,
            to=packet.to,
            subject=packet.subject,
            body_plaintext=normalize_body(packet.raw_body, self.body_char_limit),
            sent_formatted=packet.date.astimezone(self.tz).strftime(SENT_DATE_FORMAT),
            import_label=job.label,
        )

    def _write_rows(self, batch: BatchOutcome) -> None:
        if not batch.rows:
            return
        self.progress.update(stage="writing", status=f"Writing {batch.count} rows")
        try:
            self.table.append_rows([row.as_cells() for row in batch.rows])
        except Exception as e:
            raise TableWriteError(f"Bulk write of {batch.count} rows failed: {e}") from e

    # ---- FINALIZE ----
    def _finalize(self, job: ImportJob, total_threads: int, expected: int) -> ImportResult:
        """
        Reconcile and record the month. Cursor and ledger are cleared only
        once the metadata row exists; a failure before that leaves the cursor
        at the end of the thread list, so the next invocation writes nothing
        and finalizes again.
        """
        self.progress.update(stage="reconciling", emails_written=expected, status="Reconciling counts")

        actual = self.table.count_rows_with(LABEL_COLUMN, job.label)
        report = ReconciliationReport(expected=expected, actual=actual)
        self.metadata.record(
            job.month,
            job.year,
            total_threads,
            self.clock().isoformat(timespec="seconds"),
            notes=f"{expected} emails imported; reconciliation {report.verdict.value}",
        )
        if report.verdict is Verdict.MISMATCH:
            logger.warning(f"Reconciliation mismatch for {job.label}: {report.summary()}")
        else:
            logger.info(f"Reconciliation passed for {job.label}: {report.summary()}")

        self.cursor.clear(job.month, job.year)
        self.ledger.clear(job.month, job.year)
        self.progress.clear()

        title = "Import complete" if report.verdict is Verdict.PASS else "Import complete with count mismatch"
        return self._finish(ImportResult(
            ImportState.FINALIZE,
            title,
            f"Imported {job.label} from {total_threads} threads. {report.summary()}",
            emails_so_far=expected,
            reconciliation=report,
        ))

    def _finish(self, result: ImportResult) -> ImportResult:
        self.notifier.notify(result.title, result.message)
        return result


def _failure_title(error: Exception) -> str:
    if isinstance(error, SearchFailure):
        return "Search failed"
    if isinstance(error, TableWriteError):
        return "Write failed"
    return "Import failed"
