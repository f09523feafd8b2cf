"""
Domain types for the monthly sent-mail import.

Jobs are rebuilt from arguments on every invocation; packets and rows are
ephemeral; only cursors, ledgers, metadata and progress are persisted.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import List, Optional

#: Column order of the data tab. ImportRow.as_cells() follows it.
DATA_HEADERS: List[str] = ["Email ID", "From", "To", "Subject", "Body", "Sent", "Import Label"]

#: Column order of the metadata tab.
METADATA_HEADERS: List[str] = ["Month", "Year", "Email Count", "Import Timestamp", "Notes"]

#: 1-based column of the import label in the data tab.
LABEL_COLUMN = DATA_HEADERS.index("Import Label") + 1

SENT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class ImportJob:
    """One (month, year) unit of work for one work address."""

    month: int
    year: int
    work_address: str

    @property
    def label(self) -> str:
        """Import label written next to every row, e.g. ``2024-02``."""
        return f"{self.year:04d}-{self.month:02d}"

    def month_start(self) -> date:
        return date(self.year, self.month, 1)

    def next_month_start(self) -> date:
        """First day of the following month, the exclusive upper bound."""
        if self.month == 12:
            return date(self.year + 1, 1, 1)
        return date(self.year, self.month + 1, 1)

    def contains(self, when: datetime, tz: Optional[tzinfo] = None) -> bool:
        """True if `when`, seen in `tz`, falls inside this job's month."""
        local = when.astimezone(tz) if tz is not None else when
        return local.year == self.year and local.month == self.month


@dataclass(frozen=True)
class MessagePacket:
    """A verified message, ready to become a row."""

    message_id: str
    sender: str
    to: str
    subject: str
    date: datetime
    raw_body: str


@dataclass(frozen=True)
class ImportRow:
    email_id: str
    sender: str
    to: str
    subject: str
    body_plaintext: str
    sent_formatted: str
    import_label: str

    def as_cells(self) -> List[str]:
        return [
            self.email_id,
            self.sender,
            self.to,
            self.subject,
            self.body_plaintext,
            self.sent_formatted,
            self.import_label,
        ]


@dataclass(frozen=True)
class MetadataRecord:
    month: int
    year: int
    email_count: int
    import_timestamp: str
    notes: str = ""

    def as_cells(self) -> List:
        return [self.month, self.year, self.email_count, self.import_timestamp, self.notes]


@dataclass(frozen=True)
class UnitOutcome:
    """Result of processing one thread or message: rows produced or a skip reason."""

    unit_id: str
    rows: List[ImportRow] = field(default_factory=list)
    skipped: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.skipped is None

    @classmethod
    def skip(cls, unit_id: str, reason: str) -> "UnitOutcome":
        return cls(unit_id=unit_id, skipped=reason)


@dataclass
class BatchOutcome:
    """Aggregated outcomes of one batch of threads."""

    offset: int
    batch_end: int
    total_threads: int
    rows: List[ImportRow] = field(default_factory=list)
    skipped: List[UnitOutcome] = field(default_factory=list)
    threads_processed: int = 0

    def add(self, outcome: UnitOutcome) -> None:
        if outcome.ok:
            self.rows.extend(outcome.rows)
        else:
            self.skipped.append(outcome)

    @property
    def count(self) -> int:
        return len(self.rows)

    @property
    def is_final(self) -> bool:
        return self.batch_end >= self.total_threads


class Verdict(str, Enum):
    PASS = "PASS"
    MISMATCH = "MISMATCH"


@dataclass(frozen=True)
class ReconciliationReport:
    """Expected (accumulated while processing) vs actual (counted in the table)."""

    expected: int
    actual: int

    @property
    def difference(self) -> int:
        return abs(self.expected - self.actual)

    @property
    def verdict(self) -> Verdict:
        return Verdict.PASS if self.expected == self.actual else Verdict.MISMATCH

    def summary(self) -> str:
        if self.verdict is Verdict.PASS:
            return f"Expected {self.expected}, found {self.actual}: counts match."
        return (
            f"Expected {self.expected}, found {self.actual}: "
            f"mismatch of {self.difference} row(s)."
        )


class ImportState(str, Enum):
    INIT = "INIT"
    CHECK_IMPORTED = "CHECK_IMPORTED"
    ALREADY_IMPORTED = "ALREADY_IMPORTED"
    SEARCH = "SEARCH"
    NO_RESULTS = "NO_RESULTS"
    PROCESS_BATCH = "PROCESS_BATCH"
    BATCH_PAUSED = "BATCH_PAUSED"
    FINALIZE = "FINALIZE"
    ERROR = "ERROR"


@dataclass
class ImportResult:
    """What one invocation ended with, as shown to the operator."""

    state: ImportState
    title: str
    message: str
    emails_so_far: int = 0
    reconciliation: Optional[ReconciliationReport] = None
    busy: bool = False

    @property
    def needs_resume(self) -> bool:
        return self.state is ImportState.BATCH_PAUSED
