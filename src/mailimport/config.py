"""
Configuration management with validation and storage backend selection.
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TypedDict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import gspread
from dotenv import load_dotenv
from googleapiclient.discovery import build

from mailimport.auth import ensure_valid_credentials
from mailimport.gmail.client import GmailMessageStore
from mailimport.logging import logger
from mailimport.models import DATA_HEADERS, METADATA_HEADERS
from mailimport.sheets.client import SheetsTableStore, open_table
from mailimport.sheets.metadata import MetadataLedger
from mailimport.storage.local_state import InMemoryPropertyStore, PropertyStore
from mailimport.storage.lock import LocalRunLock, RedisRunLock, RunLock, lock_name
from mailimport.utils.rate_limiter import RateLimiter
from mailimport.utils.validation import validate_email_address


class Config(TypedDict):
    """Typed configuration dictionary."""
    SHEETS_TOKEN: str
    GMAIL_TOKEN: str
    SHEET_ID: str
    SHEET_TAB: str
    METADATA_TAB: str
    WORK_EMAIL: str
    BATCH_SIZE: int  # Threads per invocation (default: 50)
    BODY_CHAR_LIMIT: int  # Max characters of a normalized body (default: 25000)
    TIMEZONE: str  # IANA zone for month boundaries and sent dates (default: UTC)
    LOCK_TIMEOUT: float  # Seconds to wait for the run-lock (default: 1.0)
    LOCK_TTL: float  # Server-side expiry of a Redis run-lock (default: 900)
    GMAIL_RATE_LIMIT_PER_MINUTE: int
    REDIS_HOST: str
    REDIS_PORT: int
    REDIS_DB: int
    USE_REDIS: bool
    LOG_LEVEL: str
    LOG_FILE: str | None
    AUTO_REAUTHORIZE: bool
    GMAIL_SCOPES: list[str]
    SHEETS_SCOPES: list[str]
    SCHEDULER_INTERVAL: int
    PROGRESS_PORT: int


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


def _scopes(name: str, default: str) -> list[str]:
    return [s.strip() for s in os.getenv(name, default).split(",") if s.strip()]


def _load_env() -> Config:
    """
    Load environment variables and return validated configuration.

    Required vars:
      - GOOGLE_SHEETS_TOKEN, GOOGLE_GMAIL_TOKEN (authorized user files)
      - GOOGLE_SHEET_ID
      - WORK_EMAIL (address whose sent mail is imported)

    Optional vars with defaults:
      - SHEET_WORKSHEET (default: "Sent Emails")
      - METADATA_WORKSHEET (default: "Import Metadata")
      - IMPORT_BATCH_SIZE (default: 50)
      - BODY_CHAR_LIMIT (default: 25000)
      - IMPORT_TIMEZONE (default: "UTC")
      - LOCK_TIMEOUT_SECONDS (default: 1.0)
      - LOCK_TTL_SECONDS (default: 900)
      - GMAIL_RATE_LIMIT_PER_MINUTE (default: 240)
      - USE_REDIS (default: "false"), REDIS_HOST/PORT/DB
      - LOG_LEVEL (default: "INFO"), LOG_FILE (default: None)
      - AUTO_REAUTHORIZE (default: "false")
      - SCHEDULER_INTERVAL (default: 60)
      - PROGRESS_PORT (default: 8080)
    """
    load_dotenv()

    sheets_token = os.getenv("GOOGLE_SHEETS_TOKEN", "").strip()
    gmail_token = os.getenv("GOOGLE_GMAIL_TOKEN", "").strip()
    sheet_id = os.getenv("GOOGLE_SHEET_ID", "").strip()
    work_email = os.getenv("WORK_EMAIL", "").strip().lower()

    if not sheets_token:
        raise ValueError("GOOGLE_SHEETS_TOKEN environment variable is required")
    if not gmail_token:
        raise ValueError("GOOGLE_GMAIL_TOKEN environment variable is required")
    if not sheet_id:
        raise ValueError("GOOGLE_SHEET_ID environment variable is required")
    if not work_email:
        raise ValueError("WORK_EMAIL environment variable is required")
    if not validate_email_address(work_email):
        raise ValueError(f"WORK_EMAIL is not a valid email address: {work_email!r}")

    batch_size = int(os.getenv("IMPORT_BATCH_SIZE", "50"))
    if not (1 <= batch_size <= 500):
        raise ValueError(f"IMPORT_BATCH_SIZE must be between 1 and 500, got {batch_size}")

    body_limit = int(os.getenv("BODY_CHAR_LIMIT", "25000"))
    if not (1 <= body_limit <= 50000):
        # a Sheets cell holds at most 50000 characters
        raise ValueError(f"BODY_CHAR_LIMIT must be between 1 and 50000, got {body_limit}")

    tz_name = os.getenv("IMPORT_TIMEZONE", "UTC").strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"IMPORT_TIMEZONE is not a known time zone: {tz_name!r}") from None

    lock_timeout = float(os.getenv("LOCK_TIMEOUT_SECONDS", "1.0"))
    if not (0 <= lock_timeout <= 30):
        raise ValueError(f"LOCK_TIMEOUT_SECONDS must be between 0 and 30, got {lock_timeout}")
    lock_ttl = float(os.getenv("LOCK_TTL_SECONDS", "900"))
    if lock_ttl < 60:
        raise ValueError(f"LOCK_TTL_SECONDS must be at least 60, got {lock_ttl}")

    gmail_rate_limit = int(os.getenv("GMAIL_RATE_LIMIT_PER_MINUTE", "240"))
    if not (1 <= gmail_rate_limit <= 15000):
        raise ValueError(f"GMAIL_RATE_LIMIT_PER_MINUTE must be between 1 and 15000, got {gmail_rate_limit}")

    redis_port = int(os.getenv("REDIS_PORT", "6379"))
    if not (1 <= redis_port <= 65535):
        raise ValueError(f"REDIS_PORT must be between 1 and 65535, got {redis_port}")

    scheduler_interval = int(os.getenv("SCHEDULER_INTERVAL", "60"))
    if scheduler_interval < 10:
        raise ValueError(f"SCHEDULER_INTERVAL must be at least 10 seconds, got {scheduler_interval}")

    progress_port = int(os.getenv("PROGRESS_PORT", "8080"))
    if not (1024 <= progress_port <= 65535):
        raise ValueError(f"PROGRESS_PORT must be between 1024 and 65535, got {progress_port}")

    cfg: Config = {
        "SHEETS_TOKEN": sheets_token,
        "GMAIL_TOKEN": gmail_token,
        "SHEET_ID": sheet_id,
        "SHEET_TAB": os.getenv("SHEET_WORKSHEET", "Sent Emails").strip(),
        "METADATA_TAB": os.getenv("METADATA_WORKSHEET", "Import Metadata").strip(),
        "WORK_EMAIL": work_email,
        "BATCH_SIZE": batch_size,
        "BODY_CHAR_LIMIT": body_limit,
        "TIMEZONE": tz_name,
        "LOCK_TIMEOUT": lock_timeout,
        "LOCK_TTL": lock_ttl,
        "GMAIL_RATE_LIMIT_PER_MINUTE": gmail_rate_limit,
        "REDIS_HOST": os.getenv("REDIS_HOST", "localhost").strip(),
        "REDIS_PORT": redis_port,
        "REDIS_DB": int(os.getenv("REDIS_DB", "0")),
        "USE_REDIS": _flag("USE_REDIS"),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        "LOG_FILE": os.getenv("LOG_FILE", "").strip() or None,
        "AUTO_REAUTHORIZE": _flag("AUTO_REAUTHORIZE"),
        "GMAIL_SCOPES": _scopes("GOOGLE_GMAIL_SCOPES", "https://www.googleapis.com/auth/gmail.readonly"),
        "SHEETS_SCOPES": _scopes(
            "GOOGLE_SHEETS_SCOPES",
            "https://www.googleapis.com/auth/spreadsheets,https://www.googleapis.com/auth/drive",
        ),
        "SCHEDULER_INTERVAL": scheduler_interval,
        "PROGRESS_PORT": progress_port,
    }

    logger.debug(
        f"Configuration loaded: USE_REDIS={cfg['USE_REDIS']}, BATCH_SIZE={batch_size}, TIMEZONE={tz_name}"
    )
    return cfg


@dataclass
class Clients:
    """Collaborators of the import orchestrator, built once per process."""
    messages: GmailMessageStore
    table: SheetsTableStore
    metadata: MetadataLedger
    store: PropertyStore
    lock: RunLock


def _init_storage(cfg: Config) -> tuple[PropertyStore, RunLock]:
    """
    Initialize the property store and run-lock with fallback to in-memory.

    In-memory state only survives within one process, so a paused import can
    then be resumed only by the same long-running process.
    """
    name = lock_name(cfg["WORK_EMAIL"])
    if cfg["USE_REDIS"]:
        try:
            from mailimport.storage.redis_kv import RedisKVStorage
            storage = RedisKVStorage(
                host=cfg["REDIS_HOST"],
                port=cfg["REDIS_PORT"],
                db=cfg["REDIS_DB"],
            )
            lock = RedisRunLock(storage.client, f"{storage.namespace}{name}", ttl_seconds=cfg["LOCK_TTL"])
            logger.info(f"Using Redis storage at {cfg['REDIS_HOST']}:{cfg['REDIS_PORT']}")
            return storage, lock
        except Exception as e:
            logger.warning(f"Failed to connect to Redis: {e}. Falling back to InMemory storage.")
    else:
        logger.info("Using InMemory storage (Redis disabled)")
    return InMemoryPropertyStore(), LocalRunLock(name)


def _init_clients(cfg: Config) -> Clients:
    """
    Authorize Google APIs and build every collaborator.

    Raises:
        FileNotFoundError: If token files don't exist
        TokenExpiredError: If credentials cannot be refreshed
    """
    for key in ("SHEETS_TOKEN", "GMAIL_TOKEN"):
        if not cfg["AUTO_REAUTHORIZE"] and not Path(cfg[key]).exists():
            raise FileNotFoundError(f"GOOGLE_{key} file not found: {cfg[key]}")

    sheets_creds = ensure_valid_credentials(
        token_path=cfg["SHEETS_TOKEN"],
        scopes=cfg["SHEETS_SCOPES"],
        auto_reauthorize=cfg["AUTO_REAUTHORIZE"],
    )
    gmail_creds = ensure_valid_credentials(
        token_path=cfg["GMAIL_TOKEN"],
        scopes=cfg["GMAIL_SCOPES"],
        auto_reauthorize=cfg["AUTO_REAUTHORIZE"],
    )

    gspread_client = gspread.authorize(sheets_creds)
    table = open_table(gspread_client, cfg["SHEET_ID"], cfg["SHEET_TAB"], DATA_HEADERS)
    metadata = MetadataLedger(open_table(gspread_client, cfg["SHEET_ID"], cfg["METADATA_TAB"], METADATA_HEADERS))

    gmail_service = build("gmail", "v1", credentials=gmail_creds, cache_discovery=False)
    messages = GmailMessageStore(
        gmail_service,
        rate_limiter=RateLimiter(max_calls=cfg["GMAIL_RATE_LIMIT_PER_MINUTE"], time_window_seconds=60),
    )

    storage, lock = _init_storage(cfg)
    logger.info("Clients initialized successfully")
    return Clients(messages=messages, table=table, metadata=metadata, store=storage, lock=lock)
