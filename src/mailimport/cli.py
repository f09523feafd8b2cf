"""
Command-line interface for the sent-mail importer.
"""

from __future__ import annotations
import argparse
import json
import sys

from mailimport.auth import ensure_valid_credentials
from mailimport.config import _init_clients, _load_env
from mailimport.exceptions import InvalidJobError
from mailimport.logging import logger, setup_logging
from mailimport.models import ImportResult, ImportState
from mailimport.pipeline.commands import clear_all, get_progress, import_month, view_imported_months
from mailimport.service import resume_until_done, serve_progress_forever
from mailimport.utils.validation import build_job


class ConsoleNotifier:
    """Prints operator-facing notices to stdout."""

    def notify(self, title: str, message: str) -> None:
        print(f"[{title}] {message}")


def _bootstrap():
    cfg = _load_env()
    setup_logging(log_level=cfg["LOG_LEVEL"], log_file=cfg["LOG_FILE"])
    return cfg


def _exit_code(result: ImportResult | None) -> int:
    if result is None or result.state == ImportState.ERROR:
        return 1
    return 0


def cmd_import(args):
    """Run one batch of the import for a month."""
    try:
        cfg = _bootstrap()
        build_job(args.month, args.year, cfg["WORK_EMAIL"])
        clients = _init_clients(cfg)
        result = import_month(cfg, clients, args.month, args.year, ConsoleNotifier())
    except InvalidJobError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.exception(f"Import failed: {e}")
        sys.exit(1)
    if result.needs_resume:
        print("Run `mail-import import` again (or `mail-import resume`) to continue.")
    sys.exit(_exit_code(result))


def cmd_resume(args):
    """Re-run the import for a month until it is no longer paused."""
    try:
        cfg = _bootstrap()
        build_job(args.month, args.year, cfg["WORK_EMAIL"])
        clients = _init_clients(cfg)
        result = resume_until_done(
            cfg,
            clients,
            args.month,
            args.year,
            notifier=ConsoleNotifier(),
            serve_progress=args.serve_progress,
            max_runs=args.max_runs,
        )
    except InvalidJobError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.exception(f"Resume failed: {e}")
        sys.exit(1)
    sys.exit(_exit_code(result))


def cmd_imported(args):
    """List months with a completed import."""
    try:
        cfg = _bootstrap()
        records = view_imported_months(_init_clients(cfg))
    except Exception as e:
        logger.exception(f"Listing imported months failed: {e}")
        sys.exit(1)
    if not records:
        print("No months imported yet.")
        return
    for r in records:
        print(f"{r.year:04d}-{r.month:02d}  {r.email_count:>6}  {r.import_timestamp}  {r.notes}")


def cmd_progress(args):
    """Print the progress of a running import as JSON."""
    try:
        cfg = _bootstrap()
        state = get_progress(_init_clients(cfg))
    except Exception as e:
        logger.exception(f"Reading progress failed: {e}")
        sys.exit(1)
    if state is None:
        print("No import in progress.")
        return
    print(json.dumps(state, indent=2))


def cmd_clear_all(args):
    """Remove all imported data and import state."""
    if not args.yes:
        print("Refusing to clear without --yes", file=sys.stderr)
        sys.exit(2)
    try:
        cfg = _bootstrap()
        removed = clear_all(_init_clients(cfg))
    except Exception as e:
        logger.exception(f"Clear failed: {e}")
        sys.exit(1)
    print(f"Cleared imported rows, metadata and {removed['state_keys']} state keys.")


def cmd_serve(args):
    """Serve /progress and /health until interrupted."""
    try:
        cfg = _bootstrap()
        serve_progress_forever(cfg, _init_clients(cfg))
    except Exception as e:
        logger.exception(f"Progress server failed: {e}")
        sys.exit(1)


def cmd_authorize(args):
    """Run the OAuth flow for both token files if they are missing or stale."""
    try:
        cfg = _bootstrap()
        ensure_valid_credentials(cfg["SHEETS_TOKEN"], cfg["SHEETS_SCOPES"], auto_reauthorize=True)
        ensure_valid_credentials(cfg["GMAIL_TOKEN"], cfg["GMAIL_SCOPES"], auto_reauthorize=True)
    except Exception as e:
        logger.exception(f"Authorization failed: {e}")
        sys.exit(1)
    print("Credentials are valid.")


def _add_month_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--month", type=int, required=True, help="Month number (1-12)")
    parser.add_argument("--year", type=int, required=True, help="Four-digit year")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mail-import",
        description="Sent-mail importer - copy a month of sent email into a spreadsheet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s import --month 2 --year 2024    Import one batch of February 2024
  %(prog)s resume --month 2 --year 2024    Keep importing until the month is done
  %(prog)s imported                        List completed months
  %(prog)s progress                        Show the running import's progress
  %(prog)s clear-all --yes                 Remove everything imported so far
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    import_parser = subparsers.add_parser("import", help="Import one batch of a month")
    _add_month_args(import_parser)
    import_parser.set_defaults(func=cmd_import)

    resume_parser = subparsers.add_parser("resume", help="Import a month until complete")
    _add_month_args(resume_parser)
    resume_parser.add_argument(
        "--serve-progress",
        action="store_true",
        help="Expose /progress and /health while running"
    )
    resume_parser.add_argument("--max-runs", type=int, default=None, help="Give up after N invocations")
    resume_parser.set_defaults(func=cmd_resume)

    imported_parser = subparsers.add_parser("imported", help="List imported months")
    imported_parser.set_defaults(func=cmd_imported)

    progress_parser = subparsers.add_parser("progress", help="Show import progress")
    progress_parser.set_defaults(func=cmd_progress)

    clear_parser = subparsers.add_parser("clear-all", help="Delete all imported data and state")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm the deletion")
    clear_parser.set_defaults(func=cmd_clear_all)

    serve_parser = subparsers.add_parser("serve", help="Serve the progress endpoint")
    serve_parser.set_defaults(func=cmd_serve)

    auth_parser = subparsers.add_parser("authorize", help="Create or refresh OAuth tokens")
    auth_parser.set_defaults(func=cmd_authorize)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
