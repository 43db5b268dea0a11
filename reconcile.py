"""Command-line interface for the ledger reconciliation jobs."""

import argparse
import logging
import sys

from concierge_engine import config
from concierge_engine.errors import MissingScope
from concierge_engine.reconciliation import ReconciliationGuard, ReconciliationReport
from concierge_engine.store import AUTHORIZED_USERS, COMPANIES, open_store
from concierge_engine.tenancy import TenantScope

logger = logging.getLogger(__name__)

SCOPED_JOBS = {
    "purge-payouts": "purge_orphaned_payouts",
    "purge-finance": "purge_orphaned_finance",
    "repair-conversions": "repair_partial_conversions",
    "purge-offers": "purge_orphaned_offers",
    "reset-collaborators": "reset_collaborator_payments",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reconcile",
        description="Repair ledger consistency after destructive operations",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List per-company record counts and exit (read-only)",
    )
    parser.add_argument(
        "--store",
        default=config.STORE_PATH,
        help="Path to the JSON ledger store (default: $CONCIERGE_STORE_PATH)",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--company", help="Company id the job is scoped to")

    subparsers = parser.add_subparsers(dest="command", help="Available jobs")

    purge = subparsers.add_parser("purge-payouts", parents=[common], help="Delete payouts whose booking is gone")
    finance = subparsers.add_parser(
        "purge-finance", parents=[common], help="Delete service finance records whose booking is gone"
    )
    repair = subparsers.add_parser("repair-conversions", parents=[common], help="Mark offers with a booking as booked")
    offers = subparsers.add_parser("purge-offers", parents=[common], help="Delete offers whose client is gone")
    reset = subparsers.add_parser("reset-collaborators", parents=[common], help="Clear all collaborator payments")
    for job_parser in (purge, finance, repair, offers, reset):
        job_parser.add_argument("--dry-run", action="store_true", help="Report without writing")

    normalize = subparsers.add_parser(
        "normalize-directory",
        parents=[common],
        help="Merge duplicate directory entries (dry-run unless --apply)",
    )
    normalize.add_argument("--apply", action="store_true", help="Write the changes (requires --company)")

    return parser


def print_report(report: ReconciliationReport) -> None:
    mode = " (dry run)" if report.dry_run else ""
    print(f"== {report.job}{mode} ==")
    for action in report.actions:
        print(f"  {action}")
    print(f"Summary: upserts={report.upserts} deletions={report.deletions} unresolved={report.unresolved}")


def main(args: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for a missing company scope, 2 for errors)
    """
    logging.basicConfig(level=config.LOG_LEVEL)
    parser = build_parser()
    parsed = parser.parse_args(args)

    if not parsed.list and parsed.command is None:
        parser.print_help()
        return 2
    if not parsed.store:
        print("Error: no ledger store given (--store or CONCIERGE_STORE_PATH)", file=sys.stderr)
        return 2

    try:
        guard = ReconciliationGuard(open_store(parsed.store))

        if parsed.list:
            print_report(guard.list_finance_data())
            return 0

        if parsed.command == "normalize-directory":
            scope = TenantScope.require(parsed.company) if parsed.company or parsed.apply else None
            report = guard.normalize_directory_entries(
                guard.store.all(AUTHORIZED_USERS),
                guard.store.all(COMPANIES),
                config.ALLOWED_COMPANY_IDS,
                scope=scope,
                apply=parsed.apply,
            )
        else:
            scope = TenantScope.require(parsed.company)
            job = getattr(guard, SCOPED_JOBS[parsed.command])
            report = job(scope, dry_run=parsed.dry_run)

    except MissingScope as e:
        print(f"Error: {e} (pass --company)", file=sys.stderr)
        return 1

    except Exception as e:
        logger.error(f"Reconciliation failed: {e}", exc_info=True)
        return 2

    print_report(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
