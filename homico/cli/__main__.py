"""
Homico CLI - scheduled marketplace maintenance.

Usage:
    homico sweep [--dry-run] [--json]
    homico repair-hires [--dry-run] [--json]
    homico orphans [--json]

Connects to Supabase using HOMICO_SUPABASE_URL / SUPABASE_URL and
HOMICO_SUPABASE_KEY / SUPABASE_SECRET_KEY / SUPABASE_SERVICE_ROLE_KEY.
"""

import argparse
import json
import logging
import os
import sys

from homico.marketplace import MarketplaceConfig, MarketplaceServices, build_supabase_services

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def create_services() -> MarketplaceServices:
    """Build services against the Supabase project named in the environment."""
    url = os.environ.get("HOMICO_SUPABASE_URL") or os.environ.get("SUPABASE_URL")
    key = (
        os.environ.get("HOMICO_SUPABASE_KEY")
        or os.environ.get("SUPABASE_SECRET_KEY")
        or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    )
    if not url or not key:
        raise ValueError("Supabase credentials not configured (set SUPABASE_URL and SUPABASE_SECRET_KEY)")

    from supabase import create_client

    return build_supabase_services(create_client(url, key), config=MarketplaceConfig.from_env())


def cmd_sweep(args, services: MarketplaceServices):
    """Expire lapsed open jobs."""
    report = services.maintenance.run_expiration_sweep(dry_run=args.dry_run)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return

    verb = "Would expire" if report.dry_run else "Expired"
    print(f"{verb} {report.total} job(s)")
    for job_id in report.job_ids:
        print(f"  - {job_id}")


def cmd_orphans(args, services: MarketplaceServices):
    """List hired jobs missing a project tracking record."""
    orphans = services.maintenance.find_orphaned_hires()

    if args.json:
        print(json.dumps([o.to_dict() for o in orphans], indent=2))
        return

    if not orphans:
        print("No orphaned hires found.")
        return
    for o in orphans:
        status = "repairable" if o.repairable else f"skip: {o.reason}"
        print(f"  {o.job_id} [{o.job_type}] pro={o.hired_pro_id} ({status})")


def cmd_repair_hires(args, services: MarketplaceServices):
    """Recreate missing project tracking records."""
    report = services.maintenance.repair_orphaned_hires(dry_run=args.dry_run)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return

    verb = "Would repair" if report.dry_run else "Repaired"
    print(f"{verb} {len(report.repaired)} hire(s)")
    for job_id in report.repaired:
        print(f"  + {job_id}")
    if report.skipped:
        print(f"Skipped {len(report.skipped)} needing manual review:")
        for o in report.skipped:
            print(f"  ! {o.job_id}: {o.reason}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="homico",
        description="Homico marketplace maintenance",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at INFO level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # sweep
    p_sweep = subparsers.add_parser("sweep", help="Expire open jobs past their listing lifetime")
    p_sweep.add_argument("--dry-run", action="store_true", help="Report without changing anything")
    p_sweep.add_argument("--json", "-j", action="store_true")

    # orphans
    p_orphans = subparsers.add_parser("orphans", help="List hired jobs without project tracking")
    p_orphans.add_argument("--json", "-j", action="store_true")

    # repair-hires
    p_repair = subparsers.add_parser("repair-hires", help="Recreate missing project tracking records")
    p_repair.add_argument("--dry-run", action="store_true", help="Report without changing anything")
    p_repair.add_argument("--json", "-j", action="store_true")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        services = create_services()
    except ValueError as e:
        logger.error(f"Failed to initialize Homico: {e}")
        sys.exit(1)

    try:
        if args.command == "sweep":
            cmd_sweep(args, services)
        elif args.command == "orphans":
            cmd_orphans(args, services)
        elif args.command == "repair-hires":
            cmd_repair_hires(args, services)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
