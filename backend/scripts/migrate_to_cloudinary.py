#!/usr/bin/env python3
"""
Migrate restaurant, menu, menu item and profile images from local uploads to Cloudinary.

Examples:
    # Dry run to preview what will be migrated
    python scripts/migrate_to_cloudinary.py --dry-run

    # Migrate only restaurants and menus
    python scripts/migrate_to_cloudinary.py --types restaurants,menus

    # Full migration with local file cleanup
    python scripts/migrate_to_cloudinary.py --cleanup --cleanup-confirm
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from services.maintenance.asset_migration import MigrationOptions, MigrationOrchestrator
from services.maintenance.cleanup import CleanupSweep
from services.maintenance.cloudinary_client import CloudinaryClient
from services.maintenance.config import MaintenanceSettings
from services.maintenance.database import maintenance_database
from services.maintenance.entities import DEFAULT_ENTITY_TYPES, ENTITY_TYPES
from services.maintenance.exceptions import TransferError
from services.maintenance.ledger import MigrationStats
from services.maintenance.log import configure_logging, get_logger

logger = get_logger("migrate_to_cloudinary")


def parse_types(value: str) -> List[str]:
    types = [t.strip() for t in value.split(",") if t.strip()]
    unknown = [t for t in types if t not in ENTITY_TYPES]
    if not types or unknown:
        raise argparse.ArgumentTypeError(
            f"invalid type(s) {', '.join(unknown) or value!r}; "
            f"choose from {','.join(DEFAULT_ENTITY_TYPES)}"
        )
    return types


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="QrBites Cloudinary Migration Script",
        epilog=__doc__.split("Examples:", 1)[1],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--dry-run", action="store_true",
                        help="Run without making changes (preview mode)")
    parser.add_argument("--types", type=parse_types, default=list(DEFAULT_ENTITY_TYPES),
                        metavar="TYPE1,TYPE2",
                        help=f"Types to migrate ({','.join(DEFAULT_ENTITY_TYPES)})")
    parser.add_argument("--cleanup", action="store_true",
                        help="Remove local files after successful migration")
    parser.add_argument("--cleanup-confirm", action="store_true",
                        help="Required flag to confirm file cleanup")
    return parser


async def run_migration(options: MigrationOptions, settings: MaintenanceSettings) -> MigrationStats:
    client = CloudinaryClient.from_settings(settings)
    if not options.dry_run and not client.is_configured():
        raise TransferError(
            "Cloudinary credentials missing. Set CLOUDINARY_CLOUD_NAME, "
            "CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET."
        )

    async with maintenance_database(settings) as db:
        orchestrator = MigrationOrchestrator(
            db,
            client,
            cleanup_sweep=CleanupSweep(settings.uploads_dir),
            report_dir=settings.report_dir,
        )
        return await orchestrator.run(options)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    options = MigrationOptions(
        dry_run=args.dry_run,
        entity_types=args.types,
        cleanup=args.cleanup,
        cleanup_confirm=args.cleanup_confirm,
    )

    try:
        settings = MaintenanceSettings.from_env()
        asyncio.run(run_migration(options, settings))
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
