#!/usr/bin/env python3
"""
QrBites database optimization tool.

Examples:
    # Full optimization
    python scripts/optimize_database.py

    # Only create indexes
    python scripts/optimize_database.py --skip-analysis --skip-settings --skip-validation

    # Quick check without modifications
    python scripts/optimize_database.py --skip-indexes --skip-ttl
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from services.maintenance.config import MaintenanceSettings
from services.maintenance.database import maintenance_database
from services.maintenance.log import configure_logging, get_logger
from services.maintenance.optimizer import DatabaseOptimizer, OptimizationReport, OptimizerOptions

logger = get_logger("optimize_database")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="QrBites Database Optimization Tool",
        epilog=__doc__.split("Examples:", 1)[1],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--skip-indexes", action="store_true", help="Skip index creation")
    parser.add_argument("--skip-analysis", action="store_true", help="Skip query analysis")
    parser.add_argument("--skip-settings", action="store_true", help="Skip collection optimization")
    parser.add_argument("--skip-ttl", action="store_true", help="Skip TTL index creation")
    parser.add_argument("--skip-validation", action="store_true", help="Skip data integrity validation")
    parser.add_argument("--skip-report", action="store_true", help="Skip report generation")
    return parser


def options_from_args(args: argparse.Namespace) -> OptimizerOptions:
    return OptimizerOptions(
        create_indexes=not args.skip_indexes,
        analyze_queries=not args.skip_analysis,
        optimize_settings=not args.skip_settings,
        create_ttl=not args.skip_ttl,
        validate_integrity=not args.skip_validation,
        generate_report=not args.skip_report,
    )


async def run_optimization(options: OptimizerOptions, settings: MaintenanceSettings) -> OptimizationReport:
    async with maintenance_database(settings) as db:
        optimizer = DatabaseOptimizer(
            db,
            report_dir=settings.report_dir,
            profile_slow_queries=settings.profile_slow_queries,
        )
        return await optimizer.run(options)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        settings = MaintenanceSettings.from_env()
        asyncio.run(run_optimization(options_from_args(args), settings))
    except Exception as e:
        logger.error(f"Optimization failed: {e}")
        print(f"Optimization failed: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
