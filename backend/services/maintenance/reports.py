"""
QrBites Maintenance - Report artifacts

Reports are JSON files named <run-type>-report-<UTC timestamp>.json.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


def report_filename(run_type: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{run_type}-report-{now.strftime('%Y%m%dT%H%M%S%fZ')}.json"


def write_report(
    run_type: str,
    payload: Dict[str, Any],
    report_dir: Union[str, Path] = ".",
    now: Optional[datetime] = None,
) -> Path:
    """Serialize a report payload and return the artifact path."""
    report_dir = Path(report_dir)
    report_dir.mkdir(parents=True, exist_ok=True)

    path = report_dir / report_filename(run_type, now)
    with open(path, "w", encoding="utf-8") as f:
        # ObjectIds and datetimes from aggregation samples are written as strings
        json.dump(payload, f, indent=2, default=str)

    logger.info(f"Detailed report saved to: {path}")
    return path
