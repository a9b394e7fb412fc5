"""
QrBites Maintenance - Migration Ledger

Accumulates the outcome of every asset transfer attempted during one run.
A fresh MigrationStats is created per run and passed explicitly to every call
that records into it.

Invariant: total_files == migrated + failed + skipped
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .cloudinary_client import RemoteDescriptor

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    """Terminal status of one asset within a run."""
    MIGRATED = "migrated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class MigrationOutcome:
    """Result of transferring one asset field (or one gallery item)."""
    entity: str
    field: str
    status: OutcomeStatus
    source_locator: Optional[str] = None
    remote_descriptor: Optional[RemoteDescriptor] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "entity": self.entity,
            "field": self.field,
            "status": self.status.value,
            "file": self.source_locator,
        }
        if self.remote_descriptor is not None:
            data["remoteDescriptor"] = self.remote_descriptor.to_dict()
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data


@dataclass
class MigrationStats:
    """Statistics for a migration run."""
    total_files: int = 0
    migrated: int = 0
    failed: int = 0
    skipped: int = 0

    errors: List[Dict[str, Any]] = field(default_factory=list)
    outcomes: List[MigrationOutcome] = field(default_factory=list)

    def record(self, outcome: MigrationOutcome) -> MigrationOutcome:
        """Record an outcome, dispatching on its status."""
        self.outcomes.append(outcome)
        if outcome.status == OutcomeStatus.MIGRATED:
            self.record_migrated(outcome)
        elif outcome.status == OutcomeStatus.SKIPPED:
            self.record_skipped(outcome)
        else:
            self.record_failed(outcome)
        return outcome

    def record_migrated(self, outcome: MigrationOutcome) -> None:
        self.total_files += 1
        self.migrated += 1

    def record_skipped(self, outcome: MigrationOutcome) -> None:
        self.total_files += 1
        self.skipped += 1

    def record_failed(self, outcome: MigrationOutcome) -> None:
        self.total_files += 1
        self.failed += 1
        self._add_error(outcome)

    def record_rollback(self, outcome: MigrationOutcome, error: str) -> None:
        """Move a previously migrated outcome to failed (write-back did not persist)."""
        if outcome.status != OutcomeStatus.MIGRATED:
            return
        self.migrated -= 1
        self.failed += 1
        outcome.status = OutcomeStatus.FAILED
        outcome.error_message = error
        self._add_error(outcome)

    def _add_error(self, outcome: MigrationOutcome) -> None:
        self.errors.append({
            "file": outcome.source_locator,
            "entity": outcome.entity,
            "error": outcome.error_message,
        })

    @property
    def success_rate(self) -> float:
        """Percentage of files migrated; 0 when nothing was processed."""
        if self.total_files == 0:
            return 0
        return round(self.migrated / self.total_files * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "migrated": self.migrated,
            "failed": self.failed,
            "skipped": self.skipped,
            "successRate": self.success_rate,
            "errors": list(self.errors),
        }

    def to_report(self, dry_run: bool, entity_types: List[str]) -> Dict[str, Any]:
        """Full report payload written to the migration report artifact."""
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "runType": "migration",
            "dryRun": dry_run,
            "entityTypes": list(entity_types),
            "stats": self.to_dict(),
            "errors": list(self.errors),
        }

    def log_summary(self, log=logger) -> None:
        """Log the human-readable run summary."""
        log.info("Migration Report:")
        log.info("=" * 50)
        log.info(f"Total files processed: {self.total_files}")
        log.info(f"Successfully migrated: {self.migrated}")
        log.info(f"Skipped (already migrated): {self.skipped}")
        log.info(f"Failed: {self.failed}")

        if self.errors:
            log.info("Errors:")
            for index, error in enumerate(self.errors, start=1):
                log.error(f"{index}. {error['entity']}: {error['error']}")

        log.info(f"Success Rate: {self.success_rate:.2f}%")
