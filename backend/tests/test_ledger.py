"""
Tests for the migration ledger and report artifacts.
"""

import json
import logging
from datetime import datetime, timezone

from services.maintenance.cloudinary_client import RemoteDescriptor
from services.maintenance.ledger import MigrationOutcome, MigrationStats, OutcomeStatus
from services.maintenance.reports import report_filename, write_report


def outcome(status, entity="Bella Napoli", field="logo", error=None):
    return MigrationOutcome(
        entity=entity,
        field=field,
        status=status,
        source_locator=f"/uploads/restaurants/{field}.jpg",
        remote_descriptor=RemoteDescriptor("https://res.cloudinary.com/x.jpg", "x")
        if status != OutcomeStatus.FAILED else None,
        error_message=error,
    )


class TestMigrationStats:
    """Tests for MigrationStats."""

    def test_success_rate_empty_run(self):
        """A run with nothing to process has a 0% success rate."""
        stats = MigrationStats()
        assert stats.success_rate == 0
        assert stats.to_dict()["successRate"] == 0

    def test_record_dispatches_on_status(self):
        stats = MigrationStats()
        stats.record(outcome(OutcomeStatus.MIGRATED))
        stats.record(outcome(OutcomeStatus.SKIPPED, field="banner"))
        stats.record(outcome(OutcomeStatus.FAILED, field="gallery[0]", error="File not found: x"))

        assert stats.total_files == 3
        assert (stats.migrated, stats.skipped, stats.failed) == (1, 1, 1)
        assert stats.success_rate == 33.33
        assert stats.errors == [{
            "file": "/uploads/restaurants/gallery[0].jpg",
            "entity": "Bella Napoli",
            "error": "File not found: x",
        }]

    def test_record_rollback_keeps_invariant(self):
        stats = MigrationStats()
        migrated = stats.record(outcome(OutcomeStatus.MIGRATED))

        stats.record_rollback(migrated, "Write-back failed: boom")

        assert stats.total_files == 1
        assert stats.migrated == 0
        assert stats.failed == 1
        assert migrated.status == OutcomeStatus.FAILED
        assert stats.errors[0]["error"] == "Write-back failed: boom"

    def test_record_rollback_ignores_non_migrated(self):
        stats = MigrationStats()
        skipped = stats.record(outcome(OutcomeStatus.SKIPPED))

        stats.record_rollback(skipped, "ignored")

        assert stats.skipped == 1
        assert stats.failed == 0

    def test_to_report(self):
        stats = MigrationStats()
        stats.record(outcome(OutcomeStatus.MIGRATED))

        report = stats.to_report(dry_run=True, entity_types=["restaurants"])

        assert report["runType"] == "migration"
        assert report["dryRun"] is True
        assert report["entityTypes"] == ["restaurants"]
        assert report["stats"]["totalFiles"] == 1
        assert report["stats"]["successRate"] == 100
        assert report["errors"] == []
        assert "timestamp" in report

    def test_outcome_to_dict(self):
        d = outcome(OutcomeStatus.MIGRATED).to_dict()
        assert d["status"] == "migrated"
        assert d["remoteDescriptor"]["publicId"] == "x"
        assert "errorMessage" not in d


class TestReports:
    """Tests for report artifact naming and writing."""

    def test_report_filename(self):
        now = datetime(2024, 3, 5, 14, 30, 15, 123456, tzinfo=timezone.utc)
        assert report_filename("migration", now) == "migration-report-20240305T143015123456Z.json"

    def test_write_report_creates_directory(self, tmp_path, caplog):
        caplog.set_level(logging.INFO)
        report_dir = tmp_path / "nested" / "reports"

        path = write_report("database-optimization", {"runType": "database-optimization"}, report_dir)

        assert f"Detailed report saved to: {path}" in caplog.messages
        assert path.parent == report_dir
        assert path.name.startswith("database-optimization-report-")
        assert json.loads(path.read_text()) == {"runType": "database-optimization"}

    def test_write_report_serializes_unknown_types(self, tmp_path):
        when = datetime(2024, 1, 1, tzinfo=timezone.utc)
        path = write_report("migration", {"at": when}, tmp_path)
        assert json.loads(path.read_text())["at"] == str(when)
