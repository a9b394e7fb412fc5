"""
QrBites Maintenance - Asset Migration

Moves media references of restaurants, menus, menu items and profiles from
local storage (/uploads/...) to Cloudinary.

The migration:
1. Fetches, per entity type, every record with at least one populated asset field
2. Transfers each asset field (and each gallery item) through the CloudinaryClient
3. Records one outcome per asset in the run's MigrationStats
4. Writes the rewritten fields back per entity (never in dry-run mode)
5. Optionally sweeps the local uploads directory and writes a report artifact

Failures are isolated per asset; a failed write-back rolls back the uploads
made for that entity and the run continues. A lost connection is fatal and
surfaces as DatabaseConnectionError.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pymongo.errors import ConnectionFailure, PyMongoError

from .cleanup import CleanupSweep
from .cloudinary_client import CloudinaryClient, RemoteDescriptor
from .entities import (
    DEFAULT_ENTITY_TYPES, AssetField, AssetReference, EntityTypeDescriptor,
    MigratableEntity, resolve_display_name, resolve_entity_types,
)
from .exceptions import DatabaseConnectionError, TransferError
from .ledger import MigrationOutcome, MigrationStats, OutcomeStatus
from .log import get_logger
from .reports import write_report

logger = get_logger(__name__)

# Canonical display descriptor: first successfully migrated single-value field
PRIMARY_IMAGE_FIELD = "primaryImage"


@dataclass
class MigrationOptions:
    """Options for one migration run."""
    dry_run: bool = False
    entity_types: List[str] = field(default_factory=lambda: list(DEFAULT_ENTITY_TYPES))
    cleanup: bool = False
    cleanup_confirm: bool = False


class MigrationOrchestrator:
    """
    Drives the per-entity-type migration passes.

    Usage:
        orchestrator = MigrationOrchestrator(db, CloudinaryClient.from_settings(settings))
        stats = await orchestrator.run(MigrationOptions(dry_run=True))
    """

    def __init__(
        self,
        db,
        transfer_client: CloudinaryClient,
        cleanup_sweep: Optional[CleanupSweep] = None,
        report_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            db: motor database holding the entity collections
            transfer_client: client used to move each asset to Cloudinary
            cleanup_sweep: sweep run after the passes when cleanup is requested
            report_dir: directory for the report artifact (None disables it)
        """
        self.db = db
        self.transfer_client = transfer_client
        self.cleanup_sweep = cleanup_sweep
        self.report_dir = report_dir

    async def run(self, options: Optional[MigrationOptions] = None) -> MigrationStats:
        """Execute a migration run and return its statistics."""
        options = options or MigrationOptions()
        descriptors = resolve_entity_types(options.entity_types)
        stats = MigrationStats()

        logger.info("Starting QrBites to Cloudinary Migration")
        logger.info(f"Mode: {'DRY RUN' if options.dry_run else 'LIVE MIGRATION'}")
        logger.info(f"Types: {', '.join(d.key for d in descriptors)}")

        for descriptor in descriptors:
            await self.migrate_entity_type(descriptor, stats, options.dry_run)

        if options.cleanup and self.cleanup_sweep is not None:
            self.cleanup_sweep.sweep(options.cleanup, options.cleanup_confirm)

        stats.log_summary(logger)

        if self.report_dir is not None:
            write_report(
                "migration",
                stats.to_report(options.dry_run, [d.key for d in descriptors]),
                self.report_dir,
            )

        if options.dry_run:
            logger.info("This was a DRY RUN. No changes were made to the database.")
            logger.info("Run without --dry-run flag to perform actual migration.")
        else:
            logger.success("Migration completed!")

        return stats

    async def migrate_entity_type(
        self,
        descriptor: EntityTypeDescriptor,
        stats: MigrationStats,
        dry_run: bool,
    ) -> None:
        """Migrate every record of one entity type."""
        logger.info(f"Starting {descriptor.entity_type} image migration...")

        cursor = self.db[descriptor.collection].find(descriptor.populated_query())
        documents = await cursor.to_list(length=None)
        logger.info(f"Found {len(documents)} {descriptor.key} with images")

        for document in documents:
            try:
                display_name = await resolve_display_name(self.db, descriptor, document)
            except ConnectionFailure as e:
                raise DatabaseConnectionError(f"MongoDB connection lost: {e}") from e
            except PyMongoError as e:
                display_name = f"{descriptor.entity_type} {document.get('_id')}"
                logger.warning(f"Could not resolve display name for {display_name}: {e}")

            entity = MigratableEntity(descriptor, document, display_name)
            await self.migrate_entity(entity, stats, dry_run)

    async def migrate_entity(
        self,
        entity: MigratableEntity,
        stats: MigrationStats,
        dry_run: bool,
    ) -> List[MigrationOutcome]:
        """Migrate all populated asset fields of one entity and write the result back."""
        logger.info(f"Processing: {entity.display_name}")

        update: Dict[str, Any] = {}
        outcomes: List[MigrationOutcome] = []
        primary: Optional[RemoteDescriptor] = None

        for asset_field in entity.populated_fields():
            if asset_field.multiple:
                items, field_outcomes = await self._migrate_list_field(entity, asset_field, stats, dry_run)
                outcomes.extend(field_outcomes)
                if any(o.status == OutcomeStatus.MIGRATED for o in field_outcomes):
                    update[asset_field.name] = items
                continue

            outcome = await self._migrate_asset(
                entity, asset_field.name, entity.document.get(asset_field.name), stats, dry_run
            )
            outcomes.append(outcome)

            descriptor = outcome.remote_descriptor
            if descriptor is None:
                continue
            if primary is None:
                primary = descriptor
            if outcome.status == OutcomeStatus.MIGRATED:
                update[asset_field.name] = descriptor.url
                update[asset_field.public_id_field] = descriptor.public_id

        if dry_run or not any(o.status == OutcomeStatus.MIGRATED for o in outcomes):
            return outcomes

        if primary is not None:
            update[PRIMARY_IMAGE_FIELD] = primary.to_dict()

        await self._write_back(entity, update, outcomes, stats)
        return outcomes

    async def _migrate_list_field(
        self,
        entity: MigratableEntity,
        asset_field: AssetField,
        stats: MigrationStats,
        dry_run: bool,
    ) -> Tuple[List[Any], List[MigrationOutcome]]:
        """Migrate each item of a list-valued field; failed items keep their original entry."""
        items: List[Any] = []
        outcomes: List[MigrationOutcome] = []

        for index, raw in enumerate(entity.document.get(asset_field.name) or []):
            reference = AssetReference.from_value(raw)
            if not reference.source_locator:
                items.append(raw)
                continue

            outcome = await self._migrate_asset(
                entity, f"{asset_field.name}[{index}]", reference.source_locator, stats, dry_run
            )
            outcomes.append(outcome)

            descriptor = outcome.remote_descriptor
            if descriptor is None:
                items.append(raw)
                continue

            items.append({
                "url": descriptor.url,
                "publicId": descriptor.public_id,
                "width": descriptor.width,
                "height": descriptor.height,
                "caption": reference.extra.get("caption", ""),
            })

        return items, outcomes

    async def _migrate_asset(
        self,
        entity: MigratableEntity,
        field_name: str,
        locator: str,
        stats: MigrationStats,
        dry_run: bool,
    ) -> MigrationOutcome:
        """Transfer one asset and record exactly one outcome for it."""
        label = f"{entity.display_name} ({field_name})"
        outcome = MigrationOutcome(
            entity=entity.display_name,
            field=field_name,
            status=OutcomeStatus.FAILED,
            source_locator=locator,
        )

        try:
            if dry_run:
                if self.transfer_client.check(locator) == "remote":
                    outcome.status = OutcomeStatus.SKIPPED
                    outcome.remote_descriptor = RemoteDescriptor.from_url(locator)
                else:
                    outcome.status = OutcomeStatus.MIGRATED
            else:
                descriptor = await self.transfer_client.transfer(locator, entity.entity_type, str(entity.id))
                outcome.remote_descriptor = descriptor
                outcome.status = OutcomeStatus.SKIPPED if descriptor.reused else OutcomeStatus.MIGRATED
        except (TransferError, OSError) as e:
            outcome.status = OutcomeStatus.FAILED
            outcome.error_message = str(e)

        stats.record(outcome)

        if outcome.status == OutcomeStatus.SKIPPED:
            logger.info(f"Skipping already migrated file: {label}")
        elif outcome.status == OutcomeStatus.FAILED:
            logger.error(f"Failed to migrate {label}: {outcome.error_message}")
        elif dry_run:
            logger.info(f"Would migrate: {label} ({locator})")
        else:
            logger.success(f"Migrated: {label} -> {outcome.remote_descriptor.public_id}")

        return outcome

    async def _write_back(
        self,
        entity: MigratableEntity,
        update: Dict[str, Any],
        outcomes: List[MigrationOutcome],
        stats: MigrationStats,
    ) -> None:
        """Persist the rewritten fields; on failure undo this entity's uploads."""
        collection = self.db[entity.descriptor.collection]
        try:
            await collection.update_one({"_id": entity.id}, {"$set": update})
            logger.info(f"Updated {entity.entity_type}: {entity.display_name}")
            return
        except ConnectionFailure as e:
            raise DatabaseConnectionError(f"MongoDB connection lost during write-back: {e}") from e
        except PyMongoError as e:
            error = f"Write-back failed: {e}"
            logger.error(f"Failed to update {entity.entity_type} {entity.display_name}: {e}")

        for outcome in outcomes:
            if outcome.status != OutcomeStatus.MIGRATED:
                continue
            descriptor = outcome.remote_descriptor
            if descriptor is not None and descriptor.public_id:
                try:
                    await self.transfer_client.destroy(descriptor.public_id)
                except TransferError as destroy_error:
                    logger.warning(f"Could not remove orphaned asset {descriptor.public_id}: {destroy_error}")
            stats.record_rollback(outcome, error)
