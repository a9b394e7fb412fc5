"""
QrBites Maintenance Pipeline

Asset migration from local uploads to Cloudinary and MongoDB maintenance
(indexes, TTL policies, integrity checks, optimization reports).

Components:
- CloudinaryClient: Asset transfer client with idempotent skip of remote URLs
- MigrationOrchestrator: Per-entity-type migration passes with dry-run support
- MigrationStats: Run-scoped ledger of migration outcomes
- CleanupSweep: Guarded deletion of local uploads after migration
- IndexManager: Declarative index and TTL catalogue
- IntegrityValidator: Referential-integrity and format checks
- DatabaseOptimizer: Runs the maintenance suite and builds the report
"""

from .asset_migration import MigrationOptions, MigrationOrchestrator
from .cleanup import CleanupResult, CleanupSweep
from .cloudinary_client import CloudinaryClient, RemoteDescriptor
from .config import MaintenanceSettings
from .entities import ENTITY_TYPES, MigratableEntity
from .exceptions import (
    AssetFileNotFoundError, DatabaseConnectionError, IndexCreationError,
    IntegrityCheckError, MaintenanceError, TransferError, UploadError,
)
from .indexes import IndexManager, IndexResult, IndexSpec, IndexStatus
from .integrity import CheckStatus, IntegrityFinding, IntegrityValidator
from .ledger import MigrationOutcome, MigrationStats, OutcomeStatus
from .optimizer import DatabaseOptimizer, OptimizationReport, OptimizerOptions

__all__ = [
    'MigrationOptions',
    'MigrationOrchestrator',
    'CleanupResult',
    'CleanupSweep',
    'CloudinaryClient',
    'RemoteDescriptor',
    'MaintenanceSettings',
    'ENTITY_TYPES',
    'MigratableEntity',
    'AssetFileNotFoundError',
    'DatabaseConnectionError',
    'IndexCreationError',
    'IntegrityCheckError',
    'MaintenanceError',
    'TransferError',
    'UploadError',
    'IndexManager',
    'IndexResult',
    'IndexSpec',
    'IndexStatus',
    'CheckStatus',
    'IntegrityFinding',
    'IntegrityValidator',
    'MigrationOutcome',
    'MigrationStats',
    'OutcomeStatus',
    'DatabaseOptimizer',
    'OptimizationReport',
    'OptimizerOptions',
]
