"""
QrBites Maintenance - Exceptions

Connection failures are fatal and abort the whole run. Every other error kind
is caught at the narrowest scope (per asset, per index, per check) and recorded.
"""

from typing import Dict, Optional


class MaintenanceError(Exception):
    """Base exception for maintenance pipeline errors."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class DatabaseConnectionError(MaintenanceError, ConnectionError):
    """Raised when the document store cannot be reached. Fatal."""
    pass


class TransferError(MaintenanceError):
    """Raised when an asset cannot be transferred to the content store."""
    pass


class UploadError(TransferError):
    """Raised when the content store rejects or fails an upload."""
    def __init__(self, message: str, status_code: int = None, details: Dict = None):
        self.status_code = status_code
        super().__init__(message, details)


class AssetFileNotFoundError(TransferError, FileNotFoundError):
    """Raised when a local asset cannot be found under the asset base directory."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}", {"path": path})


class IndexCreationError(MaintenanceError):
    """Raised when a single index cannot be created."""
    def __init__(self, collection: str, index_name: str, message: str):
        self.collection = collection
        self.index_name = index_name
        super().__init__(message, {"collection": collection, "index": index_name})


class IntegrityCheckError(MaintenanceError):
    """Raised when an integrity check itself fails to run."""
    def __init__(self, check_name: str, message: str):
        self.check_name = check_name
        super().__init__(message, {"check": check_name})
