"""
QrBites Maintenance - Configuration

All settings come from environment variables (optionally via a .env file).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MONGO_URL = "mongodb://localhost:27017"
DEFAULT_DB_NAME = "qrbites"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


@dataclass
class MaintenanceSettings:
    """Settings shared by the migration and optimizer scripts."""
    mongodb_uri: str = DEFAULT_MONGO_URL
    db_name: str = DEFAULT_DB_NAME
    server_selection_timeout_ms: int = 5000

    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    cloudinary_folder: str = "qrbites"
    cloudinary_upload_timeout: float = 60.0

    asset_base_dir: Path = Path(".")
    uploads_dir: Optional[Path] = None
    report_dir: Path = Path(".")

    profile_slow_queries: bool = False

    def __post_init__(self):
        self.asset_base_dir = Path(self.asset_base_dir)
        self.report_dir = Path(self.report_dir)
        if self.uploads_dir is None:
            self.uploads_dir = self.asset_base_dir / "uploads"
        else:
            self.uploads_dir = Path(self.uploads_dir)

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "MaintenanceSettings":
        """Load settings from the process environment and an optional .env file."""
        load_dotenv(env_file)

        cwd = Path.cwd()
        asset_base_dir = Path(os.environ.get("ASSET_BASE_DIR", cwd))
        uploads_dir = os.environ.get("UPLOADS_DIR")

        return cls(
            mongodb_uri=os.environ.get("MONGODB_URI") or os.environ.get("MONGO_URL", DEFAULT_MONGO_URL),
            db_name=os.environ.get("DB_NAME", DEFAULT_DB_NAME),
            server_selection_timeout_ms=int(os.environ.get("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")),
            cloudinary_cloud_name=os.environ.get("CLOUDINARY_CLOUD_NAME"),
            cloudinary_api_key=os.environ.get("CLOUDINARY_API_KEY"),
            cloudinary_api_secret=os.environ.get("CLOUDINARY_API_SECRET"),
            cloudinary_folder=os.environ.get("CLOUDINARY_FOLDER", "qrbites"),
            cloudinary_upload_timeout=float(os.environ.get("CLOUDINARY_UPLOAD_TIMEOUT", "60")),
            asset_base_dir=asset_base_dir,
            uploads_dir=Path(uploads_dir) if uploads_dir else None,
            report_dir=Path(os.environ.get("REPORT_DIR", cwd)),
            profile_slow_queries=_env_bool("PROFILE_SLOW_QUERIES"),
        )
