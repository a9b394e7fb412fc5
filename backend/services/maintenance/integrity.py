"""
QrBites Maintenance - Data integrity validation

Fixed battery of independent consistency checks. Each check returns an issue
count; a check that raises is recorded with status "error" and the remaining
checks still run.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .exceptions import IntegrityCheckError
from .log import get_logger

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CheckStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class IntegrityFinding:
    """Result of one consistency check."""
    check_name: str
    issue_count: int
    status: CheckStatus
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "checkName": self.check_name,
            "issueCount": self.issue_count,
            "status": self.status.value,
        }
        if self.error:
            data["error"] = self.error
        return data


def orphan_pipeline(from_collection: str, local_field: str, foreign_field: str) -> List[Dict[str, Any]]:
    """Count documents whose reference does not resolve in from_collection."""
    return [
        {
            "$lookup": {
                "from": from_collection,
                "localField": local_field,
                "foreignField": foreign_field,
                "as": "related",
            }
        },
        {"$match": {"related": {"$size": 0}}},
        {"$count": "issues"},
    ]


class IntegrityValidator:
    """Runs the integrity checks against a motor database."""

    def __init__(self, db):
        self.db = db
        self.checks: List[tuple] = [
            ("Orphaned menus (restaurant not found)", self.count_orphaned_menus),
            ("Orphaned menu items (menu not found)", self.count_orphaned_menu_items),
            ("Users without profiles", self.count_users_without_profiles),
            ("Invalid email formats", self.count_invalid_emails),
        ]

    async def _count_pipeline(self, collection: str, pipeline: List[Dict[str, Any]]) -> int:
        result = await self.db[collection].aggregate(pipeline).to_list(length=1)
        return result[0]["issues"] if result else 0

    async def count_orphaned_menus(self) -> int:
        return await self._count_pipeline("menus", orphan_pipeline("restaurants", "restaurantId", "_id"))

    async def count_orphaned_menu_items(self) -> int:
        return await self._count_pipeline("menuitems", orphan_pipeline("menus", "menuId", "_id"))

    async def count_users_without_profiles(self) -> int:
        return await self._count_pipeline("users", orphan_pipeline("profiles", "_id", "userId"))

    async def count_invalid_emails(self) -> int:
        return await self.db["users"].count_documents({"email": {"$not": EMAIL_PATTERN}})

    async def run_check(self, name: str, check: Callable[[], Awaitable[int]]) -> IntegrityFinding:
        """Run one check in isolation."""
        try:
            issues = await check()
        except Exception as e:
            error = IntegrityCheckError(name, str(e))
            logger.error(f"  {name}: {error.message}")
            return IntegrityFinding(name, 0, CheckStatus.ERROR, error.message)

        if issues > 0:
            logger.warning(f"  {name}: {issues} issues found")
            return IntegrityFinding(name, issues, CheckStatus.WARNING)

        logger.info(f"  {name}: OK")
        return IntegrityFinding(name, 0, CheckStatus.OK)

    async def validate(self) -> List[IntegrityFinding]:
        logger.info("Validating data integrity...")
        return [await self.run_check(name, check) for name, check in self.checks]
