"""
QrBites Maintenance - Index and TTL management

Declarative catalogue of the indexes every QrBites collection should carry,
plus TTL indexes for short-lived data. Creation is idempotent: an index that
already exists with an identical definition (keys, unique, sparse, TTL) is
reported as "exists". A same-named index with a different definition is an
error result, never silently accepted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import OperationFailure, PyMongoError

from .exceptions import IndexCreationError
from .log import get_logger

logger = get_logger(__name__)

# IndexOptionsConflict / IndexKeySpecsConflict: an index exists with a different definition
INDEX_CONFLICT_CODES = {85, 86}

# Internal key fields MongoDB stores for text indexes instead of the indexed fields
TEXT_INDEX_FIELDS = {"_fts", "_ftsx"}

IndexKeys = Tuple[Tuple[str, Any], ...]


class IndexStatus(str, Enum):
    CREATED = "created"
    EXISTS = "exists"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class IndexSpec:
    """One index definition. expire_after_seconds makes it a TTL index."""
    collection: str
    keys: IndexKeys
    name: str
    unique: bool = False
    sparse: bool = False
    expire_after_seconds: Optional[int] = None

    @property
    def is_ttl(self) -> bool:
        return self.expire_after_seconds is not None

    def options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"name": self.name}
        if self.unique:
            options["unique"] = True
        if self.sparse:
            options["sparse"] = True
        if self.is_ttl:
            options["expireAfterSeconds"] = self.expire_after_seconds
        return options

    def keys_dict(self) -> Dict[str, Any]:
        return dict(self.keys)

    def matches(self, info: Dict[str, Any]) -> bool:
        """Compare against one entry of index_information()."""
        existing_keys = [tuple(k) for k in info.get("key", [])]
        text_fields = [name for name, kind in self.keys if kind == "text"]

        if text_fields:
            # Text indexes are stored as _fts/_ftsx keys plus a weights mapping
            other_keys = [k for k in self.keys if k[1] != "text"]
            if sorted(info.get("weights", {})) != sorted(text_fields):
                return False
            if [k for k in existing_keys if k[0] not in TEXT_INDEX_FIELDS] != other_keys:
                return False
        elif existing_keys != list(self.keys):
            return False

        return (
            bool(info.get("unique")) == self.unique
            and bool(info.get("sparse")) == self.sparse
            and info.get("expireAfterSeconds") == self.expire_after_seconds
        )


@dataclass
class IndexResult:
    """Result of attempting to create one index."""
    collection: str
    index: str
    keys: Dict[str, Any]
    status: IndexStatus
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "collection": self.collection,
            "index": self.index,
            "keys": self.keys,
            "status": self.status.value,
        }
        if self.error:
            data["error"] = self.error
        return data


def _index(collection: str, name: str, *keys: Tuple[str, Any], **options) -> IndexSpec:
    return IndexSpec(collection=collection, keys=tuple(keys), name=name, **options)


INDEX_CATALOGUE: Dict[str, List[IndexSpec]] = {
    "users": [
        _index("users", "idx_users_email", ("email", 1), unique=True),
        _index("users", "idx_users_created", ("createdAt", 1)),
        _index("users", "idx_users_active", ("isActive", 1)),
        _index("users", "idx_users_role", ("role", 1)),
        _index("users", "idx_users_email_active", ("email", 1), ("isActive", 1)),
    ],
    "profiles": [
        _index("profiles", "idx_profiles_user", ("userId", 1), unique=True),
        _index("profiles", "idx_profiles_name", ("firstName", 1), ("lastName", 1)),
        _index("profiles", "idx_profiles_phone", ("phone", 1), sparse=True),
    ],
    "restaurants": [
        _index("restaurants", "idx_restaurants_owner", ("ownerId", 1)),
        _index("restaurants", "idx_restaurants_slug", ("slug", 1), unique=True, sparse=True),
        _index("restaurants", "idx_restaurants_active", ("isActive", 1)),
        _index("restaurants", "idx_restaurants_featured", ("featured", 1)),
        _index("restaurants", "idx_restaurants_cuisine", ("cuisine", 1)),
        _index("restaurants", "idx_restaurants_location", ("location.coordinates", "2dsphere")),
        _index("restaurants", "idx_restaurants_text_search", ("name", "text"), ("description", "text")),
        _index("restaurants", "idx_restaurants_created", ("createdAt", 1)),
        _index("restaurants", "idx_restaurants_updated", ("updatedAt", 1)),
        _index("restaurants", "idx_restaurants_owner_active", ("ownerId", 1), ("isActive", 1)),
        _index("restaurants", "idx_restaurants_active_featured", ("isActive", 1), ("featured", 1)),
        _index("restaurants", "idx_restaurants_cuisine_active", ("cuisine", 1), ("isActive", 1)),
    ],
    "menus": [
        _index("menus", "idx_menus_restaurant", ("restaurantId", 1)),
        _index("menus", "idx_menus_active", ("isActive", 1)),
        _index("menus", "idx_menus_created", ("createdAt", 1)),
        _index("menus", "idx_menus_restaurant_active", ("restaurantId", 1), ("isActive", 1)),
        _index("menus", "idx_menus_text_search", ("name", "text"), ("description", "text")),
    ],
    "menuitems": [
        _index("menuitems", "idx_menuitems_menu", ("menuId", 1)),
        _index("menuitems", "idx_menuitems_category", ("category", 1)),
        _index("menuitems", "idx_menuitems_price", ("price", 1)),
        _index("menuitems", "idx_menuitems_available", ("isAvailable", 1)),
        _index("menuitems", "idx_menuitems_created", ("createdAt", 1)),
        _index("menuitems", "idx_menuitems_menu_available", ("menuId", 1), ("isAvailable", 1)),
        _index("menuitems", "idx_menuitems_menu_category", ("menuId", 1), ("category", 1)),
        _index("menuitems", "idx_menuitems_price_available", ("price", 1), ("isAvailable", 1)),
        _index("menuitems", "idx_menuitems_text_search", ("name", "text"), ("description", "text")),
    ],
}

# expireAfterSeconds=0 means "expire at the timestamp stored in the field"
TTL_CATALOGUE: List[IndexSpec] = [
    _index("sessions", "idx_sessions_ttl", ("expiresAt", 1), expire_after_seconds=0),
    _index("passwordresets", "idx_passwordresets_ttl", ("expiresAt", 1), expire_after_seconds=0),
    _index("emailverifications", "idx_emailverifications_ttl", ("createdAt", 1),
           expire_after_seconds=24 * 60 * 60),
    _index("auditlogs", "idx_auditlogs_ttl", ("createdAt", 1),
           expire_after_seconds=90 * 24 * 60 * 60),
]


class IndexManager:
    """Creates the catalogued indexes against a motor database."""

    def __init__(
        self,
        db,
        catalogue: Optional[Dict[str, List[IndexSpec]]] = None,
        ttl_catalogue: Optional[List[IndexSpec]] = None,
    ):
        self.db = db
        self.catalogue = INDEX_CATALOGUE if catalogue is None else catalogue
        self.ttl_catalogue = TTL_CATALOGUE if ttl_catalogue is None else ttl_catalogue

    async def create_all(self) -> List[IndexResult]:
        """Create every ordinary index; per-index failures never abort the batch."""
        logger.info("Creating optimized database indexes...")
        results: List[IndexResult] = []

        for collection_name, specs in self.catalogue.items():
            logger.info(f"Creating indexes for {collection_name}...")
            try:
                existing = await self.db[collection_name].index_information()
            except PyMongoError as e:
                logger.error(f"Failed to create indexes for {collection_name}: {e}")
                results.extend(
                    IndexResult(spec.collection, spec.name, spec.keys_dict(), IndexStatus.ERROR, str(e))
                    for spec in specs
                )
                continue

            for spec in specs:
                results.append(await self.create_index(spec, existing))

        logger.info("Index creation completed")
        return results

    async def create_index(self, spec: IndexSpec, existing: Optional[Dict[str, Any]] = None) -> IndexResult:
        """Create one index; an existing index counts as success only if its definition is identical."""
        keys = spec.keys_dict()

        if existing is not None and spec.name in existing:
            if spec.matches(existing[spec.name]):
                logger.info(f"  {spec.name}: already exists")
                return IndexResult(spec.collection, spec.name, keys, IndexStatus.EXISTS)
            error = IndexCreationError(
                spec.collection, spec.name,
                f"Index {spec.name} exists with a different definition: {existing[spec.name]}",
            )
            logger.error(f"  {spec.name}: {error.message}")
            return IndexResult(spec.collection, spec.name, keys, IndexStatus.ERROR, error.message)

        try:
            await self.db[spec.collection].create_index(list(spec.keys), **spec.options())
        except OperationFailure as e:
            if e.code in INDEX_CONFLICT_CODES:
                message = f"Conflicting index definition for {spec.name}: {e}"
            else:
                message = str(e)
            error = IndexCreationError(spec.collection, spec.name, message)
        except PyMongoError as e:
            error = IndexCreationError(spec.collection, spec.name, str(e))
        else:
            if spec.is_ttl:
                logger.info(f"  {spec.name}: expires after {spec.expire_after_seconds or 'field value'}s")
            else:
                logger.info(f"  {spec.name}: {keys}")
            return IndexResult(spec.collection, spec.name, keys, IndexStatus.CREATED)

        logger.error(f"  {spec.name}: {error.message}")
        return IndexResult(spec.collection, spec.name, keys, IndexStatus.ERROR, error.message)

    async def collection_exists(self, name: str) -> bool:
        names = await self.db.list_collection_names(filter={"name": name})
        return name in names

    async def create_ttl_indexes(self) -> List[IndexResult]:
        """
        Create TTL indexes, only on collections that already exist.

        Creating an index would implicitly create its collection, so unknown
        collections are skipped.
        """
        logger.info("Creating TTL (Time-To-Live) indexes...")
        results: List[IndexResult] = []

        for spec in self.ttl_catalogue:
            try:
                if not await self.collection_exists(spec.collection):
                    logger.info(f"  Collection {spec.collection} doesn't exist, skipping TTL index")
                    results.append(IndexResult(spec.collection, spec.name, spec.keys_dict(), IndexStatus.SKIPPED))
                    continue
                existing = await self.db[spec.collection].index_information()
            except PyMongoError as e:
                logger.error(f"  Failed to create TTL index {spec.name}: {e}")
                results.append(IndexResult(spec.collection, spec.name, spec.keys_dict(), IndexStatus.ERROR, str(e)))
                continue

            results.append(await self.create_index(spec, existing))

        return results
