"""
QrBites Maintenance - Migratable entity types

Static strategy table describing, per entity type, which collection holds the
records, which attributes reference media files (single or list valued) and
how a human-readable display name is built for logs and reports.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

UNKNOWN_LABEL = "Unknown"


@dataclass(frozen=True)
class AssetField:
    """A record attribute holding a media reference."""
    name: str
    multiple: bool = False

    @property
    def public_id_field(self) -> str:
        return f"{self.name}PublicId"


@dataclass(frozen=True)
class LineageStep:
    """
    One hop used to build a display name, e.g. menu.restaurantId -> restaurants.name.

    Steps are followed in order; each step reads its foreign key from the
    document reached by the previous step.
    """
    alias: str
    foreign_key: str
    collection: str
    label_field: str


@dataclass(frozen=True)
class EntityTypeDescriptor:
    """Strategy row for one entity type."""
    key: str
    entity_type: str
    collection: str
    asset_fields: Tuple[AssetField, ...]
    display_template: str
    lineage: Tuple[LineageStep, ...] = ()

    @property
    def single_fields(self) -> List[AssetField]:
        return [f for f in self.asset_fields if not f.multiple]

    @property
    def list_fields(self) -> List[AssetField]:
        return [f for f in self.asset_fields if f.multiple]

    def populated_query(self) -> Dict[str, Any]:
        """Query matching records with at least one populated asset field."""
        clauses = []
        for asset_field in self.asset_fields:
            if asset_field.multiple:
                clauses.append({f"{asset_field.name}.0": {"$exists": True}})
            else:
                clauses.append({asset_field.name: {"$exists": True, "$nin": [None, ""]}})
        return clauses[0] if len(clauses) == 1 else {"$or": clauses}


ENTITY_TYPES: Dict[str, EntityTypeDescriptor] = {
    "restaurants": EntityTypeDescriptor(
        key="restaurants",
        entity_type="restaurant",
        collection="restaurants",
        asset_fields=(
            AssetField("logo"),
            AssetField("banner"),
            AssetField("gallery", multiple=True),
        ),
        display_template="{name}",
    ),
    "menus": EntityTypeDescriptor(
        key="menus",
        entity_type="menu",
        collection="menus",
        asset_fields=(AssetField("image"),),
        display_template="{restaurant} - {name}",
        lineage=(LineageStep("restaurant", "restaurantId", "restaurants", "name"),),
    ),
    "menuItems": EntityTypeDescriptor(
        key="menuItems",
        entity_type="menuItem",
        collection="menuitems",
        asset_fields=(AssetField("image"),),
        display_template="{restaurant} - {menu} - {name}",
        lineage=(
            LineageStep("menu", "menuId", "menus", "name"),
            LineageStep("restaurant", "restaurantId", "restaurants", "name"),
        ),
    ),
    "profiles": EntityTypeDescriptor(
        key="profiles",
        entity_type="profile",
        collection="profiles",
        asset_fields=(AssetField("avatar"),),
        display_template="Profile: {email}",
        lineage=(LineageStep("email", "userId", "users", "email"),),
    ),
}

DEFAULT_ENTITY_TYPES = list(ENTITY_TYPES.keys())


def resolve_entity_types(keys: Optional[List[str]]) -> List[EntityTypeDescriptor]:
    """
    Resolve requested type keys into descriptors, in the fixed processing order.

    Raises ValueError for unknown keys.
    """
    if not keys:
        return list(ENTITY_TYPES.values())

    unknown = [k for k in keys if k not in ENTITY_TYPES]
    if unknown:
        raise ValueError(
            f"Unknown entity type(s): {', '.join(unknown)}. "
            f"Valid types: {', '.join(DEFAULT_ENTITY_TYPES)}"
        )
    return [d for key, d in ENTITY_TYPES.items() if key in keys]


@dataclass
class MigratableEntity:
    """A record exposing one or more media-reference fields."""
    descriptor: EntityTypeDescriptor
    document: Dict[str, Any]
    display_name: str = ""

    @property
    def entity_type(self) -> str:
        return self.descriptor.entity_type

    @property
    def id(self) -> Any:
        return self.document.get("_id")

    def populated_fields(self) -> List[AssetField]:
        return [f for f in self.descriptor.asset_fields if self.document.get(f.name)]


@dataclass
class AssetReference:
    """A single media reference, optionally carrying list-item metadata."""
    source_locator: Optional[str]
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> "AssetReference":
        """Gallery entries may be bare strings or {url, caption, ...} mappings."""
        if isinstance(value, dict):
            extra = {k: v for k, v in value.items() if k != "url"}
            return cls(source_locator=value.get("url"), extra=extra)
        return cls(source_locator=value)


async def resolve_display_name(db, descriptor: EntityTypeDescriptor, document: Dict[str, Any]) -> str:
    """Follow the lineage steps and render the display template."""
    labels: Dict[str, Any] = {"name": document.get("name") or str(document.get("_id"))}

    current: Optional[Dict[str, Any]] = document
    for step in descriptor.lineage:
        parent = None
        foreign_id = current.get(step.foreign_key) if current else None
        if foreign_id is not None:
            parent = await db[step.collection].find_one({"_id": foreign_id})
        labels[step.alias] = (parent or {}).get(step.label_field) or UNKNOWN_LABEL
        current = parent

    return descriptor.display_template.format_map(labels)
