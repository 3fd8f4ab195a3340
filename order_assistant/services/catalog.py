"""
Catalog Read Path
=================

The ordering core never owns catalog data; it only reads it. Reads for a
business go through the catalog cache and return immutable CatalogItem
snapshots in catalog order (position, then id).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..errors import ItemNotFound
from ..matching import ItemNameMatcher
from ..models import Item
from .catalog_cache import CatalogCache, catalog_cache

logger = logging.getLogger(__name__)

AVAILABLE = "available"


@dataclass(frozen=True)
class CatalogItem:
    id: int
    business_id: int
    name: str
    price: float
    availability: str
    is_schedulable: bool = False
    min_schedule_hours: float = 0.0
    cancelable_before_hours: Optional[float] = None
    available_from: Optional[str] = None
    available_to: Optional[str] = None
    days_available: Optional[Tuple[str, ...]] = None
    description: Optional[str] = None

    @classmethod
    def from_model(cls, item: Item) -> "CatalogItem":
        return cls(
            id=item.id,
            business_id=item.business_id,
            name=item.name,
            price=float(item.price or 0.0),
            availability=item.availability or AVAILABLE,
            is_schedulable=bool(item.is_schedulable),
            min_schedule_hours=float(item.min_schedule_hours or 0),
            cancelable_before_hours=item.cancelable_before_hours,
            available_from=item.available_from,
            available_to=item.available_to,
            days_available=tuple(d.lower() for d in item.days_available) if item.days_available else None,
            description=item.description,
        )

    @property
    def is_available(self) -> bool:
        return self.availability == AVAILABLE


_matcher: ItemNameMatcher[CatalogItem] = ItemNameMatcher()


def find_available_items(
    db: Session,
    business_id: int,
    cache: CatalogCache = catalog_cache,
) -> List[CatalogItem]:
    """Available items for a business in catalog order. Cached per business."""
    cached = cache.get(business_id)
    if cached is not None:
        return list(cached)

    rows = (
        db.query(Item)
        .filter(Item.business_id == business_id, Item.availability == AVAILABLE)
        .order_by(Item.position.asc(), Item.id.asc())
        .all()
    )
    items = tuple(CatalogItem.from_model(row) for row in rows)
    cache.set(business_id, items)
    logger.debug("Loaded %d catalog items for business %s", len(items), business_id)
    return list(items)


def find_item_by_id(db: Session, item_id: int) -> Optional[CatalogItem]:
    """Direct lookup, bypassing the cache. Returns unavailable items too."""
    item = db.get(Item, item_id)
    return CatalogItem.from_model(item) if item is not None else None


def resolve_item(
    db: Session,
    business_id: int,
    name: str,
    cache: CatalogCache = catalog_cache,
) -> CatalogItem:
    """
    Resolve a customer-typed name against the available catalog.

    Raises:
        ItemNotFound: nothing matches
    """
    item = _matcher.best(name, find_available_items(db, business_id, cache))
    if item is None:
        raise ItemNotFound(name)
    return item


def check_item_availability(
    db: Session,
    business_id: int,
    name: str,
    cache: CatalogCache = catalog_cache,
) -> CatalogItem:
    """Same lookup as resolve_item; named for the customer-facing availability question."""
    return resolve_item(db, business_id, name, cache)


def invalidate_business(business_id: int, cache: CatalogCache = catalog_cache) -> None:
    cache.invalidate(business_id)
