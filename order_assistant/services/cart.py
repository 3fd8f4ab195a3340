"""
Ongoing Order (Cart) Service for Order Assistant
================================================

This module assembles the customer's next order across many conversation
turns. One open CartDraft exists per (business, owning branch or business,
customer); it is created lazily by the first mutation.

Line Items:
-----------
Lines are snapshots taken when an item is added:

    {"item_id": 7, "name": "Trio", "unit_price": 12.5, "quantity": 3}

Quantities are always positive integers. Adding an item already in the cart
increases that line; setting a quantity of zero or less removes the line.

Item Resolution:
----------------
Adds resolve the customer's text against the available catalog; removes and
quantity updates resolve it against the lines already in the cart. Both use
matching.ItemNameMatcher (exact, prefix, substring, contained; ties go to
the earliest candidate).

Delivery:
---------
- delivery type "delivery" applies the business delivery fee (or the
  configured DEFAULT_DELIVERY_FEE when the business has none); other types
  zero the fee. The address is never cleared by a type change.
- set_delivery_address stores the customer's text verbatim and switches the
  order to delivery.
- set_location validates the coordinates and, when the owner publishes a
  location and delivery radius, rejects points outside it.

Scheduling:
-----------
set_scheduled_time is the only writer of scheduled_for and always goes
through scheduling.validate_schedule first.

Session Mirror:
---------------
When a session id is supplied, each mutation writes a compact reference
({draft_id, item_count, subtotal}) into the session's draft_payload["cart"]
in the same transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from ..config import CURRENCY_SYMBOL, DEFAULT_DELIVERY_FEE, LAST_ORDER_WARNING_MINUTES
from ..errors import (
    InvalidQuantity,
    ItemInvalid,
    LineNotFound,
    NotFoundError,
    NotesRequired,
    OutOfDeliveryRadius,
)
from ..geo import is_within_delivery_radius, validate_coordinates
from ..matching import ItemNameMatcher
from ..models import DELIVERY_TYPES, Branch, Business, CartDraft
from ..time_utils import as_utc, utcnow
from . import catalog
from . import session as session_service
from .catalog import CatalogItem
from .opening_hours import OpenStatus, format_next_opening, get_weekly_hours, is_open_at
from .scheduling import validate_schedule
from .transaction import atomic


logger = logging.getLogger(__name__)

_line_matcher: ItemNameMatcher[Dict[str, Any]] = ItemNameMatcher(name_of=lambda line: line["name"])


@dataclass(frozen=True)
class CartKey:
    """Identifies one customer's ongoing order with one business (or branch)."""
    business_id: int
    customer_id: str
    branch_id: Optional[int] = None


@dataclass
class CartSummary:
    draft_id: Optional[int]
    lines: List[Dict[str, Any]] = field(default_factory=list)
    delivery_type: Optional[str] = None
    delivery_fee: float = 0.0
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_label: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line["quantity"] for line in self.lines)

    @property
    def subtotal(self) -> float:
        return round(sum(line["unit_price"] * line["quantity"] for line in self.lines), 2)

    @property
    def total(self) -> float:
        return round(self.subtotal + (self.delivery_fee or 0.0), 2)

    def cart_ref(self) -> Dict[str, Any]:
        return {"draft_id": self.draft_id, "item_count": self.item_count, "subtotal": self.subtotal}

    def format_text(self) -> str:
        if self.is_empty:
            return "Your order is empty."
        rows = [
            f"{line['quantity']} x {line['name']} - {CURRENCY_SYMBOL}{line['unit_price'] * line['quantity']:.2f}"
            for line in self.lines
        ]
        rows.append(f"Subtotal: {CURRENCY_SYMBOL}{self.subtotal:.2f}")
        if self.delivery_fee:
            rows.append(f"Delivery: {CURRENCY_SYMBOL}{self.delivery_fee:.2f}")
        rows.append(f"Total: {CURRENCY_SYMBOL}{self.total:.2f}")
        return "\n".join(rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "draft_id": self.draft_id,
            "items": [
                dict(line, line_total=round(line["unit_price"] * line["quantity"], 2))
                for line in self.lines
            ],
            "item_count": self.item_count,
            "subtotal": self.subtotal,
            "delivery_type": self.delivery_type,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "location_label": self.location_label,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "notes": self.notes,
            "summary": self.format_text(),
        }


@dataclass
class AddItemResult:
    summary: CartSummary
    item: CatalogItem
    quantity: int
    requires_scheduling: bool
    advisory: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================

def coerce_quantity(value: Any, allow_non_positive: bool = False) -> int:
    """
    Accept ints, whole floats and numeric strings. Fractions, booleans and
    junk raise InvalidQuantity; so do values below 1 unless allowed.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidQuantity(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidQuantity(value) from None
    if number != number or not number.is_integer():
        raise InvalidQuantity(value)
    quantity = int(number)
    if quantity < 1 and not allow_non_positive:
        raise InvalidQuantity(value)
    return quantity


def summarize(draft: Optional[CartDraft]) -> CartSummary:
    if draft is None:
        return CartSummary(draft_id=None)
    return CartSummary(
        draft_id=draft.id,
        lines=[dict(line) for line in (draft.items or [])],
        delivery_type=draft.delivery_type,
        delivery_fee=float(draft.delivery_fee or 0.0),
        address=draft.address,
        latitude=draft.latitude,
        longitude=draft.longitude,
        location_label=draft.location_label,
        scheduled_for=as_utc(draft.scheduled_for),
        notes=draft.notes,
    )


def resolve_owner(db: Session, key: CartKey) -> Tuple[Business, Optional[Branch]]:
    business = db.get(Business, key.business_id)
    if business is None:
        raise NotFoundError(f"Business {key.business_id} not found", {"business_id": key.business_id})
    branch = None
    if key.branch_id is not None:
        branch = db.get(Branch, key.branch_id)
        if branch is None or branch.business_id != business.id:
            raise NotFoundError(f"Branch {key.branch_id} not found", {"branch_id": key.branch_id})
    return business, branch


def delivery_fee_for(business: Business) -> float:
    if business.delivery_fee is not None:
        return float(business.delivery_fee)
    return DEFAULT_DELIVERY_FEE


def open_draft_query(db: Session, key: CartKey):
    query = db.query(CartDraft).filter(
        CartDraft.business_id == key.business_id,
        CartDraft.customer_id == key.customer_id,
        CartDraft.status == "open",
    )
    if key.branch_id is None:
        query = query.filter(CartDraft.branch_id.is_(None))
    else:
        query = query.filter(CartDraft.branch_id == key.branch_id)
    return query.order_by(CartDraft.id.desc())


def get_open_draft(db: Session, key: CartKey) -> Optional[CartDraft]:
    return open_draft_query(db, key).first()


def get_or_create_draft(db: Session, key: CartKey) -> CartDraft:
    """Joins the caller's transaction; flushes so the new draft has an id."""
    draft = get_open_draft(db, key)
    if draft is None:
        draft = CartDraft(
            business_id=key.business_id,
            branch_id=key.branch_id,
            customer_id=key.customer_id,
            items=[],
            delivery_fee=0.0,
            status="open",
        )
        db.add(draft)
        db.flush()
        logger.debug("Created cart draft %s for customer %s", draft.id, key.customer_id)
    return draft


def _set_lines(draft: CartDraft, lines: List[Dict[str, Any]]) -> None:
    draft.items = lines
    flag_modified(draft, "items")


def _mirror(db: Session, session_id: Optional[str], draft: CartDraft) -> CartSummary:
    summary = summarize(draft)
    if session_id:
        session_service.update_cart_reference(db, session_id, summary.cart_ref())
    return summary


def _match_line(draft: Optional[CartDraft], name: str) -> Dict[str, Any]:
    lines = list(draft.items or []) if draft is not None else []
    if not lines:
        raise LineNotFound(name, cart_empty=True)
    line = _line_matcher.best(name, lines)
    if line is None:
        raise LineNotFound(name)
    return line


def opening_advisory(status: OpenStatus) -> Optional[str]:
    if not status.is_open:
        advisory = f"We're currently closed ({status.reason})."
        if status.next_opening is not None:
            advisory += f" We open again {format_next_opening(status.next_opening)}."
        return advisory + " You can schedule this order for when we're open."
    if status.minutes_until_last_order is not None and status.minutes_until_last_order <= LAST_ORDER_WARNING_MINUTES:
        return (
            f"Last order time is in {status.minutes_until_last_order} minutes "
            f"({status.last_order_time}). Please complete your order soon!"
        )
    return None


# =============================================================================
# Reads
# =============================================================================

def get_cart(db: Session, key: CartKey) -> CartSummary:
    """Pure read; an absent draft reads as an empty cart."""
    return summarize(get_open_draft(db, key))


def draft_catalog_items(db: Session, draft: Optional[CartDraft]) -> List[CatalogItem]:
    """Current catalog records for the draft's lines, in line order."""
    items = []
    for line in (draft.items or []) if draft is not None else []:
        item = catalog.find_item_by_id(db, line["item_id"])
        if item is not None:
            items.append(item)
    return items


# =============================================================================
# Line Mutations
# =============================================================================

def add_item(
    db: Session,
    key: CartKey,
    name: str,
    quantity: Any = 1,
    session_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AddItemResult:
    """
    Resolve `name` against the available catalog and add it to the cart.

    Raises:
        ItemNotFound: nothing in the catalog matches
        InvalidQuantity: quantity is not a positive whole number
    """
    quantity = coerce_quantity(quantity)
    now = now or utcnow()
    business, branch = resolve_owner(db, key)
    item = catalog.resolve_item(db, key.business_id, name)

    with atomic(db):
        draft = get_or_create_draft(db, key)
        lines = [dict(line) for line in (draft.items or [])]
        for line in lines:
            if line["item_id"] == item.id:
                line["quantity"] += quantity
                break
        else:
            lines.append({
                "item_id": item.id,
                "name": item.name,
                "unit_price": item.price,
                "quantity": quantity,
            })
        _set_lines(draft, lines)
        summary = _mirror(db, session_id, draft)

    logger.info("Added %d x %s to cart %s", quantity, item.name, summary.draft_id)
    advisory = opening_advisory(is_open_at(db, business, branch, now))
    return AddItemResult(
        summary=summary,
        item=item,
        quantity=quantity,
        requires_scheduling=item.is_schedulable,
        advisory=advisory,
    )


def remove_item(
    db: Session,
    key: CartKey,
    name: str,
    session_id: Optional[str] = None,
) -> CartSummary:
    """
    Remove the cart line best matching `name`.

    Raises:
        LineNotFound: the cart is empty or no line matches
    """
    with atomic(db):
        draft = get_open_draft(db, key)
        target = _match_line(draft, name)
        _set_lines(draft, [line for line in draft.items if line["item_id"] != target["item_id"]])
        summary = _mirror(db, session_id, draft)

    logger.info("Removed %s from cart %s", target["name"], summary.draft_id)
    return summary


def update_item_quantity(
    db: Session,
    key: CartKey,
    name: str,
    quantity: Any,
    session_id: Optional[str] = None,
) -> CartSummary:
    """
    Set the quantity of the cart line best matching `name`. Zero or less
    removes the line.
    """
    quantity = coerce_quantity(quantity, allow_non_positive=True)
    if quantity <= 0:
        return remove_item(db, key, name, session_id=session_id)

    with atomic(db):
        draft = get_open_draft(db, key)
        target = _match_line(draft, name)
        lines = []
        for line in draft.items:
            line = dict(line)
            if line["item_id"] == target["item_id"]:
                line["quantity"] = quantity
            lines.append(line)
        _set_lines(draft, lines)
        summary = _mirror(db, session_id, draft)

    logger.info("Set %s quantity to %d in cart %s", target["name"], quantity, summary.draft_id)
    return summary


def clear_cart(db: Session, key: CartKey, session_id: Optional[str] = None) -> CartSummary:
    """Empty the cart and reset delivery, location, schedule and notes."""
    with atomic(db):
        draft = get_or_create_draft(db, key)
        _set_lines(draft, [])
        draft.delivery_type = None
        draft.delivery_fee = 0.0
        draft.address = None
        draft.latitude = None
        draft.longitude = None
        draft.location_label = None
        draft.scheduled_for = None
        draft.notes = None
        summary = _mirror(db, session_id, draft)

    logger.info("Cleared cart %s", summary.draft_id)
    return summary


# =============================================================================
# Delivery, Schedule, Notes
# =============================================================================

def set_delivery_type(
    db: Session,
    key: CartKey,
    delivery_type: str,
    session_id: Optional[str] = None,
) -> CartSummary:
    if delivery_type not in DELIVERY_TYPES:
        raise ItemInvalid(
            f"Invalid delivery type: {delivery_type}. Must be one of: {', '.join(DELIVERY_TYPES)}",
            "delivery_type",
            {"value": delivery_type, "allowed": list(DELIVERY_TYPES)},
        )
    business, _ = resolve_owner(db, key)

    with atomic(db):
        draft = get_or_create_draft(db, key)
        draft.delivery_type = delivery_type
        # Address is kept when switching away from delivery
        draft.delivery_fee = delivery_fee_for(business) if delivery_type == "delivery" else 0.0
        summary = _mirror(db, session_id, draft)

    logger.info("Cart %s delivery type set to %s (fee %.2f)", summary.draft_id, delivery_type, summary.delivery_fee)
    return summary


def set_delivery_address(
    db: Session,
    key: CartKey,
    address: str,
    session_id: Optional[str] = None,
) -> CartSummary:
    """Store the address text exactly as given and switch the order to delivery."""
    if address is None or not str(address).strip():
        raise ItemInvalid("Address cannot be empty.", "address")
    business, _ = resolve_owner(db, key)

    with atomic(db):
        draft = get_or_create_draft(db, key)
        draft.address = address
        draft.delivery_type = "delivery"
        draft.delivery_fee = delivery_fee_for(business)
        summary = _mirror(db, session_id, draft)

    logger.info("Cart %s delivery address set", summary.draft_id)
    return summary


def set_location(
    db: Session,
    key: CartKey,
    latitude: Any,
    longitude: Any,
    label: Optional[str] = None,
    session_id: Optional[str] = None,
) -> CartSummary:
    """
    Store GPS coordinates for delivery.

    Raises:
        ItemInvalid: coordinates out of range
        OutOfDeliveryRadius: owner publishes a location and radius and the
            point lies outside it
    """
    if not validate_coordinates(latitude, longitude):
        raise ItemInvalid(
            "Invalid coordinates. Latitude must be between -90 and 90 and longitude between -180 and 180.",
            "location",
            {"latitude": latitude, "longitude": longitude},
        )
    business, branch = resolve_owner(db, key)

    origin = branch if branch is not None and branch.latitude is not None else business
    if (
        origin.latitude is not None
        and origin.longitude is not None
        and origin.delivery_radius_km is not None
    ):
        check = is_within_delivery_radius(
            latitude, longitude, origin.latitude, origin.longitude, origin.delivery_radius_km
        )
        if not check.within_radius:
            logger.warning(
                "Location outside delivery radius for business %s: %.1f km (max %.1f)",
                business.id, check.distance_km, check.max_km,
            )
            raise OutOfDeliveryRadius(check.distance_km, check.max_km)

    with atomic(db):
        draft = get_or_create_draft(db, key)
        draft.latitude = float(latitude)
        draft.longitude = float(longitude)
        draft.location_label = label
        summary = _mirror(db, session_id, draft)

    logger.info("Cart %s location set", summary.draft_id)
    return summary


def set_scheduled_time(
    db: Session,
    key: CartKey,
    instant: datetime,
    session_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CartSummary:
    """
    Validate and store the scheduled time.

    Raises:
        OutsideOpeningHours, ScheduleInPast, LeadTimeTooShort,
        ItemNotAvailableAtTime: see scheduling.validate_schedule
    """
    now = now or utcnow()
    business, branch = resolve_owner(db, key)
    weekly = get_weekly_hours(db, business, branch)

    with atomic(db):
        draft = get_or_create_draft(db, key)
        validated = validate_schedule(instant, weekly, draft_catalog_items(db, draft), now)
        draft.scheduled_for = validated
        summary = _mirror(db, session_id, draft)

    logger.info("Cart %s scheduled for %s", summary.draft_id, validated.isoformat())
    return summary


def set_order_notes(
    db: Session,
    key: CartKey,
    notes: str,
    session_id: Optional[str] = None,
) -> CartSummary:
    if notes is None or not str(notes).strip():
        raise NotesRequired()

    with atomic(db):
        draft = get_open_draft(db, key)
        if draft is None or not draft.items:
            raise LineNotFound("", cart_empty=True)
        draft.notes = str(notes).strip()
        summary = _mirror(db, session_id, draft)

    logger.info("Cart %s notes updated", summary.draft_id)
    return summary
