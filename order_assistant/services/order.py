"""
Order Confirmation Service for Order Assistant
==============================================

This module is the only place a committed Order is created. It turns the
customer's ongoing order (CartDraft) into an Order on an explicit confirm
request, and offers a dry-run of the same checks.

Key Functions:
--------------
- validate_for_confirmation: run every precondition, report all failures
- confirm_order: run the preconditions in order, then commit

Preconditions (checked in this order, first failure wins):
-----------------------------------------------------------
1. An open draft with at least one line exists        -> NothingToConfirm
2. A delivery type is set                              -> DeliveryTypeRequired
3. Delivery orders have an address or GPS location     -> AddressRequired
4. Schedulable lines require scheduled_for             -> SchedulingRequired
5. Scheduled orders still pass scheduling validation;
   immediate orders need the owner to be open now      -> OutsideOpeningHours /
                                                          SchedulingRequired

Commit:
-------
In one transaction the draft row is locked, the Order (status "accepted")
is created with OrderItem snapshots and totals, one status-history row is
appended (changed_by "customer"), and the draft is archived (status
"confirmed"). orders.draft_id is unique, so an overlapping second commit of
the same draft fails with DraftAlreadyConfirmed instead of creating a second
order. A confirmed draft is no longer "open", so confirming again simply
finds nothing to confirm.

After the commit the session's cart reference is dropped and the catalog
cache for the business is invalidated.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import (
    AddressRequired,
    DeliveryTypeRequired,
    DraftAlreadyConfirmed,
    NothingToConfirm,
    OrderingError,
    SchedulingRequired,
)
from ..models import Branch, Business, CartDraft, Order, OrderItem, OrderStatusHistory
from ..time_utils import as_utc, utcnow
from . import catalog
from . import session as session_service
from .cart import CartKey, draft_catalog_items, get_open_draft, open_draft_query, opening_advisory, resolve_owner, summarize
from .opening_hours import format_next_opening, get_weekly_hours, is_open_at
from .scheduling import validate_schedule
from .transaction import atomic, lock_for_update


logger = logging.getLogger(__name__)

ACCEPTED = "accepted"


@dataclass
class ConfirmationCheck:
    valid: bool
    errors: List[OrderingError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [error.to_dict() for error in self.errors],
            "warnings": list(self.warnings),
        }


@dataclass
class ConfirmationResult:
    order: Order
    warnings: List[str] = field(default_factory=list)


# =============================================================================
# Preconditions
# =============================================================================

def _collect_failures(
    db: Session,
    draft: Optional[CartDraft],
    business: Business,
    branch: Optional[Branch],
    now: datetime,
    stop_at_first: bool,
) -> ConfirmationCheck:
    errors: List[OrderingError] = []
    warnings: List[str] = []

    def fail(error: OrderingError) -> bool:
        errors.append(error)
        return stop_at_first

    if draft is None or not draft.items:
        fail(NothingToConfirm())
        return ConfirmationCheck(valid=False, errors=errors)

    if not draft.delivery_type and fail(DeliveryTypeRequired()):
        return ConfirmationCheck(valid=False, errors=errors)

    if draft.delivery_type == "delivery":
        has_location = draft.latitude is not None and draft.longitude is not None
        if not (draft.address and draft.address.strip()) and not has_location:
            if fail(AddressRequired()):
                return ConfirmationCheck(valid=False, errors=errors)

    items = draft_catalog_items(db, draft)
    scheduled_for = as_utc(draft.scheduled_for)
    unscheduled = [item.name for item in items if item.is_schedulable]
    if unscheduled and scheduled_for is None:
        if fail(SchedulingRequired(
            f"The following items need to be scheduled: {', '.join(unscheduled)}. "
            "Please choose a date and time.",
            unscheduled,
        )):
            return ConfirmationCheck(valid=False, errors=errors)

    if scheduled_for is not None:
        try:
            validate_schedule(scheduled_for, get_weekly_hours(db, business, branch), items, now)
        except OrderingError as exc:
            if fail(exc):
                return ConfirmationCheck(valid=False, errors=errors)
    elif not unscheduled:
        status = is_open_at(db, business, branch, now)
        if not status.is_open:
            message = f"We're currently closed ({status.reason})."
            if status.next_opening is not None:
                message += f" We open again {format_next_opening(status.next_opening)}."
            message += " Please schedule your order for when we're open."
            if fail(SchedulingRequired(
                message,
                reason="closed",
                next_opening=status.next_opening.isoformat() if status.next_opening else None,
            )):
                return ConfirmationCheck(valid=False, errors=errors)
        else:
            advisory = opening_advisory(status)
            if advisory:
                warnings.append(advisory)

    return ConfirmationCheck(valid=not errors, errors=errors, warnings=warnings)


def validate_for_confirmation(
    db: Session,
    key: CartKey,
    now: Optional[datetime] = None,
) -> ConfirmationCheck:
    """Dry run: every failing precondition, nothing written."""
    business, branch = resolve_owner(db, key)
    return _collect_failures(db, get_open_draft(db, key), business, branch, now or utcnow(), stop_at_first=False)


# =============================================================================
# Commit
# =============================================================================

def _build_order(draft: CartDraft, session_id: Optional[str], now: datetime) -> Order:
    summary = summarize(draft)
    delivery_fee = summary.delivery_fee if draft.delivery_type == "delivery" else 0.0

    order = Order(
        id=str(uuid.uuid4()),
        business_id=draft.business_id,
        branch_id=draft.branch_id,
        customer_id=draft.customer_id,
        session_id=session_id,
        draft_id=draft.id,
        status=ACCEPTED,
        subtotal=summary.subtotal,
        delivery_fee=delivery_fee,
        total=round(summary.subtotal + delivery_fee, 2),
        delivery_type=draft.delivery_type,
        address=draft.address,
        latitude=draft.latitude,
        longitude=draft.longitude,
        location_label=draft.location_label,
        scheduled_for=summary.scheduled_for,
        notes=draft.notes,
    )
    for line in summary.lines:
        order.items.append(OrderItem(
            item_id=line["item_id"],
            item_name=line["name"],
            unit_price=line["unit_price"],
            quantity=line["quantity"],
            line_total=round(line["unit_price"] * line["quantity"], 2),
        ))
    order.status_history.append(OrderStatusHistory(
        status=ACCEPTED,
        changed_by="customer",
        changed_at=now,
    ))
    return order


def confirm_order(
    db: Session,
    key: CartKey,
    session_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ConfirmationResult:
    """
    Commit the customer's ongoing order.

    Raises:
        NothingToConfirm: no open draft, or it has no lines
        DeliveryTypeRequired / AddressRequired / SchedulingRequired:
            a precondition is unmet (nothing is written)
        OutsideOpeningHours / ScheduleInPast / LeadTimeTooShort:
            the stored schedule no longer validates
        DraftAlreadyConfirmed: another request committed this draft first
    """
    now = now or utcnow()
    business, branch = resolve_owner(db, key)
    draft_id = None

    try:
        with atomic(db):
            draft = lock_for_update(open_draft_query(db, key)).first()
            draft_id = draft.id if draft is not None else None
            check = _collect_failures(db, draft, business, branch, now, stop_at_first=True)
            if not check.valid:
                logger.warning(
                    "Confirmation refused for customer %s: %s",
                    key.customer_id, check.errors[0].code,
                )
                raise check.errors[0]

            order = _build_order(draft, session_id, now)
            db.add(order)
            db.flush()

            draft.status = "confirmed"
            draft.order_id = order.id
            if session_id:
                session_service.update_cart_reference(db, session_id, None)
    except IntegrityError as exc:
        logger.warning("Draft %s was already confirmed: %s", draft_id, exc)
        raise DraftAlreadyConfirmed(draft_id) from exc

    catalog.invalidate_business(business.id)
    logger.info(
        "Order %s accepted for customer %s (total %.2f, %d lines)",
        order.order_number, key.customer_id, order.total, len(order.items),
    )
    return ConfirmationResult(order=order, warnings=check.warnings)


def order_to_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "items": [
            {
                "item_id": item.item_id,
                "name": item.item_name,
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "line_total": item.line_total,
            }
            for item in order.items
        ],
        "subtotal": order.subtotal,
        "delivery_fee": order.delivery_fee,
        "total": order.total,
        "delivery_type": order.delivery_type,
        "address": order.address,
        "latitude": order.latitude,
        "longitude": order.longitude,
        "scheduled_for": as_utc(order.scheduled_for).isoformat() if order.scheduled_for else None,
        "notes": order.notes,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }
