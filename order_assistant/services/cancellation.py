"""
Cancellation Policy for committed orders.

Only accepted orders with a scheduled time still in the future can be
withdrawn by the customer. The cancellation window is resolved as:

    max(item.cancelable_before_hours over the order's items that set one)
    else business.default_cancelable_before_hours
    else DEFAULT_CANCELABLE_BEFORE_HOURS (2)

Cancellation is allowed while hours_until(scheduled_for) >= window. A
successful cancellation moves the order to "rejected" and appends a
status-history row attributed to the customer, in one transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import DEFAULT_CANCELABLE_BEFORE_HOURS, MAX_ORDERS_LISTED
from ..errors import CancellationWindowExpired, OrderNotFound
from ..models import Business, Item, Order, OrderStatusHistory
from ..time_utils import as_utc, utcnow
from .transaction import atomic, lock_for_update


logger = logging.getLogger(__name__)

REJECTED = "rejected"


@dataclass
class CancellableOrder:
    order: Order
    hours_until: float
    deadline_hours: float
    deadline_source: str  # "item" | "business" | "default"

    @property
    def can_cancel(self) -> bool:
        return self.hours_until >= self.deadline_hours

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.order.id,
            "order_number": self.order.order_number,
            "scheduled_for": as_utc(self.order.scheduled_for).isoformat(),
            "total": self.order.total,
            "delivery_type": self.order.delivery_type,
            "hours_until": round(self.hours_until, 2),
            "deadline_hours": self.deadline_hours,
            "deadline_source": self.deadline_source,
            "can_cancel": self.can_cancel,
        }


def cancellation_deadline_hours(db: Session, order: Order) -> Tuple[float, str]:
    """Resolve the window for one order: item-level, then business, then default."""
    item_ids = [line.item_id for line in order.items if line.item_id is not None]
    if item_ids:
        overrides = [
            value
            for (value,) in db.query(Item.cancelable_before_hours)
            .filter(Item.id.in_(item_ids), Item.cancelable_before_hours.isnot(None))
            .all()
        ]
        if overrides:
            return float(max(overrides)), "item"

    business = db.get(Business, order.business_id)
    if business is not None and business.default_cancelable_before_hours is not None:
        return float(business.default_cancelable_before_hours), "business"

    return float(DEFAULT_CANCELABLE_BEFORE_HOURS), "default"


def _evaluate(db: Session, order: Order, now: datetime) -> CancellableOrder:
    hours_until = (as_utc(order.scheduled_for) - now).total_seconds() / 3600
    deadline, source = cancellation_deadline_hours(db, order)
    return CancellableOrder(order=order, hours_until=hours_until, deadline_hours=deadline, deadline_source=source)


def _upcoming_query(db: Session, business_id: int, customer_id: str):
    return (
        db.query(Order)
        .filter(
            Order.business_id == business_id,
            Order.customer_id == customer_id,
            Order.status == "accepted",
            Order.scheduled_for.isnot(None),
        )
        .order_by(Order.scheduled_for.asc())
    )


def list_cancellable_orders(
    db: Session,
    business_id: int,
    customer_id: str,
    now: Optional[datetime] = None,
) -> List[CancellableOrder]:
    """Accepted orders still in the future, soonest first, each with its window."""
    now = now or utcnow()
    orders = _upcoming_query(db, business_id, customer_id).all()
    return [_evaluate(db, order, now) for order in orders if as_utc(order.scheduled_for) > now]


def match_order_ref(order: Order, order_ref: str) -> bool:
    """Full id, id prefix, or the 8-character order number (any case)."""
    ref = (order_ref or "").strip()
    if not ref:
        return False
    return (
        order.id == ref
        or order.id.startswith(ref.lower())
        or order.order_number == ref.upper().lstrip("#")
    )


def check_cancellation(
    db: Session,
    business_id: int,
    customer_id: str,
    order_ref: str,
    now: Optional[datetime] = None,
) -> CancellableOrder:
    """
    Evaluate one order without changing it.

    Raises:
        OrderNotFound: no upcoming accepted order matches order_ref
    """
    for candidate in list_cancellable_orders(db, business_id, customer_id, now):
        if match_order_ref(candidate.order, order_ref):
            return candidate
    raise OrderNotFound(order_ref)


def cancel_order(
    db: Session,
    business_id: int,
    customer_id: str,
    order_ref: str,
    now: Optional[datetime] = None,
) -> Order:
    """
    Withdraw an upcoming order on the customer's behalf.

    Raises:
        OrderNotFound: no upcoming accepted order matches order_ref
        CancellationWindowExpired: too close to the scheduled time (no mutation)
    """
    now = now or utcnow()

    with atomic(db):
        candidate = check_cancellation(db, business_id, customer_id, order_ref, now)
        if not candidate.can_cancel:
            logger.warning(
                "Cancellation refused for order %s: %.2fh left, window %.2fh (%s)",
                candidate.order.order_number, candidate.hours_until,
                candidate.deadline_hours, candidate.deadline_source,
            )
            raise CancellationWindowExpired(candidate.hours_until, candidate.deadline_hours)

        order = lock_for_update(db.query(Order).filter(Order.id == candidate.order.id)).one()
        order.status = REJECTED
        order.status_history.append(OrderStatusHistory(
            status=REJECTED,
            changed_by="customer",
            changed_at=now,
        ))

    logger.info("Order %s cancelled by customer %s", order.order_number, customer_id)
    return order


def list_customer_orders(
    db: Session,
    business_id: int,
    customer_id: str,
    limit: int = MAX_ORDERS_LISTED,
) -> List[Order]:
    """The customer's accepted orders, newest first."""
    return (
        db.query(Order)
        .filter(
            Order.business_id == business_id,
            Order.customer_id == customer_id,
            Order.status == "accepted",
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
