"""
Error taxonomy for the ordering core.

Services raise these; the command dispatcher turns them into structured
results so a failed action never escapes to the model-invocation layer.

    OrderingError
    ├── NotFoundError        session / item / draft line / order absent
    ├── ValidationError      bad enum, bad coordinates, missing precondition
    ├── PolicyDeniedError    radius, opening hours, lead time, cancel window
    ├── ConflictError        nothing left to confirm, draft already committed
    └── TransientStoreError  store unreachable or transaction failed (retryable)
"""

from typing import Any, Dict, Iterable, Optional


class OrderingError(Exception):
    """Base class; carries a stable code and structured details."""

    code = "ordering_error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# -----------------------------------------------------------------------------
# NotFound
# -----------------------------------------------------------------------------

class NotFoundError(OrderingError):
    code = "not_found"


class SessionNotFound(NotFoundError):
    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", {"session_id": session_id})


class ItemNotFound(NotFoundError):
    code = "item_not_found"

    def __init__(self, name: str):
        super().__init__(
            f'"{name}" is not on the menu or is not available right now.',
            {"item_name": name},
        )


class LineNotFound(NotFoundError):
    code = "line_not_found"

    def __init__(self, name: str, cart_empty: bool = False):
        if cart_empty:
            message = "Your order is empty."
        else:
            message = f'"{name}" is not in your order.'
        super().__init__(message, {"item_name": name, "cart_empty": cart_empty})


class OrderNotFound(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_ref: str):
        super().__init__(f"Order {order_ref} not found", {"order_ref": order_ref})


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

class ValidationError(OrderingError):
    """Always names the offending field in details["field"]."""

    code = "validation_error"

    def __init__(self, message: str, field: str, details: Optional[Dict[str, Any]] = None):
        merged = {"field": field}
        merged.update(details or {})
        super().__init__(message, merged)

    @property
    def field(self) -> str:
        return self.details["field"]


class InvalidMode(ValidationError):
    code = "invalid_mode"

    def __init__(self, mode: Any, allowed: Iterable[str]):
        allowed = list(allowed)
        super().__init__(
            f"Invalid mode: {mode}. Must be one of: {', '.join(allowed)}",
            "mode",
            {"value": mode, "allowed": allowed},
        )


class InvalidChannel(ValidationError):
    code = "invalid_channel"

    def __init__(self, channel: Any, allowed: Iterable[str]):
        allowed = list(allowed)
        super().__init__(
            f"Invalid channel: {channel}. Must be one of: {', '.join(allowed)}",
            "channel",
            {"value": channel, "allowed": allowed},
        )


class InvalidQuantity(ValidationError):
    code = "invalid_quantity"

    def __init__(self, value: Any):
        super().__init__(
            f"Quantity must be a positive whole number, got {value!r}",
            "quantity",
            {"value": value},
        )


class ItemInvalid(ValidationError):
    code = "invalid_value"


class InvalidArguments(ValidationError):
    code = "invalid_arguments"


class InvalidDraftPayload(ValidationError):
    code = "invalid_draft_payload"

    def __init__(self, message: str):
        super().__init__(message, "draft_payload")


class DeliveryTypeRequired(ValidationError):
    code = "delivery_type_required"

    def __init__(self):
        super().__init__(
            "Please select delivery type (takeaway, delivery, or on_site).",
            "delivery_type",
        )


class AddressRequired(ValidationError):
    code = "address_required"

    def __init__(self):
        super().__init__("Please provide your delivery address first.", "address")


class SchedulingRequired(ValidationError):
    code = "scheduling_required"

    def __init__(
        self,
        message: str,
        item_names: Iterable[str] = (),
        reason: str = "schedulable_items",
        next_opening: Optional[str] = None,
    ):
        details = {"items": list(item_names), "reason": reason}
        if reason == "closed":
            details["next_opening"] = next_opening
        super().__init__(message, "scheduled_for", details)


class ScheduleInPast(ValidationError):
    code = "schedule_in_past"

    def __init__(self):
        super().__init__("The scheduled time must be in the future.", "scheduled_for")


class NotesRequired(ValidationError):
    code = "notes_required"

    def __init__(self):
        super().__init__("Notes cannot be empty.", "notes")


# -----------------------------------------------------------------------------
# PolicyDenied
# -----------------------------------------------------------------------------

class PolicyDeniedError(OrderingError):
    code = "policy_denied"


class OutOfDeliveryRadius(PolicyDeniedError):
    code = "out_of_delivery_radius"

    def __init__(self, distance_km: float, max_km: float):
        super().__init__(
            f"Sorry, this location is {distance_km} km away. "
            f"We only deliver within {max_km} km.",
            {"distance_km": distance_km, "max_km": max_km},
        )

    @property
    def distance_km(self) -> float:
        return self.details["distance_km"]


class OutsideOpeningHours(PolicyDeniedError):
    code = "outside_opening_hours"

    def __init__(self, message: str, day: Optional[str] = None):
        super().__init__(message, {"day": day})


class LeadTimeTooShort(PolicyDeniedError):
    code = "lead_time_too_short"

    def __init__(self, required_hours: float):
        super().__init__(
            f"This item requires scheduling at least {required_hours:g} hours in advance.",
            {"required_hours": required_hours},
        )

    @property
    def required_hours(self) -> float:
        return self.details["required_hours"]


class ItemNotAvailableAtTime(PolicyDeniedError):
    code = "item_not_available_at_time"

    def __init__(self, item_name: str, reason: str):
        super().__init__(
            f"{item_name} is not available at the requested time ({reason}).",
            {"item_name": item_name, "reason": reason},
        )


class CancellationWindowExpired(PolicyDeniedError):
    code = "cancellation_window_expired"

    def __init__(self, hours_until: float, deadline_hours: float):
        super().__init__(
            f"Cancellation deadline has passed. Orders must be cancelled at least "
            f"{deadline_hours:g} hours before the scheduled time.",
            {"hours_until": round(hours_until, 2), "deadline_hours": deadline_hours},
        )


class SessionLocked(PolicyDeniedError):
    code = "session_locked"

    def __init__(self, session_id: str):
        super().__init__(
            "This conversation has been handed over to a staff member.",
            {"session_id": session_id},
        )


# -----------------------------------------------------------------------------
# Conflict
# -----------------------------------------------------------------------------

class ConflictError(OrderingError):
    code = "conflict"


class NothingToConfirm(ConflictError):
    code = "nothing_to_confirm"

    def __init__(self):
        super().__init__("Cart is empty. Please add items first.")


class DraftAlreadyConfirmed(ConflictError):
    code = "draft_already_confirmed"

    def __init__(self, draft_id: int):
        super().__init__(
            "This order has already been confirmed.",
            {"draft_id": draft_id},
        )


# -----------------------------------------------------------------------------
# TransientStore
# -----------------------------------------------------------------------------

class TransientStoreError(OrderingError):
    code = "store_unavailable"
    retryable = True

    def __init__(self, message: str = "The order store is temporarily unavailable. Please try again."):
        super().__init__(message)
