"""
Function-Call Commands for Order Assistant
==========================================

This module is the boundary between the language model and the ordering
services. The model emits a function name plus JSON arguments; this module
turns that into a typed command, runs it against the services, and returns
a structured ActionResult the workflow relays to the customer.

Commands:
---------
Every operation is a pydantic model with a literal `action` discriminator.
The closed union `Command` is parsed in one step and dispatched through a
single `match` in execute_command(), so a new operation means a new model,
a new union member and a new case.

Cart:         add_item, remove_item, update_item_quantity, get_cart,
              clear_cart, check_item_availability
Delivery:     set_delivery_type, set_delivery_address, set_location
Schedule:     set_scheduled_time, set_order_notes
Confirmation: validate_cart_for_confirmation, confirm_order
Orders:       cancel_order, validate_cancellation_eligibility, get_my_orders
Session:      set_mode, switch_mode, resume_session, request_human_assistance
Hours:        is_open_now, get_opening_hours, get_next_opening_time

Legacy Names:
-------------
Older prompts call some operations by other names (add_service_to_cart,
switch_conversation_mode, cancel_scheduled_order, ...). ACTION_ALIASES maps
them onto the canonical actions before parsing.

Results:
--------
    {"success": true,  "message": "...", "data": {...}}
    {"success": false, "error": "...", "code": "lead_time_too_short",
     "retryable": false}

Service errors (order_assistant.errors) never escape execute_function_call;
they become success=False results. Every call is audited as function_called
and every failure additionally as validation_failed.

Locked Sessions:
----------------
A locked session (handed to a human, or the customer asked for one) refuses
every action except resume_session.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .config import CURRENCY_SYMBOL
from .errors import InvalidArguments, OrderingError, SessionLocked, TransientStoreError
from .services import audit, cancellation, cart, catalog, opening_hours, order, session
from .services.cart import CartKey
from .time_utils import utcnow


logger = logging.getLogger(__name__)


# =============================================================================
# Turn Context and Results
# =============================================================================

@dataclass
class TurnContext:
    """Who the current turn is for. Supplied by the transport, never by the model."""
    business_id: int
    customer_id: str
    session_id: Optional[str] = None
    branch_id: Optional[int] = None
    now: Optional[datetime] = None

    @property
    def cart_key(self) -> CartKey:
        return CartKey(business_id=self.business_id, customer_id=self.customer_id, branch_id=self.branch_id)

    def current_time(self) -> datetime:
        return self.now or utcnow()


class ActionResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    retryable: bool = False
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, error: OrderingError) -> "ActionResult":
        return cls(
            success=False,
            error=error.message,
            code=error.code,
            retryable=error.retryable,
            data=error.details or None,
        )


# =============================================================================
# Command Models
# =============================================================================

class _Command(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AddItem(_Command):
    """Add an item to the customer's order. Use the item name as the customer said it."""
    action: Literal["add_item"] = "add_item"
    item_name: str = Field(..., description="Item name, e.g. 'Trio' or 'catering tray'")
    quantity: int = Field(1, description="How many to add (default 1)")


class RemoveItem(_Command):
    """Remove an item from the customer's order."""
    action: Literal["remove_item"] = "remove_item"
    item_name: str = Field(..., description="Name of the item to remove")


class UpdateItemQuantity(_Command):
    """Change the quantity of an item already in the order. 0 removes it."""
    action: Literal["update_item_quantity"] = "update_item_quantity"
    item_name: str = Field(..., description="Name of the item in the order")
    quantity: int = Field(..., description="New quantity")


class CheckItemAvailability(_Command):
    """Check whether an item is on the menu and can be ordered."""
    action: Literal["check_item_availability"] = "check_item_availability"
    item_name: str = Field(..., description="Item name to look up")


class GetCart(_Command):
    """Show the customer's current order with totals."""
    action: Literal["get_cart"] = "get_cart"


class ClearCart(_Command):
    """Remove everything from the customer's order."""
    action: Literal["clear_cart"] = "clear_cart"


class SetDeliveryType(_Command):
    """Set how the customer receives the order."""
    action: Literal["set_delivery_type"] = "set_delivery_type"
    delivery_type: Literal["takeaway", "delivery", "on_site"] = Field(
        ..., description="takeaway (pick up), delivery, or on_site (eat in)"
    )


class SetDeliveryAddress(_Command):
    """Save the delivery address exactly as the customer wrote it."""
    action: Literal["set_delivery_address"] = "set_delivery_address"
    address: str = Field(..., description="Delivery address text, unmodified")


class SetLocation(_Command):
    """Save a shared GPS location for delivery."""
    action: Literal["set_location"] = "set_location"
    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")
    label: Optional[str] = Field(None, description="Human label for the location, e.g. 'Home'")


class SetScheduledTime(_Command):
    """Schedule the order for a specific date and time."""
    action: Literal["set_scheduled_time"] = "set_scheduled_time"
    scheduled_for: datetime = Field(
        ..., description="ISO 8601 date-time; without an offset it is read in the business timezone"
    )


class SetOrderNotes(_Command):
    """Attach special instructions to the order."""
    action: Literal["set_order_notes"] = "set_order_notes"
    notes: str = Field(..., description="Notes for the kitchen or courier")


class ValidateCartForConfirmation(_Command):
    """Check whether the order is ready to confirm and list what is missing."""
    action: Literal["validate_cart_for_confirmation"] = "validate_cart_for_confirmation"


class ConfirmOrder(_Command):
    """Place the order. Only call after the customer explicitly confirms."""
    action: Literal["confirm_order"] = "confirm_order"


class CancelOrder(_Command):
    """Cancel an upcoming scheduled order. Without order_id, list the orders that can be cancelled."""
    action: Literal["cancel_order"] = "cancel_order"
    order_id: Optional[str] = Field(None, description="Order id or order number")

    @field_validator("order_id", mode="before")
    @classmethod
    def _blank_means_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ValidateCancellationEligibility(_Command):
    """Check whether an upcoming order can still be cancelled, without cancelling it."""
    action: Literal["validate_cancellation_eligibility"] = "validate_cancellation_eligibility"
    order_id: str = Field(..., description="Order id or order number")


class GetMyOrders(_Command):
    """List the customer's placed orders, newest first."""
    action: Literal["get_my_orders"] = "get_my_orders"


class SetMode(_Command):
    """Record the detected conversation intent and move the session to that mode."""
    action: Literal["set_mode"] = "set_mode"
    mode: str = Field(..., description="delivery, takeaway, dine_in, or support")
    confidence: Optional[float] = Field(None, description="Detection confidence between 0 and 1")
    reason: Optional[str] = Field(None, description="Why this mode was chosen")


class SwitchMode(_Command):
    """Switch the conversation to another mode at the customer's request."""
    action: Literal["switch_mode"] = "switch_mode"
    new_mode: str = Field(..., description="delivery, takeaway, dine_in, or support")
    reason: Optional[str] = Field(None, description="Why the customer is switching")


class ResumeSession(_Command):
    """Load the conversation state to continue where the customer left off."""
    action: Literal["resume_session"] = "resume_session"


class RequestHumanAssistance(_Command):
    """Hand the conversation to a staff member. The assistant stops acting on this session."""
    action: Literal["request_human_assistance"] = "request_human_assistance"
    reason: str = Field(..., description="Why a human is needed")


class IsOpenNow(_Command):
    """Check whether the business is open right now."""
    action: Literal["is_open_now"] = "is_open_now"


class GetOpeningHours(_Command):
    """List the weekly opening hours."""
    action: Literal["get_opening_hours"] = "get_opening_hours"


class GetNextOpeningTime(_Command):
    """Find when the business next opens for orders."""
    action: Literal["get_next_opening_time"] = "get_next_opening_time"


Command = Annotated[
    Union[
        AddItem,
        RemoveItem,
        UpdateItemQuantity,
        CheckItemAvailability,
        GetCart,
        ClearCart,
        SetDeliveryType,
        SetDeliveryAddress,
        SetLocation,
        SetScheduledTime,
        SetOrderNotes,
        ValidateCartForConfirmation,
        ConfirmOrder,
        CancelOrder,
        ValidateCancellationEligibility,
        GetMyOrders,
        SetMode,
        SwitchMode,
        ResumeSession,
        RequestHumanAssistance,
        IsOpenNow,
        GetOpeningHours,
        GetNextOpeningTime,
    ],
    Field(discriminator="action"),
]

COMMAND_MODELS = get_args(get_args(Command)[0])
_command_adapter = TypeAdapter(Command)

ACTION_ALIASES = {
    "add_item_to_cart": "add_item",
    "add_service_to_cart": "add_item",
    "remove_item_from_cart": "remove_item",
    "remove_service_from_cart": "remove_item",
    "update_service_quantity": "update_item_quantity",
    "update_delivery_type": "set_delivery_type",
    "detect_intent_and_set_mode": "set_mode",
    "switch_conversation_mode": "switch_mode",
    "resume_chat_session": "resume_session",
    "cancel_scheduled_order": "cancel_order",
    "cancel_accepted_order": "cancel_order",
}

# Legacy argument names, per canonical action
ARGUMENT_ALIASES = {
    "add_item": {"service_name": "item_name", "name": "item_name"},
    "remove_item": {"service_name": "item_name", "name": "item_name"},
    "update_item_quantity": {"service_name": "item_name", "name": "item_name"},
    "check_item_availability": {"service_name": "item_name", "name": "item_name"},
    "set_mode": {"intent": "mode"},
    "switch_mode": {"mode": "new_mode"},
    "set_scheduled_time": {"scheduled_time": "scheduled_for", "datetime": "scheduled_for"},
}


def canonical_action(name: str) -> str:
    return ACTION_ALIASES.get(name, name)


def parse_function_call(name: str, arguments: Optional[Dict[str, Any]]) -> Command:
    """
    Build a typed command from a model function call.

    Raises:
        InvalidArguments: unknown action or arguments that do not fit its schema
    """
    action = canonical_action(name)
    args = dict(arguments or {})
    for old, new in ARGUMENT_ALIASES.get(action, {}).items():
        if old in args and new not in args:
            args[new] = args.pop(old)
    args["action"] = action

    try:
        return _command_adapter.validate_python(args)
    except PydanticValidationError as exc:
        errors = exc.errors()
        first = errors[0] if errors else {}
        if first.get("type") == "union_tag_invalid":
            raise InvalidArguments(f"Unknown function: {name}", "action", {"value": name}) from exc
        field_name = ".".join(str(part) for part in first.get("loc", ()) if part != action) or "arguments"
        raise InvalidArguments(
            f"Invalid arguments for {action}: {first.get('msg', 'invalid value')} ({field_name})",
            field_name,
        ) from exc


def tool_definitions() -> List[Dict[str, Any]]:
    """OpenAI-style function definitions for every command."""
    tools = []
    for model in COMMAND_MODELS:
        schema = model.model_json_schema()
        properties = {
            name: {k: v for k, v in prop.items() if k != "title"}
            for name, prop in schema.get("properties", {}).items()
            if name != "action"
        }
        tools.append({
            "type": "function",
            "function": {
                "name": model.model_fields["action"].default,
                "description": schema.get("description", ""),
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": [name for name in schema.get("required", []) if name != "action"],
                },
            },
        })
    return tools


# =============================================================================
# Dispatch
# =============================================================================

def _require_session(context: TurnContext) -> str:
    if not context.session_id:
        raise InvalidArguments("This action needs an active conversation session.", "session_id")
    return context.session_id


def _owner(db: Session, context: TurnContext):
    return cart.resolve_owner(db, context.cart_key)


def _add_item_message(result: cart.AddItemResult) -> str:
    message = f"Added {result.quantity} x {result.item.name} to your order."
    if result.requires_scheduling:
        hours = result.item.min_schedule_hours
        message += f" {result.item.name} must be scheduled in advance"
        message += f" (at least {hours:g} hours)." if hours else "."
    if result.advisory:
        message += f" {result.advisory}"
    return message


def execute_command(db: Session, context: TurnContext, command: Command) -> ActionResult:
    """
    Run one command. Service errors propagate; execute_function_call
    turns them into results.
    """
    key = context.cart_key
    sid = context.session_id
    now = context.current_time()

    match command:
        case AddItem(item_name=name, quantity=quantity):
            result = cart.add_item(db, key, name, quantity, session_id=sid, now=now)
            data = result.summary.to_dict()
            data["requires_scheduling"] = result.requires_scheduling
            return ActionResult.ok(_add_item_message(result), data)

        case RemoveItem(item_name=name):
            summary = cart.remove_item(db, key, name, session_id=sid)
            return ActionResult.ok(f"Removed {name} from your order.\n{summary.format_text()}", summary.to_dict())

        case UpdateItemQuantity(item_name=name, quantity=quantity):
            summary = cart.update_item_quantity(db, key, name, quantity, session_id=sid)
            return ActionResult.ok(f"Updated your order.\n{summary.format_text()}", summary.to_dict())

        case CheckItemAvailability(item_name=name):
            item = catalog.check_item_availability(db, context.business_id, name)
            message = f"{item.name} is available ({CURRENCY_SYMBOL}{item.price:.2f})."
            if item.is_schedulable:
                message += " It must be ordered in advance."
            return ActionResult.ok(message, {
                "item_id": item.id,
                "name": item.name,
                "price": item.price,
                "is_schedulable": item.is_schedulable,
                "min_schedule_hours": item.min_schedule_hours,
            })

        case GetCart():
            summary = cart.get_cart(db, key)
            return ActionResult.ok(summary.format_text(), summary.to_dict())

        case ClearCart():
            summary = cart.clear_cart(db, key, session_id=sid)
            return ActionResult.ok("Your order has been cleared.", summary.to_dict())

        case SetDeliveryType(delivery_type=delivery_type):
            summary = cart.set_delivery_type(db, key, delivery_type, session_id=sid)
            return ActionResult.ok(f"Delivery type set to {delivery_type}.", summary.to_dict())

        case SetDeliveryAddress(address=address):
            summary = cart.set_delivery_address(db, key, address, session_id=sid)
            return ActionResult.ok("Delivery address saved.", summary.to_dict())

        case SetLocation(latitude=latitude, longitude=longitude, label=label):
            summary = cart.set_location(db, key, latitude, longitude, label, session_id=sid)
            return ActionResult.ok("Location saved.", summary.to_dict())

        case SetScheduledTime(scheduled_for=instant):
            summary = cart.set_scheduled_time(db, key, instant, session_id=sid, now=now)
            return ActionResult.ok(
                f"Order scheduled for {summary.scheduled_for.isoformat()}.", summary.to_dict()
            )

        case SetOrderNotes(notes=notes):
            summary = cart.set_order_notes(db, key, notes, session_id=sid)
            return ActionResult.ok("Notes added to your order.", summary.to_dict())

        case ValidateCartForConfirmation():
            check = order.validate_for_confirmation(db, key, now=now)
            if check.valid:
                return ActionResult.ok("Your order is ready to confirm.", check.to_dict())
            return ActionResult(
                success=False,
                error=" ".join(error.message for error in check.errors),
                code=check.errors[0].code,
                data=check.to_dict(),
            )

        case ConfirmOrder():
            result = order.confirm_order(db, key, session_id=sid, now=now)
            placed = result.order
            message = f"Order #{placed.order_number} placed. Total: {CURRENCY_SYMBOL}{placed.total:.2f}."
            if result.warnings:
                message += " " + " ".join(result.warnings)
            return ActionResult.ok(message, order.order_to_dict(placed))

        case CancelOrder(order_id=None):
            upcoming = cancellation.list_cancellable_orders(db, context.business_id, context.customer_id, now)
            if not upcoming:
                return ActionResult.ok("You have no upcoming orders to cancel.", {"orders": []})
            return ActionResult.ok(
                "Which order would you like to cancel?",
                {"orders": [candidate.to_dict() for candidate in upcoming]},
            )

        case CancelOrder(order_id=order_ref):
            cancelled = cancellation.cancel_order(db, context.business_id, context.customer_id, order_ref, now)
            return ActionResult.ok(
                f"Order #{cancelled.order_number} has been cancelled.",
                {"id": cancelled.id, "order_number": cancelled.order_number, "status": cancelled.status},
            )

        case ValidateCancellationEligibility(order_id=order_ref):
            candidate = cancellation.check_cancellation(
                db, context.business_id, context.customer_id, order_ref, now
            )
            if candidate.can_cancel:
                message = f"Order #{candidate.order.order_number} can still be cancelled."
            else:
                message = (
                    f"Order #{candidate.order.order_number} can no longer be cancelled "
                    f"(cancellations close {candidate.deadline_hours:g} hours before the scheduled time)."
                )
            return ActionResult.ok(message, candidate.to_dict())

        case GetMyOrders():
            orders = cancellation.list_customer_orders(db, context.business_id, context.customer_id)
            if not orders:
                return ActionResult.ok("You have no orders yet.", {"orders": []})
            return ActionResult.ok(
                f"You have {len(orders)} order(s).",
                {"orders": [order.order_to_dict(placed) for placed in orders]},
            )

        case SetMode(mode=mode, confidence=confidence, reason=reason):
            session_id = _require_session(context)
            audit.log_intent(db, session_id, mode, confidence)
            switched = session.switch_mode(db, session_id, mode, reason=reason or "intent detected")
            return ActionResult.ok(f"Mode set to {switched.mode}.", {"mode": switched.mode, "step": switched.step})

        case SwitchMode(new_mode=new_mode, reason=reason):
            session_id = _require_session(context)
            switched = session.switch_mode(db, session_id, new_mode, reason=reason)
            return ActionResult.ok(
                f"Switched to {switched.mode}.", {"mode": switched.mode, "step": switched.step}
            )

        case ResumeSession():
            state = session.resume_session(db, _require_session(context), business_id=context.business_id)
            return ActionResult.ok(f"Resuming in {state.mode} mode at step {state.step}.", state.to_dict())

        case RequestHumanAssistance(reason=reason):
            session_id = _require_session(context)
            session.lock_session(db, session_id)
            audit.log_handover(db, session_id, None, reason)
            return ActionResult.ok(
                "A member of our team will continue this conversation shortly.",
                {"locked": True, "reason": reason},
            )

        case IsOpenNow():
            business, branch = _owner(db, context)
            status = opening_hours.is_open_at(db, business, branch, now)
            message = "We're open." if status.is_open else f"We're closed. {status.reason}"
            advisory = cart.opening_advisory(status)
            if status.is_open and advisory:
                message += f" {advisory}"
            elif status.next_opening is not None:
                message += f" We open again {opening_hours.format_next_opening(status.next_opening)}."
            return ActionResult.ok(message, {
                "is_open": status.is_open,
                "reason": status.reason,
                "minutes_until_last_order": status.minutes_until_last_order,
                "last_order_time": status.last_order_time,
                "next_opening": status.next_opening.isoformat() if status.next_opening else None,
            })

        case GetNextOpeningTime():
            business, branch = _owner(db, context)
            status = opening_hours.is_open_at(db, business, branch, now)
            if status.is_open:
                message = "We're open now."
            elif status.next_opening is not None:
                message = f"We open again {opening_hours.format_next_opening(status.next_opening)}."
            else:
                message = "No upcoming opening hours are published."
            return ActionResult.ok(message, {
                "is_open": status.is_open,
                "next_opening": status.next_opening.isoformat() if status.next_opening else None,
            })

        case GetOpeningHours():
            business, branch = _owner(db, context)
            weekly = opening_hours.get_weekly_hours(db, business, branch)
            if weekly.unrestricted:
                return ActionResult.ok("We take orders at any time.", {"hours": []})
            rows = opening_hours.format_weekly_hours(weekly)
            lines = [
                f"{row['day'].capitalize()}: {'Closed' if row['closed'] else row['hours']}"
                + (f" (last order {row['last_order']})" if row.get("last_order") else "")
                for row in rows
            ]
            return ActionResult.ok("\n".join(lines), {"hours": rows, "timezone": weekly.timezone})

        case _:
            raise InvalidArguments(f"Unsupported action: {command.action}", "action")


def _check_not_locked(db: Session, context: TurnContext, action: str) -> None:
    if not context.session_id or action == "resume_session":
        return
    chat_session = session.get_session(db, context.session_id, business_id=context.business_id)
    if chat_session.locked:
        raise SessionLocked(context.session_id)


def execute_function_call(
    db: Session,
    context: TurnContext,
    name: str,
    arguments: Optional[Dict[str, Any]] = None,
    raise_transient: bool = False,
) -> ActionResult:
    """
    Parse, guard, run and audit one model function call.

    Args:
        db: Database session
        context: The turn's business / customer / session
        name: Function name as emitted by the model (aliases accepted)
        arguments: Parsed JSON arguments
        raise_transient: Re-raise TransientStoreError so the caller can retry

    Returns:
        ActionResult; service errors come back as success=False
    """
    arguments = arguments or {}
    try:
        command = parse_function_call(name, arguments)
        _check_not_locked(db, context, command.action)
        result = execute_command(db, context, command)
    except TransientStoreError as exc:
        logger.error("Store failure running %s for session %s: %s", name, context.session_id, exc)
        if raise_transient:
            raise
        result = ActionResult.failure(exc)
    except OrderingError as exc:
        logger.info("Function %s refused for session %s: %s", name, context.session_id, exc.code)
        result = ActionResult.failure(exc)

    payload = result.model_dump()
    audit.log_function_call(db, context.session_id, canonical_action(name), arguments, payload)
    if not result.success and result.code:
        audit.log_validation_failure(db, context.session_id, result.code, result.error or result.message or "")
    return result
