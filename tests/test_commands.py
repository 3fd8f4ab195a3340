"""
Tests for parsing and dispatching model function calls.
"""
import pytest

from order_assistant.commands import (
    COMMAND_MODELS,
    AddItem,
    CancelOrder,
    SetMode,
    SwitchMode,
    TurnContext,
    execute_function_call,
    parse_function_call,
    tool_definitions,
)
from order_assistant.errors import InvalidArguments
from order_assistant.models import BotAction, OpeningHours
from order_assistant.services import session as session_service
from tests.helpers import CUSTOMER, NOW


@pytest.fixture
def context(business, chat_session):
    return TurnContext(business_id=business.id, customer_id=CUSTOMER, session_id=chat_session.id, now=NOW)


def actions_of(db_session, session_id, action_type):
    return db_session.query(BotAction).filter_by(session_id=session_id, action_type=action_type).all()


class TestParseFunctionCall:
    def test_canonical(self):
        command = parse_function_call("add_item", {"item_name": "Trio", "quantity": 2})

        assert command == AddItem(item_name="Trio", quantity=2)

    def test_legacy_names(self):
        command = parse_function_call("add_service_to_cart", {"service_name": "Trio"})

        assert isinstance(command, AddItem)
        assert command.item_name == "Trio"
        assert command.quantity == 1

    def test_mode_aliases(self):
        assert parse_function_call("detect_intent_and_set_mode", {"intent": "takeaway"}) == SetMode(mode="takeaway")
        assert parse_function_call("switch_conversation_mode", {"mode": "support"}) == SwitchMode(new_mode="support")

    def test_cancel_without_order(self):
        assert parse_function_call("cancel_scheduled_order", None) == CancelOrder()

    def test_blank_order_id_means_no_order(self):
        assert parse_function_call("cancel_order", {"order_id": ""}).order_id is None
        assert parse_function_call("cancel_order", {"order_id": "  "}).order_id is None
        assert parse_function_call("cancel_order", {"order_id": "A-17"}).order_id == "A-17"

    def test_unknown_function(self):
        with pytest.raises(InvalidArguments) as exc_info:
            parse_function_call("order_pizza_by_drone", {})

        assert exc_info.value.message == "Unknown function: order_pizza_by_drone"

    def test_missing_argument(self):
        with pytest.raises(InvalidArguments) as exc_info:
            parse_function_call("add_item", {"quantity": 2})

        assert exc_info.value.field == "item_name"

    def test_extra_arguments_ignored(self):
        command = parse_function_call("get_cart", {"verbose": True})

        assert command.action == "get_cart"


class TestToolDefinitions:
    def test_one_tool_per_command(self):
        tools = tool_definitions()

        names = [tool["function"]["name"] for tool in tools]
        assert len(names) == len(COMMAND_MODELS) == len(set(names))
        assert "confirm_order" in names

    def test_parameters(self):
        tools = {tool["function"]["name"]: tool["function"] for tool in tool_definitions()}

        add_item = tools["add_item"]
        assert add_item["parameters"]["required"] == ["item_name"]
        assert "action" not in add_item["parameters"]["properties"]
        assert "title" not in add_item["parameters"]["properties"]["item_name"]
        assert add_item["description"].startswith("Add an item")

        delivery_type = tools["set_delivery_type"]["parameters"]["properties"]["delivery_type"]
        assert delivery_type["enum"] == ["takeaway", "delivery", "on_site"]

        assert tools["get_cart"]["parameters"]["required"] == []


class TestExecuteFunctionCall:
    """Results, guards and auditing around dispatch."""

    def test_add_item(self, db_session, context):
        result = execute_function_call(db_session, context, "add_item", {"item_name": "trio box", "quantity": 2})

        assert result.success is True
        assert result.message.startswith("Added 2 x Trio Box")
        assert result.data["items"][0]["quantity"] == 2
        assert result.data["requires_scheduling"] is False

    def test_schedulable_item_message(self, db_session, context):
        result = execute_function_call(db_session, context, "add_item", {"item_name": "catering"})

        assert "must be scheduled in advance (at least 3 hours)" in result.message
        assert result.data["requires_scheduling"] is True

    def test_service_error_becomes_failure(self, db_session, context):
        execute_function_call(db_session, context, "add_item", {"item_name": "Catering Tray"})

        result = execute_function_call(
            db_session, context, "set_scheduled_time", {"scheduled_time": "2026-03-02T13:00:00"}
        )

        assert result.success is False
        assert result.code == "lead_time_too_short"
        assert result.retryable is False
        assert "at least 3 hours in advance" in result.error

    def test_schedule_in_business_timezone(self, db_session, context):
        result = execute_function_call(
            db_session, context, "set_scheduled_time", {"scheduled_for": "2026-03-02T16:00:00"}
        )

        assert result.success is True
        assert result.data["scheduled_for"].startswith("2026-03-02T16:00:00")

    def test_unknown_function(self, db_session, context):
        result = execute_function_call(db_session, context, "teleport", {})

        assert result.success is False
        assert result.code == "invalid_arguments"

    def test_bad_argument_type(self, db_session, context):
        result = execute_function_call(db_session, context, "add_item", {"item_name": "Trio", "quantity": "lots"})

        assert result.success is False
        assert result.code == "invalid_arguments"

    def test_audit_rows(self, db_session, context):
        execute_function_call(db_session, context, "get_cart")
        execute_function_call(db_session, context, "confirm_order")

        calls = actions_of(db_session, context.session_id, "function_called")
        assert sorted(call.payload["function_name"] for call in calls) == ["confirm_order", "get_cart"]
        failures = actions_of(db_session, context.session_id, "validation_failed")
        assert [f.payload["validation_type"] for f in failures] == ["nothing_to_confirm"]

    def test_alias_audited_under_canonical_name(self, db_session, context):
        execute_function_call(db_session, context, "add_service_to_cart", {"service_name": "Trio"})

        calls = actions_of(db_session, context.session_id, "function_called")
        assert calls[0].payload["function_name"] == "add_item"
        assert calls[0].payload["arguments"] == {"service_name": "Trio"}

    def test_validate_cart(self, db_session, context):
        result = execute_function_call(db_session, context, "validate_cart_for_confirmation")

        assert result.success is False
        assert result.code == "nothing_to_confirm"
        assert result.data["valid"] is False

    def test_full_order(self, db_session, context):
        execute_function_call(db_session, context, "add_item", {"item_name": "Trio", "quantity": 3})
        execute_function_call(db_session, context, "set_delivery_address", {"address": "12 Main St"})

        ready = execute_function_call(db_session, context, "validate_cart_for_confirmation")
        placed = execute_function_call(db_session, context, "confirm_order")

        assert ready.success is True
        assert placed.success is True
        assert placed.data["total"] == 17.0
        assert placed.message.startswith(f"Order #{placed.data['order_number']} placed.")

        orders = execute_function_call(db_session, context, "get_my_orders")
        assert [o["id"] for o in orders.data["orders"]] == [placed.data["id"]]


class TestSessionCommands:
    def test_set_mode_logs_intent(self, db_session, context, chat_session):
        result = execute_function_call(
            db_session, context, "detect_intent_and_set_mode", {"intent": "takeaway", "confidence": 0.9}
        )

        assert result.success is True
        assert result.data == {"mode": "takeaway", "step": "start"}
        intents = actions_of(db_session, chat_session.id, "intent_detected")
        assert intents[0].payload["intent"] == "takeaway"
        assert intents[0].payload["confidence"] == 0.9

    def test_invalid_mode(self, db_session, context, chat_session):
        result = execute_function_call(db_session, context, "switch_mode", {"new_mode": "karaoke"})

        assert result.code == "invalid_mode"
        db_session.refresh(chat_session)
        assert chat_session.mode == "delivery"

    def test_session_required(self, db_session, business):
        context = TurnContext(business_id=business.id, customer_id=CUSTOMER, now=NOW)

        result = execute_function_call(db_session, context, "resume_session")

        assert result.code == "invalid_arguments"

    def test_human_handover_locks_session(self, db_session, context, chat_session):
        result = execute_function_call(
            db_session, context, "request_human_assistance", {"reason": "wants to talk to a person"}
        )

        assert result.success is True
        db_session.refresh(chat_session)
        assert chat_session.locked is True
        handovers = actions_of(db_session, chat_session.id, "handover_to_employee")
        assert handovers[0].payload["reason"] == "wants to talk to a person"

    def test_locked_session_refuses_actions(self, db_session, context, chat_session):
        session_service.lock_session(db_session, chat_session.id)

        refused = execute_function_call(db_session, context, "add_item", {"item_name": "Trio"})
        resumed = execute_function_call(db_session, context, "resume_session")

        assert refused.success is False
        assert refused.code == "session_locked"
        assert resumed.success is True
        assert resumed.data["locked"] is True


class TestOrderCommands:
    def test_cancel_without_order_lists_upcoming(self, db_session, context, place_order):
        placed = place_order(["Trio"])

        result = execute_function_call(db_session, context, "cancel_order")

        assert result.success is True
        assert result.message == "Which order would you like to cancel?"
        assert [o["id"] for o in result.data["orders"]] == [placed.id]

    def test_cancel_with_blank_order_id_lists_upcoming(self, db_session, context, place_order):
        placed = place_order(["Trio"])

        result = execute_function_call(db_session, context, "cancel_order", {"order_id": ""})

        assert result.success is True
        assert result.message == "Which order would you like to cancel?"
        assert [o["id"] for o in result.data["orders"]] == [placed.id]
        db_session.refresh(placed)
        assert placed.status == "accepted"

    def test_cancel_by_order_number(self, db_session, context, place_order):
        placed = place_order(["Trio"])

        result = execute_function_call(
            db_session, context, "cancel_scheduled_order", {"order_id": placed.order_number}
        )

        assert result.success is True
        assert result.data["status"] == "rejected"

    def test_eligibility_does_not_cancel(self, db_session, context, place_order):
        placed = place_order(["Catering Tray"])
        context.now = NOW.replace(hour=14, minute=30)

        result = execute_function_call(
            db_session, context, "validate_cancellation_eligibility", {"order_id": placed.id}
        )

        assert result.success is True
        assert result.data["can_cancel"] is False
        assert "can no longer be cancelled" in result.message
        db_session.refresh(placed)
        assert placed.status == "accepted"


class TestHoursCommands:
    def test_is_open_now(self, db_session, context):
        result = execute_function_call(db_session, context, "is_open_now")

        assert result.success is True
        assert result.data["is_open"] is True

    def test_opening_hours(self, db_session, context):
        result = execute_function_call(db_session, context, "get_opening_hours")

        assert len(result.data["hours"]) == 7
        assert result.message.splitlines()[0] == "Monday: open all day"

    def test_next_opening_time_when_open(self, db_session, context):
        result = execute_function_call(db_session, context, "get_next_opening_time")

        assert result.success is True
        assert result.message == "We're open now."
        assert result.data == {"is_open": True, "next_opening": None}

    def test_next_opening_time_when_closed(self, db_session, business, context):
        db_session.query(OpeningHours).filter_by(day_of_week="monday").update({OpeningHours.is_closed: True})
        db_session.commit()

        result = execute_function_call(db_session, context, "get_next_opening_time")

        assert result.message == "We open again Tuesday 2026-03-03 at 00:00."
        assert result.data["next_opening"] == "2026-03-03T00:00:00+00:00"
        closed = execute_function_call(db_session, context, "is_open_now")
        assert closed.data["is_open"] is False
        assert closed.data["next_opening"] == "2026-03-03T00:00:00+00:00"
