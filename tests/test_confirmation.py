"""
Tests for turning the ongoing order into a committed Order.
"""
from datetime import timedelta

import pytest

from order_assistant.errors import (
    AddressRequired,
    DeliveryTypeRequired,
    DraftAlreadyConfirmed,
    LeadTimeTooShort,
    NothingToConfirm,
    SchedulingRequired,
)
from order_assistant.models import CartDraft, OpeningHours, Order, OrderStatusHistory
from order_assistant.services import cart
from order_assistant.services.order import confirm_order, order_to_dict, validate_for_confirmation
from tests.helpers import NOW


class TestConfirmationScenarios:
    """The walk-throughs a customer actually hits."""

    def test_empty_cart(self, db_session, key):
        with pytest.raises(NothingToConfirm) as exc_info:
            confirm_order(db_session, key, now=NOW)

        assert exc_info.value.message == "Cart is empty. Please add items first."
        assert db_session.query(Order).count() == 0

    def test_delivery_without_address(self, db_session, key):
        cart.add_item(db_session, key, "Trio", 3, now=NOW)
        cart.set_delivery_type(db_session, key, "delivery")

        with pytest.raises(AddressRequired) as exc_info:
            confirm_order(db_session, key, now=NOW)

        assert "provide your delivery address" in exc_info.value.message
        assert db_session.query(Order).count() == 0

    def test_schedulable_item_walkthrough(self, db_session, key):
        cart.add_item(db_session, key, "Catering Tray", now=NOW)
        cart.set_delivery_address(db_session, key, "12 Main St")

        with pytest.raises(SchedulingRequired) as exc_info:
            confirm_order(db_session, key, now=NOW)
        assert exc_info.value.details["items"] == ["Catering Tray"]

        with pytest.raises(LeadTimeTooShort):
            cart.set_scheduled_time(db_session, key, NOW + timedelta(hours=1), now=NOW)

        cart.set_scheduled_time(db_session, key, NOW + timedelta(hours=4), now=NOW)
        result = confirm_order(db_session, key, now=NOW)

        order = result.order
        assert order.status == "accepted"
        assert order.delivery_type == "delivery"
        assert order.address == "12 Main St"
        assert order.subtotal == 45.0
        assert order.delivery_fee == 3.5
        assert order.total == 48.5


class TestPreconditions:
    def test_delivery_type_required(self, db_session, key):
        cart.add_item(db_session, key, "Trio", now=NOW)

        with pytest.raises(DeliveryTypeRequired):
            confirm_order(db_session, key, now=NOW)

    def test_gps_location_satisfies_address(self, db_session, key):
        cart.add_item(db_session, key, "Trio", now=NOW)
        cart.set_delivery_type(db_session, key, "delivery")
        cart.set_location(db_session, key, 40.7128, -74.006)

        order = confirm_order(db_session, key, now=NOW).order

        assert order.address is None
        assert order.latitude == 40.7128

    def test_immediate_order_while_closed(self, db_session, business, key):
        db_session.query(OpeningHours).update({OpeningHours.is_closed: True})
        db_session.commit()
        cart.add_item(db_session, key, "Trio", now=NOW)
        cart.set_delivery_type(db_session, key, "takeaway")

        with pytest.raises(SchedulingRequired) as exc_info:
            confirm_order(db_session, key, now=NOW)

        assert exc_info.value.details["reason"] == "closed"
        assert "currently closed" in exc_info.value.message
        assert exc_info.value.details["next_opening"] is None

    def test_closed_today_reports_next_opening(self, db_session, business, key):
        db_session.query(OpeningHours).filter_by(day_of_week="monday").update({OpeningHours.is_closed: True})
        db_session.commit()
        cart.add_item(db_session, key, "Trio", now=NOW)
        cart.set_delivery_type(db_session, key, "takeaway")

        with pytest.raises(SchedulingRequired) as exc_info:
            confirm_order(db_session, key, now=NOW)

        assert exc_info.value.details["next_opening"] == "2026-03-03T00:00:00+00:00"
        assert "We open again Tuesday 2026-03-03 at 00:00." in exc_info.value.message

    def test_validate_reports_every_failure(self, db_session, key):
        cart.add_item(db_session, key, "Catering Tray", now=NOW)
        cart.set_delivery_type(db_session, key, "delivery")

        check = validate_for_confirmation(db_session, key, now=NOW)

        assert check.valid is False
        assert [error.code for error in check.errors] == ["address_required", "scheduling_required"]
        assert check.to_dict()["errors"][0]["code"] == "address_required"

    def test_validate_writes_nothing(self, db_session, key):
        cart.add_item(db_session, key, "Trio", now=NOW)
        cart.set_delivery_type(db_session, key, "takeaway")

        check = validate_for_confirmation(db_session, key, now=NOW)

        assert check.valid is True
        assert db_session.query(Order).count() == 0
        assert cart.get_open_draft(db_session, key) is not None


class TestCommit:
    """Snapshot, history and exactly-once semantics."""

    def test_order_snapshot(self, db_session, key):
        cart.add_item(db_session, key, "Trio", 3, now=NOW)
        cart.add_item(db_session, key, "Lemonade", 2, now=NOW)
        cart.set_delivery_address(db_session, key, "12 Main St")
        cart.set_order_notes(db_session, key, "  extra napkins ")

        order = confirm_order(db_session, key, now=NOW).order

        assert [(i.item_name, i.quantity, i.line_total) for i in order.items] == [
            ("Trio", 3, 13.5),
            ("Lemonade", 2, 4.0),
        ]
        assert order.subtotal == 17.5
        assert order.total == 21.0
        assert order.notes == "extra napkins"
        assert order.order_number == order.id[:8].upper()

        data = order_to_dict(order)
        assert data["status"] == "accepted"
        assert data["items"][0]["name"] == "Trio"
        assert data["scheduled_for"] is None

    def test_takeaway_has_no_delivery_fee(self, db_session, key):
        cart.add_item(db_session, key, "Trio", now=NOW)
        cart.set_delivery_address(db_session, key, "12 Main St")
        cart.set_delivery_type(db_session, key, "takeaway")

        order = confirm_order(db_session, key, now=NOW).order

        assert order.delivery_fee == 0.0
        assert order.total == 4.5

    def test_status_history_row(self, db_session, key, place_order):
        order = place_order(["Trio"])

        history = db_session.query(OrderStatusHistory).filter_by(order_id=order.id).all()
        assert len(history) == 1
        assert history[0].status == "accepted"
        assert history[0].changed_by == "customer"

    def test_draft_archived(self, db_session, key, place_order):
        order = place_order(["Trio"])

        draft = db_session.query(CartDraft).filter_by(order_id=order.id).one()
        assert draft.status == "confirmed"
        assert cart.get_open_draft(db_session, key) is None

    def test_second_confirm_finds_nothing(self, db_session, key, place_order):
        place_order(["Trio"])

        with pytest.raises(NothingToConfirm):
            confirm_order(db_session, key, now=NOW)

        assert db_session.query(Order).count() == 1

    def test_competing_commit_for_same_draft(self, db_session, business, key):
        cart.add_item(db_session, key, "Trio", now=NOW)
        cart.set_delivery_type(db_session, key, "takeaway")
        draft = cart.get_open_draft(db_session, key)
        # Another request committed this draft but has not archived it yet
        db_session.add(Order(
            id="00000000-0000-0000-0000-000000000001",
            business_id=business.id,
            customer_id=key.customer_id,
            draft_id=draft.id,
            delivery_type="takeaway",
        ))
        db_session.commit()

        with pytest.raises(DraftAlreadyConfirmed) as exc_info:
            confirm_order(db_session, key, now=NOW)

        assert exc_info.value.code == "draft_already_confirmed"
        assert db_session.query(Order).filter_by(draft_id=draft.id).count() == 1

    def test_session_cart_reference_cleared(self, db_session, key, chat_session):
        cart.add_item(db_session, key, "Trio", session_id=chat_session.id, now=NOW)
        cart.set_delivery_type(db_session, key, "takeaway", session_id=chat_session.id)
        db_session.refresh(chat_session)
        assert "cart" in chat_session.draft_payload

        confirm_order(db_session, key, session_id=chat_session.id, now=NOW)

        db_session.refresh(chat_session)
        assert "cart" not in (chat_session.draft_payload or {})
