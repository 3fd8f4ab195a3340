"""
Tests for the chat HTTP endpoints.
"""
import functools

import pytest

from order_assistant.commands import ActionResult
from order_assistant.config import STORE_RETRY_ATTEMPTS
from order_assistant.errors import TransientStoreError
from order_assistant.routes import chat
from order_assistant.services.transaction import run_with_retry
from tests.helpers import CUSTOMER


def open_session(client, business, **overrides):
    body = {"business_id": business.id, "customer_id": CUSTOMER, "channel": "whatsapp"}
    body.update(overrides)
    return client.post("/chat/sessions", json=body)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestSessions:
    def test_open_session(self, client, business):
        response = open_session(client, business, mode="takeaway")

        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "takeaway"
        assert data["step"] == "start"
        assert data["locked"] is False

    def test_reopen_returns_same_session(self, client, business):
        first = open_session(client, business).json()
        second = open_session(client, business).json()

        assert first["session_id"] == second["session_id"]

    def test_invalid_channel(self, client, business):
        response = open_session(client, business, channel="fax")

        assert response.status_code == 400

    def test_invalid_mode(self, client, business):
        response = open_session(client, business, mode="karaoke")

        assert response.status_code == 400

    def test_resume(self, client, business):
        session_id = open_session(client, business, mode="delivery").json()["session_id"]

        response = client.get(f"/chat/sessions/{session_id}/resume", params={"business_id": business.id})

        assert response.status_code == 200
        assert response.json()["mode"] == "delivery"

    def test_resume_unknown_session(self, client):
        response = client.get("/chat/sessions/does-not-exist/resume")

        assert response.status_code == 404

    def test_versioned_prefix(self, client, business):
        session_id = open_session(client, business).json()["session_id"]

        response = client.get(f"/api/v1/chat/sessions/{session_id}/resume")

        assert response.status_code == 200


class TestActions:
    """POST /chat/actions"""

    def test_action_in_session(self, client, business):
        session_id = open_session(client, business, mode="takeaway").json()["session_id"]

        response = client.post("/chat/actions", json={
            "name": "add_item",
            "arguments": {"item_name": "Trio", "quantity": 2},
            "session_id": session_id,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["subtotal"] == 9.0

        resumed = client.get(f"/chat/sessions/{session_id}/resume").json()
        assert resumed["draft_payload"]["cart"]["item_count"] == 2

    def test_action_by_identity(self, client, business):
        response = client.post("/chat/actions", json={
            "name": "get_cart",
            "business_id": business.id,
            "customer_id": CUSTOMER,
        })

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_identity_required(self, client):
        response = client.post("/chat/actions", json={"name": "get_cart"})

        assert response.status_code == 400

    def test_unknown_session(self, client):
        response = client.post("/chat/actions", json={"name": "get_cart", "session_id": "nope"})

        assert response.status_code == 404

    def test_refusal_is_a_result(self, client, business):
        response = client.post("/chat/actions", json={
            "name": "confirm_order",
            "business_id": business.id,
            "customer_id": CUSTOMER,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["code"] == "nothing_to_confirm"
        assert data["error"] == "Cart is empty. Please add items first."


class TestStoreRetries:
    """Transient store failures are retried before a result is returned."""

    @pytest.fixture
    def no_backoff(self, monkeypatch):
        monkeypatch.setattr(chat, "run_with_retry", functools.partial(run_with_retry, sleep=lambda seconds: None))

    def test_succeeds_after_transient_failures(self, client, business, monkeypatch, no_backoff):
        calls = []

        def flaky(db, context, name, arguments=None, raise_transient=False):
            calls.append(name)
            if len(calls) < 3:
                raise TransientStoreError()
            return ActionResult.ok("Cart is empty.", {"items": []})

        monkeypatch.setattr(chat, "execute_function_call", flaky)

        response = client.post("/chat/actions", json={
            "name": "get_cart",
            "business_id": business.id,
            "customer_id": CUSTOMER,
        })

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert calls == ["get_cart"] * 3

    def test_gives_up_with_retryable_result(self, client, business, monkeypatch, no_backoff):
        calls = []

        def unavailable(db, context, name, arguments=None, raise_transient=False):
            calls.append(raise_transient)
            raise TransientStoreError()

        monkeypatch.setattr(chat, "execute_function_call", unavailable)

        response = client.post("/chat/actions", json={
            "name": "get_cart",
            "business_id": business.id,
            "customer_id": CUSTOMER,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["retryable"] is True
        assert data["code"] == "store_unavailable"
        assert calls == [True] * STORE_RETRY_ATTEMPTS


def test_tools(client):
    response = client.get("/chat/tools")

    assert response.status_code == 200
    names = {tool["function"]["name"] for tool in response.json()["tools"]}
    assert {"add_item", "confirm_order", "cancel_order", "switch_mode"} <= names
