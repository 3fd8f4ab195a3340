"""
Tests for the model invocation loop. The OpenAI client is replaced by a
MagicMock; no network calls are made.
"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from order_assistant import llm_client
from order_assistant.commands import TurnContext
from order_assistant.services import cart
from tests.helpers import CUSTOMER, NOW


def tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def fake_client(content=None, tool_calls=None):
    client = MagicMock()
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    client.chat.completions.create.return_value = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    return client


@pytest.fixture
def context(business, chat_session):
    return TurnContext(business_id=business.id, customer_id=CUSTOMER, session_id=chat_session.id, now=NOW)


class TestGetClient:
    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setattr(llm_client, "_client", None)

        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            llm_client.get_client()

    def test_client_is_reused(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(llm_client, "_client", None)

        assert llm_client.get_client() is llm_client.get_client()


class TestRunModelTurn:
    def test_plain_reply(self, db_session, context):
        client = fake_client(content="Hi! What can I get you?")

        turn = llm_client.run_model_turn(db_session, context, [{"role": "user", "content": "hi"}], client=client)

        assert turn.reply == "Hi! What can I get you?"
        assert turn.tool_results == []
        assert turn.assistant_message is None

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0]["role"] == "system"
        assert kwargs["tool_choice"] == "auto"
        assert any(tool["function"]["name"] == "add_item" for tool in kwargs["tools"])

    def test_caller_system_prompt_kept(self, db_session, context):
        client = fake_client(content="ok")
        messages = [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "hi"}]

        llm_client.run_model_turn(db_session, context, messages, client=client, model="gpt-test")

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == messages
        assert kwargs["model"] == "gpt-test"

    def test_tool_calls_are_executed(self, db_session, context, key):
        client = fake_client(tool_calls=[
            tool_call("call_1", "add_item", json.dumps({"item_name": "Trio", "quantity": 2})),
            tool_call("call_2", "set_delivery_type", json.dumps({"delivery_type": "takeaway"})),
        ])

        turn = llm_client.run_model_turn(db_session, context, [{"role": "user", "content": "2 trios to go"}], client=client)

        assert [r.result.success for r in turn.tool_results] == [True, True]
        summary = cart.get_cart(db_session, key)
        assert summary.item_count == 2
        assert summary.delivery_type == "takeaway"

        assert turn.assistant_message["tool_calls"][0]["id"] == "call_1"
        message = turn.tool_results[0].to_message()
        assert message["role"] == "tool"
        assert message["tool_call_id"] == "call_1"
        assert json.loads(message["content"])["success"] is True

    def test_bad_arguments(self, db_session, context):
        client = fake_client(tool_calls=[tool_call("call_1", "add_item", "{not json")])

        turn = llm_client.run_model_turn(db_session, context, [{"role": "user", "content": "?"}], client=client)

        result = turn.tool_results[0].result
        assert result.success is False
        assert result.code == "invalid_arguments"
        assert turn.to_dict()["tool_results"][0]["name"] == "add_item"
