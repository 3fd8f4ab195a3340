"""
Model invocation for conversation turns.

Sends the conversation to OpenAI with the command tool definitions, runs
every returned tool call through the command dispatcher, and hands back the
model's reply with the tool results. Prompt wording is owned by the caller;
only a minimal default system message is provided.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import OpenAI
from sqlalchemy.orm import Session

from .commands import ActionResult, TurnContext, execute_function_call, tool_definitions
from .config import OPENAI_MODEL
from .errors import InvalidArguments

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an ordering assistant for a single business. Use the provided functions to "
    "read and change the customer's order. Only call confirm_order after the customer "
    "explicitly confirms. Relay function errors to the customer as plain requests for "
    "the missing information."
)

_client: Optional[OpenAI] = None


def get_client() -> OpenAI:
    """
    Lazily create the OpenAI client from OPENAI_API_KEY.

    config has already loaded the project .env.
    """
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        logger.debug("OpenAI API key configured: %s", "Yes" if api_key else "No")
        if not api_key:
            raise RuntimeError(
                "OPENAI_API_KEY is not set. "
                "Create a .env file with OPENAI_API_KEY=sk-proj-... at the project root."
            )
        _client = OpenAI(api_key=api_key)
    return _client


@dataclass
class ToolResult:
    tool_call_id: str
    name: str
    result: ActionResult

    def to_message(self) -> Dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "content": self.result.model_dump_json(exclude_none=True),
        }


@dataclass
class ModelTurn:
    reply: Optional[str]
    tool_results: List[ToolResult] = field(default_factory=list)
    assistant_message: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "tool_results": [
                {"name": r.name, "result": r.result.model_dump()} for r in self.tool_results
            ],
        }


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidArguments(f"Function arguments are not valid JSON: {exc}", "arguments") from exc
    if not isinstance(parsed, dict):
        raise InvalidArguments("Function arguments must be a JSON object.", "arguments")
    return parsed


def run_model_turn(
    db: Session,
    context: TurnContext,
    messages: List[Dict[str, Any]],
    client: Optional[OpenAI] = None,
    model: Optional[str] = None,
) -> ModelTurn:
    """
    Run one model call and execute the tool calls it returns.

    Args:
        db: Database session for the dispatcher
        context: Business / customer / session of this turn
        messages: OpenAI chat messages; a default system message is prepended
            when none is present
        client: OpenAI client (defaults to get_client())
        model: Model name (defaults to OPENAI_MODEL)
    """
    client = client or get_client()
    model = model or OPENAI_MODEL

    if not messages or messages[0].get("role") != "system":
        messages = [{"role": "system", "content": DEFAULT_SYSTEM_PROMPT}] + list(messages)

    logger.debug("Calling %s with %d messages", model, len(messages))
    response = client.chat.completions.create(
        model=model,
        messages=messages,
        tools=tool_definitions(),
        tool_choice="auto",
    )
    message = response.choices[0].message
    tool_calls = message.tool_calls or []

    turn = ModelTurn(reply=message.content)
    if tool_calls:
        turn.assistant_message = {
            "role": "assistant",
            "content": message.content,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.function.name, "arguments": call.function.arguments},
                }
                for call in tool_calls
            ],
        }

    for call in tool_calls:
        name = call.function.name
        try:
            arguments = _parse_arguments(call.function.arguments)
        except InvalidArguments as exc:
            logger.warning("Model sent unparseable arguments for %s: %s", name, exc.message)
            result = ActionResult.failure(exc)
        else:
            result = execute_function_call(db, context, name, arguments)
        turn.tool_results.append(ToolResult(tool_call_id=call.id, name=name, result=result))

    logger.info(
        "Model turn for session %s: %d tool call(s)", context.session_id, len(turn.tool_results)
    )
    return turn
