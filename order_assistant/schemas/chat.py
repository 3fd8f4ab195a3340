"""
Chat Schemas for Order Assistant
================================

Pydantic models for the chat HTTP endpoints.

Endpoint Coverage:
------------------
- POST /chat/sessions: open (or re-enter) a conversation session
- GET /chat/sessions/{session_id}/resume: load state to continue a conversation
- POST /chat/actions: execute one model function call
- GET /chat/tools: function definitions for the model

Action results reuse commands.ActionResult so the HTTP body and the tool
message sent back to the model have the same shape.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SessionStartRequest(BaseModel):
    """
    Request body for opening a session.

    Attributes:
        business_id: Business the customer is talking to
        customer_id: Channel-specific customer reference (phone, handle, ...)
        channel: whatsapp | telegram | instagram | facebook | web
        mode: Initial conversation mode (default: support)
    """
    business_id: int
    customer_id: str = Field(..., min_length=1)
    channel: str
    mode: str = "support"


class SessionOut(BaseModel):
    session_id: str
    business_id: int
    customer_id: str
    channel: str
    mode: str
    step: str
    draft_payload: Dict[str, Any] = Field(default_factory=dict)
    locked: bool = False
    assigned_employee_id: Optional[str] = None


class ActionRequest(BaseModel):
    """
    Request body for executing a function call.

    With a session_id, business and customer are taken from the session.
    Without one, business_id and customer_id must be supplied and session
    actions (mode switches, resume, handover) are refused.

    Attributes:
        name: Function name as emitted by the model (legacy names accepted)
        arguments: JSON arguments of the call
    """
    name: str = Field(..., min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
    business_id: Optional[int] = None
    customer_id: Optional[str] = None
    branch_id: Optional[int] = None


class ToolsResponse(BaseModel):
    tools: List[Dict[str, Any]]
