"""
Chat Routes for Order Assistant
===============================

Customer-facing endpoints used by the channel transports (WhatsApp,
Telegram, web widget, ...) and by the model-invocation loop.

Endpoints:
----------
- POST /chat/sessions: Open the customer's eligible session or create one
- GET /chat/sessions/{session_id}/resume: Mode, step and draft for continuity
- POST /chat/actions: Execute one model function call
- GET /chat/tools: Function definitions to send to the model

Rate Limiting:
--------------
POST /chat/actions is rate limited (default: 60/minute per client) to
bound model-driven write traffic.

Retries:
--------
Function calls are retried on TransientStoreError (STORE_RETRY_ATTEMPTS);
when retries run out the call comes back as a retryable ActionResult.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..commands import ActionResult, TurnContext, execute_function_call, tool_definitions
from ..config import RATE_LIMIT_ENABLED, STORE_RETRY_ATTEMPTS, get_rate_limit_actions
from ..db import get_db
from ..errors import NotFoundError, TransientStoreError, ValidationError
from ..schemas.chat import ActionRequest, SessionOut, SessionStartRequest, ToolsResponse
from ..services.session import get_or_create_session, get_session, resume_session
from ..services.transaction import run_with_retry


logger = logging.getLogger(__name__)

chat_router = APIRouter(prefix="/chat", tags=["Chat"])

limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)


def _session_out(chat_session) -> SessionOut:
    return SessionOut(
        session_id=chat_session.id,
        business_id=chat_session.business_id,
        customer_id=chat_session.customer_id,
        channel=chat_session.channel,
        mode=chat_session.mode,
        step=chat_session.step,
        draft_payload=chat_session.draft_payload or {},
        locked=bool(chat_session.locked),
        assigned_employee_id=chat_session.assigned_employee_id,
    )


@chat_router.post("/sessions", response_model=SessionOut)
def open_session(req: SessionStartRequest, db: Session = Depends(get_db)) -> SessionOut:
    """
    Return the customer's eligible session for this channel, creating one
    when none exists.
    """
    try:
        chat_session = get_or_create_session(db, req.business_id, req.customer_id, req.channel, req.mode)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return _session_out(chat_session)


@chat_router.get("/sessions/{session_id}/resume")
def resume(
    session_id: str,
    db: Session = Depends(get_db),
    business_id: Optional[int] = Query(None, description="Restrict lookup to this business"),
):
    try:
        state = resume_session(db, session_id, business_id=business_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    return state.to_dict()


@chat_router.post("/actions", response_model=ActionResult)
@limiter.limit(get_rate_limit_actions)
def execute_action(
    request: Request,
    req: ActionRequest,
    db: Session = Depends(get_db),
) -> ActionResult:
    """
    Execute one function call for a customer.

    Business and customer come from the session when one is given, so a
    caller cannot act on another customer's order through a session id.
    """
    if req.session_id:
        try:
            chat_session = get_session(db, req.session_id, business_id=req.business_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message)
        context = TurnContext(
            business_id=chat_session.business_id,
            customer_id=chat_session.customer_id,
            session_id=chat_session.id,
            branch_id=req.branch_id,
        )
    elif req.business_id is not None and req.customer_id:
        context = TurnContext(
            business_id=req.business_id,
            customer_id=req.customer_id,
            branch_id=req.branch_id,
        )
    else:
        raise HTTPException(status_code=400, detail="Provide a session_id, or business_id and customer_id")

    try:
        return run_with_retry(
            lambda: execute_function_call(db, context, req.name, req.arguments, raise_transient=True),
            attempts=STORE_RETRY_ATTEMPTS,
        )
    except TransientStoreError as exc:
        logger.error("Giving up on %s for session %s after %d attempts", req.name, context.session_id, STORE_RETRY_ATTEMPTS)
        return ActionResult.failure(exc)


@chat_router.get("/tools", response_model=ToolsResponse)
def list_tools() -> ToolsResponse:
    return ToolsResponse(tools=tool_definitions())
