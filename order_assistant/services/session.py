"""
Session Management Service for Order Assistant
==============================================

This module owns the durable conversation record (ChatSession) and the
conversation-mode state machine bound to it.

Session Identity:
-----------------
A session is keyed by (business, customer, channel). At most one session per
key is *eligible* at a time: unlocked and not assigned to an employee. Locked
or handed-over sessions are kept for audit and resume but a new inbound
conversation never reuses them.

Modes and Steps:
----------------
- mode: delivery | takeaway | dine_in | support. Only switch_mode() changes it
  (get_or_create_session may re-point an eligible session at a new mode on
  entry).
- step: free-form workflow label owned by the calling workflow. Every mode
  change resets it to "start" so the workflow restarts its sub-flow.

Draft Payload:
--------------
The draft payload is parsed into SupportDraft / OrderDraft (schemas.drafts)
on the way in and serialized on the way out. On a mode switch only the cart
sub-object survives, unchanged, into another order-bearing mode; support
always gets an empty payload. update_session_step rejects a payload that is
not a mapping; reads treat an unreadable stored payload as empty.

Transactions:
-------------
Each mutation commits in one transaction (services.transaction.atomic).
Mode switches are audited after the commit; audit failures never undo a
switch.

Usage:
------
    from order_assistant.services.session import get_or_create_session, switch_mode

    session = get_or_create_session(db, business_id=1, customer_id="+15550100", channel="whatsapp")
    session = switch_mode(db, session.id, "delivery", reason="customer asked for delivery")
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from ..errors import InvalidChannel, InvalidMode, SessionNotFound
from ..models import CHANNELS, ORDER_MODES, SESSION_MODES, ChatSession
from ..schemas.drafts import filter_payload_for_mode, parse_draft_payload
from . import audit
from .transaction import atomic


logger = logging.getLogger(__name__)

DEFAULT_STEP = "start"
DEFAULT_MODE = "support"


@dataclass
class ResumeState:
    """What a workflow needs to pick a conversation back up."""
    session_id: str
    business_id: int
    customer_id: str
    channel: str
    mode: str
    step: str
    draft_payload: Dict[str, Any]
    locked: bool
    assigned_employee_id: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "business_id": self.business_id,
            "customer_id": self.customer_id,
            "channel": self.channel,
            "mode": self.mode,
            "step": self.step,
            "draft_payload": self.draft_payload,
            "locked": self.locked,
            "assigned_employee_id": self.assigned_employee_id,
        }


# =============================================================================
# Validation Helpers
# =============================================================================

def _validate_mode(mode: str) -> None:
    if mode not in SESSION_MODES:
        raise InvalidMode(mode, SESSION_MODES)


def _validate_channel(channel: str) -> None:
    if channel not in CHANNELS:
        raise InvalidChannel(channel, CHANNELS)


def _write_payload(chat_session: ChatSession, payload: Dict[str, Any]) -> None:
    chat_session.draft_payload = payload
    # JSON columns need an explicit nudge when reassigned to an equal-looking dict
    flag_modified(chat_session, "draft_payload")


# =============================================================================
# Lookup
# =============================================================================

def get_session(db: Session, session_id: str, business_id: Optional[int] = None) -> ChatSession:
    """
    Fetch a session by id, optionally scoped to a business.

    Raises:
        SessionNotFound: no such session, or it belongs to another business
    """
    query = db.query(ChatSession).filter(ChatSession.id == session_id)
    if business_id is not None:
        query = query.filter(ChatSession.business_id == business_id)
    chat_session = query.first()
    if chat_session is None:
        raise SessionNotFound(session_id)
    return chat_session


def find_eligible_session(
    db: Session,
    business_id: int,
    customer_id: str,
    channel: str,
) -> Optional[ChatSession]:
    """The unlocked, unassigned session for the key, most recently updated first."""
    return (
        db.query(ChatSession)
        .filter(
            ChatSession.business_id == business_id,
            ChatSession.customer_id == customer_id,
            ChatSession.channel == channel,
            ChatSession.locked.is_(False),
            ChatSession.assigned_employee_id.is_(None),
        )
        .order_by(ChatSession.updated_at.desc(), ChatSession.created_at.desc())
        .first()
    )


def list_business_sessions(
    db: Session,
    business_id: int,
    employee_id: Optional[str] = None,
) -> List[ChatSession]:
    """All sessions for a business, optionally only those assigned to one employee."""
    query = db.query(ChatSession).filter(ChatSession.business_id == business_id)
    if employee_id:
        query = query.filter(ChatSession.assigned_employee_id == employee_id)
    return query.order_by(ChatSession.updated_at.desc()).all()


# =============================================================================
# Lifecycle
# =============================================================================

def get_or_create_session(
    db: Session,
    business_id: int,
    customer_id: str,
    channel: str,
    mode: str = DEFAULT_MODE,
) -> ChatSession:
    """
    Return the eligible session for (business, customer, channel), creating
    one if none exists.

    An existing session whose mode differs from the supplied one is moved to
    that mode in place; its step and payload are left for the workflow.
    """
    _validate_mode(mode)
    _validate_channel(channel)

    with atomic(db):
        chat_session = find_eligible_session(db, business_id, customer_id, channel)
        if chat_session is not None:
            if chat_session.mode != mode:
                logger.info(
                    "Session %s re-entered in mode %s (was %s)",
                    chat_session.id, mode, chat_session.mode,
                )
                chat_session.mode = mode
            return chat_session

        chat_session = ChatSession(
            id=str(uuid.uuid4()),
            business_id=business_id,
            customer_id=customer_id,
            channel=channel,
            mode=mode,
            step=DEFAULT_STEP,
            draft_payload={},
            locked=False,
        )
        db.add(chat_session)

    logger.info("Created session %s for business %s on %s", chat_session.id, business_id, channel)
    return chat_session


def update_session_step(
    db: Session,
    session_id: str,
    step: str,
    draft_payload: Optional[Dict[str, Any]] = None,
) -> ChatSession:
    """
    Record workflow progress. A supplied payload is parsed for the session's
    mode before it is stored.

    Raises:
        InvalidDraftPayload: the payload is not a mapping, or the session is
            in support mode and the payload is not empty (nothing is written)
    """
    with atomic(db):
        chat_session = get_session(db, session_id)
        chat_session.step = step
        if draft_payload is not None:
            parsed = parse_draft_payload(chat_session.mode, draft_payload, strict=True)
            _write_payload(chat_session, parsed.to_payload())
    return chat_session


def update_cart_reference(
    db: Session,
    session_id: str,
    cart_ref: Optional[Dict[str, Any]],
) -> None:
    """
    Mirror the ongoing order into draft_payload["cart"] (or drop it when
    cart_ref is None). Support sessions carry no cart. Joins the caller's
    transaction; the caller commits.
    """
    chat_session = db.get(ChatSession, session_id)
    if chat_session is None or chat_session.mode not in ORDER_MODES:
        return
    payload = parse_draft_payload(chat_session.mode, chat_session.draft_payload).to_payload()
    if cart_ref is None:
        payload.pop("cart", None)
    else:
        payload["cart"] = cart_ref
    _write_payload(chat_session, payload)


def switch_mode(
    db: Session,
    session_id: str,
    new_mode: str,
    reason: Optional[str] = None,
) -> ChatSession:
    """
    Move a session to another conversation mode.

    Switching to the current mode changes nothing. Otherwise the payload is
    filtered for the new mode, step resets to "start", and the switch is
    audited as mode_switched.

    Raises:
        InvalidMode: new_mode is not a recognized mode (nothing is written)
        SessionNotFound: unknown session
    """
    _validate_mode(new_mode)

    chat_session = get_session(db, session_id)
    old_mode = chat_session.mode
    if old_mode == new_mode:
        logger.debug("Session %s already in mode %s", session_id, new_mode)
        return chat_session

    with atomic(db):
        current = parse_draft_payload(old_mode, chat_session.draft_payload)
        filtered = filter_payload_for_mode(new_mode, current)
        chat_session.mode = new_mode
        chat_session.step = DEFAULT_STEP
        _write_payload(chat_session, filtered.to_payload())

    logger.info("Session %s switched mode %s -> %s (%s)", session_id, old_mode, new_mode, reason or "no reason")
    audit.log_mode_switch(db, session_id, old_mode, new_mode, reason)
    return chat_session


def resume_session(db: Session, session_id: str, business_id: Optional[int] = None) -> ResumeState:
    """
    Load a session for conversational continuity.

    Unreadable payloads come back empty; a missing step or mode defaults to
    "start" / "support". The stored row is not modified.
    """
    chat_session = get_session(db, session_id, business_id)

    mode = chat_session.mode if chat_session.mode in SESSION_MODES else DEFAULT_MODE
    step = chat_session.step or DEFAULT_STEP
    draft = parse_draft_payload(mode, chat_session.draft_payload)

    return ResumeState(
        session_id=chat_session.id,
        business_id=chat_session.business_id,
        customer_id=chat_session.customer_id,
        channel=chat_session.channel,
        mode=mode,
        step=step,
        draft_payload=draft.to_payload(),
        locked=bool(chat_session.locked),
        assigned_employee_id=chat_session.assigned_employee_id,
    )


# =============================================================================
# Lock / Handover
# =============================================================================

def lock_session(db: Session, session_id: str) -> ChatSession:
    with atomic(db):
        chat_session = get_session(db, session_id)
        chat_session.locked = True
    logger.info("Session %s locked", session_id)
    return chat_session


def unlock_session(db: Session, session_id: str) -> ChatSession:
    with atomic(db):
        chat_session = get_session(db, session_id)
        chat_session.locked = False
    logger.info("Session %s unlocked", session_id)
    return chat_session


def assign_employee(
    db: Session,
    session_id: str,
    employee_id: str,
    reason: Optional[str] = None,
) -> ChatSession:
    """Hand a conversation to a staff member. Assignment always locks the session."""
    with atomic(db):
        chat_session = get_session(db, session_id)
        chat_session.assigned_employee_id = employee_id
        chat_session.locked = True
    logger.info("Session %s assigned to employee %s", session_id, employee_id)
    audit.log_handover(db, session_id, employee_id, reason)
    return chat_session
