"""
Bot Action Audit Log
====================

Records what the assistant did in a session (function calls, detected
intents, mode switches, validation failures, handovers) to the bot_actions
table for debugging and analytics.

Writes are best-effort: a failure is logged and swallowed, and the caller's
operation carries on. Audit rows are committed separately, after the
operation they describe has committed, so a broken audit table can never
roll back a customer-facing change.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import BotAction
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


def _json_safe(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # Datetimes, Decimals and friends become strings
    return json.loads(json.dumps(payload or {}, default=str))


def log_action(
    db: Session,
    session_id: Optional[str],
    action_type: str,
    payload: Optional[Dict[str, Any]] = None,
) -> Optional[int]:
    """
    Append an audit row and commit it.

    Returns:
        The new row id, or None if the write failed.
    """
    try:
        action = BotAction(
            session_id=session_id,
            action_type=action_type,
            payload=_json_safe(payload),
        )
        db.add(action)
        db.commit()
        return action.id
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error logging bot action %s for session %s: %s", action_type, session_id, exc)
        return None


def get_session_actions(db: Session, session_id: str, limit: int = 100) -> List[BotAction]:
    """Most recent actions for a session, newest first."""
    return (
        db.query(BotAction)
        .filter(BotAction.session_id == session_id)
        .order_by(BotAction.created_at.desc(), BotAction.id.desc())
        .limit(limit)
        .all()
    )


def log_function_call(
    db: Session,
    session_id: Optional[str],
    function_name: str,
    arguments: Dict[str, Any],
    result: Dict[str, Any],
) -> Optional[int]:
    return log_action(db, session_id, "function_called", {
        "function_name": function_name,
        "arguments": arguments,
        "result": result,
        "success": result.get("success") is not False,
        "timestamp": utcnow().isoformat(),
    })


def log_intent(
    db: Session,
    session_id: Optional[str],
    intent: str,
    confidence: Optional[float],
    mode: Optional[str] = None,
) -> Optional[int]:
    payload = {
        "intent": intent,
        "confidence": confidence,
        "timestamp": utcnow().isoformat(),
    }
    if mode:
        payload["mode"] = mode
    return log_action(db, session_id, "intent_detected", payload)


def log_validation_failure(
    db: Session,
    session_id: Optional[str],
    validation_type: str,
    message: str,
) -> Optional[int]:
    return log_action(db, session_id, "validation_failed", {
        "validation_type": validation_type,
        "message": message,
        "timestamp": utcnow().isoformat(),
    })


def log_handover(
    db: Session,
    session_id: str,
    employee_id: Optional[str],
    reason: Optional[str] = None,
) -> Optional[int]:
    return log_action(db, session_id, "handover_to_employee", {
        "employee_id": employee_id,
        "reason": reason,
        "timestamp": utcnow().isoformat(),
    })


def log_mode_switch(
    db: Session,
    session_id: str,
    old_mode: str,
    new_mode: str,
    reason: Optional[str] = None,
) -> Optional[int]:
    return log_action(db, session_id, "mode_switched", {
        "old_mode": old_mode,
        "new_mode": new_mode,
        "reason": reason,
        "timestamp": utcnow().isoformat(),
    })
