"""
Draft Payload Schemas
=====================

The session's draft_payload column is physically a JSON mapping. These
models give it a shape per conversation mode and are applied whenever the
payload crosses the store boundary (read on resume, written on step updates
and mode switches).

- SupportDraft: support conversations carry no order data; always empty.
- OrderDraft: delivery / takeaway / dine_in conversations. The cart
  sub-object is the only part that survives a mode switch and is carried
  as-is, whatever its shape; any other keys are workflow scratch data and
  are kept as extras.

Reads (resume, mode switch) treat an unreadable stored payload as empty.
Writes (step updates) reject one with InvalidDraftPayload.
"""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..errors import InvalidDraftPayload
from ..models import ORDER_MODES

logger = logging.getLogger(__name__)


class SupportDraft(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return {}


class OrderDraft(BaseModel):
    model_config = ConfigDict(extra="allow")

    # Opaque to the session store; services.cart writes {draft_id, item_count, subtotal}
    cart: Optional[Any] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def retained_on_switch(self) -> "OrderDraft":
        """Only the cart is carried into another order-bearing mode."""
        if "cart" not in self.model_fields_set:
            return OrderDraft()
        return OrderDraft(cart=self.cart)


DraftPayload = Union[SupportDraft, OrderDraft]


def parse_draft_payload(mode: str, raw: Any, strict: bool = False) -> DraftPayload:
    """
    Parse a payload for the given mode.

    Args:
        mode: Session mode the payload belongs to
        raw: Stored or caller-supplied payload
        strict: Raise instead of falling back to an empty payload (write path)

    Raises:
        InvalidDraftPayload: strict and the payload is not a mapping, or it
            carries data for a support session
    """
    if mode not in ORDER_MODES:
        if strict and raw not in (None, {}):
            raise InvalidDraftPayload("Support conversations do not carry a draft payload.")
        return SupportDraft()
    if raw is None:
        return OrderDraft()
    if not isinstance(raw, dict):
        if strict:
            raise InvalidDraftPayload(
                f"Draft payload must be a JSON object, got {type(raw).__name__}."
            )
        if raw != "":
            logger.warning("Discarding unreadable draft payload of type %s", type(raw).__name__)
        return OrderDraft()
    return OrderDraft.model_validate(raw)


def filter_payload_for_mode(new_mode: str, current: DraftPayload) -> DraftPayload:
    """Compute the payload that survives a switch into new_mode."""
    if new_mode not in ORDER_MODES:
        return SupportDraft()
    if isinstance(current, OrderDraft):
        return current.retained_on_switch()
    return OrderDraft()
