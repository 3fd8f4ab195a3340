"""
Services Package for Order Assistant
====================================

Service modules hold the ordering business logic. Routes and the command
dispatcher call into them; they never import from routes.

Available Services:
-------------------
- **session**: conversation sessions and the mode state machine
- **cart**: the customer's ongoing order (lines, delivery, schedule, notes)
- **order**: confirmation guard and order creation
- **cancellation**: cancellation policy for committed orders
- **catalog** / **catalog_cache**: cached read path over catalog items
- **opening_hours**: weekly opening-hours resolution
- **scheduling**: schedule validation against hours and lead times
- **audit**: best-effort bot action log
- **transaction**: atomic() and retry helpers

Services receive a SQLAlchemy Session from the caller and raise
order_assistant.errors exceptions on failure.

Usage:
------
    from order_assistant.services import cart, order
    from order_assistant.services.cart import CartKey

    key = CartKey(business_id=1, customer_id="+15550100")
    cart.add_item(db, key, "trio", quantity=3)
    order.confirm_order(db, key)
"""

from . import audit
from . import transaction
from . import catalog_cache
from . import catalog
from . import opening_hours
from . import scheduling
from . import session
from . import cart
from . import order
from . import cancellation

__all__ = [
    "audit",
    "transaction",
    "catalog_cache",
    "catalog",
    "opening_hours",
    "scheduling",
    "session",
    "cart",
    "order",
    "cancellation",
]
