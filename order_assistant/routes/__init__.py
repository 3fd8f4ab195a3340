"""
Routes Package for Order Assistant
==================================

HTTP route definitions. Each module defines a FastAPI APIRouter:

- chat.py: session lifecycle and function-call execution

Router Registration:
--------------------
Routers are registered by app_factory.create_app() under two prefixes:
1. /api/v1/* - Versioned API (recommended)
2. /* - Root paths for backward compatibility

Error Handling:
---------------
Routes raise HTTPException for error conditions:
- 400: Bad request (invalid mode, channel or missing identity)
- 404: Not found (unknown session)
- 429: Too many requests (rate limited)

Function-call failures are not HTTP errors; they come back as
ActionResult bodies with success=false.
"""

from .chat import chat_router, limiter

__all__ = ["chat_router", "limiter"]
