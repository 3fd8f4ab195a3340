"""
Schemas Package for Order Assistant
===================================

Pydantic models used at the system's boundaries.

Schema Organization:
--------------------
- **drafts.py**: mode-scoped session draft payloads (SupportDraft / OrderDraft)
- **chat.py**: HTTP request/response bodies for the chat routes

Naming Conventions:
-------------------
- *Request: request bodies (e.g., SessionStartRequest)
- *Response: response structures (e.g., ToolsResponse)
"""
