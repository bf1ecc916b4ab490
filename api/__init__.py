"""LinkUp client API.

This package exposes the chat client core over HTTP:
- main.py: FastAPI application factory and error mapping
- runtime.py: The single client session the routes drive
- models.py: Pydantic models for requests and responses
- routers/: Session, chats, conversations, users and settings endpoints
"""

# Do not import the app here; importing `api.*` must not build a runtime.
__all__ = []
