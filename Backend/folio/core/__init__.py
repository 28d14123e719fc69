"""
Core module - configuration, database and response formatting.
"""
from .config import Settings, get_settings
from .db import AsyncSessionLocal, Base, engine, get_session, get_session_factory
from .responses import ErrorBody, ErrorCodes, error_json, error_response

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "get_session",
    "get_session_factory",
    "Base",
    "engine",
    "AsyncSessionLocal",
    # Responses
    "ErrorBody",
    "ErrorCodes",
    "error_json",
    "error_response",
]
