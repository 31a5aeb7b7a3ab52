"""
Services package - Business logic layer.

This package contains business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - dispatch: Tiered transport offer dispatch engine
"""

from .dispatch import (
    DispatchScheduler,
    get_dispatch_scheduler,
    DispatchError,
    NoCandidatesError,
    NotActiveError,
    AlreadyRespondedError,
    ForbiddenError,
    ConflictError,
)

__all__ = [
    "DispatchScheduler",
    "get_dispatch_scheduler",
    # Exceptions
    "DispatchError",
    "NoCandidatesError",
    "NotActiveError",
    "AlreadyRespondedError",
    "ForbiddenError",
    "ConflictError",
]
