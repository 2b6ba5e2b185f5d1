"""
Collaborators consumed by the step executor.

Each concern has an abstract interface (base.py) and a default SQL-backed
implementation bound to the current session. Tests and deployments can supply
their own through ``collaborators_factory``.
"""
from .base import (
    ClientDirectory,
    Collaborators,
    CustomActionHandler,
    DispatchResult,
    MessageRequest,
    Messenger,
)
from .clients import SqlClientDirectory
from .custom_actions import CustomActionRegistry
from .messaging import OutboxMessenger, render_template, resolve_content
from .factory import CollaboratorsFactory, default_collaborators

__all__ = [
    "ClientDirectory",
    "Collaborators",
    "CustomActionHandler",
    "DispatchResult",
    "MessageRequest",
    "Messenger",
    "SqlClientDirectory",
    "CustomActionRegistry",
    "OutboxMessenger",
    "render_template",
    "resolve_content",
    "CollaboratorsFactory",
    "default_collaborators",
]
