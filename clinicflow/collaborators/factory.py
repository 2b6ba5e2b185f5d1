from typing import Callable, Optional

from sqlmodel import Session

from ..util.clock import Clock, now_ms
from .base import Collaborators, CustomActionHandler
from .clients import SqlClientDirectory
from .custom_actions import CustomActionRegistry
from .messaging import OutboxMessenger

CollaboratorsFactory = Callable[[Session, Clock], Collaborators]


def default_collaborators(session: Session, clock: Clock = now_ms,
                          custom_actions: Optional[CustomActionHandler] = None) -> Collaborators:
    clients = SqlClientDirectory(session)
    return Collaborators(
        messenger=OutboxMessenger(session, clients, clock),
        clients=clients,
        custom_actions=custom_actions if custom_actions is not None else CustomActionRegistry(),
    )
