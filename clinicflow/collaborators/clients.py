from typing import Any, Dict, Optional

from sqlmodel import Session

from ..errors import ClientRecordError
from ..models import Client, ClientPortalStatus
from .base import ClientDirectory


class SqlClientDirectory(ClientDirectory):
    """Client collaborator backed by the ``clients`` table of the current session."""

    def __init__(self, session: Session):
        self.session = session

    def _load(self, org_id: str, client_id: str) -> Client:
        client = self.session.get(Client, client_id)
        # another tenant's client is reported as missing
        if client is None or client.org_id != org_id:
            raise ClientRecordError(f"client {client_id} not found")
        return client

    def add_tag(self, org_id: str, client_id: str, tag: str) -> Dict[str, Any]:
        client = self._load(org_id, client_id)
        current = list(client.tags or [])
        if tag in current:
            return {"action": "tag_already_exists", "tag": tag, "tags": current}

        client.tags = current + [tag]
        client.touch()
        self.session.add(client)
        return {"action": "tag_added", "tag": tag, "previous_tags": current, "new_tags": client.tags}

    def remove_tag(self, org_id: str, client_id: str, tag: Optional[str], remove_all: bool = False) -> Dict[str, Any]:
        client = self._load(org_id, client_id)
        current = list(client.tags or [])
        updated = [] if remove_all else [t for t in current if t != tag]

        client.tags = updated
        client.touch()
        self.session.add(client)
        return {
            "action": "all_tags_removed" if remove_all else "tag_removed",
            "removed_tag": None if remove_all else tag,
            "previous_tags": current,
            "new_tags": updated,
        }

    def get_context(self, org_id: str, client_id: str) -> Dict[str, Any]:
        client = self._load(org_id, client_id)
        parts = client.full_name.split(" ") if client.full_name else []
        return {
            "client_id": client.id,
            "client_name": client.full_name,
            "first_name": client.first_name or (parts[0] if parts else None),
            "last_name": client.last_name or (" ".join(parts[1:]) if len(parts) > 1 else None),
            "email": client.email,
            "phone": client.phones[0] if client.phones else None,
            "phones": list(client.phones or []),
            "tags": list(client.tags or []),
            "client_status": ClientPortalStatus(client.client_portal_status).value,
        }
