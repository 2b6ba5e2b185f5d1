from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .automation import AutomationService

security = HTTPBearer(auto_error=False)

TOKEN_PREFIX = "mock-"


@dataclass
class Principal:
    sub: str
    org_id: str
    role: str = "owner"


async def auth_bearer(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Principal:
    """
    Validate bearer token.
    Development stub: accepts ``mock-<org_id>`` tokens and scopes the caller to that org.
    """
    if not credentials:
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = credentials.credentials
    if not token.startswith(TOKEN_PREFIX) or len(token) == len(TOKEN_PREFIX):
        raise HTTPException(status_code=401, detail="Unauthorized")

    org_id = token[len(TOKEN_PREFIX):]
    return Principal(sub=f"u_{org_id}", org_id=org_id)


def get_service(request: Request) -> AutomationService:
    return request.app.state.service
