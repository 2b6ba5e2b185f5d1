from fastapi import APIRouter, Depends, Response, status

from ..automation import AutomationService
from ..deps import Principal, auth_bearer, get_service
from ..schemas import MessageStatusDTO

router = APIRouter()


@router.post("/messages/{message_id}:status", status_code=status.HTTP_204_NO_CONTENT)
def update_message_status(message_id: str, body: MessageStatusDTO, user: Principal = Depends(auth_bearer),
                          service: AutomationService = Depends(get_service)):
    """Delivery callback from the SMS/email transport."""
    service.update_message_status(user.org_id, message_id, body)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
