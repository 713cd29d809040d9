# app/api/v1/endpoints/notifications.py
from typing import List

from fastapi import APIRouter, Depends

from app.core.deps import get_auth_context, get_notification_service, get_pagination
from app.core.validators import validate_object_id
from app.schemas.common import Pagination
from app.schemas.notification import NotificationResponse, notification_response
from app.services.notifications import NotificationService
from app.services.session import AuthContext

router = APIRouter(tags=["notifications"])


@router.get("/", response_model=List[NotificationResponse])
async def list_notifications(
    page: Pagination = Depends(get_pagination),
    ctx: AuthContext = Depends(get_auth_context),
    notifications: NotificationService = Depends(get_notification_service),
):
    found = await notifications.list_for_user(ctx.user.id, page.limit, page.last_document_id)
    return [notification_response(n) for n in found]


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_as_read(
    notification_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    notifications: NotificationService = Depends(get_notification_service),
):
    validate_object_id(notification_id, "notification id")
    return notification_response(await notifications.mark_as_read(ctx.user.id, notification_id))
