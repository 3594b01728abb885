from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from rentals import errors, notifications
from rentals.deps import CurrentUser, get_current_user
from rentals.schemas import NotificationResponse, UnreadCount

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(
    limit: int = Query(default=10, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[NotificationResponse]:
    async with errors.store_errors("list notifications", user_id=current_user.id):
        return await notifications.list_for_user(current_user.id, limit=limit)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    current_user: CurrentUser = Depends(get_current_user),
) -> UnreadCount:
    async with errors.store_errors("unread count", user_id=current_user.id):
        count = await notifications.unread_count(current_user.id)
    return UnreadCount(count=count)


@router.post("/read-all", response_model=UnreadCount)
async def mark_all_read(
    current_user: CurrentUser = Depends(get_current_user),
) -> UnreadCount:
    """Returns how many notifications were marked read."""
    async with errors.store_errors("mark all read", user_id=current_user.id):
        count = await notifications.mark_all_read(current_user.id)
    return UnreadCount(count=count)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
) -> NotificationResponse:
    async with errors.store_errors("mark read", notification_id=notification_id):
        return await notifications.mark_read(notification_id, current_user.id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    async with errors.store_errors("delete notification", notification_id=notification_id):
        await notifications.delete(notification_id, current_user.id)
