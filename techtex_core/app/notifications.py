from fastapi import APIRouter, Depends

from . import models, schemas
from .deps import get_store, require_role, service_error
from .services import InventoryError, InventoryStore

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=schemas.NotificationListOut)
def list_notifications(store: InventoryStore = Depends(get_store), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    # reconcile first so date-driven reminders appear without a ledger change
    notifications = store.refresh_notifications()
    return schemas.NotificationListOut(unread_count=store.unread_count(), notifications=notifications)


@router.post("/read-all")
def mark_all_read(store: InventoryStore = Depends(get_store), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    return {"updated": store.mark_all_notifications_read()}


@router.post("/{notification_id}/read", response_model=schemas.Notification)
def mark_read(notification_id: str, store: InventoryStore = Depends(get_store), current_user: models.User = Depends(require_role(schemas.ROLE_ADMIN))):
    try:
        return store.mark_notification_read(notification_id)
    except InventoryError as e:
        raise service_error(e)
