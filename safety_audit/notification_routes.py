"""
Notification Routes

- Email capability used by the escalation pass and finding events
- Finding event hooks (assignment, status change)
- Per-user notification inbox
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from safety_audit.auth import AuthContext, get_user_context, require_scheduler_access
from safety_audit.email_sender import (
    EmailConfigurationError,
    EmailValidationError,
    ResendEmailSender,
)
from safety_audit.notification_service import NotificationDispatcher, build_email_client
from safety_audit.repository import AuditRepository, DataAccessError
from safety_audit.router_utils import raise_data_error, wrap_response
from safety_audit.schemas import EmailRequest, FindingStatus
from safety_audit.supabase_client import get_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


# ============================================================================
# Request Models
# ============================================================================

class AssignmentEvent(BaseModel):
    assigned_to: str = Field(..., min_length=1)


class StatusChangeEvent(BaseModel):
    new_status: FindingStatus


# ============================================================================
# Dependencies
# ============================================================================

def get_email_sender() -> ResendEmailSender:
    return ResendEmailSender()


def get_notification_dispatcher() -> NotificationDispatcher:
    supabase = get_supabase()
    if supabase is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return NotificationDispatcher(AuditRepository(supabase), build_email_client(supabase))


# ============================================================================
# Email capability
# ============================================================================

@router.post("/send-email")
def send_notification_email(
    request: EmailRequest,
    auth: AuthContext = Depends(require_scheduler_access),
    sender: ResendEmailSender = Depends(get_email_sender),
):
    """Render and send one notification email."""
    try:
        result = sender.send(request)
    except EmailValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EmailConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if not result.success:
        raise HTTPException(status_code=500, detail=f"Failed to send email: {result.error}")

    return {"success": True, "email_id": result.email_id}


# ============================================================================
# Finding events
# ============================================================================

@router.post("/findings/{finding_id}/assigned")
def finding_assigned(
    finding_id: str,
    event: AssignmentEvent,
    auth: AuthContext = Depends(get_user_context),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    notified = dispatcher.notify_finding_assignment(finding_id, event.assigned_to)
    return {"success": True, "notified": 1 if notified else 0}


@router.post("/findings/{finding_id}/status-changed")
def finding_status_changed(
    finding_id: str,
    event: StatusChangeEvent,
    auth: AuthContext = Depends(get_user_context),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    notified = dispatcher.notify_status_change(finding_id, event.new_status.value, auth.user_id)
    return {"success": True, "notified": notified}


# ============================================================================
# Inbox
# ============================================================================

@router.get("")
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    auth: AuthContext = Depends(get_user_context),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    try:
        notifications = dispatcher.get_user_notifications(auth.user_id, limit=limit)
    except DataAccessError as e:
        logger.error(f"Failed to fetch notifications: {e}")
        raise_data_error(e)
    return wrap_response(notifications)


@router.post("/read-all")
def mark_all_notifications_read(
    auth: AuthContext = Depends(get_user_context),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    try:
        updated = dispatcher.mark_all_as_read(auth.user_id)
    except DataAccessError as e:
        logger.error(f"Failed to mark all notifications as read: {e}")
        raise_data_error(e)
    return {"success": True, "updated": updated}


@router.post("/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    auth: AuthContext = Depends(get_user_context),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    try:
        updated = dispatcher.mark_as_read(notification_id, auth.user_id)
    except DataAccessError as e:
        logger.error(f"Failed to mark notification as read: {e}")
        raise_data_error(e)

    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}
