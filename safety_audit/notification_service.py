"""
Notification Service

Persists notification rows and sends the matching emails. The notification row
is the durable record; email delivery is best-effort and never undoes an insert.

Two email transports are supported:
- function: invoke the hosted ``send-notification-email`` function (default)
- resend: render and send in-process through the Resend API
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from safety_audit.email_sender import (
    EmailConfigurationError,
    EmailValidationError,
    ResendEmailSender,
)
from safety_audit.repository import AuditRepository, DataAccessError
from safety_audit.schemas import EmailData, EmailRequest, NotificationRecord, NotificationType
from safety_audit.settings import EMAIL_TRANSPORT_RESEND, Settings, get_settings

logger = logging.getLogger(__name__)


# ============================================================================
# Email transports
# ============================================================================

class FunctionEmailClient:
    """Sends email by invoking the hosted email function."""

    def __init__(self, supabase, function_name: str = "send-notification-email"):
        self.supabase = supabase
        self.function_name = function_name

    def send(self, request: EmailRequest) -> bool:
        body = request.model_dump(mode="json", exclude_none=True)
        try:
            self.supabase.functions.invoke(self.function_name, invoke_options={"body": body})
        except Exception as e:
            logger.error(f"Error invoking {self.function_name} for {request.email_data.recipient_email}: {e}")
            return False
        return True


class DirectEmailClient:
    """Sends email in-process."""

    def __init__(self, sender: ResendEmailSender):
        self.sender = sender

    def send(self, request: EmailRequest) -> bool:
        try:
            result = self.sender.send(request)
        except (EmailConfigurationError, EmailValidationError) as e:
            logger.error(f"Email not sent to {request.email_data.recipient_email}: {e}")
            return False
        return result.success


def build_email_client(supabase, settings: Optional[Settings] = None):
    settings = settings or get_settings()
    if settings.email_transport == EMAIL_TRANSPORT_RESEND:
        return DirectEmailClient(ResendEmailSender(settings))
    return FunctionEmailClient(supabase, settings.email_function_name)


# ============================================================================
# Dispatcher
# ============================================================================

@dataclass
class DispatchOutcome:
    """What happened for one recipient."""
    inserted: bool
    email_sent: bool
    notification_id: Optional[str] = None


class NotificationDispatcher:

    def __init__(self, repository: AuditRepository, email_client):
        self.repository = repository
        self.email_client = email_client

    def create_notification(
        self,
        user_id: str,
        finding_id: Optional[str],
        notification_type: NotificationType,
        title: str,
        message: str,
        email_data: Optional[EmailData] = None,
    ) -> DispatchOutcome:
        """
        Insert a notification row, then attempt the email when ``email_data`` is given.

        An insert failure is logged and the email is still attempted. A failed
        email leaves the row in place with ``email_sent = false``.
        """
        record = NotificationRecord(
            user_id=user_id,
            finding_id=finding_id,
            type=notification_type,
            title=title,
            message=message,
        )

        inserted = False
        notification_id = None
        try:
            row = self.repository.insert_notification(record)
            inserted = True
            notification_id = row.get("id")
        except DataAccessError as e:
            logger.error(f"Error creating notification: {e}")

        email_sent = False
        if email_data is not None:
            email_sent = self.send_email(notification_type, title, message, email_data)
            if email_sent and notification_id:
                try:
                    self.repository.mark_email_sent(notification_id)
                except DataAccessError as e:
                    logger.warning(f"Email delivered but flag not recorded: {e}")

        return DispatchOutcome(inserted=inserted, email_sent=email_sent, notification_id=notification_id)

    def send_email(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
        email_data: EmailData,
    ) -> bool:
        request = EmailRequest(
            type=NotificationType(notification_type).value,
            email_data=email_data,
            title=title,
            message=message,
        )
        try:
            sent = self.email_client.send(request)
        except Exception as e:
            logger.error(f"Error sending email: {e}")
            return False

        if sent:
            logger.info(f"Email sent to {email_data.recipient_email} for finding {email_data.finding_id}")
        else:
            logger.error(f"Email to {email_data.recipient_email} for finding {email_data.finding_id} failed")
        return sent

    # ------------------------------------------------------------------------
    # Finding events
    # ------------------------------------------------------------------------

    def notify_finding_assignment(self, finding_id: str, assigned_to_user_id: str) -> bool:
        """Tell the assignee about a newly assigned finding. Returns False if nothing was sent."""
        try:
            finding = self.repository.get_finding(finding_id)
            if not finding:
                logger.warning(f"Finding {finding_id} not found, no assignment notification")
                return False

            assignees = self.repository.get_profiles([assigned_to_user_id])
            if not assignees:
                logger.warning(f"Assigned user {assigned_to_user_id} not found")
                return False
            assignee = assignees[0]

            project_name = self.repository.get_project_name(finding.project_id)
        except DataAccessError as e:
            logger.error(f"Error notifying finding assignment: {e}")
            return False

        outcome = self.create_notification(
            user_id=assignee.id,
            finding_id=finding.id,
            notification_type=NotificationType.NEW_FINDING,
            title="New Finding Assigned",
            message=f'You have been assigned a new {finding.severity} severity finding: "{finding.title}"',
            email_data=EmailData(
                recipient_email=assignee.email,
                recipient_name=assignee.full_name,
                finding_title=finding.title,
                finding_id=finding.id,
                due_date=finding.due_date.isoformat(),
                severity=finding.severity,
                project_name=project_name,
            ),
        )
        return outcome.inserted

    def notify_status_change(self, finding_id: str, new_status: str, updated_by_user_id: Optional[str]) -> int:
        """Notify the creator and assignee (except whoever made the change). Returns rows inserted."""
        try:
            finding = self.repository.get_finding(finding_id)
            if not finding:
                return 0

            stakeholder_ids = [
                uid for uid in dict.fromkeys([finding.created_by, finding.assigned_to])
                if uid and uid != updated_by_user_id
            ]
            if not stakeholder_ids:
                return 0

            stakeholders = self.repository.get_profiles(stakeholder_ids)
            project_name = self.repository.get_project_name(finding.project_id)
        except DataAccessError as e:
            logger.error(f"Error notifying status change: {e}")
            return 0

        readable_status = new_status.replace("_", " ")
        inserted = 0
        for stakeholder in stakeholders:
            outcome = self.create_notification(
                user_id=stakeholder.id,
                finding_id=finding.id,
                notification_type=NotificationType.STATUS_UPDATE,
                title="Finding Status Updated",
                message=f'Finding "{finding.title}" status changed to {readable_status}',
                email_data=EmailData(
                    recipient_email=stakeholder.email,
                    recipient_name=stakeholder.full_name,
                    finding_title=finding.title,
                    finding_id=finding.id,
                    severity=finding.severity,
                    project_name=project_name,
                ),
            )
            if outcome.inserted:
                inserted += 1
        return inserted

    # ------------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------------

    def get_user_notifications(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return self.repository.list_user_notifications(user_id, limit=limit)

    def mark_as_read(self, notification_id: str, user_id: str) -> bool:
        return self.repository.mark_notification_read(notification_id, user_id)

    def mark_all_as_read(self, user_id: str) -> int:
        return self.repository.mark_all_notifications_read(user_id)
