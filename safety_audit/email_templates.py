"""
Email Templates

HTML bodies and subject lines for finding notifications. Templates use plain
string formatting; every value coming from a finding or profile is escaped.
"""

from datetime import datetime
from html import escape
from typing import Optional

from safety_audit.schemas import EmailData, NotificationType

FOOTER_NOTIFICATION = "This is an automated notification from the Health &amp; Safety Audit System."
FOOTER_ESCALATION = "This is an automated escalation from the Health &amp; Safety Audit System."

ALERT_COLOR = "#dc2626"


def _days(level: Optional[int]) -> str:
    level = level or 0
    return f"{level} Day{'s' if level > 1 else ''}"


def _format_due_date(value: Optional[str]) -> str:
    if not value:
        return "Not set"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        return value


class EmailTemplates:
    """Email template definitions using simple string formatting."""

    BASE_HTML = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: {header_color}; color: white; padding: 20px; text-align: center; }}
        .content {{ padding: 20px; background: #f9fafb; }}
        .finding-details {{ background: white; padding: 15px; border-radius: 8px; margin: 15px 0; }}
        .severity-critical, .severity-high {{ border-left: 4px solid #dc2626; }}
        .severity-medium {{ border-left: 4px solid #f59e0b; }}
        .severity-low {{ border-left: 4px solid #10b981; }}
        .button {{ display: inline-block; background: {header_color}; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; margin: 15px 0; }}
        .footer {{ text-align: center; padding: 20px; color: #6b7280; font-size: 14px; }}
        .escalation {{ background: #fef2f2; border: 1px solid #fecaca; padding: 15px; border-radius: 8px; margin: 15px 0; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{heading}</h1></div>
        <div class="content">
            {content}
            <a href="{finding_url}" class="button">{button_label}</a>
        </div>
        <div class="footer"><p>{footer}</p></div>
    </div>
</body>
</html>
"""

    def __init__(self, frontend_url: str = "http://localhost:3000"):
        self.frontend_url = frontend_url.rstrip("/")

    def finding_url(self, data: EmailData) -> str:
        if data.finding_id:
            return f"{self.frontend_url}/findings/{escape(data.finding_id)}"
        return self.frontend_url

    @staticmethod
    def _details(data: EmailData, *extra_rows: str, with_due_date: bool = True) -> str:
        severity = escape(data.severity or "")
        rows = [
            f"<h3>{escape(data.finding_title or '')}</h3>",
            f"<p><strong>Project:</strong> {escape(data.project_name or 'N/A')}</p>",
            f"<p><strong>Severity:</strong> {severity}</p>",
        ]
        if with_due_date:
            rows.append(f"<p><strong>Due Date:</strong> {escape(_format_due_date(data.due_date))}</p>")
        rows.extend(extra_rows)
        return f'<div class="finding-details severity-{severity.lower()}">{"".join(rows)}</div>'

    def render(self, notification_type: str, data: EmailData, title: str, message: str) -> str:
        """Render the HTML body for a notification type."""
        name = escape(data.recipient_name or "")
        greeting = f"<p>Hello {name},</p>"
        header_color = "#2563eb"
        button_label = "View Finding Details"
        footer = FOOTER_NOTIFICATION

        if notification_type == NotificationType.NEW_FINDING.value:
            heading = "🔍 New Finding Assigned"
            content = (
                greeting
                + "<p>You have been assigned a new safety finding that requires your attention.</p>"
                + self._details(data)
                + "<p>Please review this finding and take appropriate action as soon as possible.</p>"
            )
        elif notification_type == NotificationType.STATUS_UPDATE.value:
            heading = "📋 Finding Status Updated"
            content = (
                greeting
                + "<p>A finding you're involved with has been updated.</p>"
                + self._details(
                    data,
                    f"<p><strong>Update:</strong> {escape(message)}</p>",
                    with_due_date=False,
                )
            )
        elif notification_type == NotificationType.DEADLINE_REMINDER.value:
            heading = "⏰ Finding Deadline Reminder"
            content = (
                greeting
                + "<p>This is a reminder that a finding has reached its due date.</p>"
                + self._details(data)
                + "<p>Please ensure this finding is addressed as soon as possible.</p>"
            )
        elif notification_type == NotificationType.OVERDUE_ALERT.value:
            heading = "🚨 OVERDUE FINDING ALERT"
            header_color = ALERT_COLOR
            button_label = "Take Action Now"
            content = (
                '<div class="escalation"><h2>⚠️ URGENT: Finding is Overdue</h2>'
                "<p>This finding has exceeded its due date and requires immediate attention.</p></div>"
                + greeting
                + self._details(data, "<p><strong>Status:</strong> OVERDUE</p>")
                + "<p>This finding is now overdue and requires immediate action to ensure compliance and safety.</p>"
            )
        elif notification_type == NotificationType.ESCALATION.value:
            days = _days(data.escalation_level)
            heading = "🚨 ESCALATION ALERT"
            header_color = ALERT_COLOR
            button_label = "Review &amp; Take Action"
            footer = FOOTER_ESCALATION
            content = (
                f'<div class="escalation"><h2>⚠️ ESCALATION: {days} Overdue</h2>'
                "<p>This finding has been escalated due to extended overdue status.</p></div>"
                + greeting
                + "<p>A critical finding has been escalated to your attention due to extended overdue status.</p>"
                + self._details(data, f"<p><strong>Escalation Level:</strong> {days.lower()} overdue</p>")
                + "<p>As a supervisor, your immediate intervention is required to address this overdue finding and ensure compliance.</p>"
            )
        else:
            heading = f"📧 {escape(title)}"
            button_label = "View Details"
            content = greeting + f"<p>{escape(message)}</p>"
            if data.finding_title:
                content += (
                    f'<div class="finding-details"><h3>{escape(data.finding_title)}</h3>'
                    f"<p><strong>Project:</strong> {escape(data.project_name or 'N/A')}</p></div>"
                )

        return self.BASE_HTML.format(
            header_color=header_color,
            heading=heading,
            content=content,
            finding_url=self.finding_url(data),
            button_label=button_label,
            footer=footer,
        )


def build_subject(notification_type: str, data: EmailData, title: str) -> str:
    """Subject line per notification type; falls back to the notification title."""
    if notification_type == NotificationType.ESCALATION.value:
        return f"🚨 ESCALATION: {data.finding_title or 'Finding'} - {_days(data.escalation_level)} Overdue"
    if notification_type == NotificationType.OVERDUE_ALERT.value:
        return f"🚨 OVERDUE: {data.finding_title or 'Finding'} - Immediate Action Required"
    if notification_type == NotificationType.NEW_FINDING.value:
        return f"🔍 New Finding Assigned: {data.finding_title or 'Safety Finding'}"
    if notification_type == NotificationType.DEADLINE_REMINDER.value:
        return f"⏰ Reminder: {data.finding_title or 'Finding'} Due Soon"
    return title
