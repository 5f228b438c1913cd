"""
Audit Repository

Data access for the escalation and notification services. Wraps an explicitly
passed Supabase client so the services can run against a test double; nothing in
here reaches for a module-level client.

Every method raises DataAccessError when the underlying query fails. Callers
decide whether a failure is fatal, skippable or a business no-op.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from safety_audit.schemas import Finding, FindingStatus, NotificationRecord, Profile

logger = logging.getLogger(__name__)

FINDING_COLUMNS = "id, title, severity, due_date, project_id"
PROFILE_COLUMNS = "id, first_name, last_name, email, role"

# Matches the PostgREST default max-rows
OVERDUE_PAGE_SIZE = 1000


class DataAccessError(Exception):
    """A query against the backing store failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class AuditRepository:
    """
    Query boundary over the findings, projects, project_assignments, profiles
    and notifications tables.
    """

    def __init__(self, supabase):
        if supabase is None:
            raise ValueError("AuditRepository requires a Supabase client")
        self.supabase = supabase

    # -------------------------------------------------------------------------
    # Findings & projects
    # -------------------------------------------------------------------------

    def get_overdue_findings(self, now: datetime, page_size: int = OVERDUE_PAGE_SIZE) -> List[Finding]:
        """
        Findings that are not closed and whose due date is before ``now``, oldest
        due first. Reads page by page until an empty page so the PostgREST row
        cap never truncates a pass.
        """
        findings: List[Finding] = []
        start = 0
        while True:
            try:
                result = self.supabase.table("findings")\
                    .select(FINDING_COLUMNS)\
                    .neq("status", FindingStatus.CLOSED.value)\
                    .lt("due_date", now.isoformat())\
                    .order("due_date")\
                    .order("id")\
                    .range(start, start + page_size - 1)\
                    .execute()
            except Exception as e:
                raise DataAccessError("fetch overdue findings", e) from e

            rows = result.data or []
            if not rows:
                return findings
            findings.extend(Finding(**row) for row in rows)
            # A server max-rows below page_size shortens pages; resume after what arrived
            start += len(rows)

    def get_finding(self, finding_id: str) -> Optional[Finding]:
        try:
            result = self.supabase.table("findings")\
                .select(f"{FINDING_COLUMNS}, status, created_by, assigned_to")\
                .eq("id", finding_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"fetch finding {finding_id}", e) from e

        rows = result.data or []
        return Finding(**rows[0]) if rows else None

    def get_project_name(self, project_id: Optional[str]) -> Optional[str]:
        if not project_id:
            return None
        try:
            result = self.supabase.table("projects")\
                .select("name")\
                .eq("id", project_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"fetch project {project_id}", e) from e

        rows = result.data or []
        return rows[0].get("name") if rows else None

    # -------------------------------------------------------------------------
    # Membership & profiles
    # -------------------------------------------------------------------------

    def get_project_member_ids(self, project_id: str) -> List[str]:
        try:
            result = self.supabase.table("project_assignments")\
                .select("user_id")\
                .eq("project_id", project_id)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"fetch members of project {project_id}", e) from e

        user_ids = [row.get("user_id") for row in (result.data or []) if row.get("user_id")]
        return list(dict.fromkeys(user_ids))

    def get_profiles(self, user_ids: List[str], role: Optional[str] = None) -> List[Profile]:
        if not user_ids:
            return []
        try:
            query = self.supabase.table("profiles")\
                .select(PROFILE_COLUMNS)\
                .in_("id", list(user_ids))
            if role:
                query = query.eq("role", role)
            result = query.execute()
        except Exception as e:
            raise DataAccessError("fetch profiles", e) from e

        return [Profile(**row) for row in (result.data or [])]

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def has_recent_notification(self, finding_id: str, notification_type: str, since: datetime) -> bool:
        """True if a notification of this type was sent for the finding at or after ``since``."""
        try:
            result = self.supabase.table("notifications")\
                .select("id")\
                .eq("finding_id", finding_id)\
                .eq("type", notification_type)\
                .gte("sent_at", since.isoformat())\
                .limit(1)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"dedup check for finding {finding_id}", e) from e

        return bool(result.data)

    def insert_notification(self, record: NotificationRecord) -> Dict[str, Any]:
        try:
            result = self.supabase.table("notifications")\
                .insert(record.to_insert())\
                .execute()
        except Exception as e:
            raise DataAccessError(f"insert notification for user {record.user_id}", e) from e

        rows = result.data or []
        return rows[0] if rows else record.to_insert()

    def mark_email_sent(self, notification_id: str) -> None:
        try:
            self.supabase.table("notifications")\
                .update({"email_sent": True})\
                .eq("id", notification_id)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"mark notification {notification_id} email_sent", e) from e

    def list_user_notifications(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("notifications")\
                .select("*")\
                .eq("user_id", user_id)\
                .order("sent_at", desc=True)\
                .limit(limit)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"fetch notifications for user {user_id}", e) from e

        return result.data or []

    def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        """Mark one of the user's notifications read. False if it does not belong to them."""
        try:
            result = self.supabase.table("notifications")\
                .update({"is_read": True})\
                .eq("id", notification_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"mark notification {notification_id} read", e) from e

        return bool(result.data)

    def mark_all_notifications_read(self, user_id: str) -> int:
        try:
            result = self.supabase.table("notifications")\
                .update({"is_read": True})\
                .eq("user_id", user_id)\
                .eq("is_read", False)\
                .execute()
        except Exception as e:
            raise DataAccessError(f"mark all notifications read for user {user_id}", e) from e

        return len(result.data or [])
