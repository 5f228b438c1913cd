from typing import List, Dict, Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from enum import Enum

T = TypeVar('T')

# =============================================================================
# API ENVELOPE
# =============================================================================

class ApiMeta(BaseModel):
    version: int = 1
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    pagination: Optional[Dict[str, Any]] = None

class ApiError(BaseModel):
    code: str
    message: str
    target: Optional[str] = None # Field name or entity ID
    details: Optional[Any] = None

class ApiResponse(BaseModel, Generic[T]):
    data: Optional[T] = None
    meta: ApiMeta = Field(default_factory=ApiMeta)
    errors: Optional[List[ApiError]] = None

# =============================================================================
# ENUMS
# =============================================================================

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class FindingStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED_PENDING_APPROVAL = "completed_pending_approval"
    CLOSED = "closed"
    OVERDUE = "overdue"

class UserRole(str, Enum):
    ADMIN = "admin"
    CLIENT_SAFETY_MANAGER = "client_safety_manager"
    CLIENT_PROJECT_MANAGER = "client_project_manager"
    GC_EHS_OFFICER = "gc_ehs_officer"
    GC_PROJECT_MANAGER = "gc_project_manager"
    GC_SITE_DIRECTOR = "gc_site_director"

class NotificationType(str, Enum):
    NEW_FINDING = "new_finding"
    STATUS_UPDATE = "status_update"
    DEADLINE_REMINDER = "deadline_reminder"
    OVERDUE_ALERT = "overdue_alert"
    ESCALATION = "escalation"
    COMMENT_ADDED = "comment_added"
    EVIDENCE_SUBMITTED = "evidence_submitted"

# =============================================================================
# CANONICAL ENTITIES
# =============================================================================

def _as_utc(value: datetime) -> datetime:
    """Stored timestamps are UTC; naive values are read as such."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Finding(BaseModel):
    id: str
    title: str
    severity: Optional[str] = None
    due_date: datetime
    status: Optional[str] = None
    project_id: Optional[str] = None
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: datetime) -> datetime:
        return _as_utc(v)

    def is_overdue(self, now: datetime) -> bool:
        return self.due_date < _as_utc(now) and self.status != FindingStatus.CLOSED.value


class Profile(BaseModel):
    id: str
    first_name: Optional[str] = ""
    last_name: Optional[str] = ""
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class EscalationRule(BaseModel):
    hours_overdue: int = Field(..., ge=0)
    escalate_to_role: str
    notification_type: NotificationType

    model_config = {"frozen": True}


class EmailData(BaseModel):
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    finding_title: Optional[str] = None
    finding_id: Optional[str] = None
    due_date: Optional[str] = None
    severity: Optional[str] = None
    project_name: Optional[str] = None
    escalation_level: Optional[int] = None


class EmailRequest(BaseModel):
    type: str
    email_data: EmailData
    title: str = ""
    message: str = ""


class NotificationRecord(BaseModel):
    id: Optional[str] = None
    user_id: str
    finding_id: Optional[str] = None
    type: NotificationType
    title: str = Field(..., max_length=255)
    message: str
    sent_at: Optional[datetime] = None
    is_read: bool = False
    email_sent: bool = False

    def to_insert(self) -> Dict[str, Any]:
        """Row payload for the notifications table (id and sent_at are set by the database)."""
        return {
            "user_id": self.user_id,
            "finding_id": self.finding_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "email_sent": self.email_sent,
        }


class EscalationSummary(BaseModel):
    success: bool = True
    processed: int = 0
    escalations_sent: Optional[int] = None
    total_overdue: Optional[int] = None
    message: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
