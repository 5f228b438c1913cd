"""
Escalation Rules

Tiered escalation table for overdue findings and the pure helpers that turn a
due date into an escalation tier, level and message text.

A finding is escalated at the most severe tier it has reached: the rule with the
largest ``hours_overdue`` threshold that does not exceed the time overdue.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from safety_audit.schemas import EscalationRule, NotificationType, UserRole

SECONDS_PER_HOUR = 3600
HOURS_PER_LEVEL = 24

ESCALATION_RULES: Tuple[EscalationRule, ...] = (
    EscalationRule(
        hours_overdue=24,
        escalate_to_role=UserRole.GC_PROJECT_MANAGER.value,
        notification_type=NotificationType.DEADLINE_REMINDER,
    ),
    EscalationRule(
        hours_overdue=48,
        escalate_to_role=UserRole.GC_SITE_DIRECTOR.value,
        notification_type=NotificationType.OVERDUE_ALERT,
    ),
    EscalationRule(
        hours_overdue=72,
        escalate_to_role=UserRole.CLIENT_PROJECT_MANAGER.value,
        notification_type=NotificationType.ESCALATION,
    ),
)


def compute_hours_overdue(due_date: datetime, now: datetime) -> int:
    """Whole hours elapsed since ``due_date`` (floored; negative before the due date)."""
    if due_date.tzinfo is None:
        due_date = due_date.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.floor((now - due_date).total_seconds() / SECONDS_PER_HOUR)


def select_escalation_rule(
    hours_overdue: int,
    rules: Iterable[EscalationRule] = ESCALATION_RULES,
) -> Optional[EscalationRule]:
    """Return the applicable rule with the highest threshold, or None."""
    applicable = [rule for rule in rules if hours_overdue >= rule.hours_overdue]
    if not applicable:
        return None
    return max(applicable, key=lambda rule: rule.hours_overdue)


def compute_escalation_level(hours_overdue: int) -> int:
    """Escalation level in days overdue, rounded up."""
    return math.ceil(hours_overdue / HOURS_PER_LEVEL)


def pluralize_days(level: int) -> str:
    return f"{level} Day{'s' if level > 1 else ''}"


def escalation_title(level: int) -> str:
    return f"Overdue Finding Escalation - {pluralize_days(level)}"


def escalation_message(finding_title: str, hours_overdue: int) -> str:
    return (
        f'ESCALATION: Finding "{finding_title}" is {hours_overdue} hours overdue '
        f'and requires immediate attention.'
    )
