"""
Escalation Engine - Overdue Finding Escalation Pass

One pass walks every finding that is past its due date and not closed:
- computes whole hours overdue
- picks the most severe escalation tier reached
- skips the finding if that tier was already notified in the dedup window
- notifies every project member holding the tier's role (row + email)

Findings are processed sequentially. The dedup check for a finding always
completes before any of its notification rows are inserted, so a single pass
never double-escalates. Overlapping passes are prevented by scheduling, not here.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, List, Optional

from safety_audit.escalation_rules import (
    ESCALATION_RULES,
    compute_escalation_level,
    compute_hours_overdue,
    escalation_message,
    escalation_title,
    select_escalation_rule,
)
from safety_audit.notification_service import NotificationDispatcher, build_email_client
from safety_audit.recipients import resolve_escalation_recipients
from safety_audit.repository import AuditRepository, DataAccessError
from safety_audit.schemas import EmailData, EscalationRule, EscalationSummary, Finding
from safety_audit.settings import Settings, get_settings

logger = logging.getLogger(__name__)

NO_OVERDUE_MESSAGE = "No overdue findings found"


class EscalationPassError(Exception):
    """The pass could not start (overdue findings could not be fetched)."""


class SkipReason(str, Enum):
    NOT_OVERDUE = "not_overdue"
    BELOW_THRESHOLD = "below_threshold"
    ALREADY_ESCALATED = "already_escalated"


@dataclass
class EscalationDecision:
    finding: Finding
    hours_overdue: int
    rule: Optional[EscalationRule] = None
    skip_reason: Optional[SkipReason] = None

    @property
    def should_escalate(self) -> bool:
        return self.rule is not None and self.skip_reason is None

    @property
    def escalation_level(self) -> int:
        return compute_escalation_level(self.hours_overdue)


@dataclass
class EscalationPassResult:
    total_overdue: int = 0
    processed: int = 0
    escalations_sent: int = 0
    notifications_created: int = 0
    not_overdue: int = 0
    below_threshold: int = 0
    already_escalated: int = 0
    not_notified: int = 0
    failed: int = 0
    timed_out: bool = False
    errors: List[str] = field(default_factory=list)

    def to_summary(self) -> EscalationSummary:
        if self.total_overdue == 0:
            return EscalationSummary(success=True, message=NO_OVERDUE_MESSAGE, processed=0)
        return EscalationSummary(
            success=True,
            processed=self.processed,
            escalations_sent=self.escalations_sent,
            total_overdue=self.total_overdue,
        )


class EscalationEngine:

    def __init__(
        self,
        repository: AuditRepository,
        dispatcher: NotificationDispatcher,
        rules: Iterable[EscalationRule] = ESCALATION_RULES,
        dedup_window: timedelta = timedelta(hours=24),
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.rules = tuple(rules)
        self.dedup_window = dedup_window

    # ------------------------------------------------------------------------
    # Per-finding evaluation
    # ------------------------------------------------------------------------

    def evaluate(self, finding: Finding, now: datetime) -> EscalationDecision:
        """
        Decide whether ``finding`` must be escalated at ``now``.

        Raises DataAccessError if the dedup check fails; the caller skips the
        finding rather than risk a duplicate escalation.
        """
        hours_overdue = compute_hours_overdue(finding.due_date, now)

        if not finding.is_overdue(now):
            return EscalationDecision(finding, hours_overdue, skip_reason=SkipReason.NOT_OVERDUE)

        rule = select_escalation_rule(hours_overdue, self.rules)
        if rule is None:
            return EscalationDecision(finding, hours_overdue, skip_reason=SkipReason.BELOW_THRESHOLD)

        since = now - self.dedup_window
        if self.repository.has_recent_notification(finding.id, rule.notification_type.value, since):
            logger.info(f"Escalation already sent for finding {finding.id} ({rule.notification_type.value}) within the dedup window")
            return EscalationDecision(finding, hours_overdue, rule=rule, skip_reason=SkipReason.ALREADY_ESCALATED)

        return EscalationDecision(finding, hours_overdue, rule=rule)

    def escalate(self, decision: EscalationDecision) -> int:
        """Notify the rule's role on the finding's project. Returns notification rows inserted."""
        finding = decision.finding
        rule = decision.rule

        recipients = resolve_escalation_recipients(self.repository, finding.project_id, rule.escalate_to_role)
        if not recipients:
            return 0

        try:
            project_name = self.repository.get_project_name(finding.project_id)
        except DataAccessError as e:
            logger.warning(f"Project name unavailable for finding {finding.id}: {e}")
            project_name = None

        level = decision.escalation_level
        title = escalation_title(level)
        message = escalation_message(finding.title, decision.hours_overdue)

        inserted = 0
        for user in recipients:
            try:
                outcome = self.dispatcher.create_notification(
                    user_id=user.id,
                    finding_id=finding.id,
                    notification_type=rule.notification_type,
                    title=title,
                    message=message,
                    email_data=EmailData(
                        recipient_email=user.email,
                        recipient_name=user.full_name,
                        finding_title=finding.title,
                        finding_id=finding.id,
                        due_date=finding.due_date.isoformat(),
                        severity=finding.severity,
                        project_name=project_name,
                        escalation_level=level,
                    ),
                )
            except Exception as e:
                logger.error(f"Error sending notification to user {user.id}: {e}")
                continue

            if outcome.inserted:
                inserted += 1

        logger.info(f"Sent {inserted} escalation notifications for finding {finding.id}")
        return inserted

    # ------------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------------

    def run_pass(
        self,
        now: Optional[datetime] = None,
        deadline_seconds: Optional[float] = None,
    ) -> EscalationPassResult:
        """
        Run one escalation pass over all overdue findings.

        Raises EscalationPassError only when the overdue findings cannot be
        fetched; every other failure is confined to its finding. Findings not
        reached before ``deadline_seconds`` elapse are left for the next pass.
        """
        now = now or datetime.now(timezone.utc)
        started = time.monotonic()
        result = EscalationPassResult()

        logger.info("Starting overdue escalation processing...")

        try:
            findings = self.repository.get_overdue_findings(now)
        except DataAccessError as e:
            logger.error(f"Error fetching overdue findings: {e}")
            raise EscalationPassError(str(e)) from e

        result.total_overdue = len(findings)
        if not findings:
            logger.info(NO_OVERDUE_MESSAGE)
            return result

        logger.info(f"Found {len(findings)} overdue findings")

        for finding in findings:
            if deadline_seconds is not None and time.monotonic() - started >= deadline_seconds:
                result.timed_out = True
                logger.warning(
                    f"Escalation pass deadline of {deadline_seconds}s reached; "
                    f"{result.total_overdue - result.processed - result.failed} findings left for the next pass"
                )
                break

            try:
                decision = self.evaluate(finding, now)
                logger.info(f"Processing finding {finding.id}: {decision.hours_overdue} hours overdue")

                if decision.should_escalate:
                    inserted = self.escalate(decision)
                    result.notifications_created += inserted
                    if inserted:
                        result.escalations_sent += 1
                    else:
                        result.not_notified += 1
                elif decision.skip_reason == SkipReason.ALREADY_ESCALATED:
                    result.already_escalated += 1
                elif decision.skip_reason == SkipReason.NOT_OVERDUE:
                    result.not_overdue += 1
                else:
                    result.below_threshold += 1

                result.processed += 1
            except Exception as e:
                result.failed += 1
                result.errors.append(f"{finding.id}: {e}")
                logger.error(f"Error processing finding {finding.id}: {e}")

        logger.info(
            f"Escalation processing complete. Processed: {result.processed}, "
            f"Escalations sent: {result.escalations_sent}, Notifications: {result.notifications_created}, "
            f"Below threshold: {result.below_threshold}, Not overdue: {result.not_overdue}, "
            f"Duplicates skipped: {result.already_escalated}, Failed: {result.failed}"
        )
        return result


def build_escalation_engine(supabase, settings: Optional[Settings] = None) -> EscalationEngine:
    """Wire the engine against a Supabase client using the configured transports."""
    settings = settings or get_settings()
    repository = AuditRepository(supabase)
    dispatcher = NotificationDispatcher(repository, build_email_client(supabase, settings))
    return EscalationEngine(
        repository,
        dispatcher,
        dedup_window=timedelta(hours=settings.dedup_window_hours),
    )
