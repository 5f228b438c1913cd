"""
Escalation pass: tier matching, deduplication, fan-out and failure isolation.
Run with: python -m pytest tests/test_escalation_engine.py -v
"""

from datetime import timedelta

import pytest

from safety_audit.escalation_engine import (
    EscalationEngine,
    EscalationPassError,
    SkipReason,
)
from safety_audit.notification_service import NotificationDispatcher
from safety_audit.repository import AuditRepository, DataAccessError
from safety_audit.schemas import Finding

from tests.conftest import NOW


# =============================================================================
# END-TO-END SCENARIOS
# =============================================================================

class TestEscalationScenarios:

    def test_fifty_hours_overdue_alerts_site_director(self, fake_db, engine):
        fake_db.add_project("proj-1", "North Tower")
        fake_db.add_member("proj-1", "user-sd", "gc_site_director", email="a@x.com", first_name="Ana", last_name="Silva")
        fake_db.add_finding("f-1", hours_overdue=50, title="Unguarded edge", severity="critical")

        result = engine.run_pass(now=NOW)

        assert len(fake_db.notifications) == 1
        row = fake_db.notifications[0]
        assert row["type"] == "overdue_alert"
        assert row["user_id"] == "user-sd"
        assert row["finding_id"] == "f-1"
        assert "3 Days" in row["title"]
        assert row["message"] == (
            'ESCALATION: Finding "Unguarded edge" is 50 hours overdue and requires immediate attention.'
        )

        assert len(fake_db.functions.calls) == 1
        call = fake_db.functions.calls[0]
        assert call["name"] == "send-notification-email"
        body = call["body"]
        assert body["type"] == "overdue_alert"
        assert body["title"] == "Overdue Finding Escalation - 3 Days"
        assert body["email_data"]["recipient_email"] == "a@x.com"
        assert body["email_data"]["recipient_name"] == "Ana Silva"
        assert body["email_data"]["escalation_level"] == 3
        assert body["email_data"]["project_name"] == "North Tower"
        assert body["email_data"]["severity"] == "critical"
        assert body["email_data"]["finding_id"] == "f-1"

        assert result.to_summary().to_response() == {
            "success": True,
            "processed": 1,
            "escalations_sent": 1,
            "total_overdue": 1,
        }

    def test_successful_email_marks_row(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-pm", "gc_project_manager")
        fake_db.add_finding("f-1", hours_overdue=30)

        engine.run_pass(now=NOW)

        assert fake_db.notifications[0]["email_sent"] is True

    def test_ten_hours_overdue_does_nothing(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-pm", "gc_project_manager")
        fake_db.add_finding("f-1", hours_overdue=10)

        result = engine.run_pass(now=NOW)

        assert fake_db.notifications == []
        assert fake_db.functions.calls == []
        assert result.processed == 1
        assert result.escalations_sent == 0
        assert result.below_threshold == 1

    def test_second_pass_in_window_is_deduplicated(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-cpm", "client_project_manager")
        fake_db.add_finding("f-1", hours_overdue=80)

        first = engine.run_pass(now=NOW)
        fake_db.now = NOW + timedelta(minutes=20)
        second = engine.run_pass(now=NOW + timedelta(minutes=20))

        assert first.escalations_sent == 1
        assert second.escalations_sent == 0
        assert second.already_escalated == 1
        assert len(fake_db.notifications) == 1
        assert fake_db.notifications[0]["type"] == "escalation"
        assert len(fake_db.functions.calls) == 1

    def test_pass_after_window_escalates_again(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-cpm", "client_project_manager")
        fake_db.add_finding("f-1", hours_overdue=80)

        engine.run_pass(now=NOW)
        later = NOW + timedelta(hours=25)
        fake_db.now = later
        engine.run_pass(now=later)

        assert len(fake_db.notifications) == 2

    def test_new_tier_is_not_blocked_by_previous_tier(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-pm", "gc_project_manager")
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=47)

        engine.run_pass(now=NOW)
        later = NOW + timedelta(hours=2)
        fake_db.now = later
        engine.run_pass(now=later)

        assert [n["type"] for n in fake_db.notifications] == ["deadline_reminder", "overdue_alert"]

    def test_no_overdue_findings_summary(self, fake_db, engine):
        fake_db.add_finding("f-closed", hours_overdue=100, status="closed")
        fake_db.add_finding("f-future", hours_overdue=-5)

        result = engine.run_pass(now=NOW)

        assert result.to_summary().to_response() == {
            "success": True,
            "message": "No overdue findings found",
            "processed": 0,
        }

    def test_closed_findings_are_never_escalated(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-cpm", "client_project_manager")
        fake_db.add_finding("f-closed", hours_overdue=100, status="closed")
        fake_db.add_finding("f-open", hours_overdue=100)

        result = engine.run_pass(now=NOW)

        assert result.total_overdue == 1
        assert [n["finding_id"] for n in fake_db.notifications] == ["f-open"]


# =============================================================================
# RECIPIENTS
# =============================================================================

class TestRecipientScoping:

    def test_role_missing_on_project_is_a_no_op(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-pm", "gc_project_manager")
        fake_db.add_finding("f-1", hours_overdue=75)

        result = engine.run_pass(now=NOW)

        assert fake_db.notifications == []
        assert result.processed == 1
        assert result.failed == 0
        assert result.escalations_sent == 0

    def test_members_of_other_projects_are_ignored(self, fake_db, engine):
        fake_db.add_project("proj-1")
        fake_db.add_project("proj-2")
        fake_db.add_member("proj-2", "user-other", "gc_site_director")
        fake_db.add_member("proj-1", "user-mine", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=50, project_id="proj-1")

        engine.run_pass(now=NOW)

        assert [n["user_id"] for n in fake_db.notifications] == ["user-mine"]

    def test_every_holder_of_the_role_is_notified(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-a", "gc_site_director")
        fake_db.add_member("proj-1", "user-b", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=50)

        result = engine.run_pass(now=NOW)

        assert sorted(n["user_id"] for n in fake_db.notifications) == ["user-a", "user-b"]
        assert result.notifications_created == 2
        assert result.escalations_sent == 1

    def test_membership_query_failure_is_a_no_op(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=50)
        fake_db.failures[("project_assignments", "select")] = RuntimeError("timeout")

        result = engine.run_pass(now=NOW)

        assert fake_db.notifications == []
        assert result.failed == 0


# =============================================================================
# FAILURE HANDLING
# =============================================================================

class FlakyDedupRepository(AuditRepository):
    """Dedup check fails for one finding only."""

    def __init__(self, supabase, failing_finding_id):
        super().__init__(supabase)
        self.failing_finding_id = failing_finding_id

    def has_recent_notification(self, finding_id, notification_type, since):
        if finding_id == self.failing_finding_id:
            raise DataAccessError("dedup check", RuntimeError("connection reset"))
        return super().has_recent_notification(finding_id, notification_type, since)


class TestFailureHandling:

    def test_overdue_fetch_failure_aborts_pass(self, fake_db, engine):
        fake_db.failures[("findings", "select")] = RuntimeError("database unavailable")

        with pytest.raises(EscalationPassError):
            engine.run_pass(now=NOW)

    def test_dedup_failure_skips_finding_and_continues(self, fake_db):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        fake_db.add_finding("f-bad", hours_overdue=50)
        fake_db.add_finding("f-good", hours_overdue=50)

        repository = FlakyDedupRepository(fake_db, "f-bad")
        engine = EscalationEngine(repository, NotificationDispatcher(repository, _RecordingEmailClient()))

        result = engine.run_pass(now=NOW)

        assert [n["finding_id"] for n in fake_db.notifications] == ["f-good"]
        assert result.failed == 1
        assert result.processed == 1
        assert result.escalations_sent == 1
        assert result.total_overdue == 2

    def test_dedup_failure_fails_closed(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=50)
        fake_db.failures[("notifications", "select")] = RuntimeError("boom")

        result = engine.run_pass(now=NOW)

        assert fake_db.notifications == []
        assert fake_db.functions.calls == []
        assert result.failed == 1

    def test_email_failure_keeps_notification(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=50)
        fake_db.functions.error = RuntimeError("function relay error")

        result = engine.run_pass(now=NOW)

        assert len(fake_db.notifications) == 1
        assert fake_db.notifications[0]["email_sent"] is False
        assert result.escalations_sent == 1

    def test_insert_failure_still_attempts_email_and_other_recipients(self, fake_db, repository):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-a", "gc_site_director", email="a@x.com")
        fake_db.add_member("proj-1", "user-b", "gc_site_director", email="b@x.com")
        fake_db.add_finding("f-1", hours_overdue=50)

        email_client = _RecordingEmailClient()
        failing = _FailFirstInsertRepository(fake_db)
        engine = EscalationEngine(failing, NotificationDispatcher(failing, email_client))

        result = engine.run_pass(now=NOW)

        assert [r.email_data.recipient_email for r in email_client.requests] == ["a@x.com", "b@x.com"]
        assert [n["user_id"] for n in fake_db.notifications] == ["user-b"]
        assert result.notifications_created == 1

    def test_project_name_failure_does_not_block(self, fake_db, engine):
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=50)
        fake_db.failures[("projects", "select")] = RuntimeError("boom")

        engine.run_pass(now=NOW)

        assert len(fake_db.notifications) == 1
        assert "project_name" not in fake_db.functions.calls[0]["body"]["email_data"]

    def test_deadline_leaves_findings_for_next_pass(self, fake_db, engine):
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        fake_db.add_finding("f-1", hours_overdue=50)

        result = engine.run_pass(now=NOW, deadline_seconds=0)

        assert result.timed_out is True
        assert result.processed == 0
        assert fake_db.notifications == []

    def test_stale_listing_counts_not_overdue_separately(self, fake_db):
        repository = _StaleListingRepository(fake_db, [
            Finding(id="f-closed", title="t", status="closed", project_id="proj-1",
                    due_date=NOW - timedelta(hours=100)),
            Finding(id="f-future", title="t", project_id="proj-1",
                    due_date=NOW + timedelta(hours=2)),
            Finding(id="f-recent", title="t", project_id="proj-1",
                    due_date=NOW - timedelta(hours=3)),
        ])
        engine = EscalationEngine(repository, NotificationDispatcher(repository, _RecordingEmailClient()))

        result = engine.run_pass(now=NOW)

        assert result.not_overdue == 2
        assert result.below_threshold == 1
        assert result.processed == 3
        assert fake_db.notifications == []


# =============================================================================
# LARGE BACKLOGS
# =============================================================================

class TestOverdueBacklog:

    def test_pass_reaches_findings_beyond_the_row_cap(self, fake_db, engine):
        fake_db.max_rows = 2
        fake_db.add_project()
        fake_db.add_member("proj-1", "user-sd", "gc_site_director")
        for i in range(5):
            fake_db.add_finding(f"f-{i}", hours_overdue=50 + i)

        result = engine.run_pass(now=NOW)

        assert result.total_overdue == 5
        assert result.escalations_sent == 5
        assert sorted(n["finding_id"] for n in fake_db.notifications) == [f"f-{i}" for i in range(5)]

    def test_overdue_findings_are_paged_oldest_first(self, fake_db, repository):
        for i, hours in enumerate([30, 90, 60, 120, 45]):
            fake_db.add_finding(f"f-{i}", hours_overdue=hours)
        fake_db.add_finding("f-closed", hours_overdue=200, status="closed")
        fake_db.add_finding("f-upcoming", hours_overdue=-5)

        findings = repository.get_overdue_findings(NOW, page_size=2)

        assert [f.id for f in findings] == ["f-3", "f-1", "f-2", "f-4", "f-0"]
        # three full or partial pages plus the empty page that ends the scan
        assert fake_db.queries.count(("findings", "select")) == 4


# =============================================================================
# EVALUATION
# =============================================================================

class TestEvaluate:

    def _finding(self, hours, status="open"):
        return Finding(id="f-1", title="t", severity="low", status=status,
                       project_id="proj-1", due_date=NOW - timedelta(hours=hours))

    def test_decision_carries_rule_and_level(self, engine):
        decision = engine.evaluate(self._finding(50), NOW)
        assert decision.should_escalate
        assert decision.rule.hours_overdue == 48
        assert decision.hours_overdue == 50
        assert decision.escalation_level == 3

    def test_below_threshold(self, engine):
        decision = engine.evaluate(self._finding(23), NOW)
        assert not decision.should_escalate
        assert decision.skip_reason == SkipReason.BELOW_THRESHOLD

    def test_closed_finding_is_not_overdue(self, engine):
        decision = engine.evaluate(self._finding(100, status="closed"), NOW)
        assert decision.skip_reason == SkipReason.NOT_OVERDUE

    def test_dedup_window_is_configurable(self, fake_db, repository, dispatcher):
        fake_db.tables["notifications"] = [{
            "id": "n-1", "finding_id": "f-1", "type": "overdue_alert",
            "sent_at": (NOW - timedelta(hours=3)).isoformat(),
        }]
        short = EscalationEngine(repository, dispatcher, dedup_window=timedelta(hours=2))
        default = EscalationEngine(repository, dispatcher)

        assert short.evaluate(self._finding(50), NOW).should_escalate
        assert default.evaluate(self._finding(50), NOW).skip_reason == SkipReason.ALREADY_ESCALATED


# =============================================================================
# HELPERS
# =============================================================================

class _RecordingEmailClient:
    def __init__(self):
        self.requests = []

    def send(self, request):
        self.requests.append(request)
        return True


class _FailFirstInsertRepository(AuditRepository):
    def __init__(self, supabase):
        super().__init__(supabase)
        self.inserts = 0

    def insert_notification(self, record):
        self.inserts += 1
        if self.inserts == 1:
            raise DataAccessError("insert notification", RuntimeError("constraint violation"))
        return super().insert_notification(record)


class _StaleListingRepository(AuditRepository):
    """Returns a listing taken before some findings were closed or rescheduled."""

    def __init__(self, supabase, findings):
        super().__init__(supabase)
        self.findings = findings

    def get_overdue_findings(self, now, page_size=None):
        return list(self.findings)
