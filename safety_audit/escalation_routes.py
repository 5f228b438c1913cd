"""
Escalation Routes - Overdue Finding Escalation Trigger

Implements:
- Manual / cron trigger for one escalation pass
- Read-only view of the escalation tiers
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from safety_audit.auth import AuthContext, require_scheduler_access
from safety_audit.escalation_engine import EscalationEngine, EscalationPassError, build_escalation_engine
from safety_audit.escalation_rules import ESCALATION_RULES
from safety_audit.schemas import EscalationRule
from safety_audit.settings import get_settings
from safety_audit.supabase_client import get_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/escalations", tags=["escalations"])


def get_escalation_engine() -> EscalationEngine:
    supabase = get_supabase()
    if supabase is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return build_escalation_engine(supabase)


@router.post("/process-overdue")
def process_overdue_escalations(
    auth: AuthContext = Depends(require_scheduler_access),
    engine: EscalationEngine = Depends(get_escalation_engine),
):
    """
    Run one escalation pass over all overdue findings.
    No request body. Returns the pass summary.
    """
    logger.info(f"Escalation pass requested: {auth.to_log_context()}")
    settings = get_settings()

    try:
        result = engine.run_pass(deadline_seconds=settings.pass_timeout_seconds)
    except EscalationPassError as e:
        raise HTTPException(status_code=500, detail=f"Error fetching findings: {e}")

    return result.to_summary().to_response()


@router.get("/rules", response_model=List[EscalationRule])
async def list_escalation_rules():
    """Escalation tiers, lowest threshold first."""
    return sorted(ESCALATION_RULES, key=lambda rule: rule.hours_overdue)
