"""Resolve escalation recipients: project members holding a given role."""

import logging
from typing import List

from safety_audit.repository import AuditRepository, DataAccessError
from safety_audit.schemas import Profile

logger = logging.getLogger(__name__)


def resolve_escalation_recipients(
    repository: AuditRepository,
    project_id: str,
    target_role: str,
) -> List[Profile]:
    """
    Profiles that are assigned to ``project_id`` and hold ``target_role``.

    An unstaffed role is a normal outcome, so every miss (including a failed
    lookup) returns an empty list instead of raising.
    """
    if not project_id:
        logger.info(f"No project on finding, no {target_role} recipients")
        return []

    try:
        member_ids = repository.get_project_member_ids(project_id)
    except DataAccessError as e:
        logger.error(f"Error fetching project assignments for {project_id}: {e}")
        return []

    if not member_ids:
        logger.info(f"No users assigned to project {project_id}")
        return []

    try:
        profiles = repository.get_profiles(member_ids, role=target_role)
    except DataAccessError as e:
        logger.error(f"Error fetching {target_role} profiles for project {project_id}: {e}")
        return []

    # The role filter runs in the database; re-check in case a store ignores it
    recipients = [p for p in profiles if p.role == target_role and p.id in member_ids]
    if not recipients:
        logger.info(f"No users with role {target_role} found for project {project_id}")
    return recipients
