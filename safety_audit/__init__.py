"""
SafeTrack Escalation Service

Backend for the health & safety audit tracker: overdue-finding escalation,
finding event notifications and notification email delivery.

Key components:
- escalation_rules: escalation tiers and overdue arithmetic
- escalation_engine: the escalation pass
- notification_service: notification rows and email transports
- repository: Supabase data access
"""

__version__ = "1.0.0"
