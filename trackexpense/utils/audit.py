"""
Structured Audit Logging Utility.

Every record state change is logged as one structured JSON object.
Provides a Pydantic-validated model and a single function for consistent
audit trail entries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from trackexpense.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]

# Flat scalars only; nested structures belong in their own models.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Log a structured JSON audit event and return it.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"CREATE"``, ``"APPROVE"``,
            ``"DELETE_USER"``).
        entity_type: Type of entity affected (``"Expense"`` or ``"User"``).
        entity_id: Primary key of the affected entity.
        user_id: ID of the user who performed the action, or ``"system"``.
        details: Optional additional context (e.g. old/new values).
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))
    return event
