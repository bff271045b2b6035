"""Shared utility functions and models for the TrackExpense application.

Convenience re-exports so consumers can import directly from
``trackexpense.utils`` (e.g. ``from trackexpense.utils import log_audit_event``).
"""

from trackexpense.utils.audit import AuditEvent, log_audit_event
from trackexpense.utils.general import JsonRecord, JsonValue, clone_records, is_data_uri

__all__ = [
    "AuditEvent",
    "JsonRecord",
    "JsonValue",
    "clone_records",
    "is_data_uri",
    "log_audit_event",
]
