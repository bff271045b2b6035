"""
Base Service Class.

Services receive their repositories and a logger by injection and report
every outcome through :class:`ServiceResult` instead of raising.  This base
holds the logger and the failure envelopes the services share.
"""

from __future__ import annotations

from typing import Optional

from trackexpense.logger import StructuredLogger
from trackexpense.models.service_models import ServiceResult
from trackexpense.models.user import User


class BaseService:
    """Base class for all service classes."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    @staticmethod
    def _fail(error: str, status_code: int) -> ServiceResult:
        return ServiceResult(success=False, error=error, status_code=status_code)

    def _require_login(self, current_user: Optional[User]) -> Optional[ServiceResult]:
        """401 envelope when nobody is signed in, else ``None``."""
        if current_user is None:
            return self._fail("Login required.", 401)
        return None
