"""
Background check provider for the Lifecycle Workflow Engine.
"""

from typing import Any, Dict

from ..models import IntegrationKind, utcnow
from .base_provider import MockProvider

DEFAULT_CHECK_TYPES = ["criminal", "employment"]


class BackgroundCheckMockProvider(MockProvider):
    """Simulated background check service returning check ids."""

    kind = IntegrationKind.BACKGROUND_CHECK
    correlation_prefix = "mock-check"

    def simulate(self, correlation_id: str, request_payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "check_id": correlation_id,
            "status": "in_progress",
            "candidate": request_payload.get("employee_id"),
            "check_types": request_payload.get("check_types") or DEFAULT_CHECK_TYPES,
            "initiated_at": utcnow().isoformat(),
        }
