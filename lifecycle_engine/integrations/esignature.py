"""
E-signature provider for the Lifecycle Workflow Engine.

Sends envelopes (offer letters, tax forms, separation agreements) out for
signature.
"""

from typing import Any, Dict

from ..models import IntegrationKind, utcnow
from .base_provider import MockProvider


class ESignatureMockProvider(MockProvider):
    """Simulated e-signature service returning envelope ids."""

    kind = IntegrationKind.ESIGNATURE
    correlation_prefix = "mock-env"

    def simulate(self, correlation_id: str, request_payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "envelope_id": correlation_id,
            "status": "sent",
            "document_type": request_payload.get("document_type"),
            "signer": request_payload.get("employee_id"),
            "sent_at": utcnow().isoformat(),
        }
