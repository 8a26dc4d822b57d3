"""
HTTP provider for the Lifecycle Workflow Engine.

Generic JSON-over-HTTP adapter used for real e-signature, background check
and document search services. The remote endpoint receives the request
payload and is expected to answer with a JSON body carrying an `id`
(or `correlation_id`) field.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..models import IntegrationKind
from .base_provider import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

CORRELATION_FIELDS = ("correlation_id", "id", "envelope_id", "check_id", "search_id")


class HTTPProvider(BaseProvider):
    """POSTs request payloads to a provider endpoint."""

    def __init__(self, kind: IntegrationKind, endpoint: str, config: Optional[Dict[str, Any]] = None,
                 timeout: float = 30.0, session: Optional[requests.Session] = None):
        super().__init__(config, timeout)
        if not endpoint:
            raise ValueError(f"Endpoint is required for {kind.value} HTTP provider")
        self.kind = kind
        self.endpoint = endpoint
        self.session = session or requests.Session()

        headers = {"Content-Type": "application/json"}
        headers.update(self.config.get("headers") or {})
        api_key = self.config.get("api_key")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.headers = headers

    def send(self, request_payload: Dict[str, Any]) -> ProviderResult:
        try:
            response = self.session.post(
                self.endpoint, json=request_payload, headers=self.headers, timeout=self.timeout
            )
        except requests.Timeout:
            logger.warning(f"{self.kind.value} provider timed out after {self.timeout}s")
            return ProviderResult.failure(f"Timeout after {self.timeout}s")
        except requests.RequestException as e:
            logger.warning(f"{self.kind.value} provider request failed: {e}")
            return ProviderResult.failure(f"Network error: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text[:1000]}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.status_code >= 400:
            error = body.get("error") or body.get("message") or response.reason
            return ProviderResult.failure(f"HTTP {response.status_code}: {error}", body)

        correlation_id = next((str(body[f]) for f in CORRELATION_FIELDS if body.get(f)), None)
        if not correlation_id:
            return ProviderResult.failure("Provider response did not include a correlation id", body)

        return ProviderResult.ok(correlation_id, body)

    def get_name(self) -> str:
        return f"http:{self.kind.value}"
