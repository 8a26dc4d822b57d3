"""
Base Provider Classes for the Lifecycle Workflow Engine.

This module provides the generic contract every external integration
provider (e-signature, background check, document search) implements,
plus a scripted mock base used in development and tests.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..models import IntegrationKind

logger = logging.getLogger(__name__)


class ProviderResult:
    """Result of a provider call."""

    def __init__(self, success: bool, correlation_id: Optional[str] = None,
                 response: Optional[Dict[str, Any]] = None, error: Optional[str] = None):
        self.success = success
        self.correlation_id = correlation_id
        self.response = response or {}
        self.error = error

    @classmethod
    def ok(cls, correlation_id: str, response: Optional[Dict[str, Any]] = None) -> "ProviderResult":
        return cls(True, correlation_id=correlation_id, response=response)

    @classmethod
    def failure(cls, error: str, response: Optional[Dict[str, Any]] = None) -> "ProviderResult":
        return cls(False, response=response, error=error)

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.correlation_id or self.error}"


class BaseProvider(ABC):
    """
    Abstract base class for all integration providers.

    Providers are stateless from the engine's point of view: one call to
    send() is one real network attempt.
    """

    kind: IntegrationKind

    def __init__(self, config: Optional[Dict[str, Any]] = None, timeout: float = 30.0):
        """
        Initialize the provider.

        Args:
            config: Provider settings (endpoint, credentials, ...)
            timeout: Seconds before a call is abandoned
        """
        self.config = config or {}
        self.timeout = timeout
        logger.info(f"Initialized {self.__class__.__name__} (timeout={timeout}s)")

    @abstractmethod
    def send(self, request_payload: Dict[str, Any]) -> ProviderResult:
        """
        Send a request to the provider.

        Args:
            request_payload: Provider request built from the step's config

        Returns:
            ProviderResult with the correlation id on success, or the error
        """
        pass

    def get_name(self) -> str:
        return self.__class__.__name__.replace("Provider", "").lower()


class MockProvider(BaseProvider):
    """
    Base class for simulated providers.

    Supports a failure script so retry and exhaustion paths can be
    exercised: the first `fail_times` calls fail, or every call fails when
    `fail_always` is set.
    """

    correlation_prefix = "mock"

    def __init__(self, config: Optional[Dict[str, Any]] = None, timeout: float = 30.0,
                 fail_times: int = 0, fail_always: bool = False,
                 error_message: str = "Service unavailable (simulated)"):
        super().__init__(config, timeout)
        self.fail_times = fail_times
        self.fail_always = fail_always
        self.error_message = error_message
        self.calls = []
        self._lock = threading.Lock()

    def send(self, request_payload: Dict[str, Any]) -> ProviderResult:
        with self._lock:
            self.calls.append(dict(request_payload))
            call_number = len(self.calls)

        if self.fail_always or call_number <= self.fail_times:
            logger.info(f"{self.__class__.__name__} simulated failure on call {call_number}")
            return ProviderResult.failure(self.error_message)

        correlation_id = f"{self.correlation_prefix}-{uuid.uuid4().hex[:8]}"
        response = self.simulate(correlation_id, request_payload)
        logger.info(f"{self.__class__.__name__} accepted request {correlation_id}")
        return ProviderResult.ok(correlation_id, response)

    def simulate(self, correlation_id: str, request_payload: Dict[str, Any]) -> Dict[str, Any]:
        """Build the simulated provider response."""
        return {"id": correlation_id, "status": "accepted"}

    @property
    def call_count(self) -> int:
        return len(self.calls)
