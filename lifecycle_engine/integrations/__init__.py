"""
Integrations Package for the Lifecycle Workflow Engine.

This package provides the external providers invoked by integration steps
(e-signature, background check, document search) and the dispatcher that
drives them with bounded retries.
"""

from typing import Dict

from ..config import IntegrationSettings
from ..models import IntegrationKind
from .background_check import BackgroundCheckMockProvider
from .base_provider import BaseProvider, MockProvider, ProviderResult
from .document_search import DocumentSearchMockProvider
from .esignature import ESignatureMockProvider
from .http_provider import HTTPProvider

MOCK_PROVIDERS = {
    IntegrationKind.ESIGNATURE: ESignatureMockProvider,
    IntegrationKind.BACKGROUND_CHECK: BackgroundCheckMockProvider,
    IntegrationKind.DOCUMENT_SEARCH: DocumentSearchMockProvider,
}


def get_provider(kind: IntegrationKind, settings: IntegrationSettings) -> BaseProvider:
    """Build the provider for an integration kind, falling back to the mock."""
    provider_settings = settings.provider(kind)

    if settings.mock_mode or not provider_settings.endpoint:
        return MOCK_PROVIDERS[kind](
            provider_settings.model_dump(),
            timeout=settings.timeout_seconds,
            fail_times=provider_settings.fail_times,
            fail_always=provider_settings.fail_always,
        )

    return HTTPProvider(
        kind,
        provider_settings.endpoint,
        provider_settings.model_dump(),
        timeout=settings.timeout_seconds,
    )


def build_providers(settings: IntegrationSettings) -> Dict[IntegrationKind, BaseProvider]:
    return {kind: get_provider(kind, settings) for kind in IntegrationKind}


__all__ = [
    "BaseProvider",
    "MockProvider",
    "ProviderResult",
    "HTTPProvider",
    "ESignatureMockProvider",
    "BackgroundCheckMockProvider",
    "DocumentSearchMockProvider",
    "get_provider",
    "build_providers",
]
