"""
Tests for the integration providers.
"""

from unittest.mock import Mock

import pytest
import requests

from lifecycle_engine.config import IntegrationSettings, ProviderSettings
from lifecycle_engine.integrations import (
    BackgroundCheckMockProvider,
    DocumentSearchMockProvider,
    ESignatureMockProvider,
    HTTPProvider,
    build_providers,
    get_provider,
)
from lifecycle_engine.integrations.document_search import search_documents
from lifecycle_engine.models import IntegrationKind


def http_response(status_code=200, body=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = body if body is not None else {}
    response.text = ""
    return response


class TestMockProviders:

    def test_esignature_returns_envelope(self):
        result = ESignatureMockProvider().send({"employee_id": "EMP001", "document_type": "offer_letter"})
        assert result.success
        assert result.correlation_id.startswith("mock-env-")
        assert result.response["signer"] == "EMP001"

    def test_background_check_defaults_check_types(self):
        result = BackgroundCheckMockProvider().send({"employee_id": "EMP001"})
        assert result.response["check_types"] == ["criminal", "employment"]
        assert result.response["check_id"] == result.correlation_id

    def test_document_search(self):
        result = DocumentSearchMockProvider().send({"query": "handbook"})
        assert result.response["total_count"] == 1
        assert search_documents(document_type="form", limit=1)[0]["document_type"] == "form"

    def test_failure_script(self):
        provider = ESignatureMockProvider(fail_times=2)
        outcomes = [bool(provider.send({})) for _ in range(3)]
        assert outcomes == [False, False, True]
        assert provider.call_count == 3

    def test_fail_always(self):
        provider = ESignatureMockProvider(fail_always=True, error_message="Envelope rejected")
        result = provider.send({})
        assert not result
        assert result.error == "Envelope rejected"


class TestHTTPProvider:

    @pytest.fixture
    def session(self):
        return Mock(spec=requests.Session)

    @pytest.fixture
    def provider(self, session):
        return HTTPProvider(
            IntegrationKind.ESIGNATURE,
            "https://sign.example.com/envelopes",
            {"api_key": "secret", "headers": {"X-Tenant": "acme"}},
            timeout=5,
            session=session,
        )

    def test_success(self, provider, session):
        session.post.return_value = http_response(201, {"envelope_id": "env-42", "status": "sent"})

        result = provider.send({"employee_id": "EMP001"})

        assert result.success
        assert result.correlation_id == "env-42"
        _, kwargs = session.post.call_args
        assert kwargs["json"] == {"employee_id": "EMP001"}
        assert kwargs["timeout"] == 5
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["headers"]["X-Tenant"] == "acme"

    def test_http_error(self, provider, session):
        session.post.return_value = http_response(503, {"error": "maintenance"}, reason="Service Unavailable")
        result = provider.send({})
        assert not result.success
        assert result.error == "HTTP 503: maintenance"

    def test_timeout(self, provider, session):
        session.post.side_effect = requests.Timeout()
        result = provider.send({})
        assert not result.success
        assert result.error.startswith("Timeout")

    def test_network_error(self, provider, session):
        session.post.side_effect = requests.ConnectionError("refused")
        assert provider.send({}).error.startswith("Network error")

    def test_missing_correlation_id(self, provider, session):
        session.post.return_value = http_response(200, {"status": "ok"})
        result = provider.send({})
        assert not result.success
        assert "correlation id" in result.error

    def test_endpoint_required(self):
        with pytest.raises(ValueError):
            HTTPProvider(IntegrationKind.ESIGNATURE, "")


class TestProviderFactory:

    def test_mock_mode_uses_mocks(self):
        settings = IntegrationSettings(providers={
            IntegrationKind.ESIGNATURE: ProviderSettings(endpoint="https://sign.example.com", fail_times=1),
        })
        provider = get_provider(IntegrationKind.ESIGNATURE, settings)
        assert isinstance(provider, ESignatureMockProvider)
        assert provider.fail_times == 1

    def test_real_mode_uses_http_when_endpoint_set(self):
        settings = IntegrationSettings(mock_mode=False, timeout_seconds=7, providers={
            IntegrationKind.ESIGNATURE: ProviderSettings(endpoint="https://sign.example.com"),
        })
        providers = build_providers(settings)
        assert isinstance(providers[IntegrationKind.ESIGNATURE], HTTPProvider)
        assert providers[IntegrationKind.ESIGNATURE].timeout == 7
        assert isinstance(providers[IntegrationKind.BACKGROUND_CHECK], BackgroundCheckMockProvider)
        assert set(providers) == set(IntegrationKind)
