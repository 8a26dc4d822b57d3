"""
Document search provider for the Lifecycle Workflow Engine.

Looks up onboarding documents (handbooks, forms, policies) in the
document store.
"""

from typing import Any, Dict, List

from ..models import IntegrationKind
from .base_provider import MockProvider

MOCK_DOCUMENTS: List[Dict[str, Any]] = [
    {
        "name": "Employee Handbook 2025.pdf",
        "document_type": "handbook",
        "key": "documents/handbooks/employee-handbook-2025.pdf",
        "file_type": "pdf",
    },
    {
        "name": "I-9 Employment Eligibility Form.pdf",
        "document_type": "form",
        "key": "documents/forms/i9-form.pdf",
        "file_type": "pdf",
    },
    {
        "name": "W-4 Tax Withholding Form.pdf",
        "document_type": "form",
        "key": "documents/forms/w4-form.pdf",
        "file_type": "pdf",
    },
    {
        "name": "Benefits Overview 2025.pdf",
        "document_type": "policy",
        "key": "documents/policies/benefits-overview-2025.pdf",
        "file_type": "pdf",
    },
    {
        "name": "Code of Conduct.pdf",
        "document_type": "policy",
        "key": "documents/policies/code-of-conduct.pdf",
        "file_type": "pdf",
    },
]


def search_documents(query: str = "", document_type: str = "", limit: int = 10) -> List[Dict[str, Any]]:
    """Case-insensitive match on name or document type."""
    query = (query or "").lower()
    results = []
    for document in MOCK_DOCUMENTS:
        if document_type and document["document_type"] != document_type:
            continue
        if query and query not in document["name"].lower() and query not in document["document_type"]:
            continue
        results.append(dict(document))
    return results[:limit]


class DocumentSearchMockProvider(MockProvider):
    """Simulated document search over a fixed catalogue."""

    kind = IntegrationKind.DOCUMENT_SEARCH
    correlation_prefix = "mock-search"

    def simulate(self, correlation_id: str, request_payload: Dict[str, Any]) -> Dict[str, Any]:
        documents = search_documents(
            request_payload.get("query", ""),
            request_payload.get("document_type", ""),
            int(request_payload.get("limit", 10)),
        )
        return {"search_id": correlation_id, "documents": documents, "total_count": len(documents)}
