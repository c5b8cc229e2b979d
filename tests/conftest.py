"""Pytest fixtures and configuration for Proposal Workflow Engine tests."""

import os
import pytest
from typing import Dict, Any, Generator
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ.setdefault("CRM_API_URL", "http://crm.test/api")
os.environ.setdefault("CRM_API_TOKEN", "test-token")
os.environ.setdefault("TEMPLATE_CONDITIONAL_MODE", "preserve")
os.environ.setdefault("DEBUG", "true")

from proposal_workflow.models import Inquiry, Proposal, Template


# ===========================================
# Sample Data Fixtures
# ===========================================

FIXED_MONTHLY_HTML = "Dear {{clientName}},{{#if clientCompany}} from {{clientCompany}}{{/if}}."


@pytest.fixture
def sample_inquiry_record() -> Dict[str, Any]:
    """Inquiry as returned by GET /inquiries/{id}."""
    return {
        "id": "inq_test_12345",
        "name": "Jane Cruz",
        "email": "jane@acme.test",
        "phone": "+63 917 555 1234",
        "company": "Acme",
        "position": "Operations Manager",
        "address": "12 Harbor Road, Pasig City",
        "serviceType": None,
        "proposalId": None,
        "proposalStatus": None,
    }


@pytest.fixture
def sample_inquiry(sample_inquiry_record) -> Inquiry:
    return Inquiry.model_validate(sample_inquiry_record)


@pytest.fixture
def disapproved_inquiry(sample_inquiry_record) -> Inquiry:
    """Inquiry whose proposal was sent back by a reviewer."""
    return Inquiry.model_validate({
        **sample_inquiry_record,
        "serviceType": "fixed_monthly",
        "proposalId": "prop_test_001",
        "proposalStatus": "disapproved",
        "proposalRejectionReason": "Price too high",
    })


@pytest.fixture
def sample_template() -> Template:
    return Template.model_validate({
        "id": "tpl_fixed_monthly",
        "name": "Fixed Monthly Rate",
        "templateType": "fixed_monthly",
        "htmlTemplate": FIXED_MONTHLY_HTML,
        "isDefault": False,
    })


@pytest.fixture
def default_template() -> Template:
    return Template.model_validate({
        "id": "tpl_default",
        "name": "Default Proposal",
        "templateType": "default",
        "htmlTemplate": "<p>Proposal for {{clientName}}</p>",
        "isDefault": True,
    })


@pytest.fixture
def sample_proposal_record() -> Dict[str, Any]:
    """Proposal as returned by the backend; proposalData is a JSON string."""
    return {
        "id": "prop_test_001",
        "inquiryId": "inq_test_12345",
        "templateId": "tpl_fixed_monthly",
        "status": "pending",
        "proposalData": (
            '{"clientName": "Jane Cruz", "clientEmail": "jane@acme.test",'
            ' "clientCompany": "Acme", "serviceType": "fixed_monthly",'
            ' "editedHtmlContent": "Dear Jane Cruz, from Acme."}'
        ),
        "inquiryName": "Jane Cruz",
        "inquiryEmail": "jane@acme.test",
        "inquiryCompany": "Acme",
        "createdAt": "2026-10-01T09:00:00",
    }


@pytest.fixture
def make_proposal(sample_proposal_record):
    """Build a Proposal from the sample record with overrides."""
    def _make(**overrides) -> Proposal:
        return Proposal.model_validate({**sample_proposal_record, **overrides})
    return _make


@pytest.fixture
def sample_proposal(make_proposal) -> Proposal:
    return make_proposal()


@pytest.fixture
def disapproved_proposal(make_proposal) -> Proposal:
    return make_proposal(
        status="disapproved",
        rejectionReason="Price too high",
        proposalData={
            "clientName": "Jane Cruz",
            "clientEmail": "jane@acme.test",
            "clientPhone": "+63 917 555 1234",
            "clientCompany": "Acme",
            "clientAddress": "12 Harbor Road, Pasig City",
            "proposalDate": "2026-10-01",
            "serviceType": "fixed_monthly",
            "validityDays": 30,
            "editedHtmlContent": "<p>Old offer</p>",
            "editedJsonContent": {"type": "doc", "content": []},
        },
    )


# ===========================================
# Mock Fixtures
# ===========================================

@pytest.fixture
def mock_api() -> AsyncMock:
    """Standalone CRM client mock for service-level tests."""
    return AsyncMock()


@pytest.fixture
def mock_crm_api():
    """Patch the shared CRM client used by the app singletons."""
    from proposal_workflow.integrations.crm_api import crm_api
    with patch.multiple(
        crm_api,
        get_inquiry=AsyncMock(),
        update_inquiry=AsyncMock(),
        get_template_by_type=AsyncMock(),
        get_default_proposal_template=AsyncMock(),
        get_proposals=AsyncMock(),
        get_proposal_by_id=AsyncMock(),
        create_proposal=AsyncMock(),
        update_proposal=AsyncMock(),
        approve_proposal=AsyncMock(),
        reject_proposal=AsyncMock(),
        cancel_proposal=AsyncMock(),
        send_proposal=AsyncMock(),
        retry_proposal_email=AsyncMock(),
        fetch_proposal_pdf=AsyncMock(),
        preview_proposal_pdf=AsyncMock(),
    ):
        yield crm_api


# ===========================================
# Client Fixtures
# ===========================================

@pytest.fixture
def client(mock_crm_api) -> Generator[TestClient, None, None]:
    """Test client with the CRM backend mocked."""
    from proposal_workflow.main import app
    with TestClient(app) as test_client:
        yield test_client


# ===========================================
# Pytest Configuration
# ===========================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset singleton state between tests."""
    yield
    from proposal_workflow.services.wizard import wizard_controller
    from proposal_workflow.services.proposal_listing import proposal_listing
    wizard_controller._sessions.clear()
    wizard_controller._revising.clear()
    proposal_listing._previews.clear()
