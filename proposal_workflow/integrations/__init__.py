"""Integrations module - CRM backend connectors."""

from proposal_workflow.integrations.crm_api import CrmApiClient, crm_api
from proposal_workflow.integrations.pdf import PdfDocument, PdfPreview

__all__ = [
    "CrmApiClient",
    "crm_api",
    "PdfDocument",
    "PdfPreview",
]
