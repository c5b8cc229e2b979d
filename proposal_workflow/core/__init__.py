"""Core module - Configuration and error taxonomy."""

from proposal_workflow.core.config import get_settings, Settings
from proposal_workflow.core.exceptions import (
    ProposalWorkflowError,
    FieldValidationError,
    TemplateLoadError,
    CrmApiError,
    SubmissionBlockedError,
    IllegalTransitionError,
    PdfFetchError,
)

__all__ = [
    "get_settings",
    "Settings",
    "ProposalWorkflowError",
    "FieldValidationError",
    "TemplateLoadError",
    "CrmApiError",
    "SubmissionBlockedError",
    "IllegalTransitionError",
    "PdfFetchError",
]
