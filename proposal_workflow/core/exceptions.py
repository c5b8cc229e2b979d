"""Error taxonomy for the proposal workflow."""

from typing import Dict, Optional


class ProposalWorkflowError(Exception):
    """Base class for every recoverable workflow failure."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FieldValidationError(ProposalWorkflowError):
    """Client-side field validation failed; no backend call was made."""

    def __init__(self, errors: Dict[str, str], message: str = "Please fix the highlighted fields"):
        super().__init__(message)
        self.errors = dict(errors)


class TemplateLoadError(ProposalWorkflowError):
    """No usable template could be loaded, not even the default one."""


class CrmApiError(ProposalWorkflowError):
    """The CRM backend rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SubmissionBlockedError(ProposalWorkflowError):
    """Submit was attempted while the edit buffer forbids it."""


class IllegalTransitionError(ProposalWorkflowError):
    """The requested operation is not allowed from the proposal's status."""

    def __init__(self, operation: str, status: Optional[str], message: Optional[str] = None):
        super().__init__(
            message or f"Cannot {operation} a proposal with status '{status or 'none'}'"
        )
        self.operation = operation
        self.status = status


class PdfFetchError(ProposalWorkflowError):
    """The proposal PDF could not be fetched or previewed."""
