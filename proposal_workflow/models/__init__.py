"""Models package - All Pydantic models organized by domain."""

from proposal_workflow.models.enums import (
    ProposalStatus,
    ServiceType,
    TemplateType,
    UserRole,
    ConditionalMode,
    NoticeLevel,
)
from proposal_workflow.models.template import Template
from proposal_workflow.models.proposal import (
    ProposalData,
    Proposal,
    Inquiry,
    Pagination,
    ProposalPage,
    ProposalFilters,
)
from proposal_workflow.models.wizard import (
    Step1State,
    Step2State,
    Step3State,
    WizardState,
    Notice,
    WizardSession,
)

__all__ = [
    # Enums
    "ProposalStatus",
    "ServiceType",
    "TemplateType",
    "UserRole",
    "ConditionalMode",
    "NoticeLevel",
    # Template models
    "Template",
    # Proposal models
    "ProposalData",
    "Proposal",
    "Inquiry",
    "Pagination",
    "ProposalPage",
    "ProposalFilters",
    # Wizard models
    "Step1State",
    "Step2State",
    "Step3State",
    "WizardState",
    "Notice",
    "WizardSession",
]
