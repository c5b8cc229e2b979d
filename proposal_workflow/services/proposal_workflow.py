"""
Proposal State Machine - status lifecycle and the operations that drive it.

    (none) --create--> pending --approve--> approved --send--> sent
                          |  ^                  |               |
                disapprove|  |revise            |cancel         +--> accepted / rejected
                          v  |                  v                    (client, out of band)
                       disapproved          cancelled <--cancel-- pending

Preconditions are checked against the status the backend last reported.
The resulting state is always taken from the backend's response, never
assumed.
"""

import logging
from typing import Dict, FrozenSet, List, Optional, Tuple

from proposal_workflow.core.exceptions import (
    FieldValidationError,
    IllegalTransitionError,
    SubmissionBlockedError,
)
from proposal_workflow.models.enums import ProposalStatus, UserRole
from proposal_workflow.models.proposal import Inquiry, Proposal, ProposalData

logger = logging.getLogger(__name__)

CREATE = "create"
APPROVE = "approve"
DISAPPROVE = "disapprove"
REVISE = "revise"
SEND = "send"
CANCEL = "cancel"
RETRY_EMAIL = "retry_email"

# operation -> (allowed source statuses, target status); None means "no proposal yet"
TRANSITIONS: Dict[str, Tuple[FrozenSet[Optional[ProposalStatus]], Optional[ProposalStatus]]] = {
    CREATE: (frozenset({None}), ProposalStatus.PENDING),
    APPROVE: (frozenset({ProposalStatus.PENDING}), ProposalStatus.APPROVED),
    DISAPPROVE: (frozenset({ProposalStatus.PENDING}), ProposalStatus.DISAPPROVED),
    REVISE: (frozenset({ProposalStatus.DISAPPROVED}), ProposalStatus.PENDING),
    SEND: (frozenset({ProposalStatus.APPROVED}), ProposalStatus.SENT),
    CANCEL: (frozenset({ProposalStatus.PENDING, ProposalStatus.APPROVED}), ProposalStatus.CANCELLED),
    # Re-dispatches the email; status is unchanged
    RETRY_EMAIL: (frozenset({ProposalStatus.PENDING, ProposalStatus.APPROVED}), None),
}

# Written by the client outside this system; rendered, never requested
CLIENT_TRANSITIONS: Dict[ProposalStatus, FrozenSet[ProposalStatus]] = {
    ProposalStatus.SENT: frozenset({ProposalStatus.ACCEPTED, ProposalStatus.REJECTED}),
}

REVIEWER_OPERATIONS = frozenset({APPROVE, DISAPPROVE})

TERMINAL_STATUSES = frozenset({
    ProposalStatus.ACCEPTED,
    ProposalStatus.REJECTED,
    ProposalStatus.CANCELLED,
})


def can_transition(operation: str, status: Optional[ProposalStatus]) -> bool:
    """Whether ``operation`` is legal from ``status``."""
    rule = TRANSITIONS.get(operation)
    return rule is not None and status in rule[0]


def next_status(operation: str, status: Optional[ProposalStatus]) -> Optional[ProposalStatus]:
    """
    Target status of an operation.

    Raises:
        IllegalTransitionError: the operation is unknown or illegal from ``status``
    """
    if not can_transition(operation, status):
        raise IllegalTransitionError(operation, status.value if status else None)
    return TRANSITIONS[operation][1]


def is_reviewer(role: Optional[UserRole]) -> bool:
    return role is not None and role != UserRole.SALES


def allowed_operations(status: Optional[ProposalStatus], role: Optional[UserRole] = None) -> List[str]:
    """Operations legal from ``status`` for the given role, in table order."""
    operations = []
    for operation in TRANSITIONS:
        if not can_transition(operation, status):
            continue
        if operation in REVIEWER_OPERATIONS and not is_reviewer(role):
            continue
        operations.append(operation)
    return operations


class ProposalWorkflow:
    """
    Drives proposal transitions against the CRM backend.

    Each operation validates its input and precondition locally, issues
    exactly one mutating call, and returns the proposal as the backend
    now reports it.
    """

    def __init__(self, api=None):
        self._api = api

    @property
    def api(self):
        """Lazy load the CRM client."""
        if self._api is None:
            from proposal_workflow.integrations.crm_api import crm_api
            self._api = crm_api
        return self._api

    # ===========================================
    # Helpers
    # ===========================================

    @staticmethod
    def _check(operation: str, proposal: Proposal) -> None:
        next_status(operation, proposal.status)

    @staticmethod
    def _check_reviewer(operation: str, role: Optional[UserRole]) -> None:
        if not is_reviewer(role):
            raise IllegalTransitionError(
                operation,
                None,
                message=f"Only reviewers can {operation} proposals"
            )

    @staticmethod
    def _require_content(proposal_data: ProposalData) -> None:
        if not (proposal_data.edited_html_content or "").strip():
            raise SubmissionBlockedError("Proposal content is required")

    async def _resolved(self, proposal_id: str, result: Optional[Proposal]) -> Proposal:
        if result is not None:
            return result
        return await self.api.get_proposal_by_id(proposal_id)

    # ===========================================
    # Sales operations
    # ===========================================

    async def create(
        self,
        inquiry: Inquiry,
        proposal_data: ProposalData,
        template_id: Optional[str] = None
    ) -> Proposal:
        """Create a pending proposal for an inquiry without an active one."""
        if inquiry.has_active_proposal:
            raise IllegalTransitionError(
                CREATE,
                inquiry.proposal_status,
                message="This inquiry already has an active proposal"
            )
        self._require_content(proposal_data)

        proposal = await self.api.create_proposal(inquiry.id, proposal_data, template_id)
        logger.info(f"Proposal {proposal.id} created for inquiry {inquiry.id} ({proposal.status.value})")
        return proposal

    async def revise(
        self,
        proposal: Proposal,
        proposal_data: ProposalData,
        template_id: Optional[str] = None
    ) -> Proposal:
        """Resubmit a disapproved proposal under the same ID."""
        self._check(REVISE, proposal)
        self._require_content(proposal_data)

        updated = await self.api.update_proposal(
            proposal.id,
            proposal_data,
            template_id or proposal.template_id
        )
        logger.info(f"Proposal {proposal.id} revised ({updated.status.value})")
        return updated

    async def send(self, proposal: Proposal, confirm: bool = True) -> Proposal:
        """Send an approved proposal to the client."""
        self._check(SEND, proposal)
        result = await self.api.send_proposal(proposal.id, confirm)
        logger.info(f"Proposal {proposal.id} sent to client")
        return await self._resolved(proposal.id, result)

    async def cancel(self, proposal: Proposal) -> Proposal:
        self._check(CANCEL, proposal)
        result = await self.api.cancel_proposal(proposal.id)
        logger.info(f"Proposal {proposal.id} cancelled")
        return await self._resolved(proposal.id, result)

    async def retry_email(self, proposal: Proposal) -> Proposal:
        """Retry a failed proposal email."""
        self._check(RETRY_EMAIL, proposal)
        if proposal.email_status != "failed":
            raise IllegalTransitionError(
                RETRY_EMAIL,
                proposal.status.value,
                message="Email can only be retried after a failed delivery"
            )
        result = await self.api.retry_proposal_email(proposal.id)
        logger.info(f"Proposal {proposal.id} email re-dispatched")
        return await self._resolved(proposal.id, result)

    # ===========================================
    # Reviewer operations
    # ===========================================

    async def approve(
        self,
        proposal: Proposal,
        admin_notes: Optional[str] = None,
        role: Optional[UserRole] = UserRole.ADMIN
    ) -> Proposal:
        """Approve a pending proposal, optionally attaching internal notes."""
        self._check_reviewer(APPROVE, role)
        self._check(APPROVE, proposal)

        notes = (admin_notes or "").strip()
        result = await self.api.approve_proposal(proposal.id, notes)
        logger.info(f"Proposal {proposal.id} approved")
        return await self._resolved(proposal.id, result)

    async def disapprove(
        self,
        proposal: Proposal,
        rejection_reason: Optional[str],
        role: Optional[UserRole] = UserRole.ADMIN
    ) -> Proposal:
        """Disapprove a pending proposal; a reason is required."""
        self._check_reviewer(DISAPPROVE, role)
        reason = (rejection_reason or "").strip()
        if not reason:
            raise FieldValidationError(
                {"rejectionReason": "Rejection reason is required."},
                message="Please provide a reason for rejection"
            )
        self._check(DISAPPROVE, proposal)

        result = await self.api.reject_proposal(proposal.id, reason)
        logger.info(f"Proposal {proposal.id} disapproved")
        return await self._resolved(proposal.id, result)


# Singleton instance
proposal_workflow = ProposalWorkflow()
