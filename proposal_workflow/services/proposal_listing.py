"""
Listing/Review surface - filters, paginates and dispatches reviewer actions.

Rows carry the status badge and the actions the viewer may take. The
actions themselves go through the proposal state machine.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from proposal_workflow.core.config import get_settings
from proposal_workflow.core.exceptions import IllegalTransitionError
from proposal_workflow.integrations.pdf import PdfDocument, PdfPreview
from proposal_workflow.models.enums import ProposalStatus, UserRole
from proposal_workflow.models.proposal import Pagination, Proposal, ProposalFilters
from proposal_workflow.services.proposal_workflow import is_reviewer

logger = logging.getLogger(__name__)

REVIEW = "review"
APPROVE = "approve"
REJECT = "reject"
SEND = "send"
REVISE = "revise"

ACTION_LABELS: Dict[str, str] = {
    REVIEW: "Review",
    APPROVE: "Approve",
    REJECT: "Reject",
    SEND: "Send to Client",
    REVISE: "Revise",
}

STATUS_LABELS: Dict[str, str] = {
    ProposalStatus.PENDING.value: "Pending Review",
    ProposalStatus.APPROVED.value: "Approved",
    ProposalStatus.REJECTED.value: "Rejected",
    ProposalStatus.SENT.value: "Sent",
}

STATUS_STYLES: Dict[str, str] = {
    ProposalStatus.PENDING.value: "warning",
    ProposalStatus.APPROVED.value: "success",
    ProposalStatus.REJECTED.value: "error",
    ProposalStatus.SENT.value: "info",
}


def status_label(status: ProposalStatus) -> str:
    """Badge text; statuses without a label show their literal value."""
    value = ProposalStatus(status).value
    return STATUS_LABELS.get(value, value)


def status_style(status: ProposalStatus) -> str:
    return STATUS_STYLES.get(ProposalStatus(status).value, "default")


def available_actions(status: ProposalStatus, role: Optional[UserRole] = None) -> List[str]:
    """Actions offered on a row, in display order."""
    actions = [REVIEW]
    if status == ProposalStatus.PENDING and is_reviewer(role):
        actions.extend([APPROVE, REJECT])
    if status == ProposalStatus.APPROVED:
        actions.append(SEND)
    if status == ProposalStatus.DISAPPROVED:
        actions.append(REVISE)
    return actions


def status_counts(proposals: List[Proposal]) -> Dict[str, int]:
    """Per-status counts over the given page."""
    return dict(Counter(p.status.value for p in proposals))


def apply_filters(filters: ProposalFilters, **changes: Any) -> ProposalFilters:
    """
    Return new filters with ``changes`` applied.

    Any change other than the page itself sends the listing back to page 1.
    """
    update = dict(changes)
    if "page" not in update and any(k != "page" for k in update):
        update["page"] = 1
    return ProposalFilters.model_validate({**filters.model_dump(), **update})


class ProposalRow(BaseModel):
    """One listing row."""
    id: str
    inquiry_id: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_company: Optional[str] = None
    status: ProposalStatus
    status_label: str
    status_style: str
    actions: List[str] = Field(default_factory=list)
    email_status: Optional[str] = None
    has_pdf: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_proposal(cls, proposal: Proposal, role: Optional[UserRole] = None) -> "ProposalRow":
        data = proposal.proposal_data
        return cls(
            id=proposal.id,
            inquiry_id=proposal.inquiry_id,
            client_name=proposal.inquiry_name or data.client_name,
            client_email=proposal.inquiry_email or data.client_email,
            client_company=proposal.inquiry_company or data.client_company,
            status=proposal.status,
            status_label=status_label(proposal.status),
            status_style=status_style(proposal.status),
            actions=available_actions(proposal.status, role),
            email_status=proposal.email_status,
            has_pdf=bool(proposal.pdf_url),
            created_at=proposal.created_at,
        )


class ListingView(BaseModel):
    """A rendered page of the listing."""
    rows: List[ProposalRow] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)
    filters: ProposalFilters
    status_counts: Dict[str, int] = Field(default_factory=dict)


class ProposalListing:
    """Loads listing pages and dispatches row actions."""

    def __init__(self, api=None, workflow=None):
        self._api = api
        self._workflow = workflow
        self._previews: Dict[str, PdfPreview] = {}

    @property
    def api(self):
        """Lazy load the CRM client."""
        if self._api is None:
            from proposal_workflow.integrations.crm_api import crm_api
            self._api = crm_api
        return self._api

    @property
    def workflow(self):
        if self._workflow is None:
            from proposal_workflow.services.proposal_workflow import ProposalWorkflow
            self._workflow = ProposalWorkflow(self.api)
        return self._workflow

    def default_filters(self) -> ProposalFilters:
        return ProposalFilters(limit=get_settings().PROPOSALS_PAGE_SIZE)

    async def load(
        self,
        filters: Optional[ProposalFilters] = None,
        role: Optional[UserRole] = None
    ) -> ListingView:
        """Fetch one page and decorate it for display."""
        filters = filters or self.default_filters()
        page = await self.api.get_proposals(filters)
        logger.debug(
            f"Listing page {page.pagination.page}/{page.pagination.total_pages}: "
            f"{len(page.data)} proposals"
        )
        return ListingView(
            rows=[ProposalRow.from_proposal(p, role) for p in page.data],
            pagination=page.pagination,
            filters=filters,
            status_counts=status_counts(page.data),
        )

    async def review(self, proposal_id: str) -> Proposal:
        return await self.api.get_proposal_by_id(proposal_id)

    # ===========================================
    # Row actions
    # ===========================================

    async def _offered(self, proposal_id: str, action: str, role: Optional[UserRole]) -> Proposal:
        """Fetch the current proposal and check the action is offered on it."""
        proposal = await self.api.get_proposal_by_id(proposal_id)
        if action not in available_actions(proposal.status, role):
            raise IllegalTransitionError(
                action,
                proposal.status.value,
                message=f"'{ACTION_LABELS.get(action, action)}' is not available for this proposal"
            )
        return proposal

    async def approve(
        self,
        proposal_id: str,
        admin_notes: Optional[str] = None,
        role: Optional[UserRole] = None
    ) -> Proposal:
        proposal = await self._offered(proposal_id, APPROVE, role)
        return await self.workflow.approve(proposal, admin_notes, role=role)

    async def reject(
        self,
        proposal_id: str,
        rejection_reason: Optional[str],
        role: Optional[UserRole] = None
    ) -> Proposal:
        proposal = await self._offered(proposal_id, REJECT, role)
        return await self.workflow.disapprove(proposal, rejection_reason, role=role)

    async def send(self, proposal_id: str, role: Optional[UserRole] = None, confirm: bool = True) -> Proposal:
        proposal = await self._offered(proposal_id, SEND, role)
        return await self.workflow.send(proposal, confirm)

    async def cancel(self, proposal_id: str) -> Proposal:
        proposal = await self.api.get_proposal_by_id(proposal_id)
        return await self.workflow.cancel(proposal)

    async def retry_email(self, proposal_id: str) -> Proposal:
        proposal = await self.api.get_proposal_by_id(proposal_id)
        return await self.workflow.retry_email(proposal)

    # ===========================================
    # PDF
    # ===========================================

    def preview(self, proposal_id: str) -> PdfPreview:
        """PDF viewer for a proposal's review dialog."""
        if proposal_id not in self._previews:
            self._evict_idle_previews(get_settings().PDF_PREVIEW_CACHE_SIZE - 1)
            self._previews[proposal_id] = PdfPreview(self.api)
        return self._previews[proposal_id]

    def _evict_idle_previews(self, keep: int) -> None:
        """Close the oldest viewers until at most ``keep`` remain; loading viewers stay."""
        for proposal_id in list(self._previews):
            if len(self._previews) <= keep:
                break
            if not self._previews[proposal_id].is_loading_pdf:
                self.close_pdf(proposal_id)

    async def open_pdf(self, proposal_id: str) -> Optional[PdfDocument]:
        return await self.preview(proposal_id).open(proposal_id)

    def close_pdf(self, proposal_id: str) -> None:
        preview = self._previews.pop(proposal_id, None)
        if preview is not None:
            preview.close()


# Singleton instance
proposal_listing = ProposalListing()
