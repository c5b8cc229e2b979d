"""Proposal-related models - wire shapes shared with the CRM backend."""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from proposal_workflow.core.config import parse_proposal_data
from proposal_workflow.models.enums import ProposalStatus


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for the backend, leaving unset fields out."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ProposalData(CamelModel):
    """
    The proposal document: structured client fields plus rendered content.

    Both halves are one document version and travel as a single blob.
    Unknown keys (legacy services/pricing/terms) are kept as-is.
    """
    model_config = ConfigDict(extra="allow")

    client_name: Optional[str] = Field(None, description="Person the proposal is addressed to")
    client_email: Optional[str] = Field(None, description="Client email")
    client_phone: Optional[str] = Field(None, description="Client phone")
    client_company: Optional[str] = Field(None, description="Client company")
    client_position: Optional[str] = Field(None, description="Client position")
    client_address: Optional[str] = Field(None, description="Client address")
    proposal_date: Optional[str] = Field(None, description="Proposal date (ISO)")
    validity_days: Optional[int] = Field(None, ge=1, le=365, description="Days the offer is valid")
    service_type: Optional[str] = Field(None, description="Service type key")
    notes: Optional[str] = Field(None, description="Free-text notes")
    edited_html_content: Optional[str] = Field(None, description="Authoritative rendered HTML")
    edited_json_content: Optional[Any] = Field(
        None,
        description="Editor document snapshot for re-opening"
    )


class Proposal(CamelModel):
    """Proposal record as returned by the backend."""
    id: str = Field(..., description="Proposal ID")
    inquiry_id: Optional[str] = Field(None, description="Owning inquiry")
    template_id: Optional[str] = Field(None, description="Template used to seed content")
    status: ProposalStatus = Field(ProposalStatus.PENDING, description="Lifecycle status")
    proposal_data: ProposalData = Field(default_factory=ProposalData)
    rejection_reason: Optional[str] = Field(None, description="Reason for disapproval")
    admin_notes: Optional[str] = Field(None, description="Internal approval notes")
    pdf_url: Optional[str] = Field(None, description="Durable PDF artifact location")
    email_status: Optional[str] = Field(None, description="Delivery status of the proposal email")

    # Listing metadata
    inquiry_name: Optional[str] = Field(None, description="Client name from the inquiry")
    inquiry_email: Optional[str] = Field(None, description="Client email from the inquiry")
    inquiry_company: Optional[str] = Field(None, description="Client company from the inquiry")
    requested_by: Optional[str] = Field(None, description="Sales user who created it")
    reviewed_by: Optional[str] = Field(None, description="Reviewer user")

    created_at: Optional[datetime] = Field(None, description="Record creation time")
    updated_at: Optional[datetime] = Field(None, description="Last update time")

    @field_validator("proposal_data", mode="before")
    @classmethod
    def _decode_blob(cls, value: Any) -> Any:
        if isinstance(value, ProposalData):
            return value
        return parse_proposal_data(value)


class Inquiry(CamelModel):
    """The inquiry a proposal is written for (subset used by the wizard)."""
    id: str = Field(..., description="Inquiry ID")
    name: Optional[str] = Field(None, description="Contact name")
    email: Optional[str] = Field(None, description="Contact email")
    phone: Optional[str] = Field(None, description="Contact phone")
    company: Optional[str] = Field(None, description="Company")
    position: Optional[str] = Field(None, description="Contact position")
    address: Optional[str] = Field(None, description="Address")
    service_type: Optional[str] = Field(None, description="Chosen service type")
    proposal_id: Optional[str] = Field(None, description="Current proposal reference")
    proposal_status: Optional[str] = Field(None, description="Status of the current proposal")
    proposal_rejection_reason: Optional[str] = Field(None, description="Disapproval reason")

    @property
    def has_active_proposal(self) -> bool:
        """A referenced proposal counts as active unless it was cancelled."""
        if not self.proposal_id:
            return False
        return self.proposal_status != ProposalStatus.CANCELLED.value

    @property
    def has_disapproved_proposal(self) -> bool:
        return bool(self.proposal_id) and self.proposal_status == ProposalStatus.DISAPPROVED.value


class Pagination(CamelModel):
    """Pagination block of a listing response."""
    total: int = Field(0, ge=0)
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)
    total_pages: int = Field(1, ge=0)


class ProposalPage(CamelModel):
    """One page of proposals."""
    data: List[Proposal] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class ProposalFilters(CamelModel):
    """Listing filters: status set, free-text search and paging."""
    statuses: List[ProposalStatus] = Field(default_factory=list, description="Status set")
    search: Optional[str] = Field(None, description="Free-text search")
    inquiry_id: Optional[str] = Field(None, description="Restrict to one inquiry")
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    def to_query_params(self) -> Dict[str, Any]:
        """Build the backend query string; status is comma-joined."""
        params: Dict[str, Any] = {"page": self.page, "limit": self.limit}
        if self.statuses:
            params["status"] = ",".join(s.value for s in self.statuses)
        if self.search:
            params["search"] = self.search
        if self.inquiry_id:
            params["inquiryId"] = self.inquiry_id
        return params
