"""Proposal API Routes - wizard sessions and the review listing."""

import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Header, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from proposal_workflow.integrations.crm_api import crm_api
from proposal_workflow.models.enums import ProposalStatus, UserRole
from proposal_workflow.models.proposal import Proposal
from proposal_workflow.models.wizard import Step3State, WizardSession
from proposal_workflow.services.proposal_listing import ListingView, apply_filters, proposal_listing
from proposal_workflow.services.wizard import wizard_controller

logger = logging.getLogger(__name__)

wizard_router = APIRouter(prefix="/wizard", tags=["wizard"])
proposals_router = APIRouter(prefix="/proposals", tags=["proposals"])


class RequestModel(BaseModel):
    """Request body accepting camelCase or snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OpenWizardRequest(RequestModel):
    inquiry_id: str


class ServiceTypeRequest(RequestModel):
    service_type: str


class FieldsRequest(RequestModel):
    fields: Dict[str, Optional[str]] = Field(default_factory=dict)


class ContentRequest(RequestModel):
    html: Optional[str] = None
    document: Optional[Any] = Field(None, alias="json")


class ApproveRequest(RequestModel):
    admin_notes: Optional[str] = None


class RejectRequest(RequestModel):
    rejection_reason: Optional[str] = None


class SendRequest(RequestModel):
    confirm: bool = True


class WizardResponse(BaseModel):
    """Session plus the derived submit gate."""
    session: WizardSession
    can_submit: bool
    submit_blocked_reason: Optional[str] = None

    @classmethod
    def from_session(cls, session: WizardSession) -> "WizardResponse":
        reason = None
        if isinstance(session.state, Step3State):
            reason = session.state.buffer.blocking_reason(session.is_submitting)
        return cls(session=session, can_submit=session.can_submit, submit_blocked_reason=reason)


def _session(session_id: str) -> WizardSession:
    try:
        return wizard_controller.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Wizard session {session_id} not found")


# ===========================================
# Wizard
# ===========================================

@wizard_router.post("", response_model=WizardResponse, status_code=201, summary="Open proposal wizard")
async def open_wizard(request: OpenWizardRequest) -> WizardResponse:
    """Open a wizard for an inquiry; revision mode when its proposal was disapproved."""
    logger.info(f"Opening proposal wizard for inquiry {request.inquiry_id}")
    inquiry = await crm_api.get_inquiry(request.inquiry_id)
    session = await wizard_controller.open(inquiry)
    return WizardResponse.from_session(session)


@wizard_router.get("/{session_id}", response_model=WizardResponse)
async def get_wizard(session_id: str) -> WizardResponse:
    return WizardResponse.from_session(_session(session_id))


@wizard_router.post("/{session_id}/service-type", response_model=WizardResponse)
async def choose_service_type(session_id: str, request: ServiceTypeRequest) -> WizardResponse:
    _session(session_id)
    session = await wizard_controller.choose_service(session_id, request.service_type)
    return WizardResponse.from_session(session)


@wizard_router.patch("/{session_id}/fields", response_model=WizardResponse)
async def update_fields(session_id: str, request: FieldsRequest) -> WizardResponse:
    _session(session_id)
    session = wizard_controller.update_fields(session_id, request.fields)
    return WizardResponse.from_session(session)


@wizard_router.post("/{session_id}/next", response_model=WizardResponse)
async def next_step(session_id: str) -> WizardResponse:
    _session(session_id)
    return WizardResponse.from_session(wizard_controller.advance(session_id))


@wizard_router.post("/{session_id}/back", response_model=WizardResponse)
async def previous_step(session_id: str) -> WizardResponse:
    _session(session_id)
    return WizardResponse.from_session(wizard_controller.back(session_id))


@wizard_router.put("/{session_id}/content", response_model=WizardResponse)
async def record_edit(session_id: str, request: ContentRequest) -> WizardResponse:
    """Editor change event; marks the buffer dirty."""
    _session(session_id)
    session = wizard_controller.record_edit(session_id, request.html or "", request.document)
    return WizardResponse.from_session(session)


@wizard_router.post("/{session_id}/save", response_model=WizardResponse)
async def save_content(session_id: str, request: Optional[ContentRequest] = None) -> WizardResponse:
    _session(session_id)
    request = request or ContentRequest()
    session = wizard_controller.save_content(session_id, request.html, request.document)
    return WizardResponse.from_session(session)


@wizard_router.post("/{session_id}/submit", response_model=Proposal, status_code=201)
async def submit_wizard(session_id: str) -> Proposal:
    _session(session_id)
    return await wizard_controller.submit(session_id)


@wizard_router.delete("/{session_id}", status_code=204)
async def close_wizard(session_id: str) -> Response:
    wizard_controller.close(session_id)
    return Response(status_code=204)


# ===========================================
# Listing / Review
# ===========================================

@proposals_router.get("", response_model=ListingView, summary="List proposals")
async def list_proposals(
    status: Optional[str] = Query(None, description="Comma-separated status set"),
    search: Optional[str] = None,
    inquiry_id: Optional[str] = Query(None, alias="inquiryId"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    role: UserRole = Header(UserRole.SALES, alias="X-User-Role"),
) -> ListingView:
    statuses: List[ProposalStatus] = []
    if status:
        try:
            statuses = [ProposalStatus(s.strip()) for s in status.split(",") if s.strip()]
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status in '{status}'")

    filters = apply_filters(
        proposal_listing.default_filters(),
        statuses=statuses,
        search=search,
        inquiry_id=inquiry_id,
    )
    filters = apply_filters(filters, page=page, limit=limit or filters.limit)
    return await proposal_listing.load(filters, role)


@proposals_router.get("/{proposal_id}", response_model=Proposal)
async def get_proposal(proposal_id: str) -> Proposal:
    return await proposal_listing.review(proposal_id)


@proposals_router.post("/{proposal_id}/approve", response_model=Proposal)
async def approve_proposal(
    proposal_id: str,
    request: ApproveRequest,
    role: UserRole = Header(UserRole.SALES, alias="X-User-Role"),
) -> Proposal:
    return await proposal_listing.approve(proposal_id, request.admin_notes, role)


@proposals_router.post("/{proposal_id}/reject", response_model=Proposal)
async def reject_proposal(
    proposal_id: str,
    request: RejectRequest,
    role: UserRole = Header(UserRole.SALES, alias="X-User-Role"),
) -> Proposal:
    return await proposal_listing.reject(proposal_id, request.rejection_reason, role)


@proposals_router.post("/{proposal_id}/send", response_model=Proposal)
async def send_proposal(
    proposal_id: str,
    request: SendRequest,
    role: UserRole = Header(UserRole.SALES, alias="X-User-Role"),
) -> Proposal:
    return await proposal_listing.send(proposal_id, role, request.confirm)


@proposals_router.post("/{proposal_id}/cancel", response_model=Proposal)
async def cancel_proposal(proposal_id: str) -> Proposal:
    return await proposal_listing.cancel(proposal_id)


@proposals_router.post("/{proposal_id}/retry-email", response_model=Proposal)
async def retry_proposal_email(proposal_id: str) -> Proposal:
    return await proposal_listing.retry_email(proposal_id)


@proposals_router.get("/{proposal_id}/pdf", summary="View proposal PDF")
async def proposal_pdf(proposal_id: str) -> Response:
    """Stored PDF when available, otherwise a preview render."""
    document = await proposal_listing.open_pdf(proposal_id)
    if document is None:
        raise HTTPException(status_code=409, detail="PDF is already loading")
    proposal_listing.close_pdf(proposal_id)
    return Response(
        content=document.content,
        media_type="application/pdf",
        headers={"X-Pdf-Source": document.source},
    )
