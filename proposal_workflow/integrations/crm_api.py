"""CRM backend API client - the sole source of truth for proposals."""

import logging
from typing import Any, Dict, Optional
import httpx

from proposal_workflow.core.config import get_settings
from proposal_workflow.core.exceptions import CrmApiError
from proposal_workflow.models.proposal import (
    Inquiry,
    Proposal,
    ProposalData,
    ProposalFilters,
    ProposalPage,
)
from proposal_workflow.models.template import Template

logger = logging.getLogger(__name__)


class CrmApiClient:
    """
    Async client for the CRM backend.

    Every call either returns the backend's resolved payload or raises
    CrmApiError; callers never infer success.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize client; unset values come from settings."""
        self._base_url = base_url
        self._token = token
        self._transport = transport
        self._settings = None

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def base_url(self) -> str:
        return (self._base_url or self.settings.CRM_API_URL).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token if self._token is not None else self.settings.CRM_API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.settings.CRM_API_TIMEOUT,
            transport=self._transport,
        )

    # ===========================================
    # Transport
    # ===========================================

    async def _send(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException:
            logger.error(f"CRM API timeout: {method} {path}")
            raise CrmApiError("The server took too long to respond")
        except httpx.HTTPError as e:
            logger.error(f"CRM API transport error: {method} {path} - {e}")
            raise CrmApiError(f"Could not reach the server: {e}")

        if response.is_error:
            message = self._error_message(response)
            logger.error(f"CRM API error: {method} {path} {response.status_code} - {message}")
            raise CrmApiError(message, status_code=response.status_code)

        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"Request failed with status {response.status_code}"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Request failed with status {response.status_code}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Send a JSON request and return the decoded body."""
        response = await self._send(method, path, json=json, params=params)
        try:
            body = response.json()
        except ValueError:
            raise CrmApiError("Server returned non-JSON response", status_code=response.status_code)

        if isinstance(body, dict) and body.get("success") is False:
            raise CrmApiError(
                str(body.get("message") or "Request failed"),
                status_code=response.status_code
            )
        return body

    @staticmethod
    def _unwrap(body: Any) -> Any:
        """Strip the {success, data} envelope when present."""
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    @staticmethod
    def _maybe_proposal(body: Any) -> Optional[Proposal]:
        data = CrmApiClient._unwrap(body)
        if isinstance(data, dict) and data.get("id"):
            return Proposal.model_validate(data)
        return None

    # ===========================================
    # Templates
    # ===========================================

    async def get_template_by_type(self, template_type: str) -> Template:
        body = await self._request("GET", f"/proposal-templates/type/{template_type}")
        return Template.model_validate(self._unwrap(body))

    async def get_default_proposal_template(self) -> Template:
        body = await self._request("GET", "/proposal-templates/default")
        return Template.model_validate(self._unwrap(body))

    # ===========================================
    # Proposals
    # ===========================================

    async def get_proposals(self, filters: ProposalFilters) -> ProposalPage:
        """Fetch one page of proposals."""
        body = await self._request("GET", "/proposals", params=filters.to_query_params())
        if isinstance(body, list):
            body = {"data": body}
        page = ProposalPage.model_validate({
            "data": body.get("data") or [],
            "pagination": body.get("pagination") or {
                "total": len(body.get("data") or []),
                "page": filters.page,
                "limit": filters.limit,
                "totalPages": 1,
            },
        })
        logger.debug(f"Fetched {len(page.data)} proposals (page {page.pagination.page})")
        return page

    async def get_proposal_by_id(self, proposal_id: str) -> Proposal:
        body = await self._request("GET", f"/proposals/{proposal_id}")
        return Proposal.model_validate(self._unwrap(body))

    async def create_proposal(
        self,
        inquiry_id: str,
        proposal_data: ProposalData,
        template_id: Optional[str] = None
    ) -> Proposal:
        """Create a proposal; the backend assigns the ID and the pending status."""
        payload: Dict[str, Any] = {
            "inquiryId": inquiry_id,
            "proposalData": proposal_data.to_payload(),
        }
        if template_id:
            payload["templateId"] = template_id

        body = await self._request("POST", "/proposals", json=payload)
        proposal = Proposal.model_validate(self._unwrap(body))
        logger.info(f"Created proposal {proposal.id} for inquiry {inquiry_id}")
        return proposal

    async def update_proposal(
        self,
        proposal_id: str,
        proposal_data: ProposalData,
        template_id: Optional[str] = None
    ) -> Proposal:
        """Replace the document of an existing proposal (revision)."""
        payload: Dict[str, Any] = {"proposalData": proposal_data.to_payload()}
        if template_id:
            payload["templateId"] = template_id

        body = await self._request("PUT", f"/proposals/{proposal_id}", json=payload)
        proposal = self._maybe_proposal(body)
        if proposal is None:
            # Some backends answer a bare success envelope
            proposal = await self.get_proposal_by_id(proposal_id)
        logger.info(f"Updated proposal {proposal_id}")
        return proposal

    async def approve_proposal(self, proposal_id: str, admin_notes: str = "") -> Optional[Proposal]:
        body = await self._request(
            "POST", f"/proposals/{proposal_id}/approve", json={"adminNotes": admin_notes}
        )
        return self._maybe_proposal(body)

    async def reject_proposal(self, proposal_id: str, rejection_reason: str) -> Optional[Proposal]:
        body = await self._request(
            "POST", f"/proposals/{proposal_id}/reject", json={"rejectionReason": rejection_reason}
        )
        return self._maybe_proposal(body)

    async def cancel_proposal(self, proposal_id: str) -> Optional[Proposal]:
        body = await self._request("POST", f"/proposals/{proposal_id}/cancel")
        return self._maybe_proposal(body)

    async def send_proposal(self, proposal_id: str, confirm: bool = True) -> Optional[Proposal]:
        body = await self._request(
            "POST", f"/proposals/{proposal_id}/send", json={"confirm": confirm}
        )
        return self._maybe_proposal(body)

    async def retry_proposal_email(self, proposal_id: str) -> Optional[Proposal]:
        body = await self._request("POST", f"/proposals/{proposal_id}/retry-email")
        return self._maybe_proposal(body)

    # ===========================================
    # PDF
    # ===========================================

    async def fetch_proposal_pdf(self, proposal_id: str) -> bytes:
        """Download the durable PDF artifact."""
        response = await self._send("GET", f"/proposals/{proposal_id}/pdf")
        return response.content

    async def preview_proposal_pdf(self, proposal_id: str) -> str:
        """Request a just-in-time preview render; returns base64 PDF."""
        body = await self._request("POST", f"/proposals/{proposal_id}/preview-pdf")
        data = self._unwrap(body)
        pdf_base64 = data.get("pdfBase64") if isinstance(data, dict) else None
        if not pdf_base64:
            raise CrmApiError("Failed to generate PDF")
        return pdf_base64

    # ===========================================
    # Inquiries
    # ===========================================

    async def get_inquiry(self, inquiry_id: str) -> Inquiry:
        body = await self._request("GET", f"/inquiries/{inquiry_id}")
        return Inquiry.model_validate(self._unwrap(body))

    async def update_inquiry(self, inquiry_id: str, data: Dict[str, Any]) -> None:
        await self._request("PUT", f"/inquiries/{inquiry_id}", json=data)


# Singleton instance
crm_api = CrmApiClient()
