"""PDF retrieval for proposals - stored artifact or on-demand preview."""

import base64
import binascii
import logging
from typing import Literal, Optional
from pydantic import BaseModel, Field

from proposal_workflow.core.exceptions import CrmApiError, PdfFetchError

logger = logging.getLogger(__name__)


class PdfDocument(BaseModel):
    """A fetched proposal PDF."""
    proposal_id: str = Field(..., description="Proposal the PDF belongs to")
    content: bytes = Field(..., description="PDF bytes")
    source: Literal["stored", "preview"] = Field(..., description="Durable artifact or preview render")

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:application/pdf;base64,{encoded}"


class PdfPreview:
    """
    PDF viewer state for one dialog instance.

    Fetches are serialized by ``is_loading_pdf``: opening the viewer
    again while a fetch is in flight does nothing.
    """

    def __init__(self, api=None):
        """Initialize viewer state; ``api`` defaults to the shared CRM client."""
        self._api = api
        self.is_loading_pdf = False
        self.show_preview = False
        self.document: Optional[PdfDocument] = None

    @property
    def api(self):
        """Lazy load the CRM client."""
        if self._api is None:
            from proposal_workflow.integrations.crm_api import crm_api
            self._api = crm_api
        return self._api

    async def open(self, proposal_id: str) -> Optional[PdfDocument]:
        """
        Show the proposal PDF.

        Uses the stored artifact when the proposal has a pdfUrl,
        otherwise asks the backend for a preview render.

        Returns:
            The document, or None when a fetch is already in flight

        Raises:
            PdfFetchError: the viewer is closed again before raising
        """
        if self.is_loading_pdf:
            logger.debug(f"PDF for {proposal_id} already loading - ignoring request")
            return None

        self.is_loading_pdf = True
        self.show_preview = True
        try:
            proposal = await self.api.get_proposal_by_id(proposal_id)
            if proposal.pdf_url:
                content = await self.api.fetch_proposal_pdf(proposal_id)
                document = PdfDocument(proposal_id=proposal_id, content=content, source="stored")
            else:
                pdf_base64 = await self.api.preview_proposal_pdf(proposal_id)
                content = base64.b64decode(pdf_base64, validate=True)
                document = PdfDocument(proposal_id=proposal_id, content=content, source="preview")
        except (CrmApiError, binascii.Error, ValueError) as e:
            logger.error(f"Failed to load PDF for {proposal_id}: {e}")
            self.show_preview = False
            self.document = None
            message = e.message if isinstance(e, CrmApiError) else "Failed to load PDF preview"
            raise PdfFetchError(message) from e
        finally:
            self.is_loading_pdf = False

        self.document = document
        logger.info(f"Loaded {document.source} PDF for {proposal_id} ({len(content)} bytes)")
        return document

    def close(self) -> None:
        self.show_preview = False
        self.document = None
