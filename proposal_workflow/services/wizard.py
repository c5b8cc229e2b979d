"""
Wizard Controller - the three-step proposal authoring flow.

    Step 1 (service type) -> Step 2 (client info) -> Step 3 (edit & submit)

A disapproved proposal with stored content reopens directly on step 3.

The module-level functions are pure transitions between the step states.
WizardController wires them to the backend and owns the open sessions.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from proposal_workflow.core.config import SERVICE_TYPE_LABELS
from proposal_workflow.core.exceptions import (
    CrmApiError,
    FieldValidationError,
    ProposalWorkflowError,
    SubmissionBlockedError,
    TemplateLoadError,
)
from proposal_workflow.models.enums import NoticeLevel
from proposal_workflow.models.proposal import Inquiry, Proposal, ProposalData
from proposal_workflow.models.template import Template
from proposal_workflow.models.wizard import (
    Step1State,
    Step2State,
    Step3State,
    WizardSession,
    WizardState,
)
from proposal_workflow.services.edit_buffer import EditBuffer
from proposal_workflow.services.field_validator import (
    REQUIRED_FIELDS,
    is_advanceable,
    merge_field_error,
    validate_all,
)
from proposal_workflow.services.template_renderer import TemplateRenderer

logger = logging.getLogger(__name__)

FORM_FIELDS = REQUIRED_FIELDS + ("clientPosition", "validityDays", "notes")

# Inquiry attribute -> form field
INQUIRY_FIELD_MAPPING: Dict[str, str] = {
    "name": "clientName",
    "email": "clientEmail",
    "phone": "clientPhone",
    "company": "clientCompany",
    "position": "clientPosition",
    "address": "clientAddress",
}


# ===========================================
# Pure transitions
# ===========================================

def prefill_form(inquiry: Inquiry, today: Optional[date] = None) -> Dict[str, str]:
    """Initial client info taken from the inquiry; proposal date defaults to today."""
    form_data = {
        field: str(getattr(inquiry, attr)).strip()
        for attr, field in INQUIRY_FIELD_MAPPING.items()
        if getattr(inquiry, attr)
    }
    form_data["proposalDate"] = (today or date.today()).isoformat()
    return form_data


def form_from_proposal(proposal_data: ProposalData) -> Dict[str, str]:
    """Client info parsed back out of a stored proposal document."""
    stored = proposal_data.model_dump(by_alias=True, exclude_none=True)
    return {
        field: str(stored[field])
        for field in FORM_FIELDS
        if stored.get(field) not in (None, "")
    }


def select_service(state: Step1State, service_type: str, template: Optional[Template]) -> Step1State:
    return state.model_copy(update={"service_type": service_type, "template": template})


def to_client_info(state: Step1State) -> Step2State:
    """Step 1 -> 2; needs a service type and a loaded template."""
    if not state.service_type:
        raise FieldValidationError(
            {"serviceType": "Please select a service type."},
            message="Please select a service type"
        )
    if state.template is None:
        raise TemplateLoadError("Template not loaded")
    return Step2State(
        service_type=state.service_type,
        template=state.template,
        form_data=dict(state.form_data),
        extra_data=dict(state.extra_data),
    )


def change_field(state: Step2State, field: str, value: Optional[str]) -> Step2State:
    """Store one field and re-validate only that field."""
    form_data = dict(state.form_data)
    if value is None or value == "":
        form_data.pop(field, None)
    else:
        form_data[field] = value
    errors = merge_field_error(state.errors, field, value)
    return state.model_copy(update={"form_data": form_data, "errors": errors})


def render_fields(form_data: Mapping[str, str], service_type: Optional[str]) -> Dict[str, Any]:
    """Field map handed to the template renderer."""
    fields: Dict[str, Any] = dict(form_data)
    if service_type:
        fields["serviceType"] = service_type
        fields["serviceTypeLabel"] = SERVICE_TYPE_LABELS.get(service_type, service_type)
    return fields


def to_editor(state: Step2State, renderer: TemplateRenderer) -> Step3State:
    """
    Step 2 -> 3; renders the template to seed the editor.

    Raises:
        FieldValidationError: a required field is missing or invalid
        TemplateLoadError: the template carries no HTML
    """
    errors = validate_all(state.form_data)
    if errors or not is_advanceable(state.form_data, errors):
        raise FieldValidationError(errors)
    if not state.template.has_content:
        raise TemplateLoadError("Template has no content to render")

    html = renderer.render(
        state.template.html_template,
        render_fields(state.form_data, state.service_type)
    )
    return Step3State(
        service_type=state.service_type,
        template=state.template,
        form_data=dict(state.form_data),
        extra_data=dict(state.extra_data),
        initial_content=html,
        buffer=EditBuffer.seeded(html),
    )


def revision_state(proposal: Proposal) -> WizardState:
    """
    Reopen a disapproved proposal.

    With stored content the wizard lands on step 3, clean, skipping the
    step 1-2 checks the previous submission already passed.
    """
    data = proposal.proposal_data
    form_data = form_from_proposal(data)
    extra_data = dict(data.model_extra or {})
    if data.edited_html_content:
        return Step3State(
            service_type=data.service_type,
            form_data=form_data,
            extra_data=extra_data,
            initial_content=data.edited_html_content,
            buffer=EditBuffer.loaded(data.edited_html_content, data.edited_json_content),
            from_revision=True,
        )
    return Step1State(service_type=data.service_type, form_data=form_data, extra_data=extra_data)


def go_back(state: WizardState) -> WizardState:
    """Previous step; leaving step 3 drops the editor buffer."""
    if isinstance(state, Step3State):
        if state.template is None:
            return Step1State(
                service_type=state.service_type,
                form_data=dict(state.form_data),
                extra_data=dict(state.extra_data),
            )
        return Step2State(
            service_type=state.service_type or "",
            template=state.template,
            form_data=dict(state.form_data),
            extra_data=dict(state.extra_data),
        )
    if isinstance(state, Step2State):
        return Step1State(
            service_type=state.service_type,
            template=state.template,
            form_data=dict(state.form_data),
            extra_data=dict(state.extra_data),
        )
    return state


def build_proposal_data(state: Step3State) -> ProposalData:
    """
    The document submitted to the backend: client fields plus saved content.

    Keys carried over from a revised document go out unchanged unless a
    form field replaces them.
    """
    payload: Dict[str, Any] = dict(state.extra_data)
    payload.update({k: v for k, v in state.form_data.items() if v})
    if state.service_type:
        payload["serviceType"] = state.service_type
    payload["editedHtmlContent"] = state.buffer.saved.html
    if state.buffer.saved.document is not None:
        payload["editedJsonContent"] = state.buffer.saved.document
    return ProposalData.model_validate(payload)


# ===========================================
# Controller
# ===========================================

class WizardController:
    """
    Orchestrates wizard sessions against the backend.

    Sessions live only in memory. They are discarded on close, after a
    successful submit, or once idle for longer than the session TTL.
    """

    def __init__(
        self,
        api=None,
        store=None,
        workflow=None,
        renderer: Optional[TemplateRenderer] = None,
        session_ttl: Optional[timedelta] = None
    ):
        """Initialize controller with lazy-loaded collaborators."""
        self._api = api
        self._session_ttl = session_ttl
        self._store = store
        self._workflow = workflow
        self.renderer = renderer or TemplateRenderer()
        self._sessions: Dict[str, WizardSession] = {}
        self._revising: Dict[str, Proposal] = {}

    @property
    def api(self):
        if self._api is None:
            from proposal_workflow.integrations.crm_api import crm_api
            self._api = crm_api
        return self._api

    @property
    def store(self):
        if self._store is None:
            from proposal_workflow.services.template_store import TemplateStore
            self._store = TemplateStore(self.api)
        return self._store

    @property
    def workflow(self):
        if self._workflow is None:
            from proposal_workflow.services.proposal_workflow import ProposalWorkflow
            self._workflow = ProposalWorkflow(self.api)
        return self._workflow

    @property
    def session_ttl(self) -> timedelta:
        if self._session_ttl is None:
            from proposal_workflow.core.config import get_settings
            self._session_ttl = timedelta(minutes=get_settings().WIZARD_SESSION_TTL_MINUTES)
        return self._session_ttl

    # ===========================================
    # Session lifecycle
    # ===========================================

    def get(self, session_id: str) -> WizardSession:
        """Fetch an open session; KeyError when it does not exist."""
        session = self._sessions[session_id]
        session.last_active_at = datetime.now()
        return session

    def close(self, session_id: str) -> None:
        """Discard a session and all its progress."""
        self._sessions.pop(session_id, None)
        self._revising.pop(session_id, None)
        logger.debug(f"Wizard session {session_id} closed")

    def expire_idle(self, now: Optional[datetime] = None) -> int:
        """Discard sessions idle past the TTL; a submit in flight keeps its session."""
        cutoff = (now or datetime.now()) - self.session_ttl
        expired = [
            session_id for session_id, session in self._sessions.items()
            if session.last_active_at < cutoff and not session.is_submitting
        ]
        for session_id in expired:
            self.close(session_id)
        if expired:
            logger.info(f"Expired {len(expired)} idle wizard session(s)")
        return len(expired)

    async def open(self, inquiry: Inquiry, today: Optional[date] = None) -> WizardSession:
        """
        Open a wizard for an inquiry.

        A disapproved proposal on the inquiry switches the session to
        revision mode. The session is registered only once it has loaded.
        """
        self.expire_idle()
        session = WizardSession(
            id=str(uuid.uuid4()),
            inquiry=inquiry,
            state=Step1State(form_data=prefill_form(inquiry, today)),
        )

        if inquiry.has_disapproved_proposal:
            session.revision_of = inquiry.proposal_id
            session.rejection_reason = inquiry.proposal_rejection_reason
            await self._load_revision(session)
        elif inquiry.service_type:
            try:
                template = await self.store.get_for_service_type(inquiry.service_type)
            except TemplateLoadError as e:
                session.notify(NoticeLevel.ERROR, e.message)
                template = None
            session.state = select_service(session.state, inquiry.service_type, template)

        self._sessions[session.id] = session
        logger.info(
            f"Wizard {session.id} opened for inquiry {inquiry.id} "
            f"({'revision' if session.is_revision else 'new'}, step {session.state.step})"
        )
        return session

    async def _load_revision(self, session: WizardSession) -> None:
        try:
            proposal = await self.api.get_proposal_by_id(session.revision_of)
        except CrmApiError as e:
            logger.error(f"Failed to fetch proposal {session.revision_of}: {e}")
            session.notify(NoticeLevel.ERROR, "Could not load rejected proposal data")
            return

        state = revision_state(proposal)
        self._revising[session.id] = proposal
        session.rejection_reason = session.rejection_reason or proposal.rejection_reason
        if isinstance(state, Step1State):
            state = state.model_copy(update={
                "form_data": {**session.state.form_data, **state.form_data}
            })
        session.state = state

    # ===========================================
    # Step transitions
    # ===========================================

    async def choose_service(self, session_id: str, service_type: str) -> WizardSession:
        """Step 1: pick a service type and load its template."""
        session = self.get(session_id)
        if not isinstance(session.state, Step1State):
            raise ProposalWorkflowError("Service type can only be changed on step 1")

        try:
            template = await self.store.get_for_service_type(service_type)
        except TemplateLoadError as e:
            session.state = select_service(session.state, service_type, None)
            session.notify(NoticeLevel.ERROR, e.message)
            raise
        finally:
            await self._write_back_service_type(session.inquiry.id, service_type)

        session.state = select_service(session.state, service_type, template)
        return session

    async def _write_back_service_type(self, inquiry_id: str, service_type: str) -> None:
        """Best effort; the wizard continues regardless."""
        try:
            await self.api.update_inquiry(inquiry_id, {"serviceType": service_type})
        except CrmApiError as e:
            logger.warning(f"Could not save service type on inquiry {inquiry_id}: {e}")

    def update_fields(self, session_id: str, changes: Mapping[str, Optional[str]]) -> WizardSession:
        """Step 2: apply field edits, validating each changed field."""
        session = self.get(session_id)
        if not isinstance(session.state, Step2State):
            raise ProposalWorkflowError("Client info can only be edited on step 2")
        state = session.state
        for field, value in changes.items():
            state = change_field(state, field, value)
        session.state = state
        return session

    def advance(self, session_id: str) -> WizardSession:
        """Move to the next step if its gate passes."""
        session = self.get(session_id)
        state = session.state
        try:
            if isinstance(state, Step1State):
                session.state = to_client_info(state)
            elif isinstance(state, Step2State):
                session.state = to_editor(state, self.renderer)
        except FieldValidationError as e:
            if isinstance(state, Step2State):
                session.state = state.model_copy(update={"errors": e.errors})
            raise
        return session

    def back(self, session_id: str) -> WizardSession:
        session = self.get(session_id)
        session.state = go_back(session.state)
        return session

    # ===========================================
    # Editor
    # ===========================================

    def _editor_state(self, session: WizardSession) -> Step3State:
        if not isinstance(session.state, Step3State):
            raise ProposalWorkflowError("The editor is only available on step 3")
        return session.state

    def record_edit(self, session_id: str, html: str, document: Optional[Any] = None) -> WizardSession:
        session = self.get(session_id)
        state = self._editor_state(session)
        session.state = state.model_copy(update={"buffer": state.buffer.edit(html, document)})
        return session

    def save_content(
        self,
        session_id: str,
        html: Optional[str] = None,
        document: Optional[Any] = None
    ) -> WizardSession:
        session = self.get(session_id)
        state = self._editor_state(session)
        session.state = state.model_copy(update={"buffer": state.buffer.save(html, document)})
        session.notify(NoticeLevel.SUCCESS, "Proposal content saved")
        return session

    # ===========================================
    # Submit
    # ===========================================

    async def submit(self, session_id: str) -> Proposal:
        """
        Submit the saved content: create, or revise in revision mode.

        Blocked submissions raise before any backend call. On success the
        session is closed.
        """
        session = self.get(session_id)
        state = self._editor_state(session)
        try:
            state.buffer.ensure_submittable(session.is_submitting)
        except SubmissionBlockedError as e:
            session.notify(NoticeLevel.WARNING, e.message)
            raise

        proposal_data = build_proposal_data(state)
        template_id = state.template.id if state.template else None

        session.is_submitting = True
        try:
            if session.is_revision:
                proposal = await self._revise(session, proposal_data, template_id)
                message = "Proposal revised and resubmitted successfully"
            else:
                proposal = await self.workflow.create(session.inquiry, proposal_data, template_id)
                message = "Proposal request submitted successfully"
        except ProposalWorkflowError as e:
            logger.error(f"Submit failed for wizard {session_id}: {e.message}")
            session.notify(NoticeLevel.ERROR, e.message or "Failed to submit proposal request")
            raise
        finally:
            session.is_submitting = False

        session.submitted_proposal_id = proposal.id
        session.notify(NoticeLevel.SUCCESS, message)
        self.close(session_id)
        return proposal

    async def _revise(
        self,
        session: WizardSession,
        proposal_data: ProposalData,
        template_id: Optional[str]
    ) -> Proposal:
        original = self._revising.get(session.id)
        if original is None:
            original = await self.api.get_proposal_by_id(session.revision_of)
            self._revising[session.id] = original
        return await self.workflow.revise(original, proposal_data, template_id)


# Singleton instance
wizard_controller = WizardController()
