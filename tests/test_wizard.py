"""Tests for the wizard controller."""

import pytest
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

from proposal_workflow.core.exceptions import (
    CrmApiError,
    FieldValidationError,
    SubmissionBlockedError,
    TemplateLoadError,
)
from proposal_workflow.models.enums import ConditionalMode, NoticeLevel, ProposalStatus, UserRole
from proposal_workflow.models.proposal import ProposalPage
from proposal_workflow.models.wizard import Step1State, Step2State, Step3State
from proposal_workflow.services.edit_buffer import UNSAVED_CHANGES_MESSAGE
from proposal_workflow.services.proposal_listing import ProposalListing
from proposal_workflow.services.template_renderer import TemplateRenderer
from proposal_workflow.services.template_store import TemplateStore
from proposal_workflow.services.wizard import (
    WizardController,
    build_proposal_data,
    change_field,
    go_back,
    prefill_form,
    revision_state,
    to_client_info,
    to_editor,
)

TODAY = date(2026, 10, 19)


@pytest.fixture
def controller(mock_api) -> WizardController:
    return WizardController(
        api=mock_api,
        store=TemplateStore(mock_api),
        renderer=TemplateRenderer(ConditionalMode.PRESERVE),
    )


@pytest.fixture
def step2(sample_template) -> Step2State:
    return Step2State(
        service_type="fixed_monthly",
        template=sample_template,
        form_data={
            "clientName": "Jane Cruz",
            "clientEmail": "jane@acme.test",
            "clientPhone": "0917 555 1234",
            "clientCompany": "Acme",
            "clientAddress": "12 Harbor Road",
            "proposalDate": "2026-10-19",
        },
    )


class TestTransitions:
    """Tests for the pure step transitions."""

    def test_prefill_from_inquiry(self, sample_inquiry):
        form = prefill_form(sample_inquiry, TODAY)

        assert form["clientName"] == "Jane Cruz"
        assert form["clientCompany"] == "Acme"
        assert form["clientPosition"] == "Operations Manager"
        assert form["proposalDate"] == "2026-10-19"

    def test_step1_requires_service_type(self):
        with pytest.raises(FieldValidationError) as exc_info:
            to_client_info(Step1State())

        assert "serviceType" in exc_info.value.errors

    def test_step1_requires_template(self):
        with pytest.raises(TemplateLoadError):
            to_client_info(Step1State(service_type="fixed_monthly"))

    def test_change_field_revalidates_only_that_field(self, step2):
        state = change_field(step2, "clientPhone", "123456")

        assert state.form_data["clientPhone"] == "123456"
        assert list(state.errors) == ["clientPhone"]
        assert step2.errors == {}

    def test_to_editor_renders_seed(self, step2):
        state = to_editor(step2, TemplateRenderer(ConditionalMode.PRESERVE))

        assert isinstance(state, Step3State)
        assert state.initial_content == "Dear Jane Cruz, from Acme."
        assert state.buffer.current.html == "Dear Jane Cruz, from Acme."
        assert not state.buffer.can_submit()

    def test_to_editor_blocked_by_invalid_fields(self, step2):
        state = change_field(step2, "clientName", "John123")

        with pytest.raises(FieldValidationError) as exc_info:
            to_editor(state, TemplateRenderer())

        assert "clientName" in exc_info.value.errors

    def test_to_editor_blocked_by_empty_template(self, step2, sample_template):
        empty = sample_template.model_copy(update={"html_template": ""})
        state = step2.model_copy(update={"template": empty})

        with pytest.raises(TemplateLoadError):
            to_editor(state, TemplateRenderer())

    def test_back_from_editor_drops_buffer(self, step2):
        editor = to_editor(step2, TemplateRenderer())

        state = go_back(editor)

        assert isinstance(state, Step2State)
        assert state.form_data == step2.form_data

    def test_back_from_step1_stays(self):
        state = Step1State(service_type="hazardous")

        assert go_back(state) is state

    def test_revision_with_content_lands_on_editor(self, disapproved_proposal):
        state = revision_state(disapproved_proposal)

        assert isinstance(state, Step3State)
        assert state.from_revision
        assert state.buffer.saved.html == "<p>Old offer</p>"
        assert not state.buffer.dirty
        assert state.form_data["clientName"] == "Jane Cruz"

    def test_revision_without_content_starts_over(self, make_proposal):
        proposal = make_proposal(status="disapproved", proposalData={"clientName": "Jane Cruz"})

        state = revision_state(proposal)

        assert isinstance(state, Step1State)
        assert state.form_data == {"clientName": "Jane Cruz"}

    def test_build_proposal_data_uses_saved_content(self, step2):
        editor = to_editor(step2, TemplateRenderer())
        editor = editor.model_copy(update={"buffer": editor.buffer.save("<p>Final</p>", {"v": 1})})

        data = build_proposal_data(editor)
        payload = data.to_payload()

        assert payload["editedHtmlContent"] == "<p>Final</p>"
        assert payload["editedJsonContent"] == {"v": 1}
        assert payload["serviceType"] == "fixed_monthly"
        assert payload["clientName"] == "Jane Cruz"

    def test_revision_resubmits_stored_document_keys(self, make_proposal):
        proposal = make_proposal(
            status="disapproved",
            proposalData={
                "clientName": "Jane Cruz",
                "services": [{"name": "Grease trap cleaning", "quantity": 2}],
                "pricing": {"subtotal": 1000, "discount": 0},
                "terms": {"notes": "Net 30"},
                "editedHtmlContent": "<p>Old offer</p>",
            },
        )

        payload = build_proposal_data(revision_state(proposal)).to_payload()

        assert payload["services"] == [{"name": "Grease trap cleaning", "quantity": 2}]
        assert payload["pricing"] == {"subtotal": 1000, "discount": 0}
        assert payload["terms"] == {"notes": "Net 30"}
        assert payload["clientName"] == "Jane Cruz"
        assert payload["editedHtmlContent"] == "<p>Old offer</p>"

    def test_stored_document_keys_survive_going_back(self, make_proposal, sample_template):
        proposal = make_proposal(
            status="disapproved",
            proposalData={"clientName": "Jane Cruz", "pricing": {"subtotal": 1000}},
        )

        state = revision_state(proposal)
        state = state.model_copy(update={"service_type": "fixed_monthly", "template": sample_template})
        state = go_back(to_client_info(state))

        assert state.extra_data == {"pricing": {"subtotal": 1000}}


class TestWizardController:
    """Tests for session orchestration."""

    @pytest.mark.asyncio
    async def test_open_new_session(self, controller, sample_inquiry):
        session = await controller.open(sample_inquiry, TODAY)

        assert isinstance(session.state, Step1State)
        assert not session.is_revision
        assert session.state.form_data["proposalDate"] == "2026-10-19"
        assert controller.get(session.id) is session

    @pytest.mark.asyncio
    async def test_choose_service_loads_template_and_writes_back(
        self, controller, mock_api, sample_inquiry, sample_template
    ):
        mock_api.get_template_by_type.return_value = sample_template
        session = await controller.open(sample_inquiry, TODAY)

        await controller.choose_service(session.id, "fixed_monthly")

        mock_api.get_template_by_type.assert_awaited_once_with("fixed_monthly")
        mock_api.update_inquiry.assert_awaited_once_with(
            sample_inquiry.id, {"serviceType": "fixed_monthly"}
        )
        assert session.state.template == sample_template

    @pytest.mark.asyncio
    async def test_write_back_failure_is_ignored(self, controller, mock_api, sample_inquiry, sample_template):
        mock_api.get_template_by_type.return_value = sample_template
        mock_api.update_inquiry.side_effect = CrmApiError("boom", status_code=500)
        session = await controller.open(sample_inquiry, TODAY)

        await controller.choose_service(session.id, "fixed_monthly")

        assert session.state.template == sample_template
        assert session.notices == []

    @pytest.mark.asyncio
    async def test_typed_template_missing_falls_back_to_default(
        self, controller, mock_api, sample_inquiry, default_template
    ):
        mock_api.get_template_by_type.side_effect = CrmApiError("Not found", status_code=404)
        mock_api.get_default_proposal_template.return_value = default_template
        session = await controller.open(sample_inquiry, TODAY)

        await controller.choose_service(session.id, "clearing")

        assert session.state.template.is_default

    @pytest.mark.asyncio
    async def test_template_load_failure_is_a_notice(self, controller, mock_api, sample_inquiry):
        mock_api.get_template_by_type.side_effect = CrmApiError("Not found", status_code=404)
        mock_api.get_default_proposal_template.side_effect = CrmApiError("Down", status_code=503)
        session = await controller.open(sample_inquiry, TODAY)

        with pytest.raises(TemplateLoadError):
            await controller.choose_service(session.id, "clearing")

        assert session.notices[-1].level == NoticeLevel.ERROR
        assert session.state.template is None
        with pytest.raises(TemplateLoadError):
            controller.advance(session.id)

    @pytest.mark.asyncio
    async def test_open_preselects_inquiry_service_type(
        self, controller, mock_api, sample_inquiry, sample_template
    ):
        mock_api.get_template_by_type.return_value = sample_template
        inquiry = sample_inquiry.model_copy(update={"service_type": "fixed_monthly"})

        session = await controller.open(inquiry, TODAY)

        assert session.state.service_type == "fixed_monthly"
        assert session.state.template == sample_template

    @pytest.mark.asyncio
    async def test_invalid_fields_block_advance(self, controller, mock_api, sample_inquiry, sample_template):
        mock_api.get_template_by_type.return_value = sample_template
        session = await controller.open(sample_inquiry, TODAY)
        await controller.choose_service(session.id, "fixed_monthly")
        controller.advance(session.id)

        controller.update_fields(session.id, {"clientPhone": "123456"})
        with pytest.raises(FieldValidationError):
            controller.advance(session.id)

        assert isinstance(session.state, Step2State)
        assert "clientPhone" in session.state.errors

    @pytest.mark.asyncio
    async def test_submit_blocked_while_dirty(self, controller, mock_api, sample_inquiry, sample_template):
        mock_api.get_template_by_type.return_value = sample_template
        session = await controller.open(sample_inquiry, TODAY)
        await controller.choose_service(session.id, "fixed_monthly")
        controller.advance(session.id)
        controller.advance(session.id)
        controller.save_content(session.id)
        controller.record_edit(session.id, "<p>changed</p>")

        with pytest.raises(SubmissionBlockedError):
            await controller.submit(session.id)

        mock_api.create_proposal.assert_not_awaited()
        assert session.notices[-1].message == UNSAVED_CHANGES_MESSAGE
        assert not session.is_submitting

    @pytest.mark.asyncio
    async def test_submit_blocked_before_first_save(self, controller, mock_api, sample_inquiry, sample_template):
        mock_api.get_template_by_type.return_value = sample_template
        session = await controller.open(sample_inquiry, TODAY)
        await controller.choose_service(session.id, "fixed_monthly")
        controller.advance(session.id)
        controller.advance(session.id)

        with pytest.raises(SubmissionBlockedError):
            await controller.submit(session.id)

        mock_api.create_proposal.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backend_rejection_keeps_session(
        self, controller, mock_api, sample_inquiry, sample_template
    ):
        mock_api.get_template_by_type.return_value = sample_template
        mock_api.create_proposal.side_effect = CrmApiError("Inquiry already has a proposal", status_code=400)
        session = await controller.open(sample_inquiry, TODAY)
        await controller.choose_service(session.id, "fixed_monthly")
        controller.advance(session.id)
        controller.advance(session.id)
        controller.save_content(session.id)

        with pytest.raises(CrmApiError):
            await controller.submit(session.id)

        assert controller.get(session.id) is session
        assert not session.is_submitting
        assert session.notices[-1].message == "Inquiry already has a proposal"
        assert session.can_submit

    @pytest.mark.asyncio
    async def test_close_discards_session(self, controller, sample_inquiry):
        session = await controller.open(sample_inquiry, TODAY)

        controller.close(session.id)

        with pytest.raises(KeyError):
            controller.get(session.id)

    @pytest.mark.asyncio
    async def test_idle_sessions_expire(self, mock_api, sample_inquiry):
        controller = WizardController(api=mock_api, session_ttl=timedelta(minutes=30))
        stale = await controller.open(sample_inquiry, TODAY)
        busy = await controller.open(sample_inquiry, TODAY)
        busy.is_submitting = True
        later = datetime.now() + timedelta(minutes=31)

        assert controller.expire_idle(later) == 1

        with pytest.raises(KeyError):
            controller.get(stale.id)
        assert controller.get(busy.id) is busy

    @pytest.mark.asyncio
    async def test_failed_revision_load_leaves_no_session(self, controller, mock_api, disapproved_inquiry):
        mock_api.get_proposal_by_id.side_effect = ValueError("malformed proposal")

        with pytest.raises(ValueError):
            await controller.open(disapproved_inquiry, TODAY)

        assert controller._sessions == {}
        assert controller._revising == {}


class TestScenarios:
    """End-to-end flows through wizard and listing."""

    @pytest.mark.asyncio
    async def test_fixed_monthly_to_pending_review_badge(
        self, controller, mock_api, sample_inquiry_record, sample_template, make_proposal
    ):
        from proposal_workflow.models.proposal import Inquiry

        inquiry = Inquiry.model_validate({
            "id": "inq_test_12345",
            "phone": "0917 555 1234",
            "address": "12 Harbor Road",
        })
        mock_api.get_template_by_type.return_value = sample_template
        created = make_proposal()
        mock_api.create_proposal.return_value = created
        mock_api.get_proposals.return_value = ProposalPage(data=[created])

        session = await controller.open(inquiry, TODAY)
        await controller.choose_service(session.id, "fixed_monthly")
        controller.advance(session.id)
        controller.update_fields(session.id, {
            "clientName": "Jane Cruz",
            "clientCompany": "Acme",
            "clientEmail": "jane@acme.test",
        })
        controller.advance(session.id)

        assert session.state.initial_content == "Dear Jane Cruz, from Acme."

        controller.record_edit(session.id, "Dear Jane Cruz, from Acme. Thank you!")
        controller.save_content(session.id)
        proposal = await controller.submit(session.id)

        inquiry_id, data, template_id = mock_api.create_proposal.await_args.args
        assert inquiry_id == "inq_test_12345"
        assert data.edited_html_content == "Dear Jane Cruz, from Acme. Thank you!"
        assert template_id == "tpl_fixed_monthly"
        assert "status" not in data.to_payload()
        assert proposal.status == ProposalStatus.PENDING
        with pytest.raises(KeyError):
            controller.get(session.id)

        listing = ProposalListing(api=mock_api)
        view = await listing.load(role=UserRole.ADMIN)
        assert view.rows[0].status_label == "Pending Review"

    @pytest.mark.asyncio
    async def test_revision_reopens_on_editor(
        self, controller, mock_api, disapproved_inquiry, disapproved_proposal, make_proposal
    ):
        mock_api.get_proposal_by_id.return_value = disapproved_proposal
        mock_api.update_proposal.return_value = make_proposal(status="pending")

        session = await controller.open(disapproved_inquiry, TODAY)

        assert session.is_revision
        assert session.rejection_reason == "Price too high"
        assert isinstance(session.state, Step3State)
        assert session.state.buffer.saved.html == "<p>Old offer</p>"
        assert session.state.buffer.dirty is False
        mock_api.get_template_by_type.assert_not_awaited()

        controller.record_edit(session.id, "<p>New offer</p>")
        controller.save_content(session.id)
        proposal = await controller.submit(session.id)

        proposal_id, data, template_id = mock_api.update_proposal.await_args.args
        assert proposal_id == "prop_test_001"
        assert data.edited_html_content == "<p>New offer</p>"
        assert data.to_payload()["validityDays"] == 30
        assert template_id == "tpl_fixed_monthly"
        mock_api.create_proposal.assert_not_awaited()
        assert proposal.status == ProposalStatus.PENDING

    @pytest.mark.asyncio
    async def test_revision_fetch_failure_is_a_notice(self, controller, mock_api, disapproved_inquiry):
        mock_api.get_proposal_by_id.side_effect = CrmApiError("Not found", status_code=404)

        session = await controller.open(disapproved_inquiry, TODAY)

        assert session.is_revision
        assert isinstance(session.state, Step1State)
        assert session.notices[-1].message == "Could not load rejected proposal data"


@pytest.mark.asyncio
async def test_concurrent_submit_is_rejected(mock_api, sample_inquiry, sample_template, sample_proposal):
    """A second submit while the first is in flight never reaches the backend."""
    controller = WizardController(api=mock_api, store=TemplateStore(mock_api), renderer=TemplateRenderer())
    mock_api.get_template_by_type.return_value = sample_template
    session = await controller.open(sample_inquiry, TODAY)
    await controller.choose_service(session.id, "fixed_monthly")
    controller.advance(session.id)
    controller.advance(session.id)
    controller.save_content(session.id)

    async def create_and_resubmit(*args):
        with pytest.raises(SubmissionBlockedError):
            await controller.submit(session.id)
        return sample_proposal

    mock_api.create_proposal = AsyncMock(side_effect=create_and_resubmit)

    await controller.submit(session.id)

    mock_api.create_proposal.assert_awaited_once()
