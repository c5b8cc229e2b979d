"""Wizard session models - one state type per step."""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator

from proposal_workflow.models.enums import NoticeLevel
from proposal_workflow.models.proposal import Inquiry
from proposal_workflow.models.template import Template
from proposal_workflow.services.edit_buffer import EditBuffer


class Step1State(BaseModel):
    """Service selection."""
    model_config = ConfigDict(frozen=True)

    step: Literal[1] = 1
    service_type: Optional[str] = Field(None, description="Selected service type")
    template: Optional[Template] = Field(None, description="Template loaded for the service type")
    form_data: Dict[str, str] = Field(default_factory=dict, description="Client info carried along")
    extra_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Stored document keys outside the client form, resubmitted unchanged"
    )


class Step2State(BaseModel):
    """Client info entry; a template is always loaded here."""
    model_config = ConfigDict(frozen=True)

    step: Literal[2] = 2
    service_type: str = Field(..., description="Selected service type")
    template: Template = Field(..., description="Loaded template")
    form_data: Dict[str, str] = Field(default_factory=dict, description="Client fields")
    extra_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Stored document keys outside the client form, resubmitted unchanged"
    )
    errors: Dict[str, str] = Field(default_factory=dict, description="Field -> error message")


class Step3State(BaseModel):
    """Edit and submit."""
    model_config = ConfigDict(frozen=True)

    step: Literal[3] = 3
    service_type: Optional[str] = Field(None, description="Selected service type")
    template: Optional[Template] = Field(None, description="Template the content came from")
    form_data: Dict[str, str] = Field(default_factory=dict, description="Client fields")
    extra_data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Stored document keys outside the client form, resubmitted unchanged"
    )
    initial_content: str = Field("", description="HTML the editor was seeded with")
    buffer: EditBuffer = Field(default_factory=EditBuffer)
    from_revision: bool = Field(False, description="Entered through the revision shortcut")

    @model_validator(mode="after")
    def _requires_source(self) -> "Step3State":
        if self.template is None and not self.from_revision:
            raise ValueError("step 3 requires a loaded template or revision content")
        return self


WizardState = Annotated[Union[Step1State, Step2State, Step3State], Field(discriminator="step")]


class Notice(BaseModel):
    """Transient notification shown to the user."""
    level: NoticeLevel
    message: str
    created_at: datetime = Field(default_factory=datetime.now)


class WizardSession(BaseModel):
    """
    One open proposal wizard.

    Lives only in memory; closing the wizard discards it.
    """
    id: str = Field(..., description="Session ID")
    inquiry: Inquiry = Field(..., description="Inquiry the proposal is for")
    state: WizardState = Field(default_factory=Step1State)
    revision_of: Optional[str] = Field(None, description="Proposal ID being revised")
    rejection_reason: Optional[str] = Field(None, description="Reason shown as a banner on revision")
    is_submitting: bool = Field(False, description="A submit call is in flight")
    submitted_proposal_id: Optional[str] = Field(None, description="Result of the last submit")
    last_active_at: datetime = Field(default_factory=datetime.now, description="Last time the session was used")
    notices: List[Notice] = Field(default_factory=list)

    @property
    def is_revision(self) -> bool:
        return self.revision_of is not None

    @property
    def can_submit(self) -> bool:
        state = self.state
        return isinstance(state, Step3State) and state.buffer.can_submit(self.is_submitting)

    def notify(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self.notices.append(notice)
        return notice
