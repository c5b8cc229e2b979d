"""
Edit-Buffer Controller - gates submission on explicitly saved content.

The editor is an uncontrolled widget, so its live content is never
trusted for submission. Only content committed through save() can be
submitted, and only while no newer edit is pending.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from proposal_workflow.core.exceptions import SubmissionBlockedError

UNSAVED_CHANGES_MESSAGE = "You have unsaved changes in the editor. Save your changes before submitting."
EMPTY_CONTENT_MESSAGE = "Save the proposal content before submitting."
IN_FLIGHT_MESSAGE = "A submission is already in progress."


class EditorContent(BaseModel):
    """Editor content: HTML plus the editor's structured document."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    html: str = Field("", description="Rendered HTML")
    document: Optional[Any] = Field(None, alias="json", description="Structured editor snapshot")

    @property
    def is_empty(self) -> bool:
        return not self.html.strip()


class EditBuffer(BaseModel):
    """Immutable buffer state; every operation returns a new buffer."""
    model_config = ConfigDict(frozen=True)

    saved: EditorContent = Field(default_factory=EditorContent)
    current: EditorContent = Field(default_factory=EditorContent)
    dirty: bool = Field(False, description="Current content diverges from saved")

    @classmethod
    def seeded(cls, html: str, document: Optional[Any] = None) -> "EditBuffer":
        """Fresh buffer from rendered template output; nothing saved yet."""
        return cls(current=EditorContent(html=html, document=document))

    @classmethod
    def loaded(cls, html: str, document: Optional[Any] = None) -> "EditBuffer":
        """Buffer reopened from stored content; already clean and saved."""
        content = EditorContent(html=html, document=document)
        return cls(saved=content, current=content)

    def edit(self, html: str, document: Optional[Any] = None) -> "EditBuffer":
        """Record an edit event from the editor."""
        return self.model_copy(update={
            "current": EditorContent(html=html, document=document),
            "dirty": True,
        })

    def save(self, html: Optional[str] = None, document: Optional[Any] = None) -> "EditBuffer":
        """
        Commit the editor content.

        Args:
            html: Content reported by the editor at save time; defaults
                to the last recorded edit
            document: Structured snapshot reported with ``html``
        """
        current = self.current if html is None else EditorContent(html=html, document=document)
        return self.model_copy(update={"saved": current, "current": current, "dirty": False})

    def blocking_reason(self, is_submitting: bool = False) -> Optional[str]:
        """Why submission is blocked right now, or None."""
        if is_submitting:
            return IN_FLIGHT_MESSAGE
        if self.dirty:
            return UNSAVED_CHANGES_MESSAGE
        if self.saved.is_empty:
            return EMPTY_CONTENT_MESSAGE
        return None

    def can_submit(self, is_submitting: bool = False) -> bool:
        return self.blocking_reason(is_submitting) is None

    def ensure_submittable(self, is_submitting: bool = False) -> EditorContent:
        """Return the saved content or raise SubmissionBlockedError."""
        reason = self.blocking_reason(is_submitting)
        if reason:
            raise SubmissionBlockedError(reason)
        return self.saved
