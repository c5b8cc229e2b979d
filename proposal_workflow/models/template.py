"""Template models."""

from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Template(BaseModel):
    """A proposal template as served by the backend (read-only)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(None, description="Template ID")
    name: str = Field("", description="Display name")
    type: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("templateType", "type"),
        serialization_alias="templateType",
        description="Template type key mapped from the service type"
    )
    html_template: Optional[str] = Field(
        None,
        alias="htmlTemplate",
        description="HTML skeleton with placeholder syntax"
    )
    is_default: bool = Field(False, alias="isDefault", description="Fallback template flag")

    @property
    def has_content(self) -> bool:
        """Whether the template carries renderable HTML."""
        return bool(self.html_template)
