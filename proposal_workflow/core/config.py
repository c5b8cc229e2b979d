"""Configuration management for the Proposal Workflow Engine."""

import json
import logging
from functools import lru_cache
from typing import Dict, Any, Optional
from pydantic_settings import BaseSettings
from pydantic import Field

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ===========================================
    # CRM Backend API Configuration
    # ===========================================
    CRM_API_URL: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the CRM backend API"
    )
    CRM_API_TOKEN: str = Field(default="", description="Bearer token for the CRM backend")
    CRM_API_TIMEOUT: Optional[float] = Field(
        default=None,
        description="Request timeout in seconds (None = wait for the backend)"
    )

    # ===========================================
    # Server Configuration
    # ===========================================
    DEBUG: bool = Field(default=True, description="Debug mode")

    # ===========================================
    # Proposal Workflow
    # ===========================================
    TEMPLATE_CONDITIONAL_MODE: str = Field(
        default="preserve",
        description="How {{#if}} blocks on unknown keys render: 'preserve' or 'resolve'"
    )
    PROPOSALS_PAGE_SIZE: int = Field(default=10, ge=1, le=100, description="Listing page size")
    WIZARD_SESSION_TTL_MINUTES: int = Field(
        default=120,
        ge=1,
        description="Idle wizard sessions older than this are discarded"
    )
    PDF_PREVIEW_CACHE_SIZE: int = Field(default=50, ge=1, description="Open PDF viewers kept at most")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# ===========================================
# Service Type -> Template Type Mapping
# ===========================================
# Each service type offered on step 1 selects exactly one template type

SERVICE_TYPE_TEMPLATE_MAPPING: Dict[str, str] = {
    "waste_collection": "compactor_hauling",
    "hazardous": "hazardous_waste",
    "fixed_monthly": "fixed_monthly",
    "clearing": "clearing_project",
    "one_time": "one_time_hauling",
    "long_term": "long_term",
    "recyclables": "recyclables_purchase",
}

SERVICE_TYPE_LABELS: Dict[str, str] = {
    "waste_collection": "Waste Collection (Compactor Hauling)",
    "hazardous": "Hazardous Waste Collection",
    "fixed_monthly": "Fixed Monthly Rate",
    "clearing": "Clearing Project",
    "one_time": "One Time Hauling",
    "long_term": "Long Term Garbage (Per-kg)",
    "recyclables": "Purchase of Recyclables",
}


def map_service_type(service_type: Optional[str]) -> Optional[str]:
    """
    Map a service type to the template type that renders it.

    Args:
        service_type: Service type key chosen on step 1

    Returns:
        Template type key, or None for an unknown service type
    """
    if not service_type:
        return None
    return SERVICE_TYPE_TEMPLATE_MAPPING.get(service_type.strip().lower())


def parse_proposal_data(raw: Any) -> Dict[str, Any]:
    """
    Normalize the proposalData blob returned by the backend.

    The backend stores proposalData as a serialized string but some
    routes return it already decoded.

    Args:
        raw: JSON string, dict or None

    Returns:
        Decoded dictionary (empty on missing or malformed data)
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, (str, bytes)):
        try:
            decoded = json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"Malformed proposalData blob: {e}")
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
