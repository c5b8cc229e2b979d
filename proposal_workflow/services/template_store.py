"""Template Store accessor - template lookup by service type with fallback."""

import logging

from proposal_workflow.core.config import map_service_type
from proposal_workflow.core.exceptions import CrmApiError, TemplateLoadError
from proposal_workflow.models.template import Template

logger = logging.getLogger(__name__)


class TemplateStore:
    """Loads the template for a service type, falling back to the default template."""

    def __init__(self, api=None):
        self._api = api

    @property
    def api(self):
        """Lazy load the CRM client."""
        if self._api is None:
            from proposal_workflow.integrations.crm_api import crm_api
            self._api = crm_api
        return self._api

    async def get_for_service_type(self, service_type: str) -> Template:
        """
        Fetch the template for a service type.

        Args:
            service_type: Service type key chosen on step 1

        Returns:
            Template with renderable HTML

        Raises:
            TemplateLoadError: neither the typed nor the default template is usable
        """
        template_type = map_service_type(service_type)
        template = None

        if template_type:
            try:
                template = await self.api.get_template_by_type(template_type)
            except (CrmApiError, ValueError) as e:
                logger.warning(f"Template for '{template_type}' unavailable ({e}) - using default")
        else:
            logger.warning(f"No template type for service type '{service_type}' - using default")

        if template is None or not template.has_content:
            template = await self._get_default()

        logger.info(f"Loaded template '{template.name}' for service type '{service_type}'")
        return template

    async def _get_default(self) -> Template:
        try:
            template = await self.api.get_default_proposal_template()
        except (CrmApiError, ValueError) as e:
            logger.error(f"Default template unavailable: {e}")
            raise TemplateLoadError("Could not load proposal template") from e

        if not template.has_content:
            raise TemplateLoadError("Proposal template has no content")
        return template


# Singleton instance
template_store = TemplateStore()
