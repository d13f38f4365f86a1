"""Template rendering for email notifications using Jinja2.

Templates are HTML files named ``<name>.html`` in one directory. Placeholders
use ``{{key}}`` / ``{{ key }}``. A placeholder with no matching parameter
renders as an empty string rather than raising, so an incomplete parameter
set still produces a sendable email.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound, Undefined

from .models import TemplateMissing, TemplateRenderError

logger = logging.getLogger(__name__)

BUNDLED_TEMPLATE_DIR = Path(__file__).parent / "email_templates"
TEMPLATE_SUFFIX = ".html"


class TemplateRenderer:
    """Renders named email templates with Jinja2.

    Compiled templates are cached by the Jinja2 environment and reused across
    jobs.
    """

    def __init__(self, template_dir: Optional[Union[str, Path]] = None):
        """Initialize template renderer with a Jinja2 environment.

        Args:
            template_dir: Directory holding ``<name>.html`` files (defaults to
                the bundled email_templates directory)
        """
        self.template_dir = Path(template_dir) if template_dir else BUNDLED_TEMPLATE_DIR

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=True,
            undefined=Undefined,  # unknown placeholders render as ""
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {self.template_dir}")

    def has_template(self, template_name: str) -> bool:
        """Check whether a template file exists for ``template_name``."""
        return (self.template_dir / f"{template_name}{TEMPLATE_SUFFIX}").is_file()

    def render(self, template_name: str, params: Optional[Dict[str, str]] = None) -> str:
        """Render a named template.

        Args:
            template_name: Template name without the ``.html`` suffix
            params: Placeholder values

        Returns:
            Rendered HTML

        Raises:
            TemplateMissing: If no such template exists
            TemplateRenderError: If the template cannot be compiled or rendered
        """
        if not template_name or "/" in template_name or "\\" in template_name:
            raise TemplateMissing(template_name)

        try:
            template = self.env.get_template(f"{template_name}{TEMPLATE_SUFFIX}")
        except TemplateNotFound as e:
            raise TemplateMissing(template_name) from e
        except TemplateError as e:
            raise TemplateRenderError(f"Template '{template_name}' is invalid: {e}") from e

        return self._render(template, template_name, params)

    def render_string(self, source: str, params: Optional[Dict[str, str]] = None) -> str:
        """Render an inline template string with the same rules as named templates."""
        try:
            template = self.env.from_string(source)
        except TemplateError as e:
            raise TemplateRenderError(f"Inline template is invalid: {e}") from e

        return self._render(template, "<inline>", params)

    def _render(self, template, template_name: str, params: Optional[Dict[str, str]]) -> str:
        try:
            html = template.render(params or {})
        except TemplateError as e:
            error_msg = f"Template '{template_name}' rendering failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise TemplateRenderError(error_msg) from e

        logger.debug(f"Rendered template {template_name}")
        return html
