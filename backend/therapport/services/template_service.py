# backend/therapport/services/template_service.py
"""
Jinja2 rendering for outbound email bodies.

Templates live under ``therapport/templates``; every render gets the brand
and frontend context merged in.
"""

from datetime import date, datetime, time
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, TemplateNotFound

from ..core.config import settings
from ..core.constants import BRAND_NAME
from ..utils.money import format_gbp

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


def _format_date(value: Union[date, datetime, str], format_str: str = "%A %-d %B %Y") -> str:
    if isinstance(value, str):
        return value
    return value.strftime(format_str)


def _format_time(value: Union[time, datetime, str], format_str: str = "%H:%M") -> str:
    if isinstance(value, str):
        return value
    return value.strftime(format_str)


class TemplateService:
    """Renders templates relative to the package template directory."""

    def __init__(self, template_dir: Optional[Path] = None):
        self.env = Environment(
            loader=FileSystemLoader(template_dir or TEMPLATE_DIR),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["gbp"] = format_gbp
        self.env.filters["format_date"] = _format_date
        self.env.filters["format_time"] = _format_time

    def get_common_context(self) -> Dict[str, Any]:
        return {
            "brand_name": BRAND_NAME,
            "current_year": datetime.now().year,
            "frontend_url": settings.frontend_url,
            "support_email": settings.from_email,
        }

    def render_template(self, template_name: str, context: Optional[Dict[str, Any]] = None, **kwargs: Any) -> str:
        """
        Render a template with the common context merged in.

        Raises:
            TemplateNotFound: If template doesn't exist
        """
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            logger.error(f"Template not found: {template_name}")
            raise
        full_context = self.get_common_context()
        if context:
            full_context.update(context)
        full_context.update(kwargs)
        return template.render(full_context)
