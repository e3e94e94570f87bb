from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from flowdesk.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_ROOT = Path(__file__).resolve().parent.parent / "templates"


def _format_datetime(value: Any, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if value is None:
        return ""
    return value.strftime(fmt)


class JinjaRenderer:
    """Renders fragment and page templates shipped in ``flowdesk/templates``."""

    def __init__(self, template_dir: Optional[str] = None) -> None:
        root = Path(template_dir) if template_dir else TEMPLATE_ROOT
        self.env = Environment(
            loader=FileSystemLoader(str(root)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["datetime"] = _format_datetime
        logger.debug("template_renderer_initialized", template_dir=str(root))

    def render(self, name: str, data: Mapping[str, Any], request: Any = None) -> str:
        template = self.env.get_template(f"{name}.html")
        return template.render(**data, request=request)
