"""Jinja2 rendering for notification bodies and webhook payloads.

Template specs accepted by render_template:
- None or "" -> None
- "file:<name>" -> apps/notify/templates/<name>
- any other string -> an inline Jinja2 template

Each driver has default templates named after it (``email_text.j2``,
``email_html.j2``, ``generic_payload.j2``). Channel config can override them
with ``text_template``, ``html_template`` and ``payload_template``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import jinja2

TEMPLATES_DIR = Path(__file__).parent / "templates"

logger = logging.getLogger(__name__)

_JINJA_ENV = jinja2.Environment(
    loader=jinja2.FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def default_template(name: str) -> Optional[str]:
    """``file:`` spec for a bundled template, or None if it is not shipped."""
    return f"file:{name}" if (TEMPLATES_DIR / name).is_file() else None


def render_template(spec: Optional[str], context: dict[str, Any]) -> Optional[str]:
    """Render a template spec with `context`.

    Raises:
        ValueError: unknown spec type, missing file, or a Jinja2 error.
    """
    if not spec:
        return None
    if not isinstance(spec, str):
        raise ValueError(f"Unsupported template spec: {spec!r}")

    try:
        if spec.startswith("file:"):
            template = _JINJA_ENV.get_template(spec.split(":", 1)[1])
        else:
            template = _JINJA_ENV.from_string(spec)
        return template.render(**context)
    except jinja2.TemplateNotFound as e:
        raise ValueError(f"Template file not found: {e.name}") from e
    except jinja2.TemplateError as e:
        raise ValueError(f"Jinja2 render error: {e}") from e


class NotificationTemplatingService:
    """Renders a NotificationMessage context for a given driver."""

    def render_bodies(
        self, driver_name: str, context: dict[str, Any], config: dict[str, Any]
    ) -> tuple[str, Optional[str]]:
        """Return ``(text, html)``. The html body is optional.

        Raises:
            ValueError: the text body could not be rendered.
        """
        config = config or {}
        text_spec = config.get("text_template") or default_template(f"{driver_name}_text.j2")
        text = render_template(text_spec, context)
        if not text:
            raise ValueError(f"No text body rendered for driver '{driver_name}'")

        html_spec = config.get("html_template") or default_template(f"{driver_name}_html.j2")
        html = None
        if html_spec:
            try:
                html = render_template(html_spec, context) or None
            except ValueError:
                logger.warning(f"HTML template for driver '{driver_name}' failed to render")
        return text, html

    def render_payload(
        self, driver_name: str, context: dict[str, Any], config: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Render the driver's JSON payload template into a dict.

        Raises:
            ValueError: the template failed or did not produce a JSON object.
        """
        spec = (config or {}).get("payload_template") or default_template(
            f"{driver_name}_payload.j2"
        )
        raw = render_template(spec, context)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Payload template for '{driver_name}' is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ValueError(f"Payload template for '{driver_name}' must render a JSON object")
        return payload
