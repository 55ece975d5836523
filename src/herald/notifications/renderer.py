"""Template rendering for notification subjects and bodies.

A template reference is either a path relative to the templates directory
(``welcome/body.html.j2``) or an inline Jinja2 template string
(``"Welcome to {{ company_name }}!"``).
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    Template,
    TemplateError,
    select_autoescape,
)

from herald.core.types import JsonObject
from herald.notifications.errors import RenderError

logger = logging.getLogger(__name__)

_TEMPLATE_SUFFIXES = (".j2", ".jinja", ".jinja2", ".html", ".txt")


@runtime_checkable
class TemplateRenderer(Protocol):
    """Turns a (template reference, context) pair into a rendered string."""

    async def render(self, template_ref: str, context: JsonObject) -> str: ...


class JinjaTemplateRenderer:
    """Jinja2 renderer with strict undefined handling.

    A missing context key is a render error, never a silently blank field.
    HTML file templates are autoescaped; inline templates are not.
    """

    def __init__(self, templates_dir: str | Path | None = None) -> None:
        self._templates_dir = Path(templates_dir) if templates_dir else None
        loader = FileSystemLoader(str(self._templates_dir)) if self._templates_dir else None
        self._env = Environment(
            loader=loader,
            undefined=StrictUndefined,
            autoescape=select_autoescape(
                enabled_extensions=("html", "htm", "xml", "html.j2", "xml.j2"),
                default_for_string=False,
            ),
            keep_trailing_newline=False,
            enable_async=True,
        )

    @property
    def templates_dir(self) -> Path | None:
        return self._templates_dir

    def _load(self, template_ref: str) -> Template:
        if "{{" in template_ref or "{%" in template_ref:
            return self._env.from_string(template_ref)

        name = template_ref.removeprefix("./")
        if self._templates_dir is not None and name and (self._templates_dir / name).is_file():
            return self._env.get_template(name)

        looks_like_path = not any(c.isspace() for c in template_ref) and template_ref.endswith(
            _TEMPLATE_SUFFIXES
        )
        if looks_like_path:
            raise RenderError(f"Template file not found: {template_ref}")
        return self._env.from_string(template_ref)

    async def render(self, template_ref: str, context: JsonObject) -> str:
        try:
            template = await asyncio.to_thread(self._load, template_ref)
            rendered = await template.render_async(**context)
            return rendered.strip()
        except RenderError:
            raise
        except (TemplateError, OSError, TypeError, ValueError) as exc:
            logger.warning("Rendering %r failed: %s", template_ref, exc)
            raise RenderError(f"{template_ref}: {exc}") from exc
