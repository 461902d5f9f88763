"""
Template Renderer
=================

Renders notification subjects and bodies.

Syntax:
- {{path.to.value}}       dotted lookup into the bindings
- {{#if path}}...{{/if}}  section kept only when the value is truthy

Unresolved placeholders render as an empty string and are reported back
as warnings. The renderer holds no state and is safe to share.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Mapping

from supportwatch.notifications.domain.conditions import get_nested_value
from supportwatch.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_IF_BLOCK = re.compile(
    r"\{\{\s*#if\s+([^{}\s]+)\s*\}\}((?:(?!\{\{\s*#if\s).)*?)\{\{\s*/if\s*\}\}",
    re.DOTALL,
)
_PLACEHOLDER = re.compile(r"\{\{\s*([^{}#/\s][^{}]*?)\s*\}\}")
_STRAY_TAG = re.compile(r"\{\{\s*[#/][^{}]*\}\}")

_MISSING = object()


@dataclass
class RenderResult:
    text: str
    missing: List[str] = field(default_factory=list)


def format_value(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return ", ".join(format_value(item) for item in value)
    return str(value)


class TemplateRenderer:
    """Pure template renderer for `{{placeholder}}` templates."""

    def render(self, template: str, bindings: Mapping[str, Any]) -> str:
        """Render template and log any unresolved placeholders."""
        result = self.render_with_report(template, bindings)
        if result.missing:
            logger.warning(
                "Unresolved template placeholders",
                extra={"placeholders": result.missing}
            )
        return result.text

    def render_with_report(self, template: str, bindings: Mapping[str, Any]) -> RenderResult:
        if not template:
            return RenderResult(text="")

        missing: List[str] = []
        text = template

        # Innermost blocks first so nested sections resolve outward
        while True:
            text, count = _IF_BLOCK.subn(
                lambda match: self._render_block(match, bindings), text
            )
            if count == 0:
                break

        # Leftover block tags come from the template itself, never from bound values
        stray = _STRAY_TAG.findall(text)
        if stray:
            missing.extend(tag for tag in stray if tag not in missing)
            text = _STRAY_TAG.sub("", text)

        def substitute(match: re.Match) -> str:
            path = match.group(1)
            value = get_nested_value(bindings, path, _MISSING)
            if value is _MISSING or value is None:
                if path not in missing:
                    missing.append(path)
                return ""
            return format_value(value)

        text = _PLACEHOLDER.sub(substitute, text)

        return RenderResult(text=text, missing=missing)

    @staticmethod
    def _render_block(match: re.Match, bindings: Mapping[str, Any]) -> str:
        value = get_nested_value(bindings, match.group(1), None)
        return match.group(2) if value else ""
