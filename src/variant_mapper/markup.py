"""
Content pipeline helpers.

Bind a variant's content to a stored Theme Adapter: build the two-part
injection payload, render it as the embedded ``<script>`` block the
injection agent reads, or render standalone ordered markup for the variant.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from variant_mapper.constants import PAYLOAD_ELEMENT_ID
from variant_mapper.models import CanonicalField, ElementSelector, RenderStrategy, ThemeAdapter

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


def canonical_variant_data(variant_data: Dict[str, Any]) -> Dict[str, Any]:
    """Key variant content by canonical field name, dropping unknown keys."""
    result: Dict[str, Any] = {}
    for key, value in variant_data.items():
        canonical = CanonicalField.from_key(key)
        if canonical is None:
            logger.debug(f"Ignoring unknown variant field {key!r}")
            continue
        if key == canonical.value or canonical.value not in result:
            result[canonical.value] = value
    return result


def _eligible(entry: ElementSelector, min_confidence: Optional[float]) -> bool:
    return min_confidence is None or entry.confidence >= min_confidence


def build_injection_payload(
    variant_data: Dict[str, Any],
    adapter: ThemeAdapter,
    min_confidence: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Build the payload embedded in the product page.

    Args:
        variant_data: Variant content keyed by field name or alias
        adapter: Theme Adapter for the page's theme
        min_confidence: Leave out adapter fields scoring below this

    Returns:
        ``{"variant_data": ..., "theme_adapter": {"selectors": ..., ...}}``
    """
    entries = [e for e in adapter.selectors if _eligible(e, min_confidence)]
    dropped = len(adapter.selectors) - len(entries)
    if dropped:
        logger.debug(f"Excluded {dropped} fields under confidence {min_confidence}")

    theme_adapter: Dict[str, Any] = {
        "selectors": {e.key.value: e.selector for e in entries},
    }
    fallbacks = {e.key.value: e.fallback_selector for e in entries if e.fallback_selector}
    if fallbacks:
        theme_adapter["fallbacks"] = fallbacks
    strategies = {
        e.key.value: e.strategy.value for e in entries
        if e.strategy != e.key.default_strategy
    }
    if strategies:
        theme_adapter["strategies"] = strategies
    attributes = {e.key.value: dict(e.attributes) for e in entries if e.attributes}
    if attributes:
        theme_adapter["attributes"] = attributes

    return {
        "variant_data": canonical_variant_data(variant_data),
        "theme_adapter": theme_adapter,
    }


class MarkupRenderer:
    """Renders payload scripts and variant layouts from Jinja2 templates."""

    def __init__(self, template_dir: Optional[str] = None):
        """Initialize renderer.

        Args:
            template_dir: Directory containing Jinja2 templates (defaults to the packaged ones)
        """
        template_path = Path(template_dir) if template_dir else TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(str(template_path)),
            autoescape=select_autoescape(["html"]),
        )

    def render_payload_script(
        self,
        payload: Dict[str, Any],
        element_id: str = PAYLOAD_ELEMENT_ID,
    ) -> str:
        """Render the ``<script type="application/json">`` block carrying ``payload``."""
        # "</" would let variant content close the script element early
        payload_json = json.dumps(payload, ensure_ascii=False).replace("</", "<\\/")
        template = self.env.get_template("payload_script.html")
        return template.render(element_id=element_id, payload_json=payload_json)

    def render_layout(
        self,
        adapter: ThemeAdapter,
        variant_data: Dict[str, Any],
        min_confidence: Optional[float] = None,
    ) -> str:
        """
        Render the variant's fields as ordered markup blocks.

        Fields follow the adapter's ``order``. Without ``min_confidence``,
        fields the builder marked low-confidence are left out.
        """
        content = canonical_variant_data(variant_data)
        blocks: List[Dict[str, Any]] = []
        for entry in adapter.selectors:
            if min_confidence is None and entry.low_confidence:
                continue
            if not _eligible(entry, min_confidence):
                continue
            value = content.get(entry.key.value)
            if value is None or value == "" or value == []:
                continue
            if entry.strategy == RenderStrategy.LIST_TEXT and not isinstance(value, (list, tuple)):
                value = [value]
            if entry.strategy == RenderStrategy.IMAGE_SRC and isinstance(value, (list, tuple)):
                value = value[0]
            alt_source = entry.attributes.get("alt_source")
            blocks.append({
                "key": entry.key.value,
                "selector": entry.selector,
                "strategy": entry.strategy.value,
                "value": value,
                "alt": content.get(alt_source, "") if alt_source else "",
            })

        template = self.env.get_template("variant_layout.html")
        return template.render(theme_fingerprint=adapter.theme_fingerprint, blocks=blocks)


_default_renderer: Optional[MarkupRenderer] = None


def _renderer() -> MarkupRenderer:
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = MarkupRenderer()
    return _default_renderer


def render_payload_script(payload: Dict[str, Any], element_id: str = PAYLOAD_ELEMENT_ID) -> str:
    """Render the payload script with the packaged template."""
    return _renderer().render_payload_script(payload, element_id)


def render_layout(
    adapter: ThemeAdapter,
    variant_data: Dict[str, Any],
    min_confidence: Optional[float] = None,
) -> str:
    """Render ordered variant markup with the packaged template."""
    return _renderer().render_layout(adapter, variant_data, min_confidence)
