"""
Variant Injection Agent.

Applies a variant's content to an already-rendered product page using the
selectors embedded alongside it. The page carries a single JSON block::

    <script id="adlign-data" type="application/json">
      {"variant_data": {...}, "theme_adapter": {"selectors": {...}}}
    </script>

A page without that block, or with a block of any other shape, is left
untouched. Each field is resolved and applied independently: a missing
node skips that field and records a diagnostic, nothing else.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from variant_mapper.constants import PAYLOAD_ELEMENT_ID
from variant_mapper.intelligence.element_selectors import is_price_element, select_nodes
from variant_mapper.models import CanonicalField, RenderStrategy

logger = logging.getLogger(__name__)


@dataclass
class InjectionDiagnostic:
    """Why one field was not applied."""
    field: str
    reason: str
    selector: Optional[str] = None

    def __str__(self) -> str:
        location = f" ({self.selector})" if self.selector else ""
        return f"{self.field}: {self.reason}{location}"


@dataclass
class InjectionReport:
    """Outcome of one apply pass."""
    payload_found: bool = False
    applied: List[str] = field(default_factory=list)
    fallbacks_used: List[str] = field(default_factory=list)
    diagnostics: List[InjectionDiagnostic] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


@dataclass(frozen=True)
class FieldBinding:
    """Where and how one field is written."""
    field: CanonicalField
    selector: str
    fallback_selector: Optional[str] = None
    strategy: RenderStrategy = RenderStrategy.TEXT
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InjectionPayload:
    """Validated content of the embedded payload block."""
    variant_data: Dict[CanonicalField, Any]
    bindings: Dict[CanonicalField, FieldBinding]

    @classmethod
    def parse(cls, raw: Any) -> Optional["InjectionPayload"]:
        """
        Validate the two-part payload shape.

        Returns:
            The payload, or None when the shape is not recognised
        """
        if not isinstance(raw, dict):
            return None
        variant_raw = raw.get("variant_data")
        adapter_raw = raw.get("theme_adapter")
        if not isinstance(variant_raw, dict) or not isinstance(adapter_raw, dict):
            return None
        selectors = adapter_raw.get("selectors")
        if not isinstance(selectors, dict):
            return None

        fallbacks = _canonical_map(adapter_raw.get("fallbacks"))
        strategies = _canonical_map(adapter_raw.get("strategies"))
        attributes = _canonical_map(adapter_raw.get("attributes"))

        bindings: Dict[CanonicalField, FieldBinding] = {}
        for canonical, selector in _canonical_map(selectors).items():
            if not isinstance(selector, str) or not selector.strip():
                continue
            fallback = fallbacks.get(canonical)
            extras = attributes.get(canonical)
            if not isinstance(fallback, str) or not fallback.strip():
                fallback = None
            bindings[canonical] = FieldBinding(
                field=canonical,
                selector=selector.strip(),
                fallback_selector=fallback,
                strategy=_strategy(strategies.get(canonical), canonical),
                attributes=dict(extras) if isinstance(extras, dict) else {},
            )

        return cls(variant_data=_canonical_map(variant_raw), bindings=bindings)


def _canonical_map(raw: Any) -> Dict[CanonicalField, Any]:
    """Key a mapping by canonical field; canonical names win over aliases."""
    if not isinstance(raw, dict):
        return {}
    result: Dict[CanonicalField, Any] = {}
    for key, value in raw.items():
        canonical = CanonicalField.from_key(key)
        if canonical is not None and key == canonical.value:
            result[canonical] = value
    for key, value in raw.items():
        canonical = CanonicalField.from_key(key)
        if canonical is not None:
            result.setdefault(canonical, value)
    return result


def _strategy(raw: Any, canonical: CanonicalField) -> RenderStrategy:
    try:
        return RenderStrategy(raw)
    except ValueError:
        return canonical.default_strategy


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class VariantInjectionAgent:
    """
    Applies an embedded variant payload to a parsed page.

    ``apply`` is the only entry point. It mutates the document in place,
    never raises for payload or selector problems and can be called any
    number of times with the same result.
    """

    def __init__(self, payload_element_id: str = PAYLOAD_ELEMENT_ID):
        self.payload_element_id = payload_element_id

    def apply(self, document: BeautifulSoup) -> InjectionReport:
        """Apply the embedded payload to ``document``."""
        report = InjectionReport()
        payload_element = document.find(id=self.payload_element_id)
        payload = self._read_payload(payload_element)
        if payload is None:
            return report
        report.payload_found = True

        for canonical in CanonicalField.by_priority():
            binding = payload.bindings.get(canonical)
            if binding is None or canonical not in payload.variant_data:
                continue
            value = payload.variant_data[canonical]
            if _is_blank(value):
                continue

            target, used_selector = self._resolve(document, binding, payload_element)
            if target is None:
                self._diagnose(report, canonical, "no element matches selector", binding.selector)
                continue
            if used_selector != binding.selector:
                report.fallbacks_used.append(canonical.value)

            try:
                problem = self._apply_field(document, target, binding, value, payload)
            except Exception as e:
                logger.debug(f"Applying {canonical.value} raised", exc_info=True)
                problem = f"apply failed: {e}"

            if problem:
                self._diagnose(report, canonical, problem, used_selector)
            else:
                report.applied.append(canonical.value)

        logger.debug(
            f"Variant applied: {len(report.applied)} fields, "
            f"{len(report.diagnostics)} skipped"
        )
        return report

    def _read_payload(self, element: Optional[Tag]) -> Optional[InjectionPayload]:
        if element is None:
            logger.debug("No variant payload on page")
            return None
        try:
            raw = json.loads(element.string or element.get_text() or "")
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug(f"Unreadable variant payload: {e}")
            return None
        payload = InjectionPayload.parse(raw)
        if payload is None:
            logger.debug("Variant payload has an unexpected shape")
        return payload

    @staticmethod
    def _resolve(
        document: BeautifulSoup,
        binding: FieldBinding,
        payload_element: Optional[Tag],
    ) -> Tuple[Optional[Tag], Optional[str]]:
        for selector in (binding.selector, binding.fallback_selector):
            if not selector:
                continue
            matches = [
                node for node in select_nodes(document, selector) if node is not payload_element
            ]
            if matches:
                return matches[0], selector
            logger.debug(f"{binding.field.value}: selector {selector!r} matched nothing")
        return None, None

    @staticmethod
    def _diagnose(
        report: InjectionReport,
        canonical: CanonicalField,
        reason: str,
        selector: Optional[str],
    ) -> None:
        diagnostic = InjectionDiagnostic(canonical.value, reason, selector)
        report.diagnostics.append(diagnostic)
        logger.debug(f"Skipped {diagnostic}")

    def _apply_field(
        self,
        document: BeautifulSoup,
        target: Tag,
        binding: FieldBinding,
        value: Any,
        payload: InjectionPayload,
    ) -> Optional[str]:
        """Write one field. Returns a reason string when the field was skipped."""
        strategy = binding.strategy

        if strategy == RenderStrategy.IMAGE_SRC:
            return self._apply_image(target, binding, value, payload)
        if strategy == RenderStrategy.LIST_TEXT:
            return self._apply_list(document, target, value)

        if not isinstance(value, (str, int, float)):
            return f"expected text, got {type(value).__name__}"
        if is_price_element(target):
            return "target is a price element"

        if target.name == "input":
            # Button inputs carry their label in value
            target["value"] = str(value)
        elif strategy == RenderStrategy.HTML:
            fragment = BeautifulSoup(str(value), "html.parser")
            target.clear()
            for child in list(fragment.contents):
                target.append(child.extract())
        else:
            target.string = str(value)
        return None

    @staticmethod
    def _apply_image(
        target: Tag,
        binding: FieldBinding,
        value: Any,
        payload: InjectionPayload,
    ) -> Optional[str]:
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if not isinstance(value, str) or not value.strip():
            return "expected an image URL"

        image = target if target.name == "img" else target.find("img")
        if image is None:
            return "no <img> at target"

        image["src"] = value
        for attr in ("srcset", "data-srcset"):
            if attr in image.attrs:
                del image[attr]
        # <source> siblings inside <picture> would override the new src
        if image.parent is not None and image.parent.name == "picture":
            for source in image.parent.find_all("source"):
                if "srcset" in source.attrs:
                    del source["srcset"]

        alt_source = CanonicalField.from_key(binding.attributes.get("alt_source", ""))
        if alt_source is not None:
            alt = payload.variant_data.get(alt_source)
            if isinstance(alt, str) and alt.strip():
                image["alt"] = alt
        return None

    @staticmethod
    def _apply_list(document: BeautifulSoup, target: Tag, value: Any) -> Optional[str]:
        if not isinstance(value, (list, tuple)):
            return f"expected a list, got {type(value).__name__}"

        container = target.parent if target.name == "li" and target.parent is not None else target
        template = container.find(True, recursive=False)
        if template is not None:
            tag_name = template.name
            attrs = {k: v for k, v in template.attrs.items() if k != "id"}
        else:
            tag_name = "li" if container.name in ("ul", "ol") else "span"
            attrs = {}

        container.clear()
        for item in value:
            if _is_blank(item):
                continue
            node = document.new_tag(
                tag_name,
                attrs={k: list(v) if isinstance(v, list) else v for k, v in attrs.items()},
            )
            node.string = str(item)
            container.append(node)
        return None
