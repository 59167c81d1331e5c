"""Theme fingerprinting from the structural skeleton of a product page."""

import hashlib
import logging
from typing import List

from bs4 import BeautifulSoup, Tag

from variant_mapper.constants import FINGERPRINT_LENGTH, FINGERPRINT_MAX_DEPTH
from variant_mapper.intelligence.element_selectors import find_product_region, is_structural_class

logger = logging.getLogger(__name__)

# Elements that carry no layout structure
IGNORED_TAGS = frozenset({
    "script", "style", "noscript", "template", "link", "meta", "svg", "path", "br", "wbr",
})

# Merchant-authored content varies per product; its inner markup is skipped
CONTENT_CONTAINER_KEYWORDS = ("rte", "description")


def _signature(element: Tag) -> str:
    classes = sorted({c for c in element.get("class", []) if is_structural_class(c)})
    return element.name + "".join(f".{c}" for c in classes)


def _is_content_container(element: Tag) -> bool:
    if element.get("itemprop") == "description":
        return True
    classes = " ".join(element.get("class", [])).lower()
    return any(keyword in classes for keyword in CONTENT_CONTAINER_KEYWORDS)


def structural_skeleton(soup: BeautifulSoup, max_depth: int = FINGERPRINT_MAX_DEPTH) -> List[str]:
    """
    Describe the product region as indented tag/class signatures.

    Text, ids, inline styles and attribute values are ignored, repeated
    sibling signatures are collapsed (a gallery with 3 or 7 images reads the
    same) and the inside of description containers is not walked.
    """
    region = find_product_region(soup)
    lines = [f"0:{_signature(region)}"] if region.name != "[document]" else []

    def walk(node: Tag, depth: int) -> None:
        if depth > max_depth:
            return
        seen = set()
        for child in node.children:
            if not isinstance(child, Tag) or child.name in IGNORED_TAGS:
                continue
            signature = _signature(child)
            if signature in seen:
                continue
            seen.add(signature)
            lines.append(f"{depth}:{signature}")
            if not _is_content_container(child):
                walk(child, depth + 1)

    walk(region, 1)
    return lines


def theme_fingerprint(soup: BeautifulSoup, max_depth: int = FINGERPRINT_MAX_DEPTH) -> str:
    """Stable identifier for the theme that rendered ``soup``."""
    skeleton = structural_skeleton(soup, max_depth)
    digest = hashlib.sha256("\n".join(skeleton).encode("utf-8")).hexdigest()
    fingerprint = digest[:FINGERPRINT_LENGTH]
    logger.debug(f"Theme fingerprint {fingerprint} from {len(skeleton)} skeleton nodes")
    return fingerprint
