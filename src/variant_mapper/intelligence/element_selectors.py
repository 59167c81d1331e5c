"""
Stable selector generation for storefront DOM elements.

Themes generate class names, ids and attributes that differ between builds
or between products. This module turns one element of a parsed page into
ranked selector options, re-queries each option against the page so only
selectors resolving to exactly that element are kept, and builds a
structural ``nth-of-type`` path as a last-resort fallback.

Features:
- Testing and product data attribute detection
- Dynamic value detection (CSS module hashes, numeric ids, UUIDs)
- Utility and state class filtering
- Product region and page chrome detection
"""

import re
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from variant_mapper.constants import PRICE_KEYWORDS, STATE_CLASSES, UTILITY_CLASS_PREFIXES

logger = logging.getLogger(__name__)


# Stable attribute patterns (in priority order) with their stability score
STABLE_ATTRIBUTES = [
    # Testing attributes (highest stability)
    ("data-testid", 0.99),
    ("data-test-id", 0.99),
    ("data-cy", 0.99),
    ("data-test", 0.98),
    ("data-qa", 0.98),
    # Semantic attributes
    ("id", 0.90),  # Unless dynamic
    ("itemprop", 0.88),
    ("name", 0.85),
    ("aria-label", 0.80),
]

# Data attributes that commonly hold per-product values rather than structure
VOLATILE_DATA_ATTRIBUTES = frozenset({
    "data-src", "data-srcset", "data-sizes", "data-widths", "data-aspectratio",
    "data-media-id", "data-image-id", "data-variant-id", "data-product-id",
    "data-original-src", "data-zoom", "data-index", "data-position",
})

# Patterns indicating dynamic/unstable values
DYNAMIC_PATTERNS = [
    # CSS Modules (hash suffix containing a digit; BEM names like product__title pass)
    re.compile(r'^[a-zA-Z][a-zA-Z_-]*_(?=[a-zA-Z]*[0-9])[a-zA-Z0-9]{5,8}$'),
    # Styled-components / Emotion
    re.compile(r'^sc-[a-zA-Z0-9]+-[a-zA-Z0-9]+$'),
    re.compile(r'^css-[a-zA-Z0-9]+(-[a-zA-Z0-9]+)?$'),
    # Underscore prefix with hash
    re.compile(r'^_[a-zA-Z0-9]{8,}$'),
    # Random-looking IDs
    re.compile(r'^[a-f0-9]{8}-[a-f0-9]{4}-'),  # UUID prefix
    re.compile(r'[0-9]{6,}'),  # Long numeric runs (section / product ids)
    re.compile(r'^[0-9]+$'),  # Pure numbers
]

_SIMPLE_IDENT = re.compile(r'^-?[A-Za-z_][A-Za-z0-9_-]*$')

# Ancestors that mark site chrome rather than page content
CHROME_TAGS = frozenset({"header", "footer", "nav"})
CHROME_ROLES = frozenset({"navigation", "banner", "contentinfo"})

PRODUCT_REGION_SELECTORS = (
    '[itemtype*="Product"]',
    '[data-section-type="product"]',
    '.product',
    'main',
)


@dataclass
class SelectorOption:
    """A selector proposed for one element before uniqueness is checked."""
    selector: str
    stability: float
    strategy: str  # attribute name, "class" or "structural"


@dataclass
class ResolvedSelectors:
    """Selectors that re-query to exactly one element."""
    primary: Optional[str]
    fallback: Optional[str]
    stable: bool  # False when only the structural path is unique
    stability: float


def is_dynamic_value(value: str) -> Tuple[bool, Optional[str]]:
    """
    Check if a value appears to be dynamically generated.

    Args:
        value: Attribute value to check

    Returns:
        (is_dynamic, reason) tuple
    """
    if not value:
        return False, None

    for pattern in DYNAMIC_PATTERNS:
        if pattern.search(value):
            return True, f"Matches dynamic pattern: {pattern.pattern}"

    if len(value) > 20 and ' ' not in value:
        digits = sum(1 for c in value if c.isdigit())
        if digits > len(value) * 0.3:
            return True, "High digit ratio suggests generated value"

    return False, None


def is_structural_class(name: str) -> bool:
    """True when a class name describes structure rather than state or layout."""
    lowered = name.lower()
    if lowered in STATE_CLASSES:
        return False
    if any(lowered.startswith(p) for p in UTILITY_CLASS_PREFIXES):
        return False
    if not _SIMPLE_IDENT.match(name):
        return False
    dynamic, _ = is_dynamic_value(name)
    return not dynamic


def quote_attribute_value(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector."""
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def select_nodes(root: Tag, selector: str) -> List[Tag]:
    """Run a CSS selector, treating invalid selectors as matching nothing."""
    try:
        return root.select(selector)
    except SelectorSyntaxError:
        logger.debug(f"Invalid selector ignored: {selector}")
        return []


def resolves_to(root: Tag, selector: str, element: Tag) -> bool:
    """True when ``selector`` matches exactly one node and that node is ``element``."""
    matches = select_nodes(root, selector)
    return len(matches) == 1 and matches[0] is element


def element_text(element: Tag) -> str:
    """Whitespace-normalized text content."""
    return " ".join(element.get_text(" ", strip=True).split())


def in_page_chrome(element: Tag) -> bool:
    """True when the element sits inside the site header, footer or navigation."""
    for node in [element, *element.parents]:
        if not isinstance(node, Tag):
            continue
        if node.name in CHROME_TAGS:
            return True
        if node.get("role") in CHROME_ROLES:
            return True
    return False


def is_price_element(element: Tag, depth: int = 4) -> bool:
    """True when the element or a close ancestor is a price display."""
    node = element
    for _ in range(depth + 1):
        if not isinstance(node, Tag) or node.name in ("body", "html", "[document]"):
            break
        if node.get("itemprop") == "price":
            return True
        tokens = " ".join(node.get("class", [])).lower()
        if any(keyword in tokens for keyword in PRICE_KEYWORDS):
            return True
        node = node.parent
    return False


def find_product_region(soup: BeautifulSoup) -> Tag:
    """
    Locate the part of the page that holds the product.

    Prefers explicit Product microdata, then the nearest ancestor of the
    add-to-cart form holding both a heading and an image (or just a
    heading), then common product containers, then ``main`` and finally
    ``body``.
    """
    node = soup.select_one(PRODUCT_REGION_SELECTORS[0])
    if node is not None:
        return node

    form = soup.select_one('form[action*="/cart/add"]')
    if form is not None:
        with_heading = None
        for ancestor in form.parents:
            if ancestor.name in ("body", "html", "[document]"):
                break
            if ancestor.find("h1") is None:
                continue
            if ancestor.find("img") is not None:
                return ancestor
            if with_heading is None:
                with_heading = ancestor
        if with_heading is not None:
            return with_heading

    for selector in PRODUCT_REGION_SELECTORS[1:]:
        node = soup.select_one(selector)
        if node is not None:
            return node

    return soup.body or soup


def stable_selector_options(element: Tag) -> List[SelectorOption]:
    """
    Generate stable selector options for an element.

    Uses multiple strategies, most stable first:
    1. Testing attributes
    2. Non-dynamic id
    3. itemprop / name / aria-label
    4. Data attributes describing structure
    5. Semantic classes (max 2)

    Args:
        element: The element to describe

    Returns:
        List of options ordered by stability
    """
    options: List[SelectorOption] = []
    tag = element.name
    attrs = element.attrs

    for attr_name, stability in STABLE_ATTRIBUTES:
        value = attrs.get(attr_name)
        if not isinstance(value, str) or not value.strip():
            continue
        dynamic, _ = is_dynamic_value(value)
        if dynamic:
            continue
        if attr_name == "id":
            if _SIMPLE_IDENT.match(value):
                selector = f"#{value}"
            else:
                selector = f"[id={quote_attribute_value(value)}]"
        else:
            selector = f"{tag}[{attr_name}={quote_attribute_value(value)}]"
        options.append(SelectorOption(selector, stability, attr_name))

    for attr_name, value in attrs.items():
        if not attr_name.startswith("data-") or attr_name in VOLATILE_DATA_ATTRIBUTES:
            continue
        if any(attr_name == name for name, _ in STABLE_ATTRIBUTES):
            continue
        if not _SIMPLE_IDENT.match(attr_name):
            continue
        if isinstance(value, list):
            value = " ".join(value)
        if not value:
            options.append(SelectorOption(f"{tag}[{attr_name}]", 0.85, attr_name))
            continue
        dynamic, _ = is_dynamic_value(value)
        if dynamic or len(value) > 60 or value.lstrip().startswith(("{", "[")):
            continue
        options.append(SelectorOption(
            f"{tag}[{attr_name}={quote_attribute_value(value)}]", 0.80, attr_name
        ))

    classes = [c for c in element.get("class", []) if is_structural_class(c)]
    if classes:
        options.append(SelectorOption(f"{tag}.{'.'.join(classes[:2])}", 0.60, "class"))
        if len(classes) > 2:
            options.append(SelectorOption(f"{tag}.{'.'.join(classes)}", 0.55, "class"))

    return sorted(options, key=lambda o: o.stability, reverse=True)


def structural_path(element: Tag) -> str:
    """
    Build an ``nth-of-type`` path from the closest stable anchor.

    Walks up from the element until an ancestor with a simple, non-dynamic
    id is found (or ``body``), qualifying each step with its position among
    siblings of the same tag.
    """
    parts: List[str] = []
    node: Optional[Tag] = element
    while isinstance(node, Tag) and node.name not in ("[document]",):
        if node.name in ("html", "body"):
            parts.append(node.name)
            break
        node_id = node.get("id")
        if node is not element and isinstance(node_id, str) and _SIMPLE_IDENT.match(node_id):
            if not is_dynamic_value(node_id)[0]:
                parts.append(f"#{node_id}")
                break
        parent = node.parent
        if parent is None:
            parts.append(node.name)
            break
        same_type = [c for c in parent.find_all(node.name, recursive=False)]
        index = next(i for i, sibling in enumerate(same_type, start=1) if sibling is node)
        parts.append(f"{node.name}:nth-of-type({index})")
        node = parent
    return " > ".join(reversed(parts))


def resolve_selectors(root: Tag, element: Tag) -> ResolvedSelectors:
    """
    Pick a primary and a fallback selector that both identify ``element``.

    The first stable option that re-queries to exactly this element becomes
    primary; the structural path is the fallback. When no stable option is
    unique, the structural path becomes primary and ``stable`` is False.
    """
    primary: Optional[SelectorOption] = None
    alternates: List[str] = []
    for option in stable_selector_options(element):
        if resolves_to(root, option.selector, element):
            if primary is None:
                primary = option
            else:
                alternates.append(option.selector)

    path = structural_path(element)
    path_ok = resolves_to(root, path, element)

    if primary is not None:
        fallback = path if path_ok and path != primary.selector else None
        if fallback is None and alternates:
            fallback = alternates[0]
        return ResolvedSelectors(primary.selector, fallback, True, primary.stability)

    if path_ok:
        return ResolvedSelectors(path, None, False, 0.3)
    return ResolvedSelectors(None, None, False, 0.0)


def document_positions(root: Tag) -> dict:
    """Map ``id()`` of every element to its document order index."""
    return {id(node): index for index, node in enumerate(root.find_all(True))}


def keyword_hits(element: Tag, keywords: Iterable[str]) -> List[str]:
    """Keywords found in the element's id, classes, itemprop, name or data attribute names."""
    haystack_parts = [
        element.get("id"),
        " ".join(element.get("class", [])),
        element.get("itemprop"),
        element.get("name"),
        " ".join(a for a in element.attrs if a.startswith("data-")),
    ]
    haystack = " ".join(p for p in haystack_parts if isinstance(p, str)).lower()
    return [k for k in keywords if k in haystack]
