"""
Selector Candidate Scorer.

Given a parsed product page and a field type, proposes candidate selectors
ranked by confidence. Confidence combines four independent signals:

- semantics: tag, ARIA role and class/id/itemprop keywords expected for the field
- position: inside the product region, and early among competing elements
- content: text length / item count / image source shape for the field
- uniqueness: a stable selector re-queries to exactly this element

Scoring never mutates the document and never touches the network.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from variant_mapper.config import ScoringThresholds, default_thresholds
from variant_mapper.constants import (
    CONFIDENCE_PRECISION,
    DEFAULT_CONFIDENCE_FLOOR,
    DEFAULT_MAX_CANDIDATES,
    MAX_ELEMENTS_EXAMINED,
)
from variant_mapper.intelligence.element_selectors import (
    document_positions,
    element_text,
    find_product_region,
    in_page_chrome,
    is_price_element,
    keyword_hits,
    resolve_selectors,
    select_nodes,
)
from variant_mapper.models import CanonicalField, FieldType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldProfile:
    """What a canonical field tends to look like in storefront themes."""
    gather: str  # CSS used to collect candidate elements
    tags: tuple = ()
    keywords: tuple = ()
    roles: tuple = ()
    itemprops: tuple = ()


FIELD_PROFILES: Dict[CanonicalField, FieldProfile] = {
    CanonicalField.TITLE: FieldProfile(
        gather='h1, h2, [itemprop="name"], [class*="title"], [data-product-title]',
        tags=("h1", "h2"),
        keywords=("product-title", "product__title", "product_title", "title", "product-name"),
        roles=("heading",),
        itemprops=("name",),
    ),
    CanonicalField.SUBTITLE: FieldProfile(
        gather='h2, h3, p, [class*="subtitle"], [class*="tagline"], [class*="vendor"]',
        tags=("h2", "h3", "p"),
        keywords=("subtitle", "sub-title", "tagline", "vendor", "subheading"),
    ),
    CanonicalField.DESCRIPTION: FieldProfile(
        gather='[itemprop="description"], [class*="description"], .rte, [data-product-description]',
        tags=("div", "section", "article"),
        keywords=("description", "rte", "product-details", "product__details"),
        itemprops=("description",),
    ),
    CanonicalField.CTA_PRIMARY: FieldProfile(
        gather='button, input[type="submit"], [role="button"], a[class*="btn"], a[class*="button"]',
        tags=("button", "input"),
        keywords=("add-to-cart", "addtocart", "add_to_cart", "product-form__submit",
                  "product-form__cart", "cart-submit", "add"),
        roles=("button",),
    ),
    CanonicalField.CTA_SECONDARY: FieldProfile(
        gather=(
            'button, [role="button"], a[class*="btn"], a[class*="button"], '
            '[class*="payment-button"]'
        ),
        tags=("button", "a"),
        keywords=("buy-now", "buynow", "shopify-payment-button", "dynamic-checkout", "secondary"),
        roles=("button",),
    ),
    CanonicalField.PROMOTIONAL_BADGE: FieldProfile(
        gather=(
            '[class*="badge"], [class*="label"], [class*="tag"], [class*="promo"], '
            '[class*="sticker"]'
        ),
        tags=("span", "div", "p"),
        keywords=("badge", "promo", "sale", "sticker", "label", "tag"),
    ),
    CanonicalField.HERO_IMAGE: FieldProfile(
        gather='img',
        tags=("img",),
        keywords=("product__media", "product-image", "product__image", "featured", "hero",
                  "main", "gallery", "media", "photo"),
        itemprops=("image",),
    ),
    CanonicalField.USP_LIST: FieldProfile(
        gather='ul, ol',
        tags=("ul", "ol"),
        keywords=("usp", "benefit", "feature", "highlight", "perk", "advantage"),
        roles=("list",),
    ),
    CanonicalField.BADGES: FieldProfile(
        gather='[class*="badges"], [class*="labels"], [class*="tags"]',
        tags=("div", "ul"),
        keywords=("badges", "labels", "tags", "stickers"),
    ),
}

# Field scored when only a field type is given
DEFAULT_FIELD_FOR_TYPE = {
    FieldType.TEXT: CanonicalField.TITLE,
    FieldType.CTA: CanonicalField.CTA_PRIMARY,
    FieldType.BADGE: CanonicalField.PROMOTIONAL_BADGE,
    FieldType.IMAGE: CanonicalField.HERO_IMAGE,
    FieldType.USP_LIST: CanonicalField.USP_LIST,
}

TEXT_FIELD_TYPES = frozenset({FieldType.TEXT, FieldType.CTA, FieldType.BADGE})


@dataclass
class ScoringHints:
    """Optional guidance for one scoring call."""
    field: Optional[CanonicalField] = None
    expected_text: Optional[str] = None
    exclude_selectors: Sequence[str] = ()
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    max_candidates: int = DEFAULT_MAX_CANDIDATES


@dataclass
class ScoredCandidate:
    """One proposed selector for a field."""
    selector: str
    confidence: float
    fallback_selector: Optional[str] = None
    low_confidence: bool = False
    tag: str = ""
    position: int = 0  # document order of the element
    text_preview: str = ""
    signals: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "selector": self.selector,
            "confidence": self.confidence,
            "fallback_selector": self.fallback_selector,
            "low_confidence": self.low_confidence,
            "tag": self.tag,
            "text_preview": self.text_preview,
            "signals": dict(self.signals),
        }


class SelectorCandidateScorer:
    """Scores candidate elements for one canonical field at a time."""

    def __init__(self, thresholds: Optional[ScoringThresholds] = None):
        self.thresholds = thresholds or default_thresholds

    def score(
        self,
        dom: BeautifulSoup,
        field_type: FieldType,
        hints: Optional[ScoringHints] = None,
    ) -> List[ScoredCandidate]:
        """
        Propose selectors for ``field_type`` ordered by descending confidence.

        Args:
            dom: Parsed page
            field_type: Kind of element being looked for
            hints: Canonical field, expected text, already-claimed selectors

        Returns:
            Candidates above zero confidence, possibly empty. Candidates under
            ``hints.confidence_floor`` are flagged ``low_confidence``.
        """
        hints = hints or ScoringHints()
        canonical = hints.field or DEFAULT_FIELD_FOR_TYPE[field_type]
        if canonical.field_type != field_type:
            raise ValueError(
                f"Field {canonical.value} is of type {canonical.field_type.value}, "
                f"not {field_type.value}"
            )

        profile = FIELD_PROFILES[canonical]
        region = find_product_region(dom)
        positions = document_positions(dom)
        excluded = self._excluded_elements(dom, hints.exclude_selectors)

        elements = [
            el for el in select_nodes(dom, profile.gather)[:MAX_ELEMENTS_EXAMINED]
            if id(el) not in excluded and not in_page_chrome(el)
        ]
        if field_type in TEXT_FIELD_TYPES:
            elements = [el for el in elements if not is_price_element(el)]

        in_region = [el for el in elements if _contains(region, el)]
        candidates: List[ScoredCandidate] = []

        for element in elements:
            semantics = self._semantics(element, profile)
            if semantics <= 0:
                continue

            content = self._content(element, canonical)
            if content <= 0:
                continue

            resolved = resolve_selectors(dom, element)
            if resolved.primary is None:
                continue

            position = self._position(element, region, in_region)
            uniqueness = 1.0 if resolved.stable else self.thresholds.structural_uniqueness_credit

            t = self.thresholds
            confidence = (
                t.weight_semantics * semantics
                + t.weight_position * position
                + t.weight_content * content
                + t.weight_uniqueness * uniqueness
                + self._expected_text_bonus(element, hints.expected_text)
            )
            confidence = round(min(1.0, max(0.0, confidence)), CONFIDENCE_PRECISION)
            if confidence <= 0:
                continue

            candidates.append(ScoredCandidate(
                selector=resolved.primary,
                confidence=confidence,
                fallback_selector=resolved.fallback,
                low_confidence=confidence < hints.confidence_floor,
                tag=element.name,
                position=positions.get(id(element), 0),
                text_preview=element_text(element)[:80],
                signals={
                    "semantics": round(semantics, CONFIDENCE_PRECISION),
                    "position": round(position, CONFIDENCE_PRECISION),
                    "content": round(content, CONFIDENCE_PRECISION),
                    "uniqueness": round(uniqueness, CONFIDENCE_PRECISION),
                },
            ))

        # Stable sort keeps document order between equal scores
        candidates.sort(key=lambda c: c.confidence, reverse=True)
        logger.debug(
            f"Scored {len(candidates)} candidates for {canonical.value} "
            f"(examined {len(elements)} elements)"
        )
        return candidates[:hints.max_candidates]

    @staticmethod
    def _excluded_elements(dom: BeautifulSoup, selectors: Sequence[str]) -> set:
        excluded = set()
        for selector in selectors:
            for node in select_nodes(dom, selector)[:1]:
                excluded.add(id(node))
        return excluded

    @staticmethod
    def _semantics(element: Tag, profile: FieldProfile) -> float:
        score = 0.0
        if profile.tags and element.name == profile.tags[0]:
            score += 0.5
        elif element.name in profile.tags:
            score += 0.3
        if keyword_hits(element, profile.keywords):
            score += 0.4
        if profile.roles and element.get("role") in profile.roles:
            score += 0.2
        if profile.itemprops and element.get("itemprop") in profile.itemprops:
            score += 0.3
        # A tag match alone is too weak to be evidence for generic tags
        if score <= 0.3 and element.name in ("div", "span", "p", "a", "section"):
            return 0.0
        return min(score, 1.0)

    @staticmethod
    def _position(element: Tag, region: Tag, in_region: List[Tag]) -> float:
        if not _contains(region, element):
            return 0.2
        score = 0.6
        same_tag = [el for el in in_region if el.name == element.name]
        rank = next((i for i, el in enumerate(same_tag) if el is element), len(same_tag))
        if rank == 0:
            score += 0.4
        elif rank == 1:
            score += 0.2
        return score

    def _content(self, element: Tag, canonical: CanonicalField) -> float:
        t = self.thresholds
        kind = canonical.field_type

        if kind == FieldType.IMAGE:
            if element.get("src") or element.get("data-src") or element.get("srcset"):
                return 1.0
            return 0.0

        if kind == FieldType.USP_LIST:
            items = element.find_all("li", recursive=False)
            if not items:
                return 0.0
            texts = [element_text(li) for li in items]
            if any(not text or len(text) > t.usp_item_max_length for text in texts):
                return 0.3
            return 1.0 if len(items) >= t.usp_min_items else 0.4

        if canonical == CanonicalField.BADGES:
            children = [c for c in element.find_all(True, recursive=False) if element_text(c)]
            if not children:
                return 0.0
            return 1.0 if all(len(element_text(c)) <= t.badge_max_length for c in children) else 0.3

        text = element_text(element)
        if element.name == "input":
            text = element.get("value") or ""
        if not text:
            return 0.0

        if kind == FieldType.CTA:
            return 1.0 if len(text) <= t.cta_max_length else 0.2
        if kind == FieldType.BADGE:
            return 1.0 if len(text) <= t.badge_max_length else 0.1
        if canonical == CanonicalField.DESCRIPTION:
            if t.description_min_length <= len(text) <= t.description_max_length:
                return 1.0
            return 0.4
        if t.title_min_length <= len(text) <= t.title_max_length:
            return 1.0
        return 0.3

    def _expected_text_bonus(self, element: Tag, expected: Optional[str]) -> float:
        if not expected:
            return 0.0
        wanted = " ".join(expected.split()).lower()
        actual = element_text(element).lower()
        if not wanted or not actual:
            return 0.0
        if actual == wanted:
            return self.thresholds.expected_text_bonus
        if wanted in actual or actual in wanted:
            shorter, longer = sorted((len(actual), len(wanted)))
            if shorter / longer >= self.thresholds.partial_match_min_ratio:
                return self.thresholds.expected_text_bonus / 2
        return 0.0


def _contains(region: Tag, element: Tag) -> bool:
    if element is region:
        return True
    return any(parent is region for parent in element.parents)


_default_scorer = SelectorCandidateScorer()


def score(
    dom: BeautifulSoup,
    field_type: FieldType,
    hints: Optional[ScoringHints] = None,
) -> List[ScoredCandidate]:
    """Score with default thresholds."""
    return _default_scorer.score(dom, field_type, hints)
