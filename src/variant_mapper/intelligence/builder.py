"""
Theme Adapter Builder.

Runs the scorer over every requested canonical field of one product page and
assembles a ThemeAdapter. The build is exposed as an incremental draft so a
job runner can report progress and honour cancellation between fields.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup

from variant_mapper.intelligence.fingerprint import theme_fingerprint
from variant_mapper.intelligence.scorer import ScoringHints, SelectorCandidateScorer
from variant_mapper.models import (
    CanonicalField,
    ElementSelector,
    FieldType,
    MappingOptions,
    ThemeAdapter,
)

logger = logging.getLogger(__name__)


@dataclass
class FieldOutcome:
    """Result of scoring one field of a draft."""
    field: CanonicalField
    selector: Optional[ElementSelector] = None
    candidates: int = 0
    error: Optional[str] = None

    @property
    def mapped(self) -> bool:
        return self.selector is not None


def extract_product_hints(soup: BeautifulSoup) -> Dict[CanonicalField, str]:
    """
    Known product values used to corroborate candidates.

    Reads ``og:title`` and the ``name`` of a Product JSON-LD block.
    """
    hints: Dict[CanonicalField, str] = {}

    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        hints[CanonicalField.TITLE] = og_title["content"].strip()

    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict) and item.get("@type") == "Product" and item.get("name"):
                hints.setdefault(CanonicalField.TITLE, str(item["name"]).strip())
                break

    return hints


class AdapterDraft:
    """A Theme Adapter being assembled one field at a time."""

    def __init__(
        self,
        scorer: SelectorCandidateScorer,
        soup: BeautifulSoup,
        fingerprint: str,
        options: MappingOptions,
        theme_id: Optional[str] = None,
    ):
        self.scorer = scorer
        self.soup = soup
        self.fingerprint = fingerprint
        self.options = options
        self.theme_id = theme_id
        self.fields = options.requested_fields()
        self.scored = 0
        self.outcomes: List[FieldOutcome] = []
        self._entries: List[Tuple[int, ElementSelector]] = []
        self._claimed: List[str] = []
        self._hints = extract_product_hints(soup)

    @property
    def total(self) -> int:
        return len(self.fields)

    @property
    def done(self) -> bool:
        return self.scored >= self.total

    def steps(self) -> Iterator[FieldOutcome]:
        """Score remaining fields, yielding after each one."""
        while not self.done:
            yield self.score_next()

    def score_next(self) -> FieldOutcome:
        """Score the next field in priority order."""
        canonical = self.fields[self.scored]
        try:
            outcome = self._score_field(canonical)
        except Exception as e:
            logger.warning(f"Scoring {canonical.value} failed, field omitted: {e}", exc_info=True)
            outcome = FieldOutcome(field=canonical, error=str(e))
        self.scored += 1
        self.outcomes.append(outcome)
        return outcome

    def _score_field(self, canonical: CanonicalField) -> FieldOutcome:
        hints = ScoringHints(
            field=canonical,
            expected_text=self._hints.get(canonical),
            exclude_selectors=tuple(self._claimed),
            confidence_floor=self.options.confidence_threshold,
            max_candidates=self.options.max_candidates,
        )
        candidates = self.scorer.score(self.soup, canonical.field_type, hints)
        if not candidates:
            logger.debug(f"No candidate for {canonical.value}")
            return FieldOutcome(field=canonical)

        top = candidates[0]
        attributes = {"alt_source": CanonicalField.TITLE.value} \
            if canonical.field_type == FieldType.IMAGE else {}
        entry = ElementSelector(
            key=canonical,
            selector=top.selector,
            fallback_selector=top.fallback_selector,
            type=canonical.field_type,
            confidence=top.confidence,
            order=0,
            strategy=canonical.default_strategy,
            low_confidence=top.confidence < self.options.confidence_threshold,
            attributes=attributes,
        )
        self._entries.append((top.position, entry))
        self._claimed.append(top.selector)
        logger.debug(
            f"Mapped {canonical.value} -> {top.selector} "
            f"(confidence {top.confidence}{', low' if entry.low_confidence else ''})"
        )
        return FieldOutcome(field=canonical, selector=entry, candidates=len(candidates))

    def finish(self) -> ThemeAdapter:
        """Assemble the adapter with ``order`` following document position."""
        ordered = sorted(self._entries, key=lambda item: item[0])
        selectors = []
        for index, (_, entry) in enumerate(ordered):
            entry.order = index
            selectors.append(entry)
        now = datetime.now()
        adapter = ThemeAdapter(
            theme_fingerprint=self.fingerprint,
            theme_id=self.theme_id,
            selectors=selectors,
            created_at=now,
            updated_at=now,
        )
        logger.info(
            f"Built adapter {self.fingerprint}: {len(selectors)}/{self.total} fields, "
            f"average confidence {adapter.average_confidence}"
        )
        return adapter


class ThemeAdapterBuilder:
    """Builds Theme Adapters from parsed product pages."""

    def __init__(self, scorer: Optional[SelectorCandidateScorer] = None):
        self.scorer = scorer or SelectorCandidateScorer()

    def start(
        self,
        soup: BeautifulSoup,
        options: Optional[MappingOptions] = None,
        fingerprint: Optional[str] = None,
        theme_id: Optional[str] = None,
    ) -> AdapterDraft:
        """Begin an incremental build."""
        return AdapterDraft(
            scorer=self.scorer,
            soup=soup,
            fingerprint=fingerprint or theme_fingerprint(soup),
            options=options or MappingOptions(),
            theme_id=theme_id,
        )

    def build(
        self,
        soup: BeautifulSoup,
        options: Optional[MappingOptions] = None,
        fingerprint: Optional[str] = None,
        theme_id: Optional[str] = None,
    ) -> ThemeAdapter:
        """Score every requested field and return the finished adapter."""
        draft = self.start(soup, options, fingerprint, theme_id)
        for _ in draft.steps():
            pass
        return draft.finish()
