"""Unit tests for the Selector Candidate Scorer."""

import pytest
from bs4 import BeautifulSoup

from variant_mapper.config import ScoringThresholds
from variant_mapper.intelligence.scorer import (
    ScoringHints,
    SelectorCandidateScorer,
    score,
)
from variant_mapper.models import CanonicalField, FieldType


class TestScoreTitle:
    """Tests for scoring the product title."""

    def test_product_heading_ranks_first(self, product_soup):
        """Test the product h1 beats the header logo and other titles."""
        candidates = score(product_soup, FieldType.TEXT)

        assert candidates
        assert candidates[0].selector == "h1.product__title"
        assert not candidates[0].low_confidence
        assert all(c.selector != "h1.site-logo" for c in candidates)

    def test_sorted_and_bounded(self, product_soup):
        """Test confidences are in [0, 1] and descending."""
        candidates = score(product_soup, FieldType.TEXT)
        confidences = [c.confidence for c in candidates]

        assert confidences == sorted(confidences, reverse=True)
        assert all(0.0 < c <= 1.0 for c in confidences)

    def test_fallback_selector_targets_same_node(self, product_soup):
        """Test the fallback resolves to the same element as the primary."""
        top = score(product_soup, FieldType.TEXT)[0]

        assert top.fallback_selector
        assert product_soup.select(top.fallback_selector) == product_soup.select(top.selector)

    def test_expected_text_raises_confidence(self, product_soup):
        """Test a matching expected text adds corroboration."""
        plain = score(product_soup, FieldType.TEXT)[0]
        hinted = score(
            product_soup,
            FieldType.TEXT,
            ScoringHints(field=CanonicalField.TITLE, expected_text="Organic Cotton Tee"),
        )[0]

        assert hinted.selector == plain.selector
        assert hinted.confidence > plain.confidence
        assert hinted.confidence <= 1.0

    @pytest.mark.parametrize("heading, corroborated", [
        ("Tee", False),
        ("Organic", False),
        ("Organic Cotton Tee - Limited", True),
    ])
    def test_partial_match_needs_comparable_length(self, heading, corroborated):
        """Test a short fragment of the product title earns no partial bonus."""
        soup = BeautifulSoup(
            f'<main><h1 class="product__title">{heading}</h1></main>', "html.parser"
        )
        # Weights below 1.0 so the bonus is never clamped away
        scorer = SelectorCandidateScorer(ScoringThresholds(
            weight_semantics=0.2, weight_position=0.2, weight_content=0.2, weight_uniqueness=0.2,
        ))
        hints = ScoringHints(field=CanonicalField.TITLE, expected_text="Organic Cotton Tee")

        plain = scorer.score(soup, FieldType.TEXT)[0]
        hinted = scorer.score(soup, FieldType.TEXT, hints)[0]

        assert (hinted.confidence > plain.confidence) is corroborated

    def test_scoring_does_not_mutate_document(self, product_soup):
        """Test scoring is pure."""
        before = str(product_soup)

        score(product_soup, FieldType.TEXT)
        score(product_soup, FieldType.USP_LIST)

        assert str(product_soup) == before


class TestScoringHints:
    """Tests for hint handling."""

    def test_low_confidence_flag(self, product_soup):
        """Test candidates under the floor are flagged, not dropped."""
        candidates = score(product_soup, FieldType.TEXT, ScoringHints(confidence_floor=0.99))

        assert candidates
        assert candidates[0].low_confidence

    def test_exclude_selectors(self, product_soup):
        """Test claimed elements are not proposed again."""
        candidates = score(
            product_soup,
            FieldType.TEXT,
            ScoringHints(exclude_selectors=("h1.product__title",)),
        )

        assert all(c.selector != "h1.product__title" for c in candidates)

    def test_max_candidates(self, product_soup):
        """Test the candidate list is truncated."""
        candidates = score(product_soup, FieldType.CTA, ScoringHints(max_candidates=1))

        assert len(candidates) == 1

    def test_field_type_mismatch(self, product_soup):
        """Test a hint field of another type is rejected."""
        with pytest.raises(ValueError):
            score(product_soup, FieldType.IMAGE, ScoringHints(field=CanonicalField.TITLE))


class TestScoreOtherFields:
    """Tests for non-title fields."""

    def test_primary_cta(self, product_soup):
        """Test the add-to-cart button is found by its name attribute."""
        top = score(product_soup, FieldType.CTA)[0]

        assert top.selector == 'button[name="add"]'

    def test_secondary_cta_after_primary_claimed(self, product_soup):
        """Test the secondary CTA picks the remaining button."""
        hints = ScoringHints(
            field=CanonicalField.CTA_SECONDARY,
            exclude_selectors=('button[name="add"]',),
        )

        top = score(product_soup, FieldType.CTA, hints)[0]

        assert top.selector == "button.shopify-payment-button"

    def test_hero_image(self, product_soup):
        top = score(product_soup, FieldType.IMAGE)[0]

        assert top.selector == "img.product__image"

    def test_usp_list_ignores_navigation(self, product_soup):
        """Test header and footer lists are never candidates."""
        candidates = score(product_soup, FieldType.USP_LIST)

        assert [c.selector for c in candidates] == ["ul.product__usp"]

    def test_promotional_badge(self, product_soup):
        top = score(product_soup, FieldType.BADGE)[0]

        assert top.selector == "span.badge.badge--sale"

    def test_price_never_a_text_candidate(self):
        """Test price displays are excluded from text-like fields."""
        soup = BeautifulSoup(
            '<main><span class="badge price">-20%</span></main>', "html.parser"
        )

        assert score(soup, FieldType.BADGE) == []

    def test_no_candidates(self):
        """Test a page without the field yields an empty list."""
        soup = BeautifulSoup("<html><body><p>Nothing here</p></body></html>", "html.parser")

        assert score(soup, FieldType.USP_LIST) == []
        assert score(soup, FieldType.IMAGE) == []


class TestUniqueness:
    """Tests for the uniqueness signal."""

    def test_structural_selector_penalized(self):
        """Test ambiguous elements get a structural selector and reduced credit."""
        soup = BeautifulSoup(
            "<html><body><main>"
            '<ul class="usp-list"><li>Fast delivery</li><li>Free returns</li></ul>'
            '<ul class="usp-list"><li>Made in France</li><li>Organic</li></ul>'
            "</main></body></html>",
            "html.parser",
        )

        candidates = score(soup, FieldType.USP_LIST)

        assert len(candidates) == 2
        assert candidates[0].selector.endswith("ul:nth-of-type(1)")
        assert candidates[0].signals["uniqueness"] == 0.5
        assert candidates[0].confidence > candidates[1].confidence

    def test_custom_weights(self, product_soup):
        """Test thresholds change the combined score."""
        heavy = SelectorCandidateScorer(ScoringThresholds(
            weight_semantics=0.0, weight_position=0.0, weight_content=0.0, weight_uniqueness=1.0,
        ))

        top = heavy.score(product_soup, FieldType.TEXT)[0]

        assert top.confidence == 1.0
