"""Unit tests for theme fingerprinting."""

import re

from bs4 import BeautifulSoup

from variant_mapper.intelligence.fingerprint import structural_skeleton, theme_fingerprint


def fingerprint_of(html):
    return theme_fingerprint(BeautifulSoup(html, "html.parser"))


class TestThemeFingerprint:
    """Tests for theme_fingerprint."""

    def test_format_and_determinism(self, product_html):
        """Test the fingerprint is a stable 16-char hex string."""
        first = fingerprint_of(product_html)

        assert re.fullmatch(r"[0-9a-f]{16}", first)
        assert fingerprint_of(product_html) == first

    def test_cosmetic_changes_ignored(self, product_html):
        """Test text, inline styles and ids do not affect the fingerprint."""
        edited = (
            product_html
            .replace("Organic Cotton Tee", "Linen Summer Shirt")
            .replace('<h1 class="product__title">', '<h1 class="product__title" style="color: red" id="t1">')
            .replace("Add to cart", "Buy me")
        )

        assert fingerprint_of(edited) == fingerprint_of(product_html)

    def test_other_product_same_theme(self, product_html):
        """Test a product with more list items and a longer description matches."""
        edited = (
            product_html
            .replace("<li>30-day returns</li>", "<li>30-day returns</li><li>Gift wrapping</li><li>Lifetime support</li>")
            .replace("<p>Made from", "<p><strong>New!</strong></p><p>Made from")
        )

        assert fingerprint_of(edited) == fingerprint_of(product_html)

    def test_state_classes_ignored(self, product_html):
        """Test toggled state classes do not affect the fingerprint."""
        edited = product_html.replace('class="badge badge--sale"', 'class="badge badge--sale is-active"')

        assert fingerprint_of(edited) == fingerprint_of(product_html)

    def test_site_chrome_outside_region_ignored(self, product_html):
        """Test header changes do not affect the fingerprint."""
        edited = product_html.replace('<nav>', '<div class="announcement">Free shipping</div><nav>')

        assert fingerprint_of(edited) == fingerprint_of(product_html)

    def test_structural_change_detected(self, product_html):
        """Test a new wrapper in the product region changes the fingerprint."""
        edited = product_html.replace(
            '<h1 class="product__title">Organic Cotton Tee</h1>',
            '<div class="product__heading"><h1 class="product__title">Organic Cotton Tee</h1></div>',
        )

        assert fingerprint_of(edited) != fingerprint_of(product_html)

    def test_renamed_class_detected(self, product_html):
        """Test a theme that renames structural classes gets a new fingerprint."""
        edited = product_html.replace("product__info", "product-info-column")

        assert fingerprint_of(edited) != fingerprint_of(product_html)


class TestStructuralSkeleton:
    """Tests for structural_skeleton."""

    def test_skips_scripts_and_description_content(self):
        """Test scripts and the inside of description containers are not walked."""
        soup = BeautifulSoup(
            '<main><div class="product__description rte"><p>a</p><table></table></div>'
            "<script>var x = 1;</script></main>",
            "html.parser",
        )

        skeleton = structural_skeleton(soup)

        assert skeleton == ["0:main", "1:div.product__description.rte"]
