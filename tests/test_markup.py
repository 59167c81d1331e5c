"""Tests for payload building and markup rendering."""

import json

import pytest
from bs4 import BeautifulSoup

from variant_mapper.injection import VariantInjectionAgent
from variant_mapper.intelligence.builder import ThemeAdapterBuilder
from variant_mapper.markup import (
    MarkupRenderer,
    build_injection_payload,
    canonical_variant_data,
    render_layout,
    render_payload_script,
)
from variant_mapper.models import CanonicalField, ElementSelector, RenderStrategy, ThemeAdapter


def entry(key, selector, order, confidence=0.9, **kwargs):
    return ElementSelector(
        key=key,
        selector=selector,
        type=key.field_type,
        confidence=confidence,
        order=order,
        strategy=kwargs.pop("strategy", key.default_strategy),
        **kwargs,
    )


@pytest.fixture
def adapter():
    return ThemeAdapter(
        theme_fingerprint="0123456789abcdef",
        selectors=[
            entry(CanonicalField.HERO_IMAGE, "img.product__image", 0,
                  attributes={"alt_source": "title"}),
            entry(CanonicalField.TITLE, "h1.product__title", 1,
                  fallback_selector="#MainContent h1"),
            entry(CanonicalField.USP_LIST, "ul.product__usp", 2),
            entry(CanonicalField.PROMOTIONAL_BADGE, "span.badge", 3,
                  confidence=0.3, low_confidence=True),
        ],
    )


VARIANT = {
    "title": "Summer <Tee>",
    "product_images": ["https://cdn.example.com/summer.jpg"],
    "usp": ["Free shipping", "Organic cotton"],
    "badge": "-20%",
    "price": "19 EUR",
}


class TestCanonicalVariantData:
    """Tests for canonical_variant_data."""

    def test_aliases_and_unknown_keys(self):
        data = canonical_variant_data(VARIANT)

        assert set(data) == {"title", "hero_image", "usp_list", "promotional_badge"}

    def test_canonical_key_wins(self):
        data = canonical_variant_data({"cta": "alias", "cta_primary": "canonical"})

        assert data == {"cta_primary": "canonical"}


class TestBuildInjectionPayload:
    """Tests for build_injection_payload."""

    def test_shape(self, adapter):
        payload = build_injection_payload(VARIANT, adapter)

        assert payload["variant_data"]["usp_list"] == ["Free shipping", "Organic cotton"]
        theme_adapter = payload["theme_adapter"]
        assert theme_adapter["selectors"]["title"] == "h1.product__title"
        assert theme_adapter["fallbacks"] == {"title": "#MainContent h1"}
        assert theme_adapter["attributes"] == {"hero_image": {"alt_source": "title"}}
        assert "strategies" not in theme_adapter

    def test_min_confidence_drops_fields(self, adapter):
        payload = build_injection_payload(VARIANT, adapter, min_confidence=0.5)

        assert "promotional_badge" not in payload["theme_adapter"]["selectors"]

    def test_non_default_strategy_included(self):
        custom = ThemeAdapter(
            theme_fingerprint="f",
            selectors=[entry(CanonicalField.DESCRIPTION, "div.desc", 0, strategy=RenderStrategy.TEXT)],
        )

        payload = build_injection_payload({"description": "x"}, custom)

        assert payload["theme_adapter"]["strategies"] == {"description": "text"}


class TestRenderPayloadScript:
    """Tests for the embedded payload block."""

    def test_script_carries_payload(self, adapter):
        payload = build_injection_payload(VARIANT, adapter)

        html = render_payload_script(payload)
        script = BeautifulSoup(html, "html.parser").find("script")

        assert script["id"] == "adlign-data"
        assert script["type"] == "application/json"
        assert json.loads(script.string) == payload

    def test_closing_tags_escaped(self):
        payload = {"variant_data": {"description": "<p>x</p></script><b>"}, "theme_adapter": {"selectors": {}}}

        html = render_payload_script(payload)

        assert "</script><b>" not in html
        assert html.count("</script>") == 1
        script = BeautifulSoup(html, "html.parser").find("script")
        assert json.loads(script.string) == payload

    def test_custom_element_id(self):
        html = MarkupRenderer().render_payload_script({}, element_id="variant-payload")

        assert 'id="variant-payload"' in html


class TestRenderLayout:
    """Tests for ordered variant markup."""

    def test_follows_adapter_order(self, adapter):
        html = render_layout(adapter, VARIANT)
        blocks = BeautifulSoup(html, "html.parser").select("[data-variant-field]")

        assert [b["data-variant-field"] for b in blocks] == ["hero_image", "title", "usp_list"]

    def test_low_confidence_included_with_threshold(self, adapter):
        html = render_layout(adapter, VARIANT, min_confidence=0.2)
        fields = [b["data-variant-field"] for b in BeautifulSoup(html, "html.parser").select("[data-variant-field]")]

        assert fields[-1] == "promotional_badge"

    def test_content_rendered_and_escaped(self, adapter):
        soup = BeautifulSoup(render_layout(adapter, VARIANT), "html.parser")

        title = soup.select_one('[data-variant-field="title"]')
        assert title.get_text(strip=True) == "Summer <Tee>"
        assert title.find("tee") is None
        image = soup.select_one('[data-variant-field="hero_image"] img')
        assert image["src"] == "https://cdn.example.com/summer.jpg"
        assert image["alt"] == "Summer <Tee>"
        items = soup.select('[data-variant-field="usp_list"] li')
        assert [li.string for li in items] == ["Free shipping", "Organic cotton"]

    def test_missing_content_skipped(self, adapter):
        html = render_layout(adapter, {"title": "Only title"})
        fields = [b["data-variant-field"] for b in BeautifulSoup(html, "html.parser").select("[data-variant-field]")]

        assert fields == ["title"]


class TestEndToEnd:
    """Discovery, payload and injection together."""

    def test_variant_applied_to_product_page(self, product_html):
        soup = BeautifulSoup(product_html, "html.parser")
        adapter = ThemeAdapterBuilder().build(soup)
        payload = build_injection_payload(
            {
                "title": "Linen Summer Shirt",
                "cta_primary": "Get yours",
                "usp_list": ["Breathable", "Plastic-free packaging"],
                "hero_image": "https://cdn.example.com/linen.jpg",
            },
            adapter,
        )
        page = BeautifulSoup(
            product_html.replace("</body>", render_payload_script(payload) + "</body>"),
            "html.parser",
        )

        report = VariantInjectionAgent().apply(page)

        assert report.diagnostics == []
        assert sorted(report.applied) == ["cta_primary", "hero_image", "title", "usp_list"]
        assert page.select_one("h1.product__title").string == "Linen Summer Shirt"
        assert page.select_one("h1.site-logo").string == "Demo Store"
        assert page.select_one("span.money").string == "29,00 EUR"
        assert page.select_one('button[name="add"]').string == "Get yours"
        assert page.select_one("img.product__image")["alt"] == "Linen Summer Shirt"
        assert [li.string for li in page.select("ul.product__usp li")] == [
            "Breathable", "Plastic-free packaging",
        ]
