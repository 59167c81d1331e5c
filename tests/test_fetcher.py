"""Tests for product page fetching."""

import httpx
import pytest

from variant_mapper.fetcher import (
    FetchError,
    FetchTimeoutError,
    InvalidTargetError,
    PageFetcher,
    calculate_backoff_delay,
    resolve_product_url,
    shop_domain,
)


def no_backoff(retry_count):
    return 0


def make_fetcher(handler, max_retries=3):
    return PageFetcher(
        transport=httpx.MockTransport(handler),
        max_retries=max_retries,
        backoff=no_backoff,
    )


class TestResolveProductUrl:
    """Tests for target resolution."""

    def test_url_passthrough(self):
        url = "https://shop.example.com/products/tee?variant=1"

        assert resolve_product_url("demo", product_url=url) == url

    def test_handle(self):
        assert resolve_product_url("demo", product_handle="organic-tee") == \
            "https://demo.myshopify.com/products/organic-tee"

    def test_handle_with_custom_domain(self):
        assert resolve_product_url("shop.example.com", product_handle="/tee/") == \
            "https://shop.example.com/products/tee"

    def test_gid(self):
        assert resolve_product_url("demo", product_gid="gid://shopify/Product/123456") == \
            "https://demo.myshopify.com/products/123456"

    @pytest.mark.parametrize("target", [
        {"product_url": "ftp://shop.example.com/products/tee"},
        {"product_url": "not a url"},
        {"product_gid": "gid://shopify/Collection/1"},
        {"product_handle": "  /  "},
        {},
    ])
    def test_invalid_targets(self, target):
        with pytest.raises(InvalidTargetError):
            resolve_product_url("demo", **target)

    def test_shop_domain_normalized(self):
        assert shop_domain(" Demo ") == "demo.myshopify.com"


class TestBackoff:
    """Tests for calculate_backoff_delay."""

    def test_grows_and_caps(self):
        for retry, base in [(0, 1.0), (1, 2.0), (2, 4.0), (10, 10.0)]:
            delay = calculate_backoff_delay(retry)
            assert base * 0.75 <= delay <= base * 1.25


class TestPageFetcher:
    """Tests for PageFetcher."""

    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request):
            assert request.headers["User-Agent"]
            return httpx.Response(200, html="<html><body><h1>Tee</h1></body></html>")

        page = await make_fetcher(handler).fetch("https://demo.myshopify.com/products/tee")

        assert page.status_code == 200
        assert "<h1>Tee</h1>" in page.html
        assert page.attempts == 1

    @pytest.mark.asyncio
    async def test_retries_transient_status(self):
        """Test 503 is retried and a later success is returned."""
        calls = []

        def handler(request):
            calls.append(request.url)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, html="<html><body>ok</body></html>")

        page = await make_fetcher(handler).fetch("https://demo.myshopify.com/products/tee")

        assert len(calls) == 2
        assert page.attempts == 2

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(404)

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler).fetch("https://demo.myshopify.com/products/missing")

        assert exc_info.value.kind == "http"
        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries(self):
        def handler(request):
            return httpx.Response(502)

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler, max_retries=2).fetch("https://demo.myshopify.com/products/tee")

        assert exc_info.value.kind == "http"
        assert exc_info.value.attempts == 2
        assert "Failed after 2 attempts" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetchTimeoutError) as exc_info:
            await make_fetcher(handler, max_retries=2).fetch("https://demo.myshopify.com/products/tee")

        assert exc_info.value.kind == "timeout"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler, max_retries=1).fetch("https://demo.myshopify.com/products/tee")

        assert exc_info.value.kind == "network"

    @pytest.mark.asyncio
    async def test_non_html_rejected(self):
        def handler(request):
            return httpx.Response(200, json={"product": {}})

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler).fetch("https://demo.myshopify.com/products/tee.json")

        assert exc_info.value.kind == "parse"

    @pytest.mark.asyncio
    async def test_empty_body_rejected(self):
        def handler(request):
            return httpx.Response(200, headers={"content-type": "text/html"}, content=b"  ")

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler).fetch("https://demo.myshopify.com/products/tee")

        assert exc_info.value.kind == "parse"
