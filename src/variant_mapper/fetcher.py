"""
Product page fetching for theme discovery.

Resolves a mapping target (URL, handle or product gid) to a storefront URL
and downloads the rendered HTML with retry and exponential backoff.
"""

import asyncio
import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote, urlparse

import httpx

from variant_mapper.config import settings
from variant_mapper.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_SHOP_DOMAIN_SUFFIX,
    EXPONENTIAL_BACKOFF_BASE,
    INITIAL_BACKOFF_DELAY_SECONDS,
    MAX_BACKOFF_DELAY_SECONDS,
    RETRYABLE_STATUS_CODES,
)

logger = logging.getLogger(__name__)

PRODUCT_GID_PATTERN = re.compile(r'^gid://shopify/Product/(\d+)$')


class FetchError(Exception):
    """A target page could not be fetched or is not usable HTML."""

    def __init__(
        self,
        message: str,
        kind: str = "network",
        status_code: Optional[int] = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.kind = kind  # network, http, parse, timeout
        self.status_code = status_code
        self.attempts = attempts


class FetchTimeoutError(FetchError):
    """Fetching exceeded its time budget."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message, kind="timeout", attempts=attempts)


class InvalidTargetError(ValueError):
    """A mapping target cannot be turned into a product URL."""


@dataclass
class FetchedPage:
    """Downloaded product page."""
    url: str
    final_url: str
    status_code: int
    html: str
    elapsed: float
    attempts: int


def shop_domain(shop_id: str) -> str:
    """Storefront domain for a shop id (bare handles map to the platform domain)."""
    shop_id = shop_id.strip().lower()
    if "." in shop_id:
        return shop_id
    return f"{shop_id}.{DEFAULT_SHOP_DOMAIN_SUFFIX}"


def resolve_product_url(
    shop_id: str,
    product_url: Optional[str] = None,
    product_handle: Optional[str] = None,
    product_gid: Optional[str] = None,
) -> str:
    """
    Turn a mapping target into the product page URL.

    Raises:
        InvalidTargetError: If the target is malformed
    """
    if product_url:
        parsed = urlparse(product_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidTargetError(f"Invalid product URL: {product_url}")
        return product_url

    if product_handle:
        handle = product_handle.strip().strip("/")
        if not handle:
            raise InvalidTargetError("Empty product handle")
        return f"https://{shop_domain(shop_id)}/products/{quote(handle)}"

    if product_gid:
        match = PRODUCT_GID_PATTERN.match(product_gid.strip())
        if not match:
            raise InvalidTargetError(f"Invalid product gid: {product_gid}")
        return f"https://{shop_domain(shop_id)}/products/{match.group(1)}"

    raise InvalidTargetError("No product target given")


def calculate_backoff_delay(retry_count: int) -> float:
    """Calculate exponential backoff delay with jitter.

    Args:
        retry_count: Number of retries already attempted (0-indexed)

    Returns:
        Delay in seconds before next retry
    """
    delay = INITIAL_BACKOFF_DELAY_SECONDS * (EXPONENTIAL_BACKOFF_BASE ** retry_count)
    delay = min(delay, MAX_BACKOFF_DELAY_SECONDS)
    # ±25% jitter so concurrent jobs don't retry in lockstep
    jitter = delay * random.uniform(-0.25, 0.25)
    return delay + jitter


class PageFetcher:
    """Fetches storefront product pages over HTTP."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff: Callable[[int], float] = calculate_backoff_delay,
    ):
        """
        Initialize the fetcher.

        Args:
            user_agent: User-Agent header (defaults to the configured one)
            timeout: Per-request timeout in seconds
            max_retries: Total attempts for transient failures
            transport: Optional httpx transport (used by tests)
            backoff: Delay function taking the 0-indexed retry count
        """
        self.user_agent = user_agent or settings.USER_AGENT
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._transport = transport
        self._backoff = backoff

    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def fetch(self, url: str) -> FetchedPage:
        """
        Download ``url``, retrying transient failures.

        Raises:
            FetchTimeoutError: Every attempt timed out
            FetchError: Network, HTTP or content failure
        """
        last_error: Optional[FetchError] = None

        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            for attempt in range(1, self.max_retries + 1):
                if attempt > 1:
                    delay = self._backoff(attempt - 2)
                    logger.info(
                        f"Retrying ({attempt}/{self.max_retries}) after {delay:.1f}s: {url}"
                    )
                    await asyncio.sleep(delay)

                start = time.monotonic()
                try:
                    response = await client.get(url)
                except httpx.TimeoutException:
                    last_error = FetchTimeoutError(
                        f"Request timeout after {self.timeout}s", attempts=attempt
                    )
                    logger.warning(f"Timeout fetching {url} (attempt {attempt})")
                    continue
                except httpx.TransportError as e:
                    last_error = FetchError(
                        f"Connection error: {e}", kind="network", attempts=attempt
                    )
                    logger.warning(f"Connection error fetching {url} (attempt {attempt}): {e}")
                    continue

                if response.status_code in RETRYABLE_STATUS_CODES:
                    last_error = FetchError(
                        f"HTTP {response.status_code}",
                        kind="http",
                        status_code=response.status_code,
                        attempts=attempt,
                    )
                    logger.warning(
                        f"HTTP {response.status_code} fetching {url} (attempt {attempt})"
                    )
                    continue

                if response.status_code >= 400:
                    raise FetchError(
                        f"HTTP {response.status_code} for {url}",
                        kind="http",
                        status_code=response.status_code,
                        attempts=attempt,
                    )

                content_type = response.headers.get("content-type", "")
                if content_type and "html" not in content_type.lower():
                    raise FetchError(
                        f"Expected HTML from {url}, got {content_type}",
                        kind="parse",
                        status_code=response.status_code,
                        attempts=attempt,
                    )

                html = response.text
                if not html.strip():
                    raise FetchError(
                        f"Empty response body from {url}",
                        kind="parse",
                        status_code=response.status_code,
                        attempts=attempt,
                    )

                elapsed = time.monotonic() - start
                logger.info(f"Fetched {url} ({len(html)} bytes, {elapsed:.2f}s)")
                return FetchedPage(
                    url=url,
                    final_url=str(response.url),
                    status_code=response.status_code,
                    html=html,
                    elapsed=elapsed,
                    attempts=attempt,
                )

        assert last_error is not None
        message = f"Failed after {self.max_retries} attempts: {last_error}"
        if isinstance(last_error, FetchTimeoutError):
            raise FetchTimeoutError(message, attempts=self.max_retries)
        raise FetchError(
            message,
            kind=last_error.kind,
            status_code=last_error.status_code,
            attempts=self.max_retries,
        )
