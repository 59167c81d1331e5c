"""Shared page fixtures."""

import pytest
from bs4 import BeautifulSoup


PRODUCT_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>Organic Cotton Tee - Demo Store</title>
  <meta property="og:title" content="Organic Cotton Tee">
  <script type="application/ld+json">{"@context": "https://schema.org", "@type": "Product", "name": "Organic Cotton Tee"}</script>
</head>
<body>
  <header class="site-header">
    <h1 class="site-logo">Demo Store</h1>
    <nav><ul class="menu"><li><a href="/">Home</a></li><li><a href="/collections/all">Shop</a></li></ul></nav>
  </header>
  <main id="MainContent">
    <section class="product-section">
      <div class="product__media-wrapper">
        <img class="product__image" src="https://cdn.example.com/tee.jpg" srcset="https://cdn.example.com/tee-800.jpg 800w" alt="Organic Cotton Tee">
      </div>
      <div class="product__info">
        <span class="badge badge--sale">Sale</span>
        <h1 class="product__title">Organic Cotton Tee</h1>
        <p class="product__subtitle">Soft, breathable everyday essential</p>
        <div class="price"><span class="money">29,00 EUR</span></div>
        <form action="/cart/add" method="post" class="product-form">
          <button type="submit" name="add" class="product-form__submit">Add to cart</button>
          <button type="button" class="shopify-payment-button">Buy it now</button>
        </form>
        <div class="product__description rte">
          <p>Made from 100% organic cotton, this tee is soft, durable and ethically produced.</p>
        </div>
        <ul class="product__usp">
          <li>Free shipping over 50 EUR</li>
          <li>30-day returns</li>
          <li>Carbon neutral delivery</li>
        </ul>
      </div>
    </section>
  </main>
  <footer class="site-footer"><ul class="footer-links"><li>About</li><li>Contact</li></ul></footer>
</body>
</html>
"""


@pytest.fixture
def product_html():
    """Rendered product page of a typical storefront theme."""
    return PRODUCT_PAGE


@pytest.fixture
def product_soup():
    """Parsed product page."""
    return BeautifulSoup(PRODUCT_PAGE, "html.parser")
