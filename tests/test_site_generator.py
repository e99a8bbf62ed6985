"""Tests for static site generation."""

import json

import pytest

from storebuilder.models.store import Store
from storebuilder.models.store_page import StorePage
from storebuilder.services.site_generator import (
    MANIFEST_NAME,
    SiteGenerationError,
    SiteRenderer,
    StaticSiteGenerator,
)


@pytest.fixture
def store(store_config):
    return Store(
        **store_config,
        domain="shop.example.com",
        subdomain="nordic-goods",
        support_email="help@example.com",
        primary_color="#112233",
    )


@pytest.fixture
def pages():
    return [
        StorePage(page_type="home", slug="", title="Nordic Goods", content="<p>Hello</p>", sort_order=0),
        StorePage(page_type="about", slug="about", title="About us", content="<p>About</p>", sort_order=1),
        StorePage(page_type="terms", slug="terms", title="Terms of Service", content="<p>Terms</p>", sort_order=2),
    ]


@pytest.fixture
def generator(stores_root):
    return StaticSiteGenerator(str(stores_root))


def test_render_produces_one_file_per_page(generator, store, pages):
    files = generator.render(store, pages)

    assert set(files) == {"index.html", "about.html", "terms.html", "styles.css", MANIFEST_NAME}


def test_render_links_navigation_and_legal_pages(generator, store, pages):
    index = generator.render(store, pages)["index.html"]

    assert '<a href="/about">About us</a>' in index
    assert '<a href="/">Home</a>' in index
    assert '<p class="legal">' in index
    assert '<a href="/terms">Terms of Service</a>' in index
    assert "<p>Hello</p>" in index
    assert 'mailto:help@example.com' in index
    assert '<html lang="sv">' in index


def test_render_writes_manifest_and_stylesheet(generator, store, pages):
    files = generator.render(store, pages)

    manifest = json.loads(files[MANIFEST_NAME])
    assert manifest["name"] == "Nordic Goods"
    assert manifest["domain"] == "shop.example.com"
    assert manifest["primary_color"] == "#112233"
    assert manifest["uuid"] == str(store.uuid)
    assert "#112233" in files["styles.css"]


def test_render_is_deterministic(generator, store, pages):
    assert generator.render(store, pages) == generator.render(store, pages)


def test_render_escapes_store_values(generator, store, pages):
    store.name = "<Nordic & Co>"

    index = generator.render(store, pages)["index.html"]

    assert "&lt;Nordic &amp; Co&gt;" in index
    assert "<Nordic & Co>" not in index


def test_render_adds_home_page_when_missing(generator, store, pages):
    files = generator.render(store, pages[1:])

    assert "index.html" in files
    assert "<title>Nordic Goods</title>" in files["index.html"]


@pytest.mark.asyncio
async def test_generate_writes_site(generator, store, pages, stores_root):
    target = await generator.generate(store, pages)

    assert target == stores_root / "shop.example.com"
    assert (target / "about.html").read_text(encoding="utf-8").startswith("<!DOCTYPE html>")
    assert not list(target.glob("*.tmp"))
    assert generator.exists("shop.example.com")


@pytest.mark.asyncio
async def test_generate_overwrites_previous_output(generator, store, pages, stores_root):
    await generator.generate(store, pages)
    pages[1].content = "<p>Updated</p>"

    await generator.generate(store, pages)

    assert "<p>Updated</p>" in (stores_root / "shop.example.com" / "about.html").read_text()


@pytest.mark.asyncio
async def test_generate_failure_is_wrapped(tmp_path, store, pages):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    generator = StaticSiteGenerator(str(blocker))

    with pytest.raises(SiteGenerationError, match="shop.example.com"):
        await generator.generate(store, pages)


@pytest.mark.asyncio
async def test_remove_site(generator, store, pages):
    await generator.generate(store, pages)

    assert await generator.remove("shop.example.com") is True
    assert not generator.exists("shop.example.com")
    assert await generator.remove("shop.example.com") is False


def test_not_found_page_uses_branding():
    html = SiteRenderer().render_not_found({"name": "Nordic Goods", "primary_color": "#112233"}, "/nope")

    assert "<title>Page not found - Nordic Goods</title>" in html
    assert "#112233" in html
    assert "#f8f9fa" in html
    assert "<code>/nope</code>" in html
