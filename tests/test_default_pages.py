"""Tests for default page materialization."""

import pytest
from sqlalchemy import func, select

from storebuilder.models.store import Store
from storebuilder.models.store_page import StorePage
from storebuilder.services.default_pages import (
    DEFAULT_PAGES,
    build_page_content,
    load_enabled_pages,
    materialize_default_pages,
    resolve_page_types,
)


@pytest.fixture
def store(store_config):
    return Store(**store_config, domain="shop.example.com", subdomain="nordic-goods")


class TestResolvePageTypes:

    def test_no_selection_gives_default_set(self):
        assert resolve_page_types(None) == list(DEFAULT_PAGES)
        assert resolve_page_types(["", "  "]) == list(DEFAULT_PAGES)

    def test_selection_is_merged_after_essential_pages(self):
        selected = ["about", "privacy-policy", "about", "return-policy"]

        assert resolve_page_types(selected) == ["home", "products", "about", "privacy", "refund"]

    def test_essential_pages_are_not_duplicated(self):
        assert resolve_page_types(["products", "contact"]) == ["home", "products", "contact"]


class TestBuildPageContent:

    def test_legal_page_substitutes_store_details(self, store):
        store.business_address = "Storgatan 1, Stockholm"

        content = build_page_content(store, "terms")

        assert content["title"] == "Terms of Service"
        assert "shop.example.com" in content["content"]
        assert "Nordic Goods" in content["content"]
        assert "Storgatan 1, Stockholm" in content["content"]
        assert "support@shop.example.com" in content["content"]
        assert "registration number TBD" in content["content"]
        assert "$" not in content["content"]
        assert content["template_data"] == {"layout": "legal"}

    def test_home_page_uses_store_metadata(self, store):
        store.meta_title = "Nordic Goods - Scandinavian design"

        content = build_page_content(store, "home")

        assert content["title"] == "Nordic Goods - Scandinavian design"
        assert content["subtitle"] == "Welcome to Nordic Goods"

    def test_basic_page_title(self, store):
        assert build_page_content(store, "about")["title"] == "Nordic Goods - About"


@pytest.mark.asyncio
async def test_materialize_creates_default_pages(db_session, store):
    db_session.add(store)
    await db_session.commit()

    pages = await materialize_default_pages(db_session, store)
    await db_session.commit()

    assert [page.page_type for page in pages] == list(DEFAULT_PAGES)
    assert pages[0].slug == ""
    assert pages[0].output_filename == "index.html"
    assert pages[2].output_filename == "about.html"


@pytest.mark.asyncio
async def test_materialize_keeps_existing_pages(db_session, store):
    db_session.add(store)
    await db_session.commit()
    db_session.add(StorePage(store_id=store.id, page_type="about", slug="about-us", title="Our story"))
    await db_session.commit()

    pages = await materialize_default_pages(db_session, store)
    await db_session.commit()

    about = next(page for page in pages if page.page_type == "about")
    assert about.title == "Our story"
    assert about.output_filename == "about-us.html"
    total = (await db_session.execute(select(func.count(StorePage.id)))).scalar_one()
    assert total == len(DEFAULT_PAGES)


@pytest.mark.asyncio
async def test_disabled_pages_are_not_published(db_session, store):
    store.selected_pages = ["about"]
    db_session.add(store)
    await db_session.commit()
    pages = await materialize_default_pages(db_session, store)
    pages[-1].is_enabled = False
    await db_session.commit()

    enabled = await load_enabled_pages(db_session, store)

    assert [page.page_type for page in enabled] == ["home", "products"]
