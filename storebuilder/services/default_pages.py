"""Default page set for new stores, including legal pages."""

import logging
from string import Template
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storebuilder.models.store import Store
from storebuilder.models.store_page import StorePage

logger = logging.getLogger(__name__)

# Public page names accepted from operators, mapped to internal page types
PAGE_NAME_ALIASES = {
    "privacy-policy": "privacy",
    "terms-of-service": "terms",
    "return-policy": "refund",
    "shipping-policy": "delivery",
}

ESSENTIAL_PAGES = ("home", "products")
DEFAULT_PAGES = ("home", "products", "about", "contact", "terms", "privacy", "refund", "delivery")

LEGAL_PAGES: Dict[str, Dict[str, str]] = {
    "terms": {
        "title": "Terms of Service",
        "body": (
            "<h2>Terms of Service</h2>\n"
            "<p>These terms apply to all purchases made on $domain, operated by "
            "$company_name (registration number $company_orgnr), $company_address.</p>\n"
            "<p>Prices are shown in $currency and include applicable taxes for $country.</p>\n"
            "<p>Questions about these terms can be sent to $contact_email.</p>"
        ),
    },
    "privacy": {
        "title": "Privacy Policy",
        "body": (
            "<h2>Privacy Policy</h2>\n"
            "<p>$company_name is responsible for personal data collected through $domain.</p>\n"
            "<p>We process order and contact details only to fulfil purchases and answer "
            "enquiries, in line with the data protection rules of $country.</p>\n"
            "<p>To access or delete your data, contact $contact_email.</p>"
        ),
    },
    "refund": {
        "title": "Refund Policy",
        "body": (
            "<h2>Refund Policy</h2>\n"
            "<p>Products bought on $domain can be returned for a refund in $currency.</p>\n"
            "<p>Start a return by writing to $contact_email with your order number.</p>\n"
            "<p>$company_name, $company_address</p>"
        ),
    },
    "delivery": {
        "title": "Shipping Policy",
        "body": (
            "<h2>Shipping Policy</h2>\n"
            "<p>$company_name ships orders placed on $domain to addresses in $country and abroad.</p>\n"
            "<p>Shipping questions: $contact_email.</p>"
        ),
    },
}


def resolve_page_types(selected: Optional[Iterable[str]]) -> List[str]:
    """
    Decide which page types a store gets.

    With no selection the full default set is used. Otherwise the selection
    is mapped to internal names and merged after the essential pages,
    keeping first-seen order.
    """
    selected = [name.strip() for name in (selected or []) if name and name.strip()]
    if not selected:
        return list(DEFAULT_PAGES)

    pages: List[str] = []
    for name in [*ESSENTIAL_PAGES, *selected]:
        page_type = PAGE_NAME_ALIASES.get(name, name)
        if page_type not in pages:
            pages.append(page_type)
    return pages


def legal_context(store: Store) -> Dict[str, str]:
    """Placeholder values substituted into legal page templates."""
    return {
        "domain": store.domain,
        "company_name": store.name,
        "contact_email": store.support_email or f"support@{store.domain}",
        "country": store.country or "TBD",
        "currency": store.currency or "TBD",
        "company_orgnr": store.business_orgnr or "TBD",
        "company_address": store.business_address or "TBD",
    }


def build_page_content(store: Store, page_type: str) -> Dict[str, Any]:
    """Title, body and metadata for one page type."""
    legal = LEGAL_PAGES.get(page_type)
    if legal:
        body = Template(legal["body"]).safe_substitute(legal_context(store))
        return {
            "title": legal["title"],
            "subtitle": "",
            "content": body,
            "meta_title": legal["title"],
            "meta_description": f"{legal['title']} - {store.name}",
            "template_data": {"layout": "legal"},
        }

    label = page_type.replace("-", " ").replace("_", " ").title()
    if page_type == "home":
        title = store.meta_title or store.name
        subtitle = store.meta_description or f"Welcome to {store.name}"
    else:
        title = f"{store.name} - {label}"
        subtitle = f"Welcome to our {label.lower()} page"
    return {
        "title": title,
        "subtitle": subtitle,
        "content": f"<p>Welcome to the {label.lower()} page of {store.name}.</p>",
        "meta_title": title,
        "meta_description": f"Visit our {label.lower()} page at {store.name}",
        "template_data": {"layout": "basic"},
    }


async def materialize_default_pages(session: AsyncSession, store: Store) -> List[StorePage]:
    """
    Create the store's default pages that do not exist yet.

    Existing pages are left untouched so operator edits survive redeploys.

    Returns:
        List[StorePage]: All enabled pages of the store, in display order
    """
    result = await session.execute(select(StorePage).where(StorePage.store_id == store.id))
    existing = {page.page_type: page for page in result.scalars().all()}

    created = 0
    for sort_order, page_type in enumerate(resolve_page_types(store.get_selected_pages())):
        if page_type in existing:
            continue
        content = build_page_content(store, page_type)
        page = StorePage(
            store_id=store.id,
            page_type=page_type,
            slug="" if page_type == "home" else page_type,
            sort_order=sort_order,
            is_enabled=True,
            **content,
        )
        session.add(page)
        existing[page_type] = page
        created += 1

    await session.flush()
    logger.info(f"Materialized {created} default pages for store {store.name}")

    return sorted(
        (page for page in existing.values() if page.is_enabled),
        key=lambda page: (page.sort_order, page.page_type),
    )


async def load_enabled_pages(session: AsyncSession, store: Store) -> List[StorePage]:
    result = await session.execute(
        select(StorePage)
        .where(StorePage.store_id == store.id, StorePage.is_enabled.is_(True))
        .order_by(StorePage.sort_order, StorePage.page_type)
    )
    return list(result.scalars().all())
