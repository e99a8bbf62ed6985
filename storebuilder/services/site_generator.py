"""Static site rendering for stores."""

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from storebuilder.models.store import Store
from storebuilder.models.store_page import StorePage

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "site"
MANIFEST_NAME = ".site.json"
LEGAL_PAGE_TYPES = ("terms", "privacy", "refund", "delivery")


class SiteGenerationError(Exception):
    """Raised when a store's files cannot be rendered or written."""
    pass


class SiteRenderer:
    """Jinja2 environment for store pages and store-branded error pages."""

    def __init__(self, templates_dir: Optional[Path] = None):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=select_autoescape(["html"]),
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, **context: Any) -> str:
        return self.env.get_template(template_name).render(**context)

    def render_not_found(self, branding: Dict[str, Any], path: str) -> str:
        store = {
            "name": branding.get("name") or branding.get("domain") or "Store",
            "primary_color": branding.get("primary_color") or "#007cba",
            "secondary_color": branding.get("secondary_color") or "#f8f9fa",
        }
        return self.render("not_found.html", store=store, path=path)


def _store_context(store: Store) -> Dict[str, Any]:
    return {
        **store.get_branding(),
        "uuid": str(store.uuid),
        "language": store.language or "en",
        "support_email": store.support_email,
    }


def _page_context(page: StorePage) -> Dict[str, Any]:
    return {
        "page_type": page.page_type,
        "slug": (page.slug or "").strip("/"),
        "title": page.title,
        "subtitle": page.subtitle,
        "content": page.content or "",
        "meta_title": page.meta_title,
        "meta_description": page.meta_description,
        "filename": page.output_filename,
    }


def _href(page: Dict[str, Any]) -> str:
    return "/" if page["filename"] == "index.html" else f"/{page['slug']}"


class StaticSiteGenerator:
    """
    Render a store and its pages into ``<stores_root>/<domain>/``.

    Output for identical inputs is byte-identical: the home page becomes
    ``index.html``, every other enabled page ``<slug>.html``, plus
    ``styles.css`` and a ``.site.json`` manifest read by the host router.
    Files are written off the event loop.
    """

    def __init__(self, stores_root: str, renderer: Optional[SiteRenderer] = None):
        self.stores_root = Path(stores_root)
        self.renderer = renderer or SiteRenderer()

    def site_dir(self, domain: str) -> Path:
        return self.stores_root / domain

    def exists(self, domain: str) -> bool:
        """A store counts as generated when its ``index.html`` is on disk."""
        return (self.site_dir(domain) / "index.html").is_file()

    def render(self, store: Store, pages: Sequence[StorePage]) -> Dict[str, str]:
        """
        Render all files for a store without touching the disk.

        Returns:
            Dict[str, str]: Relative file name to file content
        """
        store_ctx = _store_context(store)
        page_ctxs = [_page_context(page) for page in pages]
        if not any(p["filename"] == "index.html" for p in page_ctxs):
            page_ctxs.insert(0, {
                "page_type": "home",
                "slug": "",
                "title": store.name,
                "subtitle": None,
                "content": "",
                "meta_title": store.meta_title or store.name,
                "meta_description": store.meta_description,
                "filename": "index.html",
            })

        navigation = [
            {"href": _href(p), "label": p["title"] if p["page_type"] != "home" else "Home"}
            for p in page_ctxs if p["page_type"] not in LEGAL_PAGE_TYPES
        ]
        legal_links = [
            {"href": _href(p), "label": p["title"]}
            for p in page_ctxs if p["page_type"] in LEGAL_PAGE_TYPES
        ]

        files: Dict[str, str] = {}
        for page in page_ctxs:
            files[page["filename"]] = self.renderer.render(
                "page.html",
                store=store_ctx,
                page=page,
                navigation=navigation,
                legal_links=legal_links,
            )
        files["styles.css"] = self.renderer.render("styles.css", store=store_ctx)
        files[MANIFEST_NAME] = json.dumps(
            {
                "uuid": store_ctx["uuid"],
                "name": store_ctx["name"],
                "domain": store_ctx["domain"],
                "primary_color": store_ctx["primary_color"],
                "secondary_color": store_ctx["secondary_color"],
            },
            indent=2,
            sort_keys=True,
        )
        return files

    async def generate(self, store: Store, pages: Sequence[StorePage]) -> Path:
        """
        Render and write a store's site.

        Args:
            store: Store to render
            pages: Enabled pages in display order

        Returns:
            Path: The store's site directory

        Raises:
            SiteGenerationError: If rendering or writing fails
        """
        target = self.site_dir(store.domain)
        try:
            files = self.render(store, pages)
            await asyncio.to_thread(self._write_files, target, files)
        except SiteGenerationError:
            raise
        except Exception as e:
            logger.error(f"Failed to generate site for {store.domain}: {e}")
            raise SiteGenerationError(f"Failed to generate site for {store.domain}: {e}") from e

        logger.info(f"Generated {len(files)} files for {store.domain} in {target}")
        return target

    @staticmethod
    def _write_files(target: Path, files: Dict[str, str]) -> None:
        target.mkdir(parents=True, exist_ok=True)
        for name, content in files.items():
            path = target / name
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(f"{path.name}.tmp")
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, path)

    async def remove(self, domain: str) -> bool:
        """
        Delete a store's site directory.

        Returns:
            bool: False when there was nothing to delete
        """
        target = self.site_dir(domain)
        if not target.exists():
            return False
        await asyncio.to_thread(shutil.rmtree, target)
        logger.info(f"Removed site directory {target}")
        return True

