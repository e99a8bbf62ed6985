"""Host-based routing of requests to generated store sites."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import FileResponse, HTMLResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storebuilder.core.settings import Settings, get_settings
from storebuilder.services.site_generator import MANIFEST_NAME, SiteRenderer

CONTENT_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
    ".pdf": "application/pdf",
    ".xml": "application/xml",
    ".txt": "text/plain",
}

STATIC_ASSET_EXTENSIONS = frozenset({
    ".css", ".js", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico",
})


@dataclass(frozen=True)
class ResolvedSite:
    """A store site directory matched from a request host."""
    key: str
    directory: Path
    branding: Dict[str, Any]


def header_safe(value: str) -> str:
    """Drop characters HTTP headers cannot carry."""
    return value.encode("latin-1", "ignore").decode("latin-1")


class SiteResolver:
    """
    Map hosts and paths onto files below the stores root.

    Pure filesystem lookups; no database access.
    """

    def __init__(
        self,
        stores_root: str,
        passthrough_hosts: Iterable[str] = ("localhost", "127.0.0.1"),
        passthrough_suffixes: Iterable[str] = (".local", ".vercel.app"),
        case_fallback: bool = True,
    ):
        self.stores_root = Path(stores_root)
        self.passthrough_hosts = {h.lower() for h in passthrough_hosts}
        self.passthrough_suffixes = tuple(s.lower() for s in passthrough_suffixes)
        self.case_fallback = case_fallback

    @classmethod
    def from_settings(cls, settings: Settings) -> "SiteResolver":
        return cls(
            stores_root=settings.stores_root,
            passthrough_hosts=settings.router_passthrough_hosts,
            passthrough_suffixes=settings.router_passthrough_suffixes,
            case_fallback=settings.router_case_fallback,
        )

    @staticmethod
    def host_key(host: Optional[str]) -> Optional[str]:
        """
        Candidate directory key for a ``Host`` header value.

        Examples:
            "www.Shop.example.com:8080" -> "shop.example.com"
        """
        if not host:
            return None
        key = host.strip().lower()
        if key.startswith("["):
            # IPv6 literal, never a store
            return None
        key = key.split(":", 1)[0].rstrip(".")
        if key.startswith("www."):
            key = key[4:]
        return key or None

    def is_passthrough(self, key: str) -> bool:
        if key in self.passthrough_hosts:
            return True
        return any(key.endswith(suffix) for suffix in self.passthrough_suffixes)

    def resolve_site(self, host: Optional[str]) -> Optional[ResolvedSite]:
        """Find the site directory for ``host``; None means pass through."""
        key = self.host_key(host)
        if key is None or self.is_passthrough(key):
            return None

        candidates = [key]
        if self.case_fallback:
            capitalized = key[:1].upper() + key[1:]
            if capitalized != key:
                candidates.append(capitalized)

        for candidate in candidates:
            if "/" in candidate or candidate.startswith("."):
                return None
            directory = self.stores_root / candidate
            if directory.is_dir():
                return ResolvedSite(key=key, directory=directory, branding=self._load_branding(directory, key))
        return None

    @staticmethod
    def _load_branding(directory: Path, key: str) -> Dict[str, Any]:
        branding: Dict[str, Any] = {"name": key, "domain": key}
        try:
            manifest = json.loads((directory / MANIFEST_NAME).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return branding
        if isinstance(manifest, dict):
            branding.update({k: v for k, v in manifest.items() if v})
        return branding

    @staticmethod
    def resolve_file(directory: Path, path: str) -> Optional[Path]:
        """
        Pick the file to serve for a request path.

        - ``/`` or empty: ``index.html``
        - a path containing ``.``: that file
        - otherwise ``<path>/index.html``, ``<path>.html``, ``<path>`` in order

        Segments starting with ``.`` are never served, which also rules out
        ``..`` traversal and the site manifest.
        """
        clean = path.strip("/")
        if not clean:
            candidates = [directory / "index.html"]
        else:
            segments = clean.split("/")
            if any(not segment or segment.startswith(".") or "\\" in segment for segment in segments):
                return None
            if "." in clean:
                candidates = [directory / clean]
            else:
                candidates = [
                    directory / clean / "index.html",
                    directory / f"{clean}.html",
                    directory / clean,
                ]

        root = directory.resolve()
        for candidate in candidates:
            if not candidate.is_file():
                continue
            resolved = candidate.resolve()
            if resolved != root and root not in resolved.parents:
                return None
            return candidate
        return None

    @staticmethod
    def content_type(path: Path) -> str:
        return CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


class StoreRouterMiddleware(BaseHTTPMiddleware):
    """
    Serve generated store sites by ``Host`` header.

    Requests for unknown hosts, development hosts and application prefixes
    (API, docs, health) continue down the stack. A recognized store with an
    unresolvable path gets a store-branded 404 page.
    """

    def __init__(
        self,
        app,
        resolver: Optional[SiteResolver] = None,
        settings: Optional[Settings] = None,
        renderer: Optional[SiteRenderer] = None,
        logger_name: str = "storebuilder.router",
    ):
        super().__init__(app)
        settings = settings or get_settings()
        self.resolver = resolver or SiteResolver.from_settings(settings)
        self.exempt_prefixes = tuple(settings.router_exempt_prefixes)
        self.html_cache_seconds = settings.html_cache_seconds
        self.asset_cache_seconds = settings.asset_cache_seconds
        self.renderer = renderer or SiteRenderer()
        self.logger = structlog.get_logger(logger_name)

    def is_exempt(self, path: str) -> bool:
        for prefix in self.exempt_prefixes:
            base = prefix.rstrip("/")
            if path == base or path.startswith(base + "/"):
                return True
        return False

    def cache_control(self, file_path: Path) -> Optional[str]:
        suffix = file_path.suffix.lower()
        if suffix in STATIC_ASSET_EXTENSIONS:
            return f"public, max-age={self.asset_cache_seconds}, immutable"
        if suffix == ".html":
            return f"public, max-age={self.html_cache_seconds}"
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if request.method not in ("GET", "HEAD") or self.is_exempt(path):
            return await call_next(request)

        host = request.headers.get("host")
        try:
            site = self.resolver.resolve_site(host)
        except OSError as e:
            self.logger.warning("Store lookup failed", host=host, path=path, error=str(e))
            return await call_next(request)

        if site is None:
            return await call_next(request)

        store_headers = {
            "X-Store-Name": header_safe(str(site.branding.get("name", site.key))),
            "X-Store-Domain": header_safe(str(site.branding.get("domain", site.key))),
        }

        file_path = self.resolver.resolve_file(site.directory, path)
        if file_path is None:
            self.logger.info("Store page not found", host=site.key, path=path)
            return HTMLResponse(
                self.renderer.render_not_found(site.branding, path),
                status_code=404,
                headers=store_headers,
            )

        headers = dict(store_headers)
        cache_control = self.cache_control(file_path)
        if cache_control:
            headers["Cache-Control"] = cache_control

        self.logger.debug("Serving store file", host=site.key, path=path, file=str(file_path))
        return FileResponse(
            file_path,
            media_type=self.resolver.content_type(file_path),
            headers=headers,
        )
