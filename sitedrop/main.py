"""SiteDrop - static site hosting service.

This FastAPI app is a thin transport adapter over the site engine:

1. **Upload & View**
   - POST /api/upload - Store base64 files or a zip under a site name
   - GET /view/{slug} - Serve a site's primary page
   - GET /view?site={slug} (also /view.php) - Query-parameter form
   - GET /sites/{slug}/{path} - Serve a site's static assets

2. **Administration**
   - GET /api/admin/sites - List every site
   - POST /api/admin/site/{slug}/delete - Soft-delete a site
   - POST /api/admin/site/{slug}/restore - Restore a soft-deleted site
   - GET /api/admin/usage - Active site count and storage
   - GET /api/admin/site/{slug}/download - Export a site as zip

Filesystem and database work runs on a bounded thread pool with a
per-request timeout so a large upload cannot starve other requests.

Environment Variables:
    SITEDROP_DATA_DIR: Base data directory (default: ./data)
    SITEDROP_SITES_DIR: Active sites root (default: <data>/sites)
    SITEDROP_DB_PATH: SQLite registry path (default: <data>/sitedrop.db)
    SITEDROP_WORKERS: Worker pool size (default: 4)
    SITEDROP_REQUEST_TIMEOUT: Seconds before a request gives up (default: 30)
    SITEDROP_BASE_URL: Public base URL for view links (default: from request)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import functools
import logging
from collections.abc import AsyncIterator, Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from . import paths
from .errors import BadUpload, InternalError, OperationTimeout, SiteError
from .export import ArchiveExporter
from .ingest import IngestResult, UploadEntry, UploadIngestor
from .lifecycle import SiteLifecycle
from .locks import Cancellation, SlugLocks
from .registry import SiteRegistry
from .server import SiteServer
from .site_store import SiteStore

_LOG = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Service Wiring
# =============================================================================


@dataclass
class Services:
    """Store objects and components shared by every request.

    Created when the app starts and closed when it shuts down.
    """

    store: SiteStore
    registry: SiteRegistry
    locks: SlugLocks
    ingestor: UploadIngestor
    server: SiteServer
    exporter: ArchiveExporter
    lifecycle: SiteLifecycle
    executor: ThreadPoolExecutor
    request_timeout: float
    base_url: str

    def close(self) -> None:
        self.executor.shutdown(wait=True)
        self.registry.close()


def build_services(
    sites_dir: Path,
    deleted_dir: Path,
    db_path: Path,
    workers: int = paths.WORKER_THREADS,
    request_timeout: float = paths.REQUEST_TIMEOUT,
    max_upload_size: int = paths.MAX_UPLOAD_SIZE,
    base_url: str = paths.BASE_URL,
) -> Services:
    """Open the stores and compose the components around them."""
    store = SiteStore(sites_dir, deleted_dir)
    registry = SiteRegistry(db_path)
    locks = SlugLocks()
    return Services(
        store=store,
        registry=registry,
        locks=locks,
        ingestor=UploadIngestor(store, registry, locks, max_upload_size=max_upload_size),
        server=SiteServer(store, registry),
        exporter=ArchiveExporter(store, registry, locks),
        lifecycle=SiteLifecycle(store, registry, locks),
        executor=ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sitedrop"),
        request_timeout=request_timeout,
        base_url=base_url.rstrip("/"),
    )


def create_app(**service_options: Any) -> FastAPI:
    """Create the FastAPI app.

    Args:
        service_options: Overrides for build_services (paths, limits).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        options = {
            "sites_dir": paths.SITES_DIR,
            "deleted_dir": paths.DELETED_DIR,
            "db_path": paths.DB_PATH,
            **service_options,
        }
        services = build_services(**options)
        app.state.services = services
        _LOG.info("SiteDrop started (sites: %s, db: %s)", services.store.sites_dir, services.registry.db_path)
        try:
            yield
        finally:
            services.close()
            _LOG.info("SiteDrop stopped")

    app = FastAPI(title="SiteDrop", version="1.0.0", lifespan=lifespan)
    app.add_exception_handler(SiteError, _site_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(_router())
    return app


async def _site_error_handler(request: Request, exc: SiteError) -> JSONResponse:
    content: dict[str, Any] = {"ok": False, "error": exc.message}
    headers = None
    if exc.retryable:
        content["retryable"] = True
        headers = {"Retry-After": "1"}
    return JSONResponse(content, status_code=exc.status_code, headers=headers)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    _LOG.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
    return JSONResponse({"ok": False, "error": "Invalid request body"}, status_code=400)


def _discard_outcome(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


async def run_blocking(
    request: Request,
    func: Callable[..., T],
    *args: Any,
    cancellation: Cancellation | None = None,
) -> T:
    """Run a blocking call on the worker pool, bounded by the request timeout.

    Args:
        request: Current request, used to reach the shared services.
        func: Blocking callable.
        args: Positional arguments for func.
        cancellation: Shared with func when it mutates state. On timeout the
            worker is cancelled; if it already committed its first write the
            request waits for it instead, so the caller never gets a timeout
            for an operation that went on to succeed.

    Raises:
        SiteError: Whatever func raised.
        OperationTimeout: The worker did not finish in time.
        InternalError: func raised something other than a SiteError.
    """
    services: Services = request.app.state.services
    name = getattr(func, "__name__", repr(func))
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(services.executor, functools.partial(func, *args))
    try:
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=services.request_timeout)
        except TimeoutError:
            if cancellation is None or cancellation.cancel():
                future.add_done_callback(_discard_outcome)
                _LOG.warning("%s timed out after %.1fs", name, services.request_timeout)
                raise OperationTimeout() from None
            _LOG.info("%s passed the timeout after committing, waiting for it", name)
            return await future
    except SiteError:
        raise
    except Exception as exc:
        _LOG.exception("%s failed unexpectedly", name)
        raise InternalError() from exc


# =============================================================================
# Request Models
# =============================================================================


class UploadFileModel(BaseModel):
    """One uploaded file.

    Attributes:
        fileName: Original file name, extension decides handling.
        fileData: Base64-encoded contents.
    """

    fileName: str | None = None
    fileData: str | None = None


class UploadRequest(BaseModel):
    """Request body for POST /api/upload.

    Attributes:
        siteName: Display name, the slug is derived from it.
        files: Files to store; a single .zip is extracted.
    """

    siteName: str | None = None
    files: list[UploadFileModel] | None = None


def decode_files(files: list[UploadFileModel] | None) -> list[UploadEntry]:
    """Decode base64 payloads into upload entries.

    Raises:
        BadUpload: Invalid base64 in any entry.
    """
    entries = []
    for item in files or []:
        try:
            data = base64.b64decode(item.fileData or "", validate=True)
        except (binascii.Error, ValueError):
            raise BadUpload("Invalid file data") from None
        entries.append(UploadEntry(file_name=item.fileName or "", data=data))
    return entries


def _ingest_upload(services: Services, body: UploadRequest, cancellation: Cancellation) -> IngestResult:
    return services.ingestor.ingest(body.siteName or "", decode_files(body.files), cancellation)


# =============================================================================
# Routes
# =============================================================================


def _not_found_page(message: str) -> HTMLResponse:
    return HTMLResponse(f"<h1>404</h1><p>{message}</p>", status_code=404)


def _router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health(request: Request) -> dict:
        """Health check endpoint for monitoring and load balancers."""
        services: Services = request.app.state.services
        count = await run_blocking(request, services.registry.count_active)
        return {"status": "healthy", "sites_count": count, "busy_sites": services.locks.active_count()}

    @router.post("/api/upload")
    async def upload_site(request: Request, body: UploadRequest) -> JSONResponse:
        """Store an uploaded site and return its view URL."""
        services: Services = request.app.state.services
        cancellation = Cancellation()
        result = await run_blocking(
            request, _ingest_upload, services, body, cancellation, cancellation=cancellation
        )

        base = services.base_url or str(request.base_url).rstrip("/")
        url = f"{base}/view/{result.slug}"
        return JSONResponse({
            "ok": True,
            "url": url,
            "slug": result.slug,
            "message": "Site uploaded successfully",
        })

    async def _serve_view(request: Request, slug: str) -> Response:
        services: Services = request.app.state.services
        try:
            view = await run_blocking(request, services.server.resolve_view, slug)
        except SiteError as exc:
            if exc.status_code == 404:
                return _not_found_page(exc.message)
            raise
        if view.file_path is not None:
            return FileResponse(view.file_path)
        return HTMLResponse(view.html)

    @router.get("/view/{slug}")
    async def view_site(request: Request, slug: str) -> Response:
        """Serve a site's primary page."""
        return await _serve_view(request, slug)

    @router.get("/view")
    @router.get("/view.php")
    async def view_site_query(request: Request, site: str | None = Query(None)) -> Response:
        """Query-parameter form of the view route."""
        if not site:
            return PlainTextResponse("Missing site parameter", status_code=400)
        return await _serve_view(request, site)

    @router.get("/sites/{slug}/{path:path}")
    async def serve_site_file(request: Request, slug: str, path: str = "") -> Response:
        """Serve a static asset from an active site."""
        services: Services = request.app.state.services
        try:
            file_path = await run_blocking(request, services.server.resolve_asset, slug, path)
        except SiteError as exc:
            if exc.status_code == 404:
                return _not_found_page(exc.message)
            raise
        return FileResponse(file_path)

    @router.get("/api/admin/sites")
    async def list_sites(request: Request) -> dict:
        """List all sites, newest first, in every status."""
        services: Services = request.app.state.services
        sites = await run_blocking(request, services.lifecycle.list_sites)
        return {"ok": True, "sites": [site.to_dict() for site in sites]}

    @router.post("/api/admin/site/{slug}/delete")
    async def delete_site(request: Request, slug: str) -> dict:
        """Soft-delete a site."""
        services: Services = request.app.state.services
        cancellation = Cancellation()
        await run_blocking(request, services.lifecycle.delete, slug, cancellation, cancellation=cancellation)
        return {"ok": True, "message": "Site deleted successfully"}

    @router.post("/api/admin/site/{slug}/restore")
    async def restore_site(request: Request, slug: str) -> dict:
        """Restore a soft-deleted site."""
        services: Services = request.app.state.services
        cancellation = Cancellation()
        await run_blocking(request, services.lifecycle.restore, slug, cancellation, cancellation=cancellation)
        return {"ok": True, "message": "Site restored successfully"}

    @router.get("/api/admin/usage")
    async def usage(request: Request) -> dict:
        """Active site count and total stored bytes."""
        services: Services = request.app.state.services
        stats = await run_blocking(request, services.lifecycle.usage)
        return {
            "ok": True,
            "totalSites": stats.total_sites,
            "totalStorage": stats.total_storage,
            "totalStorageFormatted": stats.total_storage_formatted,
        }

    @router.get("/api/admin/site/{slug}/download")
    async def download_site(request: Request, slug: str) -> Response:
        """Download a site as a zip archive."""
        services: Services = request.app.state.services
        result = await run_blocking(request, services.exporter.export, slug)
        return Response(
            content=result.data,
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
        )

    return router


app = create_app()
