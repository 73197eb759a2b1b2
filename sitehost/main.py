"""sitehost - multi-tenant static asset host.

This FastAPI service serves every tenant from a subdomain of BASE_DOMAIN and
publishes new tenant versions from uploaded tarballs.

Endpoints:
    POST /:deploy                          - Deploy a tarball (raw body)
    COPY /{name}                           - Download a tenant backup
    GET  /:npm/{scope}/{name}              - Registry document
    GET  /:npm/{scope}/{name}/{version}    - Generated package tarball
    PUT  /:npm/{scope}/{name}/{version}    - Publish a module version
    GET  /:health                          - Health check
    GET|HEAD|OPTIONS /{path}               - Static files of the tenant
                                             named by the Host header

Security:
    - Deploy, backup and publish require the API_KEY in the authorization
      header, compared byte-for-byte
    - Request paths are normalized before they touch the filesystem
    - Registry coordinates are validated before any filesystem access

The app is built by ``create_app()`` so tests can pass their own settings and
archiver; ``python -m sitehost`` runs it under uvicorn.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Header, Request
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, auth
from .aliases import AliasIndex
from .archiver import Archiver, TarArchiver
from .backup import BackupExporter
from .config import Settings
from .deploy import DeployPipeline, upload_limit_message
from .errors import ExportFailed, ExtractFailed, NotFound, PayloadTooLarge, Unauthorized
from .registry import NO_CACHE, REGISTRY_PREFIX, RegistryEmulator, cache_control_for
from .resolver import CORS_HEADERS, PathResolver, static_headers
from .store import ContentStore

_LOG = logging.getLogger(__name__)

NOT_FOUND_BODY: str = "Not found"


def request_hostname(request: Request) -> str:
    """Hostname the client asked for, preferring the proxy's forwarded host."""
    return request.headers.get("x-forwarded-host") or request.headers.get("host", "")


# =============================================================================
# Error Handlers
# =============================================================================


async def _unauthorized(request: Request, exc: Unauthorized) -> Response:
    return Response(status_code=401)


async def _not_found(request: Request, exc: Exception) -> Response:
    return PlainTextResponse(NOT_FOUND_BODY, status_code=404)


async def _extract_failed(request: Request, exc: ExtractFailed) -> Response:
    return JSONResponse({"status": "error", "error": str(exc)}, status_code=400)


async def _too_large(request: Request, exc: PayloadTooLarge) -> Response:
    return JSONResponse({"status": "error", "error": str(exc)}, status_code=413)


async def _export_failed(request: Request, exc: ExportFailed) -> Response:
    return PlainTextResponse("Backup failed", status_code=400)


async def _http_error(request: Request, exc: StarletteHTTPException) -> Response:
    # Unknown routes and methods look the same as missing files
    if exc.status_code in (404, 405):
        return PlainTextResponse(NOT_FOUND_BODY, status_code=404)
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code)


async def _unexpected(request: Request, exc: Exception) -> Response:
    _LOG.exception("Unhandled error for %s %s", request.method, request.url.path)
    return Response(status_code=500)


# =============================================================================
# Application Factory
# =============================================================================


def create_app(settings: Settings | None = None, archiver: Archiver | None = None) -> FastAPI:
    """Build the HTTP application.

    Args:
        settings: Configuration. Defaults to ``Settings.from_env()``.
        archiver: Archive tool. Defaults to a ``TarArchiver``.

    Returns:
        Configured FastAPI app. Components are exposed on ``app.state``.
    """
    settings = settings or Settings.from_env()
    archiver = archiver or TarArchiver(timeout=settings.archive_timeout)
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    aliases = AliasIndex(settings.data_dir)
    store = ContentStore(settings.data_dir, archiver)
    pipeline = DeployPipeline(settings, store, aliases)
    resolver = PathResolver(settings, aliases)
    registry = RegistryEmulator(settings)
    exporter = BackupExporter(settings, aliases, archiver)

    app = FastAPI(title="sitehost", version=__version__, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.aliases = aliases
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.resolver = resolver
    app.state.registry = registry
    app.state.exporter = exporter

    app.add_exception_handler(Unauthorized, _unauthorized)
    app.add_exception_handler(NotFound, _not_found)
    app.add_exception_handler(ExtractFailed, _extract_failed)
    app.add_exception_handler(PayloadTooLarge, _too_large)
    app.add_exception_handler(ExportFailed, _export_failed)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(Exception, _unexpected)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/:health")
    async def health() -> dict:
        """Health check endpoint for monitoring and load balancers."""
        return {
            "status": "healthy",
            "sites_count": store.count(),
            "aliases_count": len(aliases.names()),
        }

    # =========================================================================
    # Deploy
    # =========================================================================

    @app.post("/:deploy")
    async def deploy(request: Request, authorization: str | None = Header(None)) -> JSONResponse:
        """Deploy the tarball in the request body.

        Returns 201 with the content URL and, when package.json names the
        package, the alias URL.
        """
        # Authorize, then refuse oversized bodies before buffering them
        auth.require_token(settings, authorization, "deploy")
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.max_upload_size:
            raise PayloadTooLarge(upload_limit_message(settings.max_upload_size))

        body = await request.body()
        result = await pipeline.deploy(body, authorization)
        return JSONResponse(result.to_response(), status_code=201)

    # =========================================================================
    # Registry
    # =========================================================================

    @app.api_route(REGISTRY_PREFIX + "/{scope}/{name}", methods=["GET", "HEAD"])
    async def registry_manifest(scope: str, name: str) -> JSONResponse:
        """Registry document listing every stored version."""
        document = registry.manifest(scope, name)
        if document is None:
            raise NotFound(f"{scope}/{name}")
        return JSONResponse(document, headers={"Cache-Control": NO_CACHE, **CORS_HEADERS})

    @app.api_route(REGISTRY_PREFIX + "/{scope}/{name}/{version}", methods=["GET", "HEAD"])
    async def registry_tarball(scope: str, name: str, version: str) -> Response:
        """Tarball for one version, generated from the stored module."""
        data = registry.tarball(scope, name, version)
        if data is None:
            raise NotFound(f"{scope}/{name}@{version}")
        return Response(
            data,
            media_type="application/octet-stream",
            headers={"Cache-Control": cache_control_for(version), **CORS_HEADERS},
        )

    @app.put(REGISTRY_PREFIX + "/{scope}/{name}/{version}")
    async def registry_publish(
        scope: str,
        name: str,
        version: str,
        request: Request,
        authorization: str | None = Header(None),
    ) -> JSONResponse:
        """Store the request body as a module version."""
        source = await request.body()
        tarball = registry.publish(scope, name, version, source, authorization)
        if tarball is None:
            raise NotFound(f"{scope}/{name}@{version}")
        return JSONResponse({"status": "success", "tarball": tarball}, status_code=201)

    # =========================================================================
    # Backup
    # =========================================================================

    @app.api_route("/{path:path}", methods=["COPY"])
    async def backup(path: str, authorization: str | None = Header(None)) -> Response:
        """Download the tenant named by the last path segment as a tarball."""
        archive = await exporter.export(path, authorization)
        return Response(
            archive.data,
            media_type="application/x-gzip",
            headers={"Content-Disposition": f'attachment; filename="{archive.filename}"'},
        )

    # =========================================================================
    # Static Files
    # =========================================================================

    @app.api_route("/{path:path}", methods=["GET", "HEAD", "OPTIONS"])
    async def serve(request: Request, path: str = "") -> Response:
        """Serve a tenant file picked by Host header and path."""
        file = resolver.resolve(request_hostname(request), "/" + path)
        if file is None:
            raise NotFound(path)

        headers = static_headers(file, "nocache" in request.query_params, settings.cache_max_age)
        media_type = headers.pop("Content-Type")
        return FileResponse(file, media_type=media_type, headers=headers)

    return app
