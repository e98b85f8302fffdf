"""
Main API module for vlink.

Responsibilities:
    - Expose REST endpoints for creating short links, link stats and deletion
    - Redirect short codes to their destinations while counting visits
    - Render QR codes for short URLs (JSON with data URL/base64, or raw PNG)
    - Map domain errors to `{code, message}` responses

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - Storage is the process-wide shared handle by default; tests inject a
      fresh in-memory Storage.
    - LinkManager owns allocation/resolution rules; VisitRecorder writes
      visits on background threads; the QR service is pure computation.
"""

import base64
import contextlib
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from vlink.analytics.analytics import VisitRecorder
from vlink.analytics.base import BaseVisitRecorder
from vlink.config import settings
from vlink.errors import NotFoundError, StoreUnavailableError, VlinkError
from vlink.manager.link_manager import LinkManager, RequestContext
from vlink.qr.render import RenderOptions
from vlink.qr.service import generate_qr_code
from vlink.storage.base import BaseStorage
from vlink.storage.storage_factory import close_shared_storage, get_shared_storage


class CreateRequest(BaseModel):
    """Request payload for creating a new short link."""
    originalUrl: Optional[str] = None
    customCode: Optional[str] = None


class QRColor(BaseModel):
    dark: str = "#000000"
    light: str = "#ffffff"


class QROptions(BaseModel):
    errorCorrectionLevel: str = "M"
    margin: int = 1
    scale: int = 4
    width: Optional[int] = 200
    color: QRColor = Field(default_factory=QRColor)
    allowDowngrade: bool = False

    def render_options(self) -> RenderOptions:
        return RenderOptions(
            margin=self.margin,
            scale=self.scale,
            width=self.width,
            dark=self.color.dark,
            light=self.color.light,
        )


class QRRequest(BaseModel):
    """Request payload for QR generation."""
    url: Optional[str] = None
    format: str = "dataURL"
    options: QROptions = Field(default_factory=QROptions)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _request_context(request: Request) -> RequestContext:
    return RequestContext(
        user_agent=request.headers.get("user-agent"),
        ip_address=_client_ip(request),
        referrer=request.headers.get("referer"),
    )


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def create_app(
    storage: Optional[BaseStorage] = None,
    recorder: Optional[BaseVisitRecorder] = None,
    base_url: Optional[str] = None,
    redirect_status: Optional[int] = None,
) -> FastAPI:
    """
    Build and configure a new FastAPI app instance.

    Args:
        storage: Backend to use; defaults to the shared process-wide handle,
            which is closed on application shutdown.
        recorder: Visit recorder; defaults to a VisitRecorder over `storage`.
        base_url: Public base for short URLs; defaults to settings/request.
        redirect_status: 301 or 302; defaults to settings (302).
    """
    log = logging.getLogger("vlink")
    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.LOG_LEVEL)

    owns_storage = storage is None
    store = storage if storage is not None else get_shared_storage()
    visits = recorder if recorder is not None else VisitRecorder(
        store, max_workers=settings.VISIT_WORKERS, max_pending=settings.VISIT_BACKLOG
    )
    manager = LinkManager(storage=store, recorder=visits)
    status_code = redirect_status or settings.REDIRECT_STATUS
    public_base = (base_url or settings.BASE_URL).rstrip("/")

    log.info("vlink storage backend: %s", type(store).__name__)

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        visits.shutdown(wait=True)
        if owns_storage:
            close_shared_storage()

    app = FastAPI(
        title="vlink",
        description="URL shortener with visit counting and QR code generation",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.storage = store

    # ----------------------------------------------------------------
    # Error mapping
    # ----------------------------------------------------------------
    @app.exception_handler(VlinkError)
    async def vlink_error_handler(request: Request, exc: VlinkError) -> JSONResponse:
        return JSONResponse({"code": exc.code, "message": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse({"code": "INVALID_REQUEST", "message": "Malformed request body"}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error on %s %s", request.method, request.url.path)
        body: Dict[str, Any] = {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
        if settings.ENV == "development":
            body["details"] = {"errorType": type(exc).__name__, "errorMessage": str(exc)}
        return JSONResponse(body, status_code=500)

    def _base(request: Request) -> str:
        if public_base:
            return public_base
        proto = request.headers.get("x-forwarded-proto") or request.url.scheme
        host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
        return f"{proto}://{host}"

    # ----------------------------------------------------------------
    # Routes
    # ----------------------------------------------------------------
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/create")
    def create_link(req: CreateRequest, request: Request) -> Dict[str, Any]:
        """Allocate a code for `originalUrl` (or reserve `customCode`)."""
        code = manager.allocate(req.originalUrl or "", req.customCode or None)
        return {"shortUrl": f"{_base(request)}/{code}", "shortCode": code}

    @app.get("/api/stats/{code}")
    def link_stats(code: str) -> Dict[str, Any]:
        record = manager.stats(code)
        return {
            "code": record.code,
            "destination": record.destination,
            "clicks": record.visit_count,
            "createdAt": _iso(record.created_at),
            "lastAccessed": _iso(record.last_accessed_at),
            "isCustom": record.is_custom,
        }

    @app.delete("/api/links/{code}")
    def delete_link(code: str) -> Dict[str, Any]:
        manager.delete(code)
        return {"deleted": True, "code": code}

    @app.post("/api/qr")
    def create_qr(req: QRRequest) -> Dict[str, Any]:
        """Render a QR code; byte formats are base64 encoded in the JSON body."""
        result = generate_qr_code(
            req.url or "",
            fmt=req.format,
            error_correction=req.options.errorCorrectionLevel,
            options=req.options.render_options(),
            allow_downgrade=req.options.allowDowngrade,
        )
        payload = result.qr_code
        if isinstance(payload, bytes):
            payload = base64.b64encode(payload).decode("ascii")
        return {
            "qrCode": payload,
            "format": req.format,
            "width": result.width,
            "height": result.height,
            "info": result.info.as_dict(),
        }

    @app.get("/api/qr.png")
    def qr_png(
        url: str = Query(..., min_length=1),
        level: str = Query("M"),
        margin: int = Query(1),
        scale: int = Query(4),
        width: Optional[int] = Query(None),
    ) -> Response:
        options = RenderOptions(margin=margin, scale=scale, width=width)
        result = generate_qr_code(url, fmt="buffer", error_correction=level, options=options)
        headers = {
            "X-QR-Version": str(result.info.version),
            "X-QR-Mask": str(result.info.mask_pattern),
            "X-QR-Level": result.info.error_correction_level,
        }
        return Response(content=result.qr_code, media_type="image/png", headers=headers)

    @app.get("/{code}", name="redirect_link")
    def redirect_link(code: str, request: Request) -> Response:
        """Redirect to the destination; unknown codes and store outages are 404s."""
        try:
            destination = manager.resolve(code, _request_context(request))
        except StoreUnavailableError:
            log.error("Store unavailable while resolving %s", code)
            raise NotFoundError()
        return RedirectResponse(url=destination, status_code=status_code)

    return app


# `uvicorn main:app` and `from main import app` continue to work.
app = create_app()
