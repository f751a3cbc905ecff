import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from agency_backend.api.admin_application_routes import router as admin_application_router
from agency_backend.api.admin_auth_routes import router as admin_auth_router
from agency_backend.api.admin_routes import router as admin_router
from agency_backend.api.application_routes import router as application_router
from agency_backend.api.audit_routes import router as audit_router
from agency_backend.api.auth_routes import router as auth_router
from agency_backend.api.booking_routes import router as booking_router
from agency_backend.api.document_routes import router as document_router
from agency_backend.api.public_routes import router as public_router
from agency_backend.api.user_routes import router as user_router
from agency_backend.core.config import settings
from agency_backend.core.exceptions import AgencyError
from agency_backend.core.rbac import load_rbac_policy
from agency_backend.database.connection import close_db, init_db

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to every non-OPTIONS response.

    OPTIONS requests are left to CORSMiddleware so preflight responses keep
    their Access-Control headers.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        if request.method != "OPTIONS":
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["X-XSS-Protection"] = "1; mode=block"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
            response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


def _error(status_code: int, message: str, code: str, headers=None, **details) -> JSONResponse:
    body = {"success": False, "error": message, "code": code}
    body.update(details)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(AgencyError)
    async def agency_error_handler(request: Request, exc: AgencyError):
        headers = {}
        if exc.status_code == 401:
            headers["WWW-Authenticate"] = "Bearer"
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_response()),
                            headers=headers or None)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning("HTTPException handled: %s", exc.detail)
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return _error(exc.status_code, message, "HTTP_ERROR", headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
            for err in exc.errors()
        ]
        logger.warning("Validation error on %s: %s", request.url.path, details)
        return _error(400, "Validation failed", "VALIDATION_ERROR", details=details)

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        logger.warning("Duplicate key on %s: %s", request.url.path, exc)
        return _error(409, "A record with this value already exists", "DUPLICATE")

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        tb = traceback.format_exc()
        logger.error("Unhandled exception on %s %s: %s\n%s", request.method, request.url.path, exc, tb)
        extra = {"details": str(exc), "trace": tb} if settings.is_development else {}
        return _error(500, "An unexpected error occurred", "INTERNAL_ERROR", **extra)


def allowed_origins() -> list:
    origins = [o.strip() for o in (settings.CLIENT_URL or "").split(",") if o.strip()]
    if not origins or any("localhost" in origin for origin in origins):
        origins = sorted(set(origins + ["http://localhost:3000", "http://localhost:3001"]))
    return origins


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Visa application and tour booking back office",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.rbac_policy = load_rbac_policy()
    register_exception_handlers(app)

    # Starlette runs middleware last-added first, so CORS sees preflights before anything else
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With", "Cache-Control"],
        expose_headers=["Content-Type", "Authorization", "Retry-After"],
        max_age=3600,
    )

    for router in (
        admin_auth_router,
        admin_router,
        audit_router,
        admin_application_router,
        auth_router,
        user_router,
        application_router,
        document_router,
        booking_router,
        public_router,
    ):
        app.include_router(router)

    @app.get("/admin/health")
    async def admin_health():
        return {"success": True, "status": "healthy", "service": "admin-api", "environment": settings.ENVIRONMENT}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "message": "API is running"}

    return app


app = create_app()
