import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from workshop import __version__
from workshop.api.routers import audit, auth, health, invoices, permissions, roles, users
from workshop.core.config import get_settings
from workshop.core.errors import (
    InternalError,
    ValidationError,
    WorkshopError,
    negotiate_locale,
    public_message,
)
from workshop.core.logger import setup_logger

settings = get_settings()

setup_logger(
    "workshop",
    log_dir=settings.log_dir,
    level=settings.log_level,
    file_logging=settings.file_logging,
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Role- and attribute-based access control for workshop management",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, exc: WorkshopError) -> JSONResponse:
    locale = negotiate_locale(request.headers.get("accept-language"), settings.default_locale)
    body = {"error": {"code": exc.code, "message": public_message(exc.code, locale)}}
    if isinstance(exc, ValidationError):
        body["error"]["errors"] = exc.errors
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(WorkshopError)
async def workshop_error_handler(request: Request, exc: WorkshopError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.warning(
            "%s %s rejected with %s: %s", request.method, request.url.path, exc.code, exc.detail
        )
    return _error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
    return _error_response(request, ValidationError(errors))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error_response(request, InternalError(str(exc)))


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(permissions.router, prefix="/api")
app.include_router(roles.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(invoices.router, prefix="/api")
app.include_router(audit.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
