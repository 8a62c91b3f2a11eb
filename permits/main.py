import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from permits.context import build_context
from permits.exceptions import PermitsError
from permits.routers import admin, exports, meta, treasury
from permits.settings import app_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Tests set the context before startup.
    if getattr(app.state, "context", None) is None:
        app.state.context = build_context(app_settings)
    try:
        yield
    finally:
        await app.state.context.aclose()


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PermitsError)
    async def permits_error_handler(request: Request, exc: PermitsError) -> JSONResponse:
        content = {"detail": exc.message}
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.cause)
            if not request.app.state.context.settings.production and exc.cause is not None:
                content["error"] = str(exc.cause)
        return JSONResponse(content, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            {"detail": "Invalid request body", "errors": jsonable_encoder(exc.errors())},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(500)
    async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse({"detail": "An unexpected error occurred"}, status_code=500)


def include_routers(app: FastAPI) -> None:
    app.include_router(exports.router)
    app.include_router(admin.router)
    app.include_router(treasury.router)
    app.include_router(meta.router)


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", app_settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

include_routers(app)
register_exception_handlers(app)
