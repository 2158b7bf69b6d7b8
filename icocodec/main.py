from __future__ import annotations

from contextlib import asynccontextmanager
from logging import getLogger
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from icocodec.api.v1.router import api_router
from icocodec.core.config import settings
from icocodec.core.deps import verify_api_key
from icocodec.core.errors import register_exception_handlers
from icocodec.core.logging import configure_logging, request_id_ctx_var

logger = getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    logger.info("Starting %s", settings.project_name)
    yield


app = FastAPI(title=settings.project_name, lifespan=lifespan)
register_exception_handlers(app)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    """Expose the caller's request ID (or a fresh one) to handlers and logs."""

    request_id = request.headers.get(settings.request_id_header) or uuid4().hex
    request.state.request_id = request_id
    token = request_id_ctx_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx_var.reset(token)
    response.headers[settings.request_id_header] = request_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=[settings.request_id_header, "Content-Disposition"],
)

app.include_router(
    api_router, prefix=settings.api_prefix, dependencies=[Depends(verify_api_key)]
)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
