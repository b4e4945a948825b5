"""FastAPI application: the mail receive hook plus health probes."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .errors import RecordNotFoundError
from .models import PipelineState

if TYPE_CHECKING:
    from .service import IngestionService

logger = structlog.get_logger()


class RecvRequest(BaseModel):
    content_key: str = Field(min_length=1, description="Content store key of the raw message")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: open the service's clients. Shutdown: close them."""
    service: IngestionService = app.state.service
    await service.start()
    yield
    await service.stop()
    logger.info("shutdown_complete")


def create_app(service: IngestionService | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    if service is None:
        from .config import PipelineConfig
        from .service import IngestionService

        service = IngestionService(PipelineConfig())  # type: ignore[call-arg]

    app = FastAPI(
        title="newsletter-ingest",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.service = service

    @app.post("/v1/mail/recv")
    async def recv(body: RecvRequest, request: Request) -> JSONResponse:
        svc: IngestionService = request.app.state.service
        try:
            result = await svc.ingest(body.content_key)
        except Exception as exc:
            return JSONResponse(
                {"content_key": body.content_key, "error": str(exc)},
                status_code=500,
            )

        if result.ok:
            status_code = 200
        elif result.state == PipelineState.REJECTED_UNKNOWN_SOURCE:
            status_code = 422
        else:
            status_code = 500
        return JSONResponse(result.model_dump(mode="json"), status_code=status_code)

    @app.patch("/v1/mail/summary-again", status_code=204)
    async def summary_again(request: Request, key: str = Query(min_length=1)) -> Response:
        svc: IngestionService = request.app.state.service
        try:
            await svc.resummarize(key)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        svc: IngestionService = request.app.state.service
        return JSONResponse({
            "service": "newsletter-ingest",
            "messages_ingested": svc.messages_ingested,
            "messages_duplicate": svc.messages_duplicate,
            "messages_rejected": svc.messages_rejected,
            "messages_failed": svc.messages_failed,
        })

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        is_ready = request.app.state.service.is_ready
        return JSONResponse(
            {"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    return app
