"""Image Harvest - FastAPI Application.

This module defines the FastAPI ``app`` instance, the REST routes and the
``main()`` CLI function that launches the uvicorn server. Routing is a thin
layer over :class:`~imageharvest.core.service.GenerationService`.

Endpoints
---------
========  ========================  ========================================
Method    Path                      Purpose
========  ========================  ========================================
POST      ``/api/prompt/build``     Expand a prompt template
POST      ``/api/generate``         Build, queue and generate an image
GET       ``/api/queue``            Queue status and health
GET       ``/api/providers``        Active provider ids
========  ========================  ========================================

Usage
-----
CLI (installed entry point)::

    imageharvest

Direct invocation::

    python -m imageharvest.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request

from imageharvest import __version__
from imageharvest.api.models import GenerateRequest, PromptBuildRequest
from imageharvest.core.config import HarvestConfig, config
from imageharvest.core.errors import ErrorCode, QueueClearedError
from imageharvest.core.service import GenerationService

logger = logging.getLogger(__name__)

# Failed generations map to these HTTP statuses; anything else is a 502.
ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_PARAMS: 400,
    ErrorCode.CONTENT_POLICY: 422,
    ErrorCode.RATE_LIMIT: 429,
    ErrorCode.MISSING_CREDENTIALS: 503,
    ErrorCode.PROVIDER_UNAVAILABLE: 503,
    ErrorCode.TIMEOUT: 504,
}


def _service(request: Request) -> GenerationService:
    return request.app.state.service


def create_app(settings: HarvestConfig | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Configuration to build the service from (defaults to the
            global ``config``)

    Returns:
        Configured FastAPI instance
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the HTTP client and generation service; tear both down on exit."""
        async with httpx.AsyncClient(follow_redirects=True) as client:
            app.state.service = await GenerationService.from_config(settings, client)
            logger.info("GenerationService initialised.")

            yield

            await app.state.service.close()
            logger.info("GenerationService closed on shutdown.")

    app = FastAPI(
        title="Image Harvest",
        description="Prompt templating and multi-provider image generation API.",
        version=__version__,
        lifespan=lifespan,
    )

    # ------------------------------------------------------------------
    # Routes.
    # ------------------------------------------------------------------

    @app.post("/api/prompt/build")
    async def build_prompt(req: PromptBuildRequest, request: Request) -> dict:
        """Expand a prompt template without generating.

        Returns:
            ``{"original": ..., "prompt": ...}``

        Raises:
            HTTPException: 400 if the prompt could not be built.
        """
        result = await _service(request).build_prompt(
            req.prompt,
            req.multiplier,
            req.group_shuffle,
            req.word_shuffle,
            req.custom_variables,
            req.style(),
        )
        if not result.ok:
            raise HTTPException(status_code=400, detail=result.error)
        return result.to_dict()

    @app.post("/api/generate")
    async def generate(req: GenerateRequest, request: Request) -> dict:
        """Queue a generation and wait for its result.

        The prompt is built by the queue worker with the supplied options.

        Raises:
            HTTPException: Mapped from the result's error kind on failure,
                503 if the queue was cleared while waiting.
        """
        ticket = _service(request).generate_image(
            req.prompt,
            req.providers,
            guidance=req.guidance,
            user_id=req.user_id,
            options=req.options(),
            seed=req.seed,
        )
        try:
            result = await ticket
        except QueueClearedError as e:
            raise HTTPException(status_code=503, detail=e.message) from e

        body = {
            **result.to_dict(),
            "queue_position": ticket.position,
            "estimated_wait_seconds": ticket.estimated_wait_seconds,
        }
        if not result.success:
            kind = result.error.kind if result.error else ErrorCode.UNKNOWN
            body.pop("image_data", None)
            raise HTTPException(status_code=ERROR_STATUS.get(kind, 502), detail=body)
        return body

    @app.get("/api/queue")
    async def queue_status(request: Request) -> dict:
        """Return queue length, worker state, pending summaries and health."""
        service = _service(request)
        return {**service.get_queue_status(), "health": service.get_queue_health()}

    @app.get("/api/providers")
    async def providers(request: Request) -> dict:
        """Return the ids of all active providers."""
        return {"providers": await _service(request).list_available_providers()}

    return app


app = create_app()


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~imageharvest.core.config.config`
    (``IMAGEHARVEST_SERVER_HOST``, ``IMAGEHARVEST_SERVER_PORT``,
    ``IMAGEHARVEST_LOG_LEVEL``). Defaults to ``0.0.0.0:8080``.

    This function is registered as the ``imageharvest`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "imageharvest.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
