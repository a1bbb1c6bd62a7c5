# main.py

"""
FastAPI Data Generation Pipeline API - Main Entry Point
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from datagen.core.config import Settings, settings as default_settings
from datagen.routers import job_router, webhook_router
from datagen.services import WebhookService, build_pipeline_service

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, pipeline_service=None, webhook_service=None) -> FastAPI:
    """Build the API with its own pipeline and webhook services"""
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level.upper())

    webhook_service = webhook_service or WebhookService(timeout=settings.webhook_timeout_seconds)
    pipeline_service = pipeline_service or build_pipeline_service(settings, webhooks=webhook_service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Pipeline service ready ({type(pipeline_service).__name__})")
        yield
        await pipeline_service.aclose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.pipeline_service = pipeline_service
    app.state.webhook_service = webhook_service

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(job_router.router, prefix=settings.api_prefix)
    app.include_router(webhook_router.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """API root endpoint"""
        prefix = settings.api_prefix
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "pipeline_mode": settings.pipeline_mode,
            "endpoints": {
                "submit_job": f"{prefix}/jobs",
                "list_jobs": f"{prefix}/jobs",
                "job_status": f"{prefix}/jobs/{{job_id}}",
                "cancel_job": f"{prefix}/jobs/{{job_id}}/cancel",
                "resume_job": f"{prefix}/jobs/{{job_id}}/resume",
                "pipeline_health": f"{prefix}/health",
                "webhooks": f"{prefix}/webhooks",
                "health": "/health",
                "docs": "/docs"
            }
        }

    @app.get("/health")
    async def health_check():
        """Liveness endpoint"""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.app_version
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "datagen.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug
    )
