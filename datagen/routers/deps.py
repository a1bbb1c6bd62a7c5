# routers/deps.py

"""
Request-scoped dependencies and error translation
"""

from fastapi import HTTPException, Request

from datagen.core.config import Settings
from datagen.core.errors import (
    DuplicateJob,
    InvalidConfiguration,
    InvalidTransition,
    JobNotFound,
    PipelineError,
    RemoteAdapterError,
    WebhookNotFound,
    WebhookValidationError,
)
from datagen.services.pipeline_service import BasePipelineService
from datagen.services.webhook_service import WebhookService

STATUS_CODES = {
    InvalidConfiguration: 400,
    WebhookValidationError: 400,
    JobNotFound: 404,
    WebhookNotFound: 404,
    DuplicateJob: 409,
    InvalidTransition: 409,
    RemoteAdapterError: 502,
}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline_service(request: Request) -> BasePipelineService:
    return request.app.state.pipeline_service


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service


def to_http_exception(error: PipelineError) -> HTTPException:
    """Map a pipeline error to the HTTP status the API reports for it"""
    status_code = next(
        (code for kind, code in STATUS_CODES.items() if isinstance(error, kind)),
        500
    )
    detail = {"code": error.code, "message": error.message}
    if isinstance(error, InvalidConfiguration):
        detail["errors"] = error.errors
    return HTTPException(status_code=status_code, detail=detail)
