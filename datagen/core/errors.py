# core/errors.py

"""
Error kinds raised by the job pipeline
"""

from typing import List, Optional


class PipelineError(Exception):
    """Base class for all pipeline failures"""

    code = "PIPELINE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidConfiguration(PipelineError):
    code = "INVALID_CONFIGURATION"

    def __init__(self, errors: List[str]):
        super().__init__("Invalid job configuration: " + "; ".join(errors))
        self.errors = list(errors)


class DuplicateJob(PipelineError):
    code = "DUPLICATE_JOB"

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} already exists")
        self.job_id = job_id


class JobNotFound(PipelineError):
    code = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransition(PipelineError):
    code = "INVALID_TRANSITION"

    def __init__(self, job_id: str, current: str, event: str):
        super().__init__(f"Cannot apply '{event}' to job {job_id} in state '{current}'")
        self.job_id = job_id
        self.current = current
        self.event = event


class JobTimeout(PipelineError):
    code = "TIMEOUT"

    def __init__(self, job_id: str, timeout: int):
        super().__init__(f"Job {job_id} exceeded its timeout of {timeout}s")
        self.job_id = job_id
        self.timeout = timeout


class RemoteAdapterError(PipelineError):
    code = "REMOTE_ADAPTER_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WebhookValidationError(PipelineError):
    code = "INVALID_WEBHOOK"


class WebhookNotFound(PipelineError):
    code = "WEBHOOK_NOT_FOUND"

    def __init__(self, webhook_id: str):
        super().__init__(f"Webhook {webhook_id} not found")
        self.webhook_id = webhook_id
