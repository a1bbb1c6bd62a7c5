# core/config.py

"""
Application Configuration
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    app_name: str = "Data Generation Pipeline API"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # API Settings
    api_prefix: str = "/api/data-generation"
    host: str = "0.0.0.0"
    port: int = 8000

    # Pipeline Selection ("simulated" or "remote")
    pipeline_mode: str = "simulated"

    # Remote Pipeline Settings
    pipeline_api_url: str = "http://datagen-pipeline.internal:8000"
    pipeline_api_key: str = ""
    request_timeout_seconds: float = 30.0
    read_retry_attempts: int = 3
    retry_initial_wait_seconds: float = 0.5
    retry_max_wait_seconds: float = 5.0

    # Job Defaults
    default_job_timeout_seconds: int = 3600
    default_resume_window_seconds: int = 300

    # Simulator Settings
    simulate_progress: bool = False
    simulation_step: int = 10
    simulation_interval_seconds: float = 2.0

    # Health Settings
    health_window_seconds: int = 3600
    health_failure_threshold: float = 0.25
    health_min_samples: int = 4

    # Directory Settings
    jobs_dir: Optional[str] = None

    # Webhook Settings
    webhook_timeout_seconds: float = 10.0

    class Config:
        env_prefix = "DATAGEN_"
        case_sensitive = False


settings = Settings()
