from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    log_level: str = "INFO"
    log_format: Literal["json", "plain"] = "json"

    database_url: str = "sqlite:///./boletas.db"
    redis_url: str = "redis://localhost:6379/0"

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "boletas"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    init_admin_email: str | None = None
    init_admin_password: str | None = None

    access_token_exp_minutes: int = 60 * 24

    ocr_provider: Literal["azure", "openai", "none"] = "azure"
    azure_vision_endpoint: str | None = None
    azure_vision_key: str | None = None
    azure_read_poll_interval_seconds: float = 1.0
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    ocr_timeout_seconds: float = 30.0
    ocr_max_workers: int = 4

    extraction_confidence_threshold: float = 0.6
    alert_sigma_threshold: float = 2.0
    iva_rate: Decimal = Decimal("0.19")

    max_receipt_upload_bytes: int = 10 * 1024 * 1024
    max_document_upload_bytes: int = 25 * 1024 * 1024
    temp_upload_max_age_hours: int = 24

    default_categories: list[str] = [
        "Alimentación",
        "Transporte",
        "Oficina",
        "Servicios",
        "Salud",
        "Hogar",
        "Otros",
    ]


settings = Settings()
