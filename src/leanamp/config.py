"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Remote snapshot endpoint (Express proxy in front of the SharePoint list)
    CRM_API_BASE_URL: str = "http://localhost:5050"
    CRM_API_PATH: str = "/api/crm-records"
    CRM_REQUEST_TIMEOUT: float = 10.0

    # Local persistence
    CRM_DATA_DIR: str = ".leanamp"
    CRM_STORAGE_KEY: str = "leanampCrmRecords"
    CRM_TRANSFER_KEY: str = "leanampCrmTransfer"

    # Credential store keys
    AUTH_TOKEN_KEY: str = "leanampAuthToken"
    CURRENT_USER_KEY: str = "leanampCurrentUser"

    # Export
    CRM_EXPORT_PREFIX: str = "leanamp-crm"

    @property
    def crm_endpoint(self) -> str:
        """Full URL of the remote snapshot endpoint."""
        return self.CRM_API_BASE_URL.rstrip("/") + "/" + self.CRM_API_PATH.lstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
