from __future__ import annotations

from functools import lru_cache

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str
    organization_header: str = "X-Organization-ID"
    log_level: str = "INFO"
    environment: str = "dev"
    jwt_secret_key: SecretStr
    jwt_algorithm: str = "HS256"
    jwt_access_token_expires_minutes: int = 60
    jwt_issuer: str | None = None
    jwt_audience: str | None = None
    # CORS
    cors_allow_origins: str = "*"
    # Push (FCM)
    fcm_server_key: SecretStr | None = None  # Legacy HTTP API key
    fcm_project_id: str | None = None  # For HTTP v1
    fcm_service_account_json: SecretStr | None = None  # Service Account JSON (HTTP v1)
    fcm_service_account_file: str | None = None  # Path or inline JSON (HTTP v1)
    # Unread aggregation
    chat_query_limit: int = 100
    category_query_limit: int = 50
    subscription_setup_timeout_seconds: float = 10.0
    # View marking
    view_mark_chunk_size: int = 10
    view_mark_pause_ms: int = 50
    view_mark_denial_alert_threshold: int = 5
    view_mark_denial_window_seconds: float = 60.0
    # Foreground delivery
    foreground_auto_dismiss_seconds: float = 5.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("database_url")
    @classmethod
    def ensure_asyncpg_scheme(cls, value: str) -> str:
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql+asyncpg://", 1)
        if value.startswith("postgresql://") and "+" not in value.split("://", 1)[0]:
            return value.replace("postgresql://", "postgresql+asyncpg://", 1)
        return value

    @field_validator("view_mark_chunk_size")
    @classmethod
    def ensure_positive_chunk(cls, value: int) -> int:
        if value < 1:
            raise ValueError("view_mark_chunk_size must be >= 1")
        return value

    @property
    def cors_allow_origins_list(self) -> list[str]:
        """Convert cors_allow_origins string to list"""
        if isinstance(self.cors_allow_origins, str):
            return [v.strip() for v in self.cors_allow_origins.split(",") if v.strip()]
        return self.cors_allow_origins

    @property
    def view_mark_pause_seconds(self) -> float:
        return self.view_mark_pause_ms / 1000

    def get_fcm_service_account_json(self) -> str | None:
        """
        Return the Service Account JSON string for FCM v1 from either
        fcm_service_account_json (direct JSON) or fcm_service_account_file.
        If fcm_service_account_file starts with '{', treat as inline JSON; otherwise read file.
        """
        if self.fcm_service_account_json:
            return self.fcm_service_account_json.get_secret_value()
        if self.fcm_service_account_file:
            content = self.fcm_service_account_file.strip()
            if content.startswith("{"):
                return content
            try:
                with open(content, encoding="utf-8") as f:
                    return f.read()
            except OSError:
                return None
        return None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
