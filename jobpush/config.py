from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"

    # Database (read-only document store)
    database_url: str | None = None
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "postgres"
    pg_pool_min: int = 1
    pg_pool_max: int = 10
    pg_command_timeout: int = 60

    # Push delivery
    # "fcm"      - Firebase Cloud Messaging HTTP v1 API
    # "disabled" - log only, nothing leaves the process
    push_provider: Literal["fcm", "disabled"] = "fcm"
    notifications_enabled: bool = True  # Master switch to disable all pushes

    # Firebase Cloud Messaging (HTTP v1)
    fcm_project_id: str | None = None  # Defaults to the service account's project
    fcm_service_account_file: str | None = None  # Path to a service account key (JSON)
    fcm_service_account_json: str | None = None  # Same key inline, e.g. from a secret manager
    fcm_access_token: str | None = None  # Static bearer token, emulator/dev only (never refreshed)
    fcm_api_base: str = "https://fcm.googleapis.com"
    fcm_multicast_chunk_size: int = 500  # FCM multicast limit per request batch
    fcm_max_concurrency: int = 20        # Parallel sends inside one chunk

    # Trigger endpoints
    trigger_token: str | None = None  # Bearer token the hosting runtime presents

    # Feature Flags
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def push_enabled(self) -> bool:
        return self.notifications_enabled and self.push_provider != "disabled"

    @property
    def fcm_configured(self) -> bool:
        """Check if FCM credentials are present"""
        if self.has_fcm_service_account:
            return True
        return bool(self.fcm_project_id and self.fcm_access_token)

    @property
    def has_fcm_service_account(self) -> bool:
        return bool(self.fcm_service_account_file or self.fcm_service_account_json)

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url

        return (
            f"postgresql://{self.pguser}:{self.pgpassword}"
            f"@{self.pghost}:{self.pgport}/{self.pgdatabase}"
        )

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        required_fields = [
            ("trigger_token", self.trigger_token),
        ]

        if self.push_enabled and self.push_provider == "fcm":
            # Static tokens expire within the hour; prod needs a refreshable credential
            required_fields.append(("fcm_service_account", self.has_fcm_service_account))

        return [name for name, value in required_fields if not value]


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.trigger_token:
        warnings.append("trigger_token is not set (trigger endpoints accept unauthenticated calls).")

    if not s.notifications_enabled:
        warnings.append("notifications_enabled=False: job events are handled but no push is delivered.")
    elif s.push_provider == "fcm" and not s.fcm_configured:
        warnings.append("push_provider=fcm but no fcm_service_account_file/json or fcm_access_token is set.")
    elif s.push_provider == "fcm" and not s.has_fcm_service_account:
        warnings.append("fcm_access_token is static and stops working when it expires; use a service account.")

    if s.fcm_multicast_chunk_size > 500:
        warnings.append("fcm_multicast_chunk_size > 500 exceeds the FCM multicast limit.")

    if not s.database_url and not s.pgpassword:
        warnings.append("database_url is not set and pgpassword is empty (using local defaults).")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    import logging
    config_logger = logging.getLogger(__name__)
    for msg in warn_on_risky_config(s):
        config_logger.warning("[config] %s", msg)


settings = Settings()
validate_or_warn(settings)
