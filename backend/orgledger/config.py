from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "OrgLedger"
    app_env: str = "development"
    cors_origins: str = "http://localhost:3000"
    frontend_url: str = ""

    # Database
    database_url: str
    db_statement_timeout_ms: int = 10000

    # Redis (Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # JWT
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Outbound email (Resend)
    resend_api_key: str = ""
    email_from: str = "EaseMail <no-reply@easemail.app>"

    # Sentry (optional, only set in staging/production)
    sentry_dsn: str = ""

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def log_level(self) -> str:
        return "INFO" if self.is_production else "DEBUG"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def public_url(self) -> str:
        if self.frontend_url:
            return self.frontend_url.rstrip("/")
        return self.cors_origin_list[0] if self.cors_origin_list else "http://localhost:3000"


settings = Settings()

# ---------------------------------------------------------------------------
# Application constants (not env-configurable, change in code)
# ---------------------------------------------------------------------------

# Org invites
INVITE_EXPIRY_DAYS = 7
INVITE_TOKEN_BYTES = 32  # 256 bits before base64url encoding

# New organizations
DEFAULT_ORG_SEATS = 1
DEFAULT_ORG_PLAN = "FREE"

# HTTP timeouts (seconds)
HTTP_TIMEOUT = 15.0  # Resend API
