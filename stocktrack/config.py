from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Stock Tracker"
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./stocktrack.db"

    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24 * 7

    # Comma-separated list of allowed frontend origins
    CORS_ORIGINS: str = "http://localhost:3000"

    # Zero-stock cleanup sweep
    CLEANUP_ENABLED: bool = True
    CLEANUP_INTERVAL_HOURS: int = 24
    CLEANUP_RETENTION_DAYS: int = 30

    # Excel import
    IMPORT_MAX_FILE_SIZE_MB: int = 10
    IMPORT_BATCH_SIZE: int = 100
    INBOUND_IMPORT_BATCH_SIZE: int = 50
    IMPORT_MAX_WORKERS: int = 8
    IMPORT_PREVIEW_LIMIT: int = 100

    # Bootstrap admin, created on startup when no admin exists
    DEFAULT_ADMIN_NAME: str = "Admin"
    DEFAULT_ADMIN_EMAIL: str = "admin@example.com"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"

    model_config = {"env_file": ".env"}

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
