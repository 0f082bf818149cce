from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str
    db_echo: bool = False

    # JWT (tokens are issued elsewhere; we only verify them)
    jwt_secret: str
    jwt_algorithm: str = "HS256"

    # Pipeline
    max_retries: int = 3
    auto_retry_extraction: bool = True
    extraction_timeout_seconds: float = 60.0

    # Categorization
    categorization_min_confidence: float = 0.7
    categorization_include_ai: bool = True
    ai_default_confidence: float = 0.85

    # Listing
    batch_list_default_limit: int = 20
    batch_list_max_limit: int = 100

    # Collaborators
    extraction_service_url: str | None = None
    extraction_api_key: str | None = None
    ai_categorizer_url: str | None = None
    ai_api_key: str | None = None
    http_timeout_seconds: float = 30.0


settings = Settings()
