"""Application configuration."""

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Novelshelf"
    debug: bool = True
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    frontend_port: int = 5173

    # Database
    database_url: str = "sqlite+aiosqlite:///./novelshelf.db"

    # Object storage (covers and other binary assets)
    storage_dir: Path = Path(__file__).parent.parent.parent / "data" / "storage"
    public_base_url: str = "/static"
    cover_prefix: str = "covers"
    storage_max_retries: int = 3
    storage_retry_delay: float = 0.5

    # Upload limits
    max_upload_size_mb: int = 100  # Maximum upload size in MB

    # Import settings
    default_language: str = "en"
    chapter_load_concurrency: int = 8
    content_format: Literal["html", "text"] = "html"
    skip_non_chapter_spine: bool = True

    # CORS - dynamically built based on frontend_port
    cors_origins: list[str] = []

    # Authentication (optional - for network-exposed deployments)
    # Set API_AUTH_TOKEN to require a token on import endpoints
    api_auth_token: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Build CORS origins based on frontend port
        if not self.cors_origins:
            self.cors_origins = [
                f"http://localhost:{self.frontend_port}",
                f"http://127.0.0.1:{self.frontend_port}",
            ]


settings = Settings()
