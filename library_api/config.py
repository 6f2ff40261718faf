import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env(name: str, default: Optional[str] = None):
    return field(default_factory=lambda: os.getenv(name, default))


@dataclass
class Settings:
    # Application settings
    app_name: str = _env("APP_NAME", "Library Lending API")
    app_version: str = _env("APP_VERSION", "1.0.0")
    log_level: str = _env("LOG_LEVEL", "INFO")

    # API settings
    api_host: str = _env("API_HOST", "127.0.0.1")
    api_port: int = field(default_factory=lambda: int(os.getenv("API_PORT", "3000")))
    api_prefix: str = "/api/v1"
    # Access gate is disabled while no key is configured
    api_key: Optional[str] = _env("API_KEY")
    cors_origins: List[str] = field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )

    # Storage settings
    storage_backend: str = _env("STORAGE_BACKEND", "json")
    data_file: str = _env("LIBRARY_DATA_FILE", "books.json")
    database_file: str = _env("LIBRARY_DB_FILE", "library.db")
    seed_sample_data: bool = field(default_factory=lambda: _env_bool("SEED_SAMPLE_DATA", "true"))

    # Paging settings
    default_page_size: int = field(default_factory=lambda: int(os.getenv("DEFAULT_PAGE_SIZE", "50")))
    max_page_size: int = field(default_factory=lambda: int(os.getenv("MAX_PAGE_SIZE", "100")))


settings = Settings()
