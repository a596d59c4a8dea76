# backend/advisory_radar/core/config.py
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "advisory-radar"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "advisory_radar"
    POSTGRES_USER: str = "radar_user"
    POSTGRES_PASSWORD: str = "radar_password"
    DATABASE_URL_OVERRIDE: str | None = None

    # AI provider (Azure OpenAI)
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str = "2024-10-21"
    AZURE_OPENAI_MODEL: str | None = None

    # NIST NVD
    NVD_API_KEY: str | None = None
    NVD_RATE_LIMIT_SECONDS: float | None = None
    NVD_MAX_REQUESTS: int | None = None

    # Sources
    ENABLE_TENANT_SOURCES: bool = False
    HTTP_USER_AGENT: str = "advisory-radar/0.1"

    # Raw archive + run snapshots
    RAW_ARCHIVE_ENABLED: bool = True
    RAW_ARCHIVE_DIR: str = "./data/archive"

    # Scheduled jobs
    FETCH_TIMER_ENABLED: bool = False
    FETCH_INTERVAL_SECONDS: int = 15 * 60
    ENRICHMENT_TIMER_ENABLED: bool = False
    ENRICHMENT_INTERVAL_SECONDS: int = 6 * 60 * 60
    ENRICHMENT_MAX_ALERTS: int = 100
    REENRICH_TIMER_ENABLED: bool = False
    REENRICH_INTERVAL_SECONDS: int = 60 * 60
    REENRICH_LIMIT: int = 10
    REENRICH_MAX_SECONDS: int = 540

    # In-process lookup caches
    CACHE_MAX_ENTRIES: int = 2048
    CACHE_TTL_SECONDS: int = 6 * 60 * 60

    # Construct SQLAlchemy URL
    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def nvd_rate_limit_seconds(self) -> float:
        """Delay between NVD calls; the keyed tier allows far more throughput."""
        if self.NVD_RATE_LIMIT_SECONDS and self.NVD_RATE_LIMIT_SECONDS > 0:
            return self.NVD_RATE_LIMIT_SECONDS
        return 1.0 if self.NVD_API_KEY else 7.0

    @property
    def nvd_max_requests(self) -> int:
        if self.NVD_MAX_REQUESTS and self.NVD_MAX_REQUESTS > 0:
            return self.NVD_MAX_REQUESTS
        return 50 if self.NVD_API_KEY else 15

    @property
    def reenrich_max_seconds(self) -> int:
        return max(60, self.REENRICH_MAX_SECONDS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
