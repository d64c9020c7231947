from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from pathlib import Path


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_ENV: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")
    INGESTION_LOG_FILE: str = Field(default="logs/ingestion.log")

    DATABASE_URL: str | None = Field(default=None)
    DB_HOST: str = Field(default="localhost")
    DB_PORT: int = Field(default=5432)
    DB_USER: str = Field(default="fipe")
    DB_PASSWORD: str = Field(default="fipe")
    DB_NAME: str = Field(default="fipe")
    DB_SYNC_ECHO: bool = Field(default=False)
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=20)
    DB_POOL_TIMEOUT: int = Field(default=30)

    FIPE_BASE_URL: str = Field(default="https://parallelum.com.br/fipe/api/v1")
    FIPE_USER_AGENT: str = Field(default="fipe-catalog-ingestion/0.1")
    FIPE_REQUEST_TIMEOUT_SECONDS: float = Field(default=30.0)
    FIPE_MAX_RETRIES: int = Field(default=3)
    FIPE_RETRY_BACKOFF_SECONDS: float = Field(default=1.0)

    PROCESSING_MAX_RETRIES: int = Field(default=3)
    PROCESSING_RETRY_DELAY_MS: int = Field(default=5000)
    PROCESSING_DELAY_BETWEEN_REQUESTS_MS: int = Field(default=100)

    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    QUEUE_NAME: str = Field(default="fipe:marcas")
    QUEUE_MAX_DELIVERIES: int = Field(default=5)
    QUEUE_POLL_INTERVAL_SECONDS: float = Field(default=1.0)
    CONSUMER_CONCURRENCY: int = Field(default=4)
    PUBLISH_CONCURRENCY: int = Field(default=8)

    CACHE_ENABLED: bool = Field(default=True)
    CACHE_PREFIX: str = Field(default="fipe:cache")

    @property
    def sync_database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def project_root(self) -> Path:
        # backend/app/config.py -> parents[2] == repo root
        return Path(__file__).resolve().parents[2]


settings = Settings()
