# forecast_app/core/config.py
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, read from the environment and .env"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Hosted Postgres
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "postgres"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_SSLMODE: str = "require"  # 'require' for hosted instances

    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5
    DB_POOL_TIMEOUT: float = 10.0

    # Forecasting job kickoff
    FORECAST_JOB_URL: Optional[str] = None
    FORECAST_JOB_TIMEOUT: float = 30.0

    # Number of customers pinned to the top of the list by total sales
    TOP_CUSTOMER_COUNT: int = 5

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    LOG_LEVEL: str = "INFO"
    BUILD_ID: str = "dev"

    @property
    def DATABASE_DSN(self) -> str:
        # psycopg DSN
        return (
            f"host={self.DB_HOST} port={self.DB_PORT} dbname={self.DB_NAME} "
            f"user={self.DB_USER} password={self.DB_PASSWORD} sslmode={self.DB_SSLMODE}"
        )


settings = Settings()
