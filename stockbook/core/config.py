from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SB_", extra="ignore")

    app_name: str = "Stockbook"
    env: str = "dev"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    database_url: str = "sqlite+pysqlite:///./stockbook.db"
    test_database_url: str = "sqlite+pysqlite:///:memory:"

    # Fabric store backend: sql | memory
    store_backend: str = "sql"
    transaction_max_retries: int = Field(
        default=25,
        ge=1,
        description="Compare-and-swap attempts before a stock update gives up",
    )
    delete_exhausted_batches: bool = True

    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    def model_post_init(self, __context) -> None:
        if self.store_backend not in {"sql", "memory"}:
            raise ValueError(f"unsupported store_backend: {self.store_backend}")
        if self.env.lower() != "dev" and self.store_backend == "memory":
            raise ValueError("memory store backend is not allowed outside dev mode; set SB_STORE_BACKEND=sql")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
