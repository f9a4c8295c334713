from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "LaunchTest Decision Engine"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./launchtest.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Monte-Carlo simulation
    BAYES_SIMULATIONS: int = 10000
    BAYES_SEED: int = 42

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("BAYES_SIMULATIONS")
    @classmethod
    def check_simulations(cls, v: int) -> int:
        if v < 1:
            raise ValueError("BAYES_SIMULATIONS must be at least 1")
        return v

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
