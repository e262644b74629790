"""Application configuration read from the environment or a ``.env`` file."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    database_path: str = "inventory.sqlite3"
    log_level: str = "INFO"
    log_json: bool = False
    seed_demo_data: bool = True

    model_config = SettingsConfigDict(
        env_prefix="FAB_INVENTORY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()


__all__ = ["AppConfig", "get_config"]
