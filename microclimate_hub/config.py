"""Application configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the Microclimate Hub service and client."""
    model_config = SettingsConfigDict(env_prefix="MICROCLIMATE_", extra="ignore")

    # outbound REST client
    api_base_url: str = "http://localhost:8000/v1"
    api_timeout_seconds: float = 10.0
    default_cache_ttl_seconds: float = 300.0
    cache_redis_url: str | None = None
    page_size: int = 10

    # report service
    database_url: str = "sqlite:///./microclimate.db"
    api_key: str | None = None

    # hosted auth collaborator
    auth_url: str = "http://localhost:54321"
    auth_api_key: str | None = None

    # persisted client state
    state_storage: str = "file"  # options: memory, file, redis
    state_file_path: str = "./.microclimate-state.json"
    state_redis_url: str | None = None
    storage_namespace: str = "microclimate-hub-storage"

    @field_validator("api_base_url", "auth_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
