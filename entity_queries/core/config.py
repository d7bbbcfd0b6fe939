from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Resolved key paths kept per (entity type, path) pair.
    KEY_PATH_CACHE_SIZE: int = 256

    QUERY_DEFAULT_PAGE_LIMIT: int = 50
    QUERY_MAX_PAGE_LIMIT: int = 500


settings = Settings()
