from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App-wide configuration pulled from environment variables or .env."""

    # Database (database_url wins over the individual postgres parts)
    database_url: str | None = None
    db_user: str = "starshelf"
    db_password: str = "starshelf"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "starshelf"

    # GitHub
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    github_page_size: int = 100
    github_timeout_seconds: float = 30.0
    # 1 == no automatic retry; sync failures are surfaced to the caller
    github_max_attempts: int = 1

    # Rate-limit bucket (GitHub REST allows 5000 requests/hour per token)
    bucket_capacity: int = 100
    bucket_refill_per_hour: int = 5000

    log_level: str = "INFO"

    # Managers
    default_list_color: str = "#6366f1"
    comment_max_length: int = 2000
    tag_max_length: int = 50

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache()
def get_settings() -> Settings:  # pragma: no cover
    return Settings()
