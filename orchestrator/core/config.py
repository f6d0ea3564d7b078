from __future__ import annotations

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic import Field, PostgresDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _build_postgres_dsn(
    *,
    host: str,
    port: int,
    name: str,
    user: str,
    password: str,
    ssl_mode: str,
) -> str:
    encoded_user = quote_plus(user)
    encoded_password = quote_plus(password) if password else ""
    auth = f"{encoded_user}:{encoded_password}" if encoded_password else encoded_user
    dsn = f"postgresql://{auth}@{host}:{port}/{name}"
    if ssl_mode:
        dsn = f"{dsn}?sslmode={quote_plus(ssl_mode)}"
    return dsn


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    frontend_origins: str = Field(
        default="http://localhost:3000",
        validation_alias="FRONTEND_ORIGINS",
    )

    db_host: str = Field(default="localhost", validation_alias="DB_HOST")
    db_port: int = Field(default=5432, validation_alias="DB_PORT")
    db_name: str = Field(default="orchestrator_dev", validation_alias="DB_NAME")
    db_user: str = Field(default="orchestrator", validation_alias="DB_USER")
    db_password: str = Field(default="orchestrator", validation_alias="DB_PASSWORD")
    db_ssl_mode: str = Field(default="prefer", validation_alias="DB_SSL_MODE")

    database_url: PostgresDsn | None = Field(default=None, validation_alias="DATABASE_URL")

    sandbox_provider: str = Field(default="daytona", validation_alias="SANDBOX_PROVIDER")
    daytona_api_url: str = Field(
        default="https://api.daytona.io",
        validation_alias="DAYTONA_API_URL",
    )
    daytona_api_key: str = Field(default="", validation_alias="DAYTONA_API_KEY")
    sandbox_repo_dir: str = Field(default="/workspace/repo", validation_alias="SANDBOX_REPO_DIR")
    sandbox_agent_path: str = Field(
        default="/workspace/coding_agent",
        validation_alias="SANDBOX_AGENT_PATH",
    )
    sandbox_preview_port: int = Field(default=3000, validation_alias="SANDBOX_PREVIEW_PORT")
    sandbox_command_timeout_seconds: int = Field(
        default=120,
        validation_alias="SANDBOX_COMMAND_TIMEOUT_SECONDS",
    )
    sandbox_provision_timeout_seconds: int = Field(
        default=600,
        validation_alias="SANDBOX_PROVISION_TIMEOUT_SECONDS",
    )
    sandbox_resume_timeout_seconds: int = Field(
        default=120,
        validation_alias="SANDBOX_RESUME_TIMEOUT_SECONDS",
    )
    sandbox_resume_poll_interval_seconds: float = Field(
        default=2.0,
        validation_alias="SANDBOX_RESUME_POLL_INTERVAL_SECONDS",
    )
    sandbox_idle_pause_after_seconds: int | None = Field(
        default=None,
        validation_alias="SANDBOX_IDLE_PAUSE_AFTER_SECONDS",
    )
    sandbox_idle_sweep_interval_seconds: int = Field(
        default=60,
        validation_alias="SANDBOX_IDLE_SWEEP_INTERVAL_SECONDS",
    )

    agent_provider: str = Field(default="claude-agent-sdk", validation_alias="AGENT_PROVIDER")
    agent_providers_disabled: str = Field(default="", validation_alias="AGENT_PROVIDERS_DISABLED")
    agent_default_model: str = Field(
        default="claude-sonnet-4-20250514",
        validation_alias="AGENT_DEFAULT_MODEL",
    )
    agent_request_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="AGENT_REQUEST_TIMEOUT_SECONDS",
    )
    opencode_port: int = Field(default=8080, validation_alias="OPENCODE_PORT")
    build_stream_timeout_seconds: float = Field(
        default=1800.0,
        validation_alias="BUILD_STREAM_TIMEOUT_SECONDS",
    )

    planner_model: str = Field(default="gpt-4.1-mini", validation_alias="PLANNER_MODEL")
    planner_api_key: str = Field(default="", validation_alias="PLANNER_API_KEY")
    planner_base_url: str = Field(default="", validation_alias="PLANNER_BASE_URL")
    planner_temperature: float = Field(default=0.2, validation_alias="PLANNER_TEMPERATURE")

    github_api_url: str = Field(default="https://api.github.com", validation_alias="GITHUB_API_URL")
    pr_branch_prefix: str = Field(default="lumlabs/session-", validation_alias="PR_BRANCH_PREFIX")
    app_url: str = Field(default="http://localhost:3000", validation_alias="APP_URL")

    @property
    def frontend_origin_list(self) -> list[str]:
        return _split_csv(self.frontend_origins)

    @property
    def disabled_agent_providers(self) -> set[str]:
        return set(_split_csv(self.agent_providers_disabled))

    @computed_field
    @property
    def database_dsn(self) -> str:
        if self.database_url is not None:
            return str(self.database_url)
        return _build_postgres_dsn(
            host=self.db_host,
            port=self.db_port,
            name=self.db_name,
            user=self.db_user,
            password=self.db_password,
            ssl_mode=self.db_ssl_mode,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
