from typing import Any, Literal, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from eventpoll.core.errors import ConfigurationError


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    SLACK_WEBHOOK_URL: str | None = None

    # Polling
    POLL_INTERVAL_SECONDS: int = 60
    ENABLED_ADAPTERS: str = ""  # comma separated, e.g. "darktrace,abnormal_security"

    # Downstream sink
    SINK_PATH: str = "data/{adapter}.jsonl"  # one file per adapter
    SINK_BUFFER_SIZE: int = 10_000

    # Darktrace
    DARKTRACE_URL: str | None = None
    DARKTRACE_PUBLIC_TOKEN: str | None = None
    DARKTRACE_PRIVATE_TOKEN: str | None = None

    # Abnormal Security
    ABNORMAL_ACCESS_TOKEN: str | None = None
    ABNORMAL_BASE_URL: str | None = None

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        """Return appropriate log level based on environment."""
        if self.is_production:
            # In production, minimum INFO level (ignore DEBUG)
            return self.LOG_LEVEL if self.LOG_LEVEL.upper() != "DEBUG" else "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development

    @property
    def enabled_adapters(self) -> list[str]:
        """Adapter names requested via ENABLED_ADAPTERS, normalized."""
        return [name.strip().lower() for name in self.ENABLED_ADAPTERS.split(",") if name.strip()]


ConfigT = TypeVar("ConfigT", bound=BaseModel)


class AdapterConfig(BaseModel):
    """Base for per-vendor adapter configs: every declared string is required."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @field_validator("*")
    @classmethod
    def _not_blank(cls, value: Any, info: ValidationInfo) -> Any:
        if isinstance(value, str) and not value:
            raise ValueError(f"missing {info.field_name}")
        return value


def load_adapter_config(model: Type[ConfigT], **values: Any) -> ConfigT:
    """Validate adapter config, raising ConfigurationError on failure."""
    try:
        return model(**values)
    except ValidationError as exc:
        messages = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
        raise ConfigurationError(f"{model.__name__}: {messages}") from exc


settings = Settings()
