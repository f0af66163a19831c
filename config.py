from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """DLMM gateway configuration."""

    url: str = Field(
        default="http://localhost:15888",
        description="DLMM gateway URL (use 'http://gateway:15888' when running in Docker)"
    )
    timeout_seconds: float = Field(default=30.0, description="Per-request timeout in seconds")

    model_config = SettingsConfigDict(env_prefix="GATEWAY_", extra="ignore")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Root log level")
    suppress_http_logs: bool = Field(default=True, description="Hide per-request httpx logs")

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")


class StatusServerSettings(BaseSettings):
    """Status API served next to the strategy loop."""

    host: str = Field(default="127.0.0.1", description="Status API bind host")
    port: int = Field(default=8000, description="Status API port")

    model_config = SettingsConfigDict(env_prefix="STATUS_", extra="ignore")


class AppSettings(BaseSettings):
    """Main application settings."""

    controllers_path: str = "bots/conf/controllers"
    default_controller_config: str = Field(
        default="dlmm_flip_usdc_usdt.yml",
        description="Controller config file loaded when none is given on the command line"
    )
    sender_address: str = Field(default="", description="Overrides sender_address from the controller config")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class Settings(BaseSettings):
    """Combined application settings."""

    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    status_server: StatusServerSettings = Field(default_factory=StatusServerSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore"
    )


# Create global settings instance
settings = Settings()
