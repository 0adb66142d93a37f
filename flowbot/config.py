# flowbot/config.py
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

BUILTIN_PLUGINS_DIR = Path(__file__).parent / "core" / "bots"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    bot_name: str = "FlowBot"
    owner_id: str = ""  # Sender id allowed to run admin commands (e.g. Telegram chat id)

    # Command parsing
    command_prefix: str = "!"

    # Conversation state
    state_file_path: str = ".data/states.json"
    state_max_age_hours: float = 24
    state_save_interval_minutes: float = 5
    state_sweep_interval_minutes: float = 60

    # Handler execution
    handler_timeout_seconds: float | None = None  # None = handlers may run indefinitely

    # Plugins
    plugins_dir: str | None = None  # None = built-in plugins shipped in flowbot/core/bots
    enabled_plugins: str = ""  # Comma-separated; empty = every discovered plugin
    disabled_plugins: str = ""  # Comma-separated; always skipped

    # Outbound queue (anti-flood pacing)
    outbound_priority_delay_seconds: float = 3.0  # After command responses / status messages
    outbound_min_delay_seconds: float = 5.0  # After normal messages
    outbound_max_retries: int = 3
    outbound_base_retry_delay: float = 5.0  # seconds, doubles on each retry

    # Telegram channel
    telegram_bot_token: str | None = None
    telegram_mode: Literal["polling", "webhook", "off"] = "polling"
    telegram_webhook_secret: str | None = None  # X-Telegram-Bot-Api-Secret-Token
    telegram_webhook_url: str | None = None  # Public URL registered with setWebhook at startup
    telegram_poll_timeout: int = 30

    # HTTP server
    http_host: str = "0.0.0.0"
    http_port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token) and self.telegram_mode != "off"

    @property
    def resolved_plugins_dir(self) -> Path:
        if self.plugins_dir:
            return Path(self.plugins_dir).expanduser()
        return BUILTIN_PLUGINS_DIR

    def enabled_plugin_names(self) -> list[str]:
        """Parse ``ENABLED_PLUGINS`` into a list of plugin names."""
        return _split_names(self.enabled_plugins)

    def disabled_plugin_names(self) -> list[str]:
        """Parse ``DISABLED_PLUGINS`` into a list of plugin names."""
        return _split_names(self.disabled_plugins)

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields = [
            ("owner_id", self.owner_id),
        ]
        if self.telegram_mode != "off":
            required_fields.append(("telegram_bot_token", self.telegram_bot_token))
        if self.telegram_mode == "webhook":
            required_fields.append(("telegram_webhook_secret", self.telegram_webhook_secret))

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def _split_names(raw: str) -> list[str]:
    raw = raw.strip()
    if not raw:
        return []
    return [name.strip() for name in raw.split(",") if name.strip()]


settings = Settings()
