"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MESSAGE_TEMPLATE = """🌟 *{greeting}, FUTUROS SUBINTENDENTES* 🌟

👮‍♂️ En breve estaremos en clase de:

📘 *{subject}*
👨‍🏫 *Profesor:* {teacher}

💡 Cada minuto de estudio hoy es un paso más hacia tu objetivo.
¡Conéctate y sigue avanzando! 💪📚
🔗 Enlace de la clase:
 {link} """


class ScheduleConfig(BaseModel):
    """Reminder timing and file locations.

    lead_minutes is range-checked here; the loader turns the ValidationError
    into a ConfigError so a bad value stops startup.
    """

    timezone: str = "America/Bogota"
    lead_minutes: int = Field(default=5, ge=1, le=60)
    catalog_path: str = ""  # empty → <workspace>/schedule.json
    ledger_path: str = ""  # empty → <workspace>/sent_log.json
    send_delay_s: float = Field(default=1.2, ge=0)
    status_interval_minutes: int = Field(default=0, ge=0)  # 0 disables liveness log
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    class_link: str = "https://asesoriasacademicasnaslybeltran.q10.com/"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone {v!r}: expected an IANA name like America/Bogota")
        return v


class RecipientsConfig(BaseModel):
    """Group/chat ids that receive every reminder."""

    targets: list[str] = Field(default_factory=list)

    @field_validator("targets", mode="before")
    @classmethod
    def split_targets(cls, v):
        """Accept a comma-separated string (GROUP_IDS style) as well as a list."""
        if isinstance(v, str):
            v = v.split(",")
        return v

    @field_validator("targets")
    @classmethod
    def dedupe_targets(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for item in v:
            item = item.strip()
            if item and item not in seen:
                seen.append(item)
        return seen


class WhatsAppConfig(BaseModel):
    """WhatsApp bridge configuration."""

    bridge_url: str = "ws://localhost:3001"
    reconnect_delay_s: float = 5.0


class TelegramConfig(BaseModel):
    """Telegram bot configuration."""

    token: str = ""  # Bot token from @BotFather
    proxy: str | None = None


class ChannelConfig(BaseModel):
    """Which transport delivers the reminders."""

    kind: Literal["whatsapp", "telegram", "console"] = "whatsapp"
    ready_timeout_s: float = 120.0
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


class LoggingConfig(BaseModel):
    """Log sinks."""

    level: str = "INFO"
    file: str = ""  # empty → console only
    rotation: str = "10 MB"


class Config(BaseSettings):
    """Root configuration for classping."""

    model_config = SettingsConfigDict(
        env_prefix="CLASSPING_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    workspace: str = "~/.classping/workspace"
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    recipients: RecipientsConfig = Field(default_factory=RecipientsConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def workspace_path(self) -> Path:
        """Get expanded workspace path."""
        return Path(self.workspace).expanduser()

    @property
    def catalog_path(self) -> Path:
        if self.schedule.catalog_path:
            return Path(self.schedule.catalog_path).expanduser()
        return self.workspace_path / "schedule.json"

    @property
    def ledger_path(self) -> Path:
        if self.schedule.ledger_path:
            return Path(self.schedule.ledger_path).expanduser()
        return self.workspace_path / "sent_log.json"
