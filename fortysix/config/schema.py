"""Configuration schema using Pydantic."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL = "llama-3.3-70b-versatile"
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant. Be friendly and concise."


class BotConfig(BaseModel):
    """Bot identity and command settings."""

    name: str = "Forty Six"
    command_prefix: str = "!"
    send_welcome: bool = True


class AIConfig(BaseModel):
    """Completion API and AI reply policy."""

    api_key: str = ""
    api_base: str = "https://api.groq.com/openai/v1"
    model: str = DEFAULT_MODEL
    available_models: list[str] = Field(
        default_factory=lambda: [
            "llama-3.3-70b-versatile",
            "llama-3.1-8b-instant",
            "mixtral-8x7b-32768",
            "gemma2-9b-it",
        ]
    )
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    system_prompt_file: str = "prompt.txt"
    max_turns: int = Field(default=10, ge=1)
    temperature: float = 0.7
    max_tokens: int = 1024
    timeout_s: float = 60.0
    in_groups: bool = True
    in_direct: bool = True
    self_only: bool = False
    query_prefix_enabled: bool = False
    query_prefix: str = "?"

    def load_system_prompt(self) -> str:
        """Prefer the prompt file when it exists, else the inline prompt."""
        if self.system_prompt_file:
            path = Path(self.system_prompt_file).expanduser()
            if path.is_file():
                text = path.read_text(encoding="utf-8").strip()
                if text:
                    return text
        return self.system_prompt


class WhatsAppConfig(BaseModel):
    """Transport bridge and pairing settings."""

    bridge_url: str = "ws://localhost:3001"
    auth_dir: str = "~/.forty-six/auth_info"
    phone_number: str = ""
    use_qr: bool = False

    @property
    def auth_path(self) -> Path:
        return Path(self.auth_dir).expanduser()


class ReconnectConfig(BaseModel):
    """Backoff and restart timing, in milliseconds."""

    base_delay_ms: int = Field(default=2000, ge=0)
    max_delay_ms: int = Field(default=30000, ge=0)
    pairing_delay_ms: int = Field(default=5000, ge=0)
    restart_delay_ms: int = Field(default=15000, ge=0)


class Config(BaseSettings):
    """Root configuration for forty-six."""

    model_config = SettingsConfigDict(
        env_prefix="FORTYSIX_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    bot: BotConfig = Field(default_factory=BotConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    log_level: str = "INFO"

    # Variable names used by earlier releases.
    groq_api_key: str = Field(
        default="", validation_alias=AliasChoices("GROQ_API_KEY"), exclude=True
    )
    phone_number: str = Field(
        default="", validation_alias=AliasChoices("PHONE_NUMBER"), exclude=True
    )

    @model_validator(mode="after")
    def _apply_legacy_env(self) -> "Config":
        if not self.ai.api_key and self.groq_api_key:
            self.ai.api_key = self.groq_api_key
        if not self.whatsapp.phone_number and self.phone_number:
            self.whatsapp.phone_number = self.phone_number
        return self

    def missing_settings(self) -> list[str]:
        """Names of required settings that are not set."""
        missing: list[str] = []
        if not self.ai.api_key:
            missing.append("ai.api_key (or GROQ_API_KEY)")
        if not self.whatsapp.use_qr and not self.whatsapp.phone_number:
            missing.append("whatsapp.phone_number (or PHONE_NUMBER)")
        return missing
