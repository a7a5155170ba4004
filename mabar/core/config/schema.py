"""MaBar configuration schema — YAML + Pydantic + env override."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# ════════════════════════════════════════════════════════════
# SUB-CONFIGS (nested BaseModel)
# ════════════════════════════════════════════════════════════


class ProviderConfig(BaseModel):
    """Single LLM provider."""

    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """LLM providers (LiteLLM multi-provider)."""

    gemini: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    groq: ProviderConfig = Field(default_factory=ProviderConfig)


class AssistantConfig(BaseModel):
    """Conversational pipeline (assistant.*)."""

    name: str = "MaBar AI"
    model: str = "gemini/gemini-2.5-flash-lite"
    presenter_model: str = ""  # empty → falls back to assistant.model
    temperature: float = 0.4
    presenter_temperature: float = 0.7
    max_tokens: int = 2048
    history_limit: int = 20
    idle_timeout_minutes: int = 60
    max_negotiation_rounds: int = 3
    max_cards: int = 3
    city: str = "Jakarta"


class ParseConfig(BaseModel):
    """Parse / Back4App REST backend."""

    server_url: str = "https://parseapi.back4app.com"
    app_id: str = ""
    rest_api_key: str = ""
    timeout: float = 15.0


class RateLimitConfig(BaseModel):
    enabled: bool = True
    requests_per_minute: int = 60


class DatabaseConfig(BaseModel):
    path: str = "data/mabar.db"


# ════════════════════════════════════════════════════════════
# ROOT CONFIG (BaseSettings — env + .env support)
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Priority: env vars > .env > YAML (init kwargs) > defaults

    Env override examples:
        MABAR_ASSISTANT__MODEL=openai/gpt-4o-mini
        MABAR_PARSE__APP_ID=xxxx
        MABAR_PROVIDERS__GEMINI__API_KEY=AIza...
    """

    model_config = SettingsConfigDict(
        env_prefix="MABAR_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    parse: ParseConfig = Field(default_factory=ParseConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs; env must win over it
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    # ── Computed properties ─────────────────────────────────

    @property
    def parse_enabled(self) -> bool:
        """True when Parse credentials are configured."""
        return bool(self.parse.app_id and self.parse.rest_api_key)

    @property
    def presenter_model(self) -> str:
        return self.assistant.presenter_model or self.assistant.model

    @property
    def db_path(self) -> Path:
        return Path(self.database.path)

    # ── Provider helpers ────────────────────────────────────

    def get_api_key(self, model: str | None = None) -> str | None:
        """Get API key for model name. Falls back to first available."""
        model_name = (model or self.assistant.model).lower()

        keyword_map: dict[str, ProviderConfig] = {
            "gemini": self.providers.gemini,
            "openai": self.providers.openai,
            "gpt": self.providers.openai,
            "anthropic": self.providers.anthropic,
            "claude": self.providers.anthropic,
            "openrouter": self.providers.openrouter,
            "groq": self.providers.groq,
        }
        for keyword, provider in keyword_map.items():
            if keyword in model_name and provider.api_key:
                return provider.api_key

        # Fallback: first key found
        for name in ProvidersConfig.model_fields:
            p = getattr(self.providers, name)
            if isinstance(p, ProviderConfig) and p.api_key:
                return p.api_key
        return None

    def get_api_base(self, model: str | None = None) -> str | None:
        """Get API base URL for model name."""
        model_name = (model or self.assistant.model).lower()
        if "openrouter" in model_name:
            return self.providers.openrouter.api_base or "https://openrouter.ai/api/v1"
        for name in ProvidersConfig.model_fields:
            p = getattr(self.providers, name)
            if isinstance(p, ProviderConfig) and name in model_name and p.api_base:
                return p.api_base
        return None
