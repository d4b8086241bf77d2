import json
from typing import List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Pulse CRM Backend"
    env: str = "dev"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # IDENTITY
    identity_provider: str = "google"
    google_client_id: str | None = None
    static_identity_email: str = "dev@pulse.local"

    # INGESTION
    ingestion_mode: str = "direct"
    ingestion_worker_interval_seconds: int = Field(default=5, ge=1, le=3600)
    ingestion_max_attempts: int = Field(default=3, ge=1, le=20)
    ingestion_batch_size: int = Field(default=100, ge=1, le=10_000)

    # DISPATCH / RECONCILIATION
    dispatch_success_probability: float = Field(default=0.9, ge=0.0, le=1.0)
    dispatch_sample_size: int = Field(default=5, ge=0, le=100)
    preview_sample_size: int = Field(default=10, ge=0, le=100)
    receipt_reconcile_interval_seconds: int = Field(default=30, ge=1, le=86_400)
    scheduler_enabled: bool = True

    # AI
    ai_provider: str = "stub"
    ai_model: str = "gpt-4o-mini"
    ai_temperature: float = 0.8
    ai_max_suggestions: int = Field(default=5, ge=1, le=10)
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    ai_suggest_rate_limit_requests: int = Field(default=10, ge=1)
    ai_suggest_rate_limit_window_seconds: int = Field(default=60, ge=1)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator("identity_provider", "ingestion_mode", "ai_provider", mode="before")
    @classmethod
    def normalize_choice(cls, value: str) -> str:
        return str(value or "").strip().lower()

    @field_validator("google_client_id", "openai_api_key", "openai_base_url", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @model_validator(mode="after")
    def validate_choices(self) -> "Settings":
        if self.identity_provider not in {"google", "static"}:
            raise ValueError("IDENTITY_PROVIDER must be one of: google, static")
        if self.ingestion_mode not in {"direct", "queued"}:
            raise ValueError("INGESTION_MODE must be one of: direct, queued")
        if self.ai_provider not in {"stub", "openai"}:
            raise ValueError("AI_PROVIDER must be one of: stub, openai")
        return self

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        if self.identity_provider == "static":
            raise ValueError("IDENTITY_PROVIDER=static cannot be used in production")
        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
