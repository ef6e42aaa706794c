"""Application configuration."""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    openai_model: str = "gpt-4o"
    openai_insights_model: str = "gpt-4o-mini"

    # ElevenLabs
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_model: str = "eleven_turbo_v2_5"
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"

    # Department voices (unset departments speak with the receptionist voice)
    receptionist_voice_id: str = "tFbs0XxZ7TP2yWyrfBty"
    sales_voice_id: Optional[str] = "fPVZbr0RJBH9KL47pnxU"
    shipping_voice_id: Optional[str] = "YPtbPhafrxFTDAeaPP4w"
    support_voice_id: Optional[str] = "fPVZbr0RJBH9KL47pnxU"
    accounts_voice_id: Optional[str] = "xeBpkkuzgxa0IwKt7NTP"

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str

    # Human agent numbers used for transfers
    sales_agent_number: Optional[str] = None
    shipping_agent_number: Optional[str] = None
    support_agent_number: Optional[str] = None
    accounts_agent_number: Optional[str] = None
    operator_number: Optional[str] = None

    # Database
    database_url: str

    # Company
    company_name: str = "Audico"
    recording_enabled: bool = True
    recording_consent_message: str = (
        "This call will be recorded for quality and training purposes."
    )

    # Conversation limits
    history_window: int = 10
    max_turns: int = 10
    max_failed_attempts: int = 2

    # Timeouts (seconds)
    llm_timeout_seconds: float = 8.0
    tool_timeout_seconds: float = 5.0
    tts_timeout_seconds: float = 4.0

    # Speech cache
    audio_retention_seconds: int = 3600

    # Optional softer escalation signal, off by default
    sentiment_escalation_enabled: bool = False
    sentiment_min_turns: int = 2

    # Post-call summaries stored with the transcript
    summarize_calls: bool = True

    # Catalog
    catalog_file: Optional[str] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    base_url: Optional[str] = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
