from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices
from functools import lru_cache
from pathlib import Path


def find_env_file():
    """Find .env.local file in project (for local development only)"""
    possible_paths = [
        Path(__file__).parent.parent.parent / '.env.local',  # backend/.env.local
        Path(__file__).parent.parent.parent.parent / 'infra' / 'env' / '.env.local',
        Path.cwd() / '.env.local',
        Path.cwd() / 'infra' / 'env' / '.env.local',
    ]
    for p in possible_paths:
        if p.exists():
            return str(p)
    return None  # No env file found, will use environment variables


class Settings(BaseSettings):
    env: str = 'development'
    api_v1_prefix: str = '/api/v1'
    project_name: str = 'MeetCoach'
    log_level: str = 'INFO'

    # Durable key-value store for sessions, feed and user settings.
    # Any SQLAlchemy URL works; sqlite keeps the store next to the client.
    database_url: str = 'sqlite:///./meetcoach.db'

    # Vision models per provider (the API key itself is a user setting)
    gemini_vision_model: str = Field(
        default='gemini-1.5-flash',
        validation_alias=AliasChoices('GEMINI_VISION_MODEL'),
    )
    llm_groq_vision_model: str = Field(
        default='meta-llama/llama-4-scout-17b-16e-instruct',
        validation_alias=AliasChoices('LLM_GROQ_VISION_MODEL'),
    )
    ai_temperature: float = 0.2
    ai_max_tokens: int = 1024
    translation_max_tokens: int = 240

    # CORS - comma separated origins or "*" for all
    cors_origins: str = '*'

    # Coaching loop
    coach_capture_interval_ms: int = 30000
    coach_consecutive_warnings: int = 2
    coach_notification_cooldown_ms: int = 120000
    coach_encouragement_cooldown_ms: int = 300000
    coach_live_feed_max_items: int = 50
    coach_analysis_timeout_seconds: float = 45.0
    coach_translation_timeout_seconds: float = 10.0
    coach_frame_max_width: int = 640
    coach_frame_max_height: int = 480

    # Optional local picture saver (e.g. http://127.0.0.1:3131/frames)
    coach_frame_recorder_url: str = ''
    coach_frame_recorder_timeout_seconds: float = 5.0

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding='utf-8',
        extra='ignore',
        # Environment variables take priority over .env file
        env_priority='environment'
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.database_url and self.database_url.startswith('postgres://'):
            self.database_url = self.database_url.replace('postgres://', 'postgresql://', 1)

    @property
    def cors_origin_list(self) -> list[str]:
        value = (self.cors_origins or '').strip()
        if not value or value == '*':
            return ['*']
        return [origin.strip() for origin in value.split(',') if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
