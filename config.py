import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

GEMINI_API_BASE = 'https://generativelanguage.googleapis.com'


def _as_bool(value, default=False):
    if value is None or value == '':
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    """Process-wide configuration, built once at start-up and passed to the services."""
    database_url: str
    redis_url: str = 'redis://localhost:6379'
    secret_key: str = 'dev-secret-change-me'
    client_url: str = 'http://localhost:5173'
    gemini_api_key: Optional[str] = None
    gemini_api_base: str = GEMINI_API_BASE
    gemini_model: str = 'gemini-2.5-flash-lite'
    gemini_tts_model: str = 'gemini-2.5-flash-preview-tts'
    gemini_tts_voice: str = 'Puck'
    gemini_retries: int = 1
    brevo_key: Optional[str] = None
    mail_sender: str = 'no-reply@prevue.ai'
    app_env: str = 'local'
    log_level: str = 'INFO'
    evaluation_workers: int = 4
    evaluation_wait_seconds: int = 30
    cookie_secure: bool = True
    stt_text_correction: bool = True
    token_max_age: int = 60 * 60 * 24 * 7
    reset_token_minutes: int = 15
    invite_expiry_hours: int = 24
    upload_folder: str = 'uploads'

    @property
    def gemini_url(self):
        return f"{self.gemini_api_base}/v1/models/{self.gemini_model}:generateContent"

    @property
    def is_production(self):
        return self.app_env.lower() in ('stage', 'staging', 'prod', 'production')

    @classmethod
    def from_env(cls):
        database_url = os.environ.get('DATABASE_URL')
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set. Please create a .env file or set the environment variable.")

        # Heroku/Render use postgres://, but SQLAlchemy needs postgresql://
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        return cls(
            database_url=database_url,
            redis_url=os.getenv('REDIS_URL', 'redis://localhost:6379'),
            secret_key=os.getenv('ACCESS_TOKEN_SECRET', 'dev-secret-change-me'),
            client_url=os.getenv('CLIENT_URL', 'http://localhost:5173'),
            gemini_api_key=os.getenv('GEMINI_API_KEY') or None,
            gemini_api_base=os.getenv('GEMINI_API_BASE', GEMINI_API_BASE),
            gemini_model=os.getenv('GEMINI_MODEL', 'gemini-2.5-flash-lite'),
            gemini_tts_model=os.getenv('GEMINI_TTS_MODEL', 'gemini-2.5-flash-preview-tts'),
            gemini_tts_voice=os.getenv('GEMINI_TTS_VOICE', 'Puck'),
            gemini_retries=max(1, _as_int(os.getenv('GEMINI_RETRIES'), 1)),
            brevo_key=os.getenv('BREVO_KEY') or None,
            mail_sender=os.getenv('MAIL_SENDER', 'no-reply@prevue.ai'),
            app_env=(os.getenv('APP_ENV') or os.getenv('FLASK_ENV') or 'local'),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            evaluation_workers=_as_int(os.getenv('EVALUATION_WORKERS'), 4),
            evaluation_wait_seconds=_as_int(os.getenv('EVALUATION_WAIT_SECONDS'), 30),
            cookie_secure=_as_bool(os.getenv('COOKIE_SECURE'), True),
            stt_text_correction=_as_bool(os.getenv('STT_TEXT_CORRECTION'), True),
            upload_folder=os.getenv('UPLOAD_FOLDER', 'uploads'),
        )
