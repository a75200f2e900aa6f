import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name, '').strip()
    return float(value) if value else None


class Config:
    """Central configuration for the transcription service."""

    # =========================================================================
    # PROVIDERS
    # =========================================================================
    LOCAL_TRANSCRIBE_URL = os.getenv('LOCAL_TRANSCRIBE_URL', 'http://localhost:8000')

    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com')
    OPENAI_TRANSCRIBE_MODEL = os.getenv('OPENAI_TRANSCRIBE_MODEL', 'whisper-1')

    QUEUE_SERVICE_URL = os.getenv('QUEUE_SERVICE_URL', 'https://typemywordz-speech-to-text.onrender.com')

    # =========================================================================
    # ORCHESTRATION SETTINGS
    # =========================================================================
    LARGE_FILE_THRESHOLD_MB = float(os.getenv('LARGE_FILE_THRESHOLD_MB', 25))
    POLL_INTERVAL_SECONDS = float(os.getenv('POLL_INTERVAL_SECONDS', 2))
    POLL_REQUEST_TIMEOUT_SECONDS = float(os.getenv('POLL_REQUEST_TIMEOUT_SECONDS', 10))
    # 0 disables the overall polling deadline
    MAX_POLL_DURATION_SECONDS = float(os.getenv('MAX_POLL_DURATION_SECONDS', 3600))
    # Unset means uploads wait as long as the transport allows
    UPLOAD_TIMEOUT_SECONDS = _optional_float('UPLOAD_TIMEOUT_SECONDS')
    CANCEL_GRACE_SECONDS = float(os.getenv('CANCEL_GRACE_SECONDS', 0.5))
    KEEP_ALIVE_INTERVAL_SECONDS = int(os.getenv('KEEP_ALIVE_INTERVAL_SECONDS', 600))

    # =========================================================================
    # USAGE & PERSISTENCE
    # =========================================================================
    USAGE_BACKEND = os.getenv('USAGE_BACKEND', 'memory').lower()
    SUPABASE_URL = os.getenv('SUPABASE_URL')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY')
    ADMIN_EMAILS = [
        email.strip().lower()
        for email in os.getenv('ADMIN_EMAILS', '').split(',')
        if email.strip()
    ]

    # =========================================================================
    # NOTIFICATIONS & LOGGING
    # =========================================================================
    NOTIFY_WEBHOOK_URL = os.getenv('NOTIFY_WEBHOOK_URL', '')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    @classmethod
    def large_file_threshold_bytes(cls) -> int:
        return int(cls.LARGE_FILE_THRESHOLD_MB * 1024 * 1024)

    @classmethod
    def validate(cls):
        """Validate that all required config values are present."""
        required = [
            ('LOCAL_TRANSCRIBE_URL', cls.LOCAL_TRANSCRIBE_URL),
            ('QUEUE_SERVICE_URL', cls.QUEUE_SERVICE_URL),
        ]
        if cls.USAGE_BACKEND == 'supabase':
            required += [
                ('SUPABASE_URL', cls.SUPABASE_URL),
                ('SUPABASE_KEY', cls.SUPABASE_KEY),
            ]
        elif cls.USAGE_BACKEND != 'memory':
            raise ValueError(f"Unknown USAGE_BACKEND: {cls.USAGE_BACKEND}")

        missing = [name for name, value in required if not value]
        if missing:
            raise ValueError(f"Missing required config: {', '.join(missing)}")
