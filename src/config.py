import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_list(name: str, default: str) -> list:
    return [item.strip() for item in os.getenv(name, default).split(',') if item.strip()]


class Config:
    """Central configuration for the extraction service."""

    # =========================================================================
    # EXTRACTORS
    # =========================================================================
    # Registration order; also the tie-break order when health is equal
    EXTRACTOR_ORDER = _get_list('EXTRACTOR_ORDER', 'ytdlp,pytubefix,piped')
    PIPED_INSTANCES = _get_list('PIPED_INSTANCES', 'https://pipedapi.kavin.rocks,https://pipedapi.adminforge.de')

    REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT_SECONDS', 30))
    DOWNLOAD_TIMEOUT = float(os.getenv('DOWNLOAD_TIMEOUT_SECONDS', 300))

    # =========================================================================
    # ROUTER
    # =========================================================================
    DOWNLOAD_MAX_RETRIES = int(os.getenv('DOWNLOAD_MAX_RETRIES', 2))
    RETRY_BASE_DELAY = float(os.getenv('RETRY_BASE_DELAY_SECONDS', 1.0))
    PROBE_URL = os.getenv('PROBE_URL', 'https://www.youtube.com/watch?v=dQw4w9WgXcQ')

    # =========================================================================
    # HEALTH MONITORING
    # =========================================================================
    METRICS_HISTORY_SIZE = int(os.getenv('METRICS_HISTORY_SIZE', 1000))
    ALERTS_HISTORY_SIZE = int(os.getenv('ALERTS_HISTORY_SIZE', 100))
    HEALTH_CHECK_INTERVAL_MINUTES = float(os.getenv('HEALTH_CHECK_INTERVAL_MINUTES', 5))
    ENABLE_HEALTH_MONITORING = _get_bool('ENABLE_HEALTH_MONITORING', True)

    # =========================================================================
    # TRANSCRIPTION (external service)
    # =========================================================================
    TRANSCRIPTION_URL = os.getenv('TRANSCRIPTION_URL')
    TRANSCRIPTION_API_KEY = os.getenv('TRANSCRIPTION_API_KEY')
    TRANSCRIPTION_TIMEOUT = float(os.getenv('TRANSCRIPTION_TIMEOUT_SECONDS', 600))

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================
    TELEGRAM_BOT_URL = os.getenv('TELEGRAM_BOT_URL', '')
    TELEGRAM_CHAT_ID = os.getenv('TELEGRAM_CHAT_ID', '')

    # =========================================================================
    # API
    # =========================================================================
    PORT = int(os.getenv('PORT', 8080))
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    MAX_VIDEO_DURATION = int(os.getenv('MAX_VIDEO_DURATION_SECONDS', 1800))  # 30 minutes

    @classmethod
    def validate(cls):
        """Validate configuration values."""
        from src.core.extractors import EXTRACTOR_CLASSES

        unknown = [name for name in cls.EXTRACTOR_ORDER if name not in EXTRACTOR_CLASSES]
        if unknown:
            raise ValueError(f"Unknown extractors in EXTRACTOR_ORDER: {', '.join(unknown)}")
        if not cls.EXTRACTOR_ORDER:
            raise ValueError("EXTRACTOR_ORDER must name at least one extractor")

        if 'piped' in cls.EXTRACTOR_ORDER and not cls.PIPED_INSTANCES:
            raise ValueError("PIPED_INSTANCES is empty but the piped extractor is enabled")

        positive = [
            ('DOWNLOAD_TIMEOUT_SECONDS', cls.DOWNLOAD_TIMEOUT),
            ('REQUEST_TIMEOUT_SECONDS', cls.REQUEST_TIMEOUT),
            ('METRICS_HISTORY_SIZE', cls.METRICS_HISTORY_SIZE),
            ('ALERTS_HISTORY_SIZE', cls.ALERTS_HISTORY_SIZE),
            ('HEALTH_CHECK_INTERVAL_MINUTES', cls.HEALTH_CHECK_INTERVAL_MINUTES),
        ]
        invalid = [name for name, value in positive if value <= 0]
        if invalid:
            raise ValueError(f"Config values must be positive: {', '.join(invalid)}")

        if cls.DOWNLOAD_MAX_RETRIES < 0 or cls.RETRY_BASE_DELAY < 0:
            raise ValueError("DOWNLOAD_MAX_RETRIES and RETRY_BASE_DELAY_SECONDS must not be negative")
