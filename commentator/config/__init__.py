"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: str = "*"
    CONTROL_TOKEN: Optional[str] = None

    # ======================
    # Watched asset
    # ======================
    TOKEN_ADDRESS: Optional[str] = None
    CHAIN_ID: str = "solana"

    # ======================
    # Feeds
    # ======================
    FEED_WS_URL: str = "wss://pumpportal.fun/api/data"
    FEED_ACK_TIMEOUT_SECONDS: float = 10.0
    FEED_RECONNECT_BASE_DELAY_SECONDS: float = 2.0
    FEED_MAX_RECONNECT_ATTEMPTS: int = 5
    PUMPFUN_API_URL: str = "https://frontend-api.pump.fun"
    CHAT_POLL_SECONDS: float = 15.0
    TRADE_POLL_SECONDS: float = 10.0
    SEEN_IDS_MAX: int = 1000
    SEEN_IDS_RETAIN: int = 500

    # ======================
    # Market Data
    # ======================
    DEXSCREENER_API_URL: str = "https://api.dexscreener.com"
    MARKET_REFRESH_SECONDS: float = 20.0

    # ======================
    # Context & triggers
    # ======================
    CONTEXT_TRADE_CAPACITY: int = 20
    CONTEXT_CHAT_CAPACITY: int = 10
    LARGE_TRADE_THRESHOLD: float = 0.5
    PUMP_THRESHOLD_PCT: float = 15.0
    DUMP_THRESHOLD_PCT: float = 15.0
    CHAT_REACTION_PROBABILITY: float = 0.3
    PERIODIC_PROBABILITY: float = 0.2
    PERIODIC_TICK_SECONDS: float = 45.0
    PERIODIC_QUIET_SECONDS: float = 30.0

    # ======================
    # Decision gateway
    # ======================
    REACTION_MIN_INTERVAL_SECONDS: float = 8.0
    HISTORY_LIMIT: int = 10

    # ======================
    # Speech
    # ======================
    SPEECH_SECONDS_PER_WORD: float = 0.2
    SPEECH_MIN_SECONDS: float = 3.0
    SPEECH_GAP_SECONDS: float = 0.5
    SPEECH_MAX_PENDING: int = 3
    SPEECH_MAX_AGE_SECONDS: float = 30.0

    # ======================
    # Collaborators
    # ======================
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-3-haiku-20240307"
    ANTHROPIC_TIMEOUT_SECONDS: float = 10.0
    ELEVENLABS_API_KEY: Optional[str] = None
    ELEVENLABS_VOICE_ID: Optional[str] = None
    ELEVENLABS_MODEL_ID: str = "eleven_monolingual_v1"
    AUDIO_DIR: str = "/tmp/commentator-audio"
    AUDIO_MAX_FILES: int = 50

    # ======================
    # Viewers
    # ======================
    VIEWER_QUEUE_SIZE: int = 16
    VIEWER_KEEPALIVE_SECONDS: float = 15.0

    # ======================
    # Scheduler
    # ======================
    TIMEZONE: str = "UTC"

    # ======================
    # Telegram
    # ======================
    TELEGRAM_ENABLED: bool = False
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None

    # ======================
    # Redis
    # ======================
    REDIS_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PREFIX: str = "sid:"
    REDIS_SNAPSHOT_TTL_SECONDS: int = 300

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
