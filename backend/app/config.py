"""
Configuration Management Module

Configures application parameters via environment variables or .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Configuration Class

    All configuration items can be overridden by environment variables, with names matching fields (uppercase).
    """

    # Application Config
    APP_NAME: str = "Session Bridge Gateway"
    DEBUG: bool = False
    HOST: str = "127.0.0.1"
    PORT: int = 3456

    # CORS Config
    # Comma-separated list of allowed origins for CORS
    # Default: empty list (no CORS)
    ALLOWED_ORIGINS: str = ""

    # Shared secret required from callers (x-api-key or Bearer token).
    # Leave unset to accept every local caller.
    BRIDGE_API_KEY: Optional[str] = None

    # Backend Session Config
    # Model identifier requested when a session is started
    MODEL_ID: str = "default-model"
    # Deposit placed when a session is opened (backend currency units)
    DEPOSIT_AMOUNT: str = "0.5"
    # Price per generated token (backend currency units)
    PRICE_PER_TOKEN: int = 5000
    # Tokens between payment proofs
    PROOF_INTERVAL: int = 1000
    # Session duration (seconds)
    SESSION_DURATION: int = 86400
    # Explicit backend host address; empty lets the transport auto-select
    HOST_ADDRESS: Optional[str] = None
    # Transport implementation, as "module:Class"
    TRANSPORT_CLASS: str = "app.providers.echo:EchoTransport"

    # Circuit Breaker Config
    # Consecutive failed attempts before the circuit opens
    CIRCUIT_FAILURE_THRESHOLD: int = 2
    # Seconds the circuit stays open before a trial call is admitted
    CIRCUIT_COOLDOWN_SECONDS: float = 60.0

    # Prompt Config
    # Caller system text is capped at this many characters before tool injection
    SYSTEM_PROMPT_MAX_CHARS: int = 1000

    # Output Guard Config
    # Minimum output budget in characters
    OUTPUT_CHAR_FLOOR: int = 1000
    # Characters allowed per requested output token
    CHARS_PER_TOKEN: int = 4
    # Longest reasoning span buffered before it is released as text
    THINK_MAX_CHARS: int = 8000

    # HTTP Client Config
    # Timeout for fetching remote image URLs (seconds)
    IMAGE_FETCH_TIMEOUT: float = 15.0
    # Largest remote image body accepted (bytes); bigger images are dropped
    IMAGE_MAX_BYTES: int = 10 * 1024 * 1024

    # Number of prompt characters written to the debug log
    DEBUG_PROMPT_PREVIEW_CHARS: int = 2000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get application configuration (Singleton)

    Uses lru_cache to ensure configuration is loaded only once.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
