"""
config.py - Centralized configuration for the ZKP identity client
"""
from pathlib import Path
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    # Backend
    BACKEND_URL: str = "http://localhost:5000"
    REQUEST_TIMEOUT: float = 10.0  # seconds
    ENTRY_POINT: str = "/"  # where a rejected session is sent back to

    # Session persistence
    SESSION_FILE: Path = Path.home() / ".zkp_identity" / "session.json"
    SESSION_STORAGE_KEY: str = "zkp_session_data"
    SESSION_SALT: str = "zkp_salt_v1"

    # Input validation
    MIN_PASSWORD_LENGTH: int = 6

    LOG_LEVEL: str = "INFO"

    class Config:
        env_prefix = "ZKP_"
        env_file = ".env"


settings = ClientSettings()
