"""
Tool configuration
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Tool settings, read from TINT_* environment variables or .env"""

    # Image
    ROOT: str = "/"
    LOCKFILE: str = "/.tinted.lock"

    # Processing
    AUTODEPS: str = "free"
    KEEP_PDS: bool = True
    KEEP_TMP: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(levelname)s %(name)s: %(message)s"

    class Config:
        env_prefix = "TINT_"
        env_file = ".env"
        extra = "ignore"
        case_sensitive = True


settings = Settings()
