"""
API configuration
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """API settings"""

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080
    API_TITLE: str = "Tint API"
    API_VERSION: str = "0.1.0"

    # Image roots the API may plan against; empty means any directory
    ALLOWED_ROOTS: list[str] = []

    class Config:
        env_file = ".env"
        extra = "ignore"
        case_sensitive = True


settings = Settings()
