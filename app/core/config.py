"""
Configuration settings for the application
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings

DEFAULT_AI_ENDPOINT = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.5-flash-preview-09-2025:generateContent"
)


@dataclass(frozen=True)
class AppConfig:
    """Explicit configuration handed to each application controller"""
    api_endpoint: str
    app_identifier: str
    credentials: Dict[str, Optional[str]] = field(default_factory=dict)


class Settings(BaseSettings):
    """Application settings"""

    # Storage
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./eventflow.db")
    USE_FIREBASE: bool = os.getenv("USE_FIREBASE", "false").lower() in ("1", "true", "yes")
    FIREBASE_CREDENTIALS_JSON: str | None = os.getenv("FIREBASE_CREDENTIALS_JSON")
    FIREBASE_CREDENTIALS_FILE: str | None = os.getenv("FIREBASE_CREDENTIALS_FILE")
    FIREBASE_CREDENTIALS_B64: str | None = os.getenv("FIREBASE_CREDENTIALS_B64")

    # Application identifier used to scope per-user collections
    APP_ID: str = os.getenv("APP_ID", "default-app-id")

    # Generative AI endpoint
    AI_API_ENDPOINT: str = os.getenv("AI_API_ENDPOINT", DEFAULT_AI_ENDPOINT)
    AI_API_KEY: str | None = os.getenv("AI_API_KEY")
    AI_BEARER_TOKEN: str | None = os.getenv("AI_BEARER_TOKEN")
    AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))

    # Local sign-in (token -> user id) when Firebase auth is disabled
    AUTH_TOKENS: Dict[str, str] = {}

    # Naive event datetimes are interpreted in this zone
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = 30

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"

    def app_config(self) -> AppConfig:
        return AppConfig(
            api_endpoint=self.AI_API_ENDPOINT,
            app_identifier=self.APP_ID,
            credentials={"api_key": self.AI_API_KEY, "bearer_token": self.AI_BEARER_TOKEN},
        )

settings = Settings()
