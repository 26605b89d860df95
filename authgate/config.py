"""Configuration settings for authgate"""

from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    # Hosting platforms may provide PORT dynamically
    PORT: int = int(os.getenv("PORT", "9000"))

    # First-party tokens
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 0  # 0 disables the exp claim
    TOKEN_STALENESS_SECONDS: int = 3600

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./authgate.db")

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    CACHE_TTL_SECONDS: int = 600

    # Okta
    OKTA_URL: str = ""
    OKTA_API_KEY: str = ""
    OKTA_REQUEST_TIMEOUT: float = 10.0

    # Downstream microservices (user cascade delete)
    GATEWAY_URL: str = "http://gateway:9000"
    MICROSERVICE_API_KEY: str = ""
    DOWNSTREAM_REQUEST_TIMEOUT: float = 30.0

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # OAuth Configuration
    OAUTH_REDIRECT_BASE_URL: str = "http://localhost:9000/auth"
    OAUTH_STATE_COOKIE_NAME: str = "oauth_state"
    OAUTH_STATE_COOKIE_MAX_AGE: int = 600  # 10 minutes
    DEFAULT_APP: str = "gfw"
    SUCCESS_REDIRECT_URL: str = "/auth/success"
    FAILURE_REDIRECT_URL: str = "/auth/fail"

    # OAuth Providers
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    FACEBOOK_CLIENT_ID: str = ""
    FACEBOOK_CLIENT_SECRET: str = ""
    APPLE_CLIENT_ID: str = ""
    APPLE_CLIENT_SECRET: str = ""
    TWITTER_CLIENT_ID: str = ""
    TWITTER_CLIENT_SECRET: str = ""

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
