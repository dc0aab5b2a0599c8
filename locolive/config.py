from typing import List

from pydantic import AnyHttpUrl, computed_field
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "LocoLive API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    TOKEN_ISSUER: str = "locolive"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_HOURS: int = 168
    SESSION_EXPIRE_DAYS: int = 30
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    BCRYPT_ROUNDS: int = 12
    GOOGLE_CLIENT_IDS: List[str] = []
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"
    GOOGLE_TIMEOUT_SECONDS: int = 10

    # Validation
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []
    CORS_ALLOW_ALL_METHODS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    CORS_ALLOW_ALL_HEADERS: bool = True
    CORS_ALLOW_HEADERS: List[str] = ["Authorization", "Content-Type", "X-Request-ID"]

    # Push notifications
    PUSH_ENABLED: bool = False
    PUSH_DRY_RUN: bool = True
    PUSH_PROVIDER: str = "mock"
    PUSH_API_URL: str | None = None
    PUSH_API_TOKEN: str | None = None
    PUSH_TIMEOUT_SECONDS: int = 10

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    # Realtime
    WS_SEND_QUEUE_SIZE: int = 256
    BACKGROUND_SHUTDOWN_GRACE_SECONDS: float = 10.0

    # Product policy
    CONNECTIONS_AUTO_ACCEPT_REVERSE: bool = True
    STORY_LIFETIME_HOURS: int = 24

    # Maintenance
    CLEANUP_ENABLED: bool = True
    CLEANUP_INTERVAL_MINUTES: int = 60

    # Database
    DATABASE_URL: str | None = None
    DB_AUTO_CREATE: bool = False
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "locolive"
    POSTGRES_PASSWORD: str = "locolive"
    POSTGRES_DB: str = "locolive"

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(MultiHostUrl.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        ))

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

settings = Settings()  # type: ignore
