"""
Application Configuration Module

All configuration values are loaded from environment variables.
No hardcoded production values - defaults are only for local development.
"""

import os
from typing import List, Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    host: str
    port: int
    user: str
    password: str
    database: str
    url_override: Optional[str] = None
    echo: bool = False

    @classmethod
    def from_env(cls, prefix: str = "MYSQL") -> "DatabaseConfig":
        """Load database config from environment variables.

        DATABASE_URL takes precedence over the individual MYSQL_* settings,
        which is how tests and single-file deployments point at SQLite.
        """
        return cls(
            host=os.getenv(f"{prefix}_HOST", "localhost"),
            port=int(os.getenv(f"{prefix}_PORT", "3306")),
            user=os.getenv(f"{prefix}_USER", "root"),
            password=os.getenv(f"{prefix}_PASSWORD", ""),
            database=os.getenv(f"{prefix}_DATABASE", "finsphere"),
            url_override=os.getenv("DATABASE_URL") or None,
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        )

    @property
    def url(self) -> str:
        if self.url_override:
            return self.url_override
        return (
            f"mysql+pymysql://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    host: str
    port: int
    db: int
    password: Optional[str]
    socket_timeout: int = 5

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Load Redis config from environment variables."""
        password = os.getenv("REDIS_PASSWORD")
        return cls(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            db=int(os.getenv("REDIS_DB", "0")),
            password=password if password else None,
            socket_timeout=int(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
        )


@dataclass
class AuthConfig:
    """Token signing and identity platform configuration."""
    jwt_secret: str
    access_expire_hours: int = 168
    refresh_expire_days: int = 30
    issuer: str = "finsphere-api"
    audience: str = "finsphere-client"
    algorithm: str = "HS256"
    identity_project_id: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AuthConfig":
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", "default_dev_key_replace_in_env"),
            access_expire_hours=int(os.getenv("JWT_EXPIRE_HOURS", "168")),
            refresh_expire_days=int(os.getenv("JWT_REFRESH_EXPIRE_DAYS", "30")),
            identity_project_id=os.getenv("IDENTITY_PROJECT_ID") or None,
        )


@dataclass
class AppConfig:
    """Process-level settings: environment, CORS, storage and presence wiring."""
    environment: str = "development"
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:3001"]
    )
    storage_bucket: Optional[str] = None
    presence_backend: str = "memory"
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AppConfig":
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            environment=os.getenv("APP_ENV", "development").lower(),
            cors_origins=_split_csv(origins) if origins else
            ["http://localhost:3000", "http://localhost:3001"],
            storage_bucket=os.getenv("STORAGE_BUCKET") or None,
            presence_backend=os.getenv("PRESENCE_BACKEND", "memory").lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("LOG_DIR") or None,
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global config instances (lazy loaded)
_db_config = None
_redis_config = None
_auth_config = None
_app_config = None


def get_db_config() -> DatabaseConfig:
    """Get database configuration (singleton)."""
    global _db_config
    if _db_config is None:
        _db_config = DatabaseConfig.from_env()
    return _db_config


def get_redis_config() -> RedisConfig:
    """Get Redis configuration (singleton)."""
    global _redis_config
    if _redis_config is None:
        _redis_config = RedisConfig.from_env()
    return _redis_config


def get_auth_config() -> AuthConfig:
    """Get auth configuration (singleton)."""
    global _auth_config
    if _auth_config is None:
        _auth_config = AuthConfig.from_env()
    return _auth_config


def get_app_config() -> AppConfig:
    """Get application configuration (singleton)."""
    global _app_config
    if _app_config is None:
        _app_config = AppConfig.from_env()
    return _app_config


def reset_config():
    """Drop cached config so the next getter re-reads the environment."""
    global _db_config, _redis_config, _auth_config, _app_config
    _db_config = None
    _redis_config = None
    _auth_config = None
    _app_config = None
