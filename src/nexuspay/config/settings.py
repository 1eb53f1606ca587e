import logging
from dataclasses import dataclass, field
from typing import List, Optional

from nexuspay.utils.environment import (
    get_env_var, get_env_var_bool, get_env_var_int, get_env_var_list
)

logger = logging.getLogger("nexuspay.config")


@dataclass(frozen=True)
class DatabaseSettings:
    """Relational store for ramp transactions and users."""
    url: str = "sqlite:///./nexuspay.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 3600
    echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def engine_kwargs(self) -> dict:
        """SQLAlchemy engine configuration; pooling options only apply to server databases."""
        if self.is_sqlite:
            return {"connect_args": {"check_same_thread": False}, "echo": self.echo}
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": True,
            "echo": self.echo,
        }

    @classmethod
    def from_environment(cls) -> "DatabaseSettings":
        """Load database configuration from environment variables."""
        environment = get_env_var("ENVIRONMENT", "development")
        url = get_env_var("DATABASE_URL")

        if not url:
            if environment == "production":
                raise ValueError("DATABASE_URL is required in production")
            url = cls.url

        return cls(
            url=url,
            pool_size=get_env_var_int("DB_POOL_SIZE", 10),
            max_overflow=get_env_var_int("DB_MAX_OVERFLOW", 20),
            pool_timeout=get_env_var_int("DB_POOL_TIMEOUT", 30),
            pool_recycle=get_env_var_int("DB_POOL_RECYCLE", 3600),
            echo=get_env_var_bool("DB_ECHO", False),
        )


@dataclass(frozen=True)
class SecuritySettings:
    """Security and authentication configuration."""
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    cors_allow_methods: List[str] = field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_allow_headers: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_environment(cls) -> "SecuritySettings":
        """Load security settings with production validation."""
        jwt_secret = get_env_var("JWT_SECRET")
        environment = get_env_var("ENVIRONMENT", "development")

        if not jwt_secret:
            if environment == "production":
                raise ValueError("JWT_SECRET is required in production")
            jwt_secret = "dev_jwt_secret_at_least_32_characters_long_for_development"

        if len(jwt_secret) < 32:
            raise ValueError("JWT secret must be at least 32 characters long")

        cors_origins = get_env_var_list("CORS_ORIGINS", ["*"])
        if environment == "production" and "*" in cors_origins:
            logger.warning("CORS_ORIGINS allows '*' in production for the ramp API")

        return cls(
            jwt_secret=jwt_secret,
            jwt_algorithm=get_env_var("JWT_ALGORITHM", "HS256"),
            cors_origins=cors_origins,
            cors_allow_methods=get_env_var_list("CORS_ALLOW_METHODS", ["GET", "POST", "OPTIONS"]),
            cors_allow_headers=get_env_var_list("CORS_ALLOW_HEADERS", ["*"]),
        )


@dataclass(frozen=True)
class LoggingSettings:
    """Log sink configuration."""
    level: str = "INFO"
    json_logs: bool = False

    @classmethod
    def from_environment(cls, debug: bool = False) -> "LoggingSettings":
        return cls(
            level=get_env_var("LOG_LEVEL", "DEBUG" if debug else "INFO").upper(),
            json_logs=get_env_var_bool("LOG_JSON", False),
        )


@dataclass(frozen=True)
class AppSettings:
    """Main application settings aggregator."""
    app_name: str = "NexusPay Ramp"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False

    app_host: str = "0.0.0.0"
    app_port: int = 8000

    database: DatabaseSettings = field(default_factory=DatabaseSettings.from_environment)
    security: SecuritySettings = field(default_factory=SecuritySettings.from_environment)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_environment(cls) -> "AppSettings":
        """Load all settings from environment."""
        environment = get_env_var("ENVIRONMENT", "development")
        debug = get_env_var_bool("DEBUG", environment == "development")

        return cls(
            app_name=get_env_var("APP_NAME", "NexusPay Ramp"),
            app_version=get_env_var("APP_VERSION", "1.0.0"),
            environment=environment,
            debug=debug,
            app_host=get_env_var("APP_HOST", "0.0.0.0"),
            app_port=get_env_var_int("APP_PORT", 8000),
            logging=LoggingSettings.from_environment(debug),
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def validate_configuration(self) -> dict:
        """Validate configuration for production readiness."""
        errors = []
        warnings = []

        if self.is_production:
            if self.debug:
                errors.append("Debug mode must be disabled in production")
            if self.database.is_sqlite:
                errors.append("SQLite is not supported in production")
            if "*" in self.security.cors_origins:
                warnings.append("CORS origins include '*'")

        if not get_env_var("BACKEND_URL"):
            warnings.append("BACKEND_URL is not set; webhook forwarding is disabled")

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
            "environment": self.environment,
        }


def load_settings() -> AppSettings:
    """Build a fresh settings object from the current environment."""
    return AppSettings.from_environment()


try:
    settings = load_settings()
    logger.info(f"Configuration loaded for environment: {settings.environment}")
except Exception as exc:
    logger.critical("Failed to load configuration", exc_info=exc)
    raise

__all__ = ["settings", "AppSettings", "load_settings"]
