import os
import logging
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_WILDCARD_SUFFIXES = (".localhost", ".sslip.io", ".nip.io")

# Required when ENVIRONMENT=production
REQUIRED_IN_PRODUCTION = ("DATABASE_URL", "DATABASE_NAME", "JWT_SECRET", "JWT_REFRESH_SECRET")

# Older deployments set SECRET_KEY instead of JWT_SECRET
ALTERNATE_NAMES = {"JWT_SECRET": "SECRET_KEY"}


class ConfigurationError(RuntimeError):
    pass


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Process-wide configuration, built once at startup and never mutated."""

    model_config = ConfigDict(frozen=True)

    environment: str = "development"
    port: int = 8000
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    jwt_secret: str = "supersecretkey"
    jwt_refresh_secret: str = "supersecretrefreshkey"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    refresh_token_expire_days: int = 7
    frontend_port: str = "5173"
    store_domain: str = "localhost"
    store_port: str = "3001"
    main_domain: str = "yourdomain.com"
    wildcard_suffixes: Tuple[str, ...] = DEFAULT_WILDCARD_SUFFIXES
    use_transactions: bool = False
    upload_dir: str = "uploads"
    max_upload_mb: int = 10
    cors_origins: Tuple[str, ...] = ("*",)
    default_language: str = "ko"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        environment = env.get("ENVIRONMENT", env.get("NODE_ENV", "development"))
        if environment == "production":
            missing = [
                key for key in REQUIRED_IN_PRODUCTION
                if not env.get(key) and not env.get(ALTERNATE_NAMES.get(key, ""))
            ]
            if missing:
                raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        values = {
            "environment": environment,
            "port": int(env.get("PORT", 8000)),
            "database_url": env.get("DATABASE_URL"),
            "database_name": env.get("DATABASE_NAME"),
            "access_token_expire_minutes": int(env.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)),
            "refresh_token_expire_days": int(env.get("REFRESH_TOKEN_EXPIRE_DAYS", 7)),
            "frontend_port": env.get("FRONTEND_PORT", "5173"),
            "store_domain": env.get("STORE_DOMAIN", "localhost"),
            "store_port": env.get("STORE_PORT", "3001"),
            "main_domain": env.get("MAIN_DOMAIN", "yourdomain.com"),
            "use_transactions": _flag(env.get("USE_TRANSACTIONS")),
            "upload_dir": env.get("UPLOAD_DIR", "uploads"),
            "max_upload_mb": int(env.get("MAX_UPLOAD_MB", 10)),
            "default_language": env.get("DEFAULT_LANGUAGE", "ko"),
            "log_level": env.get("LOG_LEVEL", "INFO"),
        }
        secret = env.get("JWT_SECRET") or env.get("SECRET_KEY")
        if secret:
            values["jwt_secret"] = secret
        if env.get("JWT_REFRESH_SECRET"):
            values["jwt_refresh_secret"] = env["JWT_REFRESH_SECRET"]
        if _split(env.get("WILDCARD_SUFFIXES")):
            values["wildcard_suffixes"] = tuple(_split(env.get("WILDCARD_SUFFIXES")))
        if _split(env.get("CORS_ORIGINS")):
            values["cors_origins"] = tuple(_split(env.get("CORS_ORIGINS")))
        return cls(**values)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if not settings.is_production and settings.jwt_secret == Settings().jwt_secret:
        logger.warning("JWT_SECRET is not set, using the development default")
    logger.info("Environment: %s, port: %s", settings.environment, settings.port)
