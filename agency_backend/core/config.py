import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %s", name, raw, default)
        return default


class Settings:
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Fafali Visa & Tours")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "agency")
    MONGODB_TLS: bool = _env_bool("MONGODB_TLS", False)

    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change-me-access-secret")
    JWT_REFRESH_SECRET_KEY: str = os.getenv("JWT_REFRESH_SECRET_KEY", "change-me-refresh-secret")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = _env_int("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 60)
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = _env_int("JWT_REFRESH_TOKEN_EXPIRE_DAYS", 7)
    MAX_REFRESH_TOKENS: int = _env_int("MAX_REFRESH_TOKENS", 5)
    PASSWORD_RESET_TOKEN_EXPIRE_MINUTES: int = _env_int("PASSWORD_RESET_TOKEN_EXPIRE_MINUTES", 60)
    BCRYPT_ROUNDS: int = _env_int("BCRYPT_ROUNDS", 12)

    CLIENT_URL: str = os.getenv("CLIENT_URL", "http://localhost:3000")

    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_SIZE: int = _env_int("MAX_UPLOAD_SIZE", 10 * 1024 * 1024)
    MAX_FILES_PER_UPLOAD: int = _env_int("MAX_FILES_PER_UPLOAD", 10)

    RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS: int = _env_int("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)
    RATE_LIMIT_MAX_REQUESTS: int = _env_int("RATE_LIMIT_MAX_REQUESTS", 100)
    AUTH_RATE_LIMIT_MAX_ATTEMPTS: int = _env_int("AUTH_RATE_LIMIT_MAX_ATTEMPTS", 5)
    ADMIN_RATE_LIMIT_MAX_REQUESTS: int = _env_int("ADMIN_RATE_LIMIT_MAX_REQUESTS", 30)
    ADMIN_RATE_LIMIT_WINDOW_SECONDS: int = _env_int("ADMIN_RATE_LIMIT_WINDOW_SECONDS", 60)
    PASSWORD_RESET_RATE_LIMIT_MAX: int = _env_int("PASSWORD_RESET_RATE_LIMIT_MAX", 3)
    PASSWORD_RESET_RATE_LIMIT_WINDOW_SECONDS: int = _env_int("PASSWORD_RESET_RATE_LIMIT_WINDOW_SECONDS", 60 * 60)
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    # HTTP mail relay; when EMAIL_API_URL is empty outbound mail is disabled
    EMAIL_API_URL: str = os.getenv("EMAIL_API_URL", "")
    EMAIL_API_KEY: str = os.getenv("EMAIL_API_KEY", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "noreply@fafaligroup.org")
    ADMIN_NOTIFICATION_EMAIL: str = os.getenv("ADMIN_EMAIL", "visas@fafaligroup.org")

    APPLICATION_REFERENCE_PREFIX: str = os.getenv("APPLICATION_REFERENCE_PREFIX", "FAF")
    BOOKING_REFERENCE_PREFIX: str = os.getenv("BOOKING_REFERENCE_PREFIX", "BK")

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


settings = Settings()


def mask_secret(val: str) -> str:
    if not val:
        return "<missing>"
    if len(val) <= 8:
        return "*" * len(val)
    return f"{val[:4]}...{val[-4:]}"


if settings.JWT_SECRET_KEY.startswith("change-me"):
    logger.warning("JWT_SECRET_KEY is not configured, using an insecure default")
else:
    logger.debug("Loaded JWT_SECRET_KEY: %s", mask_secret(settings.JWT_SECRET_KEY))
