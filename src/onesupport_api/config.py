"""
Configuration for the OneSupport API.
"""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "default_jwt_secret"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        logger.warning(f"Invalid integer for {name}, using {default}")
        return default


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name) or default
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class ApiConfig:
    """Configuration for the API Lambda."""

    # Environment
    environment: str = field(
        default_factory=lambda: os.environ.get("ENVIRONMENT", "development")
    )
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))

    # JWT Configuration
    jwt_secret: str = field(
        default_factory=lambda: os.environ.get("JWT_SECRET", DEFAULT_JWT_SECRET)
    )
    jwt_expires_hours: int = field(default_factory=lambda: _env_int("JWT_EXPIRES_HOURS", 8))
    jwt_refresh_days: int = field(default_factory=lambda: _env_int("JWT_REFRESH_DAYS", 7))

    # AWS Configuration
    aws_region: str = field(
        default_factory=lambda: os.environ.get("AWS_REGION", "ap-southeast-2")
    )

    # Amazon Connect Configuration
    connect_instance_id: str = field(
        default_factory=lambda: os.environ.get("CONNECT_INSTANCE_ID", "")
    )

    # DynamoDB Table Names
    users_table: str = field(
        default_factory=lambda: os.environ.get("USERS_TABLE", "dev-onesupportai-users")
    )
    products_table: str = field(
        default_factory=lambda: os.environ.get("PRODUCTS_TABLE", "dev-onesupportai-products")
    )
    cases_table: str = field(
        default_factory=lambda: os.environ.get("CASES_TABLE", "dev-onesupportai-cases")
    )
    conversations_table: str = field(
        default_factory=lambda: os.environ.get(
            "CONVERSATIONS_TABLE", "dev-onesupportai-conversations"
        )
    )

    # Document storage
    s3_bucket: str = field(
        default_factory=lambda: os.environ.get("S3_BUCKET", "customer-service-docs")
    )
    presigned_url_expires: int = field(
        default_factory=lambda: _env_int("PRESIGNED_URL_EXPIRES", 3600)
    )

    # Cases
    alert_threshold_hours: int = field(
        default_factory=lambda: _env_int("ALERT_THRESHOLD_HOURS", 24)
    )

    # CORS Configuration
    allowed_origins: list[str] = field(
        default_factory=lambda: _env_list(
            "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5000"
        )
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local", "test")


def validate_config(config: ApiConfig) -> bool:
    """Check that settings needed outside local development are present."""
    missing = []
    if not config.jwt_secret or (
        config.jwt_secret == DEFAULT_JWT_SECRET and not config.is_development
    ):
        missing.append("JWT_SECRET")
    if not config.connect_instance_id:
        missing.append("CONNECT_INSTANCE_ID")

    if missing:
        logger.warning(f"Missing required environment variables: {', '.join(missing)}")
        return False

    logger.info("All required environment variables are set")
    return True


config = ApiConfig()
