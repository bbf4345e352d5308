import logging
import warnings

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production

    # Server
    registry_host: str = "0.0.0.0"
    registry_port: int = 8000

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/agentregistry.db"

    # Auth (sessions are issued by the wallet sign-in service)
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7 days

    # Public URL used for token URIs and agent cards
    app_base_url: str = "http://localhost:3000"

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Confirmation pipeline
    confirm_max_attempts: int = 5
    confirm_base_delay_seconds: float = 3.0  # 3s, 6s, 12s, 24s
    confirm_deadline_seconds: float = 240.0
    receipt_confirmations: int = 1
    publish_receipt_timeout_seconds: float = 30.0
    enable_reviews_receipt_timeout_seconds: float = 60.0
    review_receipt_timeout_seconds: float = 30.0
    receipt_poll_interval_seconds: float = 2.0
    rpc_request_timeout_seconds: float = 10.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

# Warn on insecure defaults (logged at startup, not a hard error for dev convenience)
_logger = logging.getLogger("agentregistry.config")
_INSECURE_SECRETS = {
    "dev-secret-change-in-production",
    "change-me-to-a-random-string",
    "change-me-to-a-random-64-char-string",
}


def validate_security_posture(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    if cfg.jwt_secret_key in _INSECURE_SECRETS:
        if is_prod:
            raise RuntimeError(
                "FATAL: JWT_SECRET_KEY is set to an insecure default. "
                "Set a strong random secret via the JWT_SECRET_KEY environment variable before deploying to production."
            )
        warnings.warn(
            "JWT_SECRET_KEY is set to the default insecure value. "
            "Set a strong random secret via the JWT_SECRET_KEY environment variable for production.",
            stacklevel=1,
        )

    if cfg.cors_origins == "*":
        if is_prod:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS cannot be '*' in production. "
                "Set explicit trusted origins via the CORS_ORIGINS environment variable."
            )
        _logger.warning(
            "CORS_ORIGINS is set to '*' (allow all). "
            "Configure specific origins for production via the CORS_ORIGINS environment variable."
        )


validate_security_posture(settings)
