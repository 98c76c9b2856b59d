"""Configuration settings for the SmallBizAgent backend.

Wraps environment variables and provides defaults.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import PostgresDsn, ValidationInfo, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class.

    Attributes:
    ----------
        PROJECT_NAME (str): The name of the project.
        LOCAL_DEVELOPMENT (bool): Whether the application is running locally.
        ENVIRONMENT (str): The deployment environment (local, dev, test, prod).
        AUTH_ENABLED (bool): Whether requests must carry an authenticated session.
        DEBUG (bool): Whether debug mode is enabled.
        LOG_LEVEL (str): The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        POSTGRES_HOST (str): The PostgreSQL server hostname.
        POSTGRES_DB (str): The PostgreSQL database name.
        POSTGRES_USER (str): The PostgreSQL username.
        POSTGRES_PASSWORD (str): The PostgreSQL password.
        SQLALCHEMY_ASYNC_DATABASE_URI (Optional[PostgresDsn]): The SQLAlchemy async database URI.
        RUN_ALEMBIC_MIGRATIONS (bool): Whether to run the alembic migrations on startup.
        SEED_SUBSCRIPTION_PLANS (bool): Whether to seed the default plan tiers into an
            empty plan catalog on startup.
        STRIPE_SECRET_KEY (Optional[str]): The Stripe secret API key.
        STRIPE_WEBHOOK_SECRET (Optional[str]): The Stripe webhook endpoint signing secret.
        STRIPE_API_VERSION (str): The Stripe API version pinned on every request.
        STRIPE_TIMEOUT_SECONDS (float): Upper bound for a single Stripe call.
        STRIPE_PRODUCT_PREFIX (str): Prefix for the deterministic Stripe product ids.
        BILLING_CURRENCY (str): ISO currency code used for plan prices.
        ADDITIONAL_CORS_ORIGINS (Optional[list[str]]): Additional CORS origins separated by commas.
    """

    PROJECT_NAME: str = "SmallBizAgent"
    LOCAL_DEVELOPMENT: bool = False
    ENVIRONMENT: str = "local"

    AUTH_ENABLED: bool = False

    # Debug configuration
    DEBUG: bool = False

    # Logging configuration
    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: str = "localhost"
    POSTGRES_DB: str = "smallbizagent"
    POSTGRES_USER: str = "smallbizagent"
    POSTGRES_PASSWORD: str = ""
    SQLALCHEMY_ASYNC_DATABASE_URI: Optional[PostgresDsn] = None

    RUN_ALEMBIC_MIGRATIONS: bool = False
    SEED_SUBSCRIPTION_PLANS: bool = True

    # Stripe configuration
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_API_VERSION: str = "2024-06-20"
    STRIPE_TIMEOUT_SECONDS: float = 10.0
    STRIPE_PRODUCT_PREFIX: str = "sba_plan"
    BILLING_CURRENCY: str = "usd"

    ADDITIONAL_CORS_ORIGINS: Optional[str] = None  # Separated by commas or semicolons

    @field_validator("ADDITIONAL_CORS_ORIGINS", mode="before")
    def parse_cors_origins(cls, v: Optional[str]) -> Optional[str]:
        """Normalize CORS origins so both comma and semicolon separators are accepted.

        Args:
            v: The CORS origins string.

        Returns:
            Optional[str]: Comma separated origins or None.
        """
        if v is None:
            return v
        if isinstance(v, list):
            return ",".join(v)
        return ",".join(origin.strip() for origin in v.replace(";", ",").split(",") if origin)

    @field_validator("SQLALCHEMY_ASYNC_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> PostgresDsn:
        """Build the SQLAlchemy database URI.

        Args:
        ----
            v (Optional[str]): The value of the SQLALCHEMY_ASYNC_DATABASE_URI setting.
            info (ValidationInfo): The validation context containing all field values.

        Returns:
        -------
            PostgresDsn: The assembled SQLAlchemy async database URI.

        """
        if isinstance(v, str):
            return v

        return PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=info.data.get("POSTGRES_USER"),
            password=info.data.get("POSTGRES_PASSWORD") or None,
            host=info.data.get("POSTGRES_HOST", "localhost"),
            path=f"{info.data.get('POSTGRES_DB') or ''}",
        )

    @property
    def STRIPE_ENABLED(self) -> bool:
        """Whether both Stripe credentials are present.

        Returns:
            bool: True when billing can talk to Stripe.
        """
        return bool(self.STRIPE_SECRET_KEY and self.STRIPE_WEBHOOK_SECRET)

    @property
    def cors_origins(self) -> list[str]:
        """Additional CORS origins as a list."""
        if not self.ADDITIONAL_CORS_ORIGINS:
            return []
        return [origin for origin in self.ADDITIONAL_CORS_ORIGINS.split(",") if origin]


@dataclass(frozen=True)
class BillingConfig:
    """Immutable billing configuration, decided once when the app is wired."""

    secret_key: str
    webhook_secret: str
    api_version: str
    timeout_seconds: float
    currency: str = "usd"
    product_prefix: str = "sba_plan"

    @classmethod
    def from_settings(cls, settings: "Settings") -> Optional["BillingConfig"]:
        """Build the billing configuration, or None when Stripe is not configured."""
        if not settings.STRIPE_ENABLED:
            return None
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            api_version=settings.STRIPE_API_VERSION,
            timeout_seconds=settings.STRIPE_TIMEOUT_SECONDS,
            currency=settings.BILLING_CURRENCY,
            product_prefix=settings.STRIPE_PRODUCT_PREFIX,
        )


settings = Settings()
