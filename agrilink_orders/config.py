import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")

    # Paystack
    PAYSTACK_SECRET_KEY: str = os.getenv("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_BASE_URL: str = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_CALLBACK_URL: str = os.getenv("PAYSTACK_CALLBACK_URL", "")
    GATEWAY_TIMEOUT: float = float(os.getenv("GATEWAY_TIMEOUT", "30"))
    GATEWAY_MAX_RETRIES: int = int(os.getenv("GATEWAY_MAX_RETRIES", "3"))
    GATEWAY_RETRY_DELAY: float = float(os.getenv("GATEWAY_RETRY_DELAY", "1.0"))

    # Payments
    CURRENCY: str = os.getenv("CURRENCY", "GHS")
    MIN_CHARGE_MINOR_UNITS: int = int(os.getenv("MIN_CHARGE_MINOR_UNITS", "100"))

    # Settlement
    ALLOW_NEGATIVE_INVENTORY: bool = _flag("ALLOW_NEGATIVE_INVENTORY")
    PAYMENT_PENDING_TTL_MINUTES: int = int(os.getenv("PAYMENT_PENDING_TTL_MINUTES", "60"))

    # Sweep worker
    SWEEP_MIN_AGE_SECONDS: int = int(os.getenv("SWEEP_MIN_AGE_SECONDS", "300"))
    SWEEP_INTERVAL_SECONDS: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
    SWEEP_BATCH_SIZE: int = int(os.getenv("SWEEP_BATCH_SIZE", "20"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for the application"""
        url = self.POSTGRES_CONNECTION_STRING
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Sync URL for Alembic"""
        return self.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://", 1)


settings = Settings()
