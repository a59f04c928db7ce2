import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"


@dataclass(frozen=True)
class Settings:
    database_url: str
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_timeout_seconds: float = 10.0
    stripe_max_network_retries: int = 2
    platform_fee_rate: Decimal = Decimal("0.15")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_path: Path = ENV_PATH) -> "Settings":
        load_dotenv(dotenv_path=env_path)

        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

        return cls(
            database_url=database_url,
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or None,
            stripe_timeout_seconds=float(os.getenv("STRIPE_TIMEOUT_SECONDS", "10")),
            stripe_max_network_retries=int(os.getenv("STRIPE_MAX_NETWORK_RETRIES", "2")),
            platform_fee_rate=Decimal(os.getenv("PLATFORM_FEE_RATE", "0.15")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
