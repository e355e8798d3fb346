from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv

from domain.amounts import parse_ada


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration, read from the environment (and a `.env` file).

    Amounts are stored in lovelace; the environment gives them in ADA.
    """

    db_path: str = "dice.db"
    discord_token: Optional[str] = None
    telegram_token: Optional[str] = None
    payout_multiplier: Decimal = Decimal("5.5")
    min_confirmations: int = 3
    min_bet: int = 100_000
    max_bet: int = 100_000_000
    min_deposit: int = 2_000_000
    address_service_url: Optional[str] = None
    address_service_timeout: float = 10.0
    deposit_address_ttl_hours: int = 24
    webhook_secret: Optional[str] = None
    webhook_signature_header: str = "X-Signature"
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8000
    log_level: str = "INFO"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_settings() -> Settings:
    load_dotenv()

    defaults = Settings()
    return Settings(
        db_path=_env("DB_PATH") or defaults.db_path,
        discord_token=_env("DISCORD_TOKEN"),
        telegram_token=_env("TELEGRAM_TOKEN"),
        payout_multiplier=Decimal(_env("PAYOUT_MULTIPLIER") or defaults.payout_multiplier),
        min_confirmations=int(_env("MIN_CONFIRMATIONS") or defaults.min_confirmations),
        min_bet=parse_ada(_env("MIN_BET") or "0.1"),
        max_bet=parse_ada(_env("MAX_BET") or "100"),
        min_deposit=parse_ada(_env("MIN_DEPOSIT") or "2"),
        address_service_url=_env("ADDRESS_SERVICE_URL"),
        address_service_timeout=float(
            _env("ADDRESS_SERVICE_TIMEOUT") or defaults.address_service_timeout
        ),
        deposit_address_ttl_hours=int(
            _env("DEPOSIT_ADDRESS_TTL_HOURS") or defaults.deposit_address_ttl_hours
        ),
        webhook_secret=_env("WEBHOOK_SECRET"),
        webhook_signature_header=_env("WEBHOOK_SIGNATURE_HEADER")
        or defaults.webhook_signature_header,
        webhook_host=_env("HOST") or defaults.webhook_host,
        webhook_port=int(_env("PORT") or defaults.webhook_port),
        log_level=(_env("LOG_LEVEL") or defaults.log_level).upper(),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
