import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        locale: str,
        default_exchange_rate: Decimal,
        base_currency: str,
        foreign_currency: str,
    ) -> None:
        self.database_url = database_url
        self.locale = locale
        self.default_exchange_rate = default_exchange_rate
        self.base_currency = base_currency
        self.foreign_currency = foreign_currency


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("MONEYPLANNER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "moneyplanner.db"
    database_url = os.getenv("MONEYPLANNER_DATABASE_URL", f"sqlite:///{default_db}")
    locale = os.getenv("MONEYPLANNER_LOCALE", "en").lower()
    if locale not in ("en", "uk"):
        locale = "en"
    default_exchange_rate = Decimal(
        os.getenv("MONEYPLANNER_DEFAULT_EXCHANGE_RATE", "41.5")
    )
    base_currency = os.getenv("MONEYPLANNER_BASE_CURRENCY", "UAH")
    foreign_currency = os.getenv("MONEYPLANNER_FOREIGN_CURRENCY", "USD")
    return Settings(
        database_url=database_url,
        locale=locale,
        default_exchange_rate=default_exchange_rate,
        base_currency=base_currency,
        foreign_currency=foreign_currency,
    )
