import os
from dataclasses import dataclass
from pathlib import Path
import json
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class LedgerConfig:
    database_url: str
    log_level: str
    unit_price: int
    currency: str
    product_name: str
    cashapp_cashtag: str
    feed_buffer_size: int
    feed_keepalive_seconds: float


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_currency(value: Optional[str]) -> str:
    v = (value or "USD").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def validate_log_level(value: Optional[str]) -> str:
    v = str(value or "INFO").strip().upper()
    if v not in LOG_LEVELS:
        raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
    return v


def validate_positive_int(value, name: str, default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        v = int(str(value).strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer") from None
    if v <= 0:
        raise ValueError(f"{name} must be > 0")
    return v


def validate_positive_float(value, name: str, default: float) -> float:
    if value is None or str(value).strip() == "":
        return default
    try:
        v = float(str(value).strip())
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds") from None
    if not v > 0 or v == float("inf"):
        raise ValueError(f"{name} must be > 0")
    return v


def _load_settings_file(path: Optional[Path] = None) -> dict:
    path = path or Path(__file__).resolve().parents[1] / "data" / "settings.json"
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            return data if isinstance(data, dict) else {}
    except (OSError, ValueError):
        pass
    return {}


def load_env(
    settings_path: Optional[Path] = None,
    default_database_url: str = "sqlite:///data/orders.db",
) -> LedgerConfig:
    # data/settings.json wins over the environment, .env fills the environment
    load_dotenv()
    s = _load_settings_file(settings_path)

    def pick(key: str, default=None):
        return s.get(key) or os.getenv(key) or default

    return LedgerConfig(
        database_url=pick("DATABASE_URL", default_database_url),
        log_level=validate_log_level(pick("LOG_LEVEL")),
        unit_price=validate_positive_int(pick("UNIT_PRICE"), "UNIT_PRICE", 25),
        currency=validate_currency(pick("CURRENCY")),
        product_name=pick("PRODUCT_NAME", '"The Classic" Minimalist Tee'),
        cashapp_cashtag=str(pick("CASHAPP_CASHTAG", "$yourcashtag")),
        feed_buffer_size=validate_positive_int(pick("FEED_BUFFER_SIZE"), "FEED_BUFFER_SIZE", 256),
        feed_keepalive_seconds=validate_positive_float(
            pick("FEED_KEEPALIVE_SECONDS"), "FEED_KEEPALIVE_SECONDS", 15.0
        ),
    )
