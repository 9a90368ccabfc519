import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Union

from hrflow.core.config import settings

Number = Union[int, float, str, Decimal]

CURRENCY_SYMBOLS = {
    "BHD": "BD",
    "SAR": "SAR",
    "AED": "AED",
    "KWD": "KWD",
    "OMR": "OMR",
    "QAR": "QAR",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}

def mkdir_safe(path: str):
    Path(path).mkdir(parents=True, exist_ok=True)

def setup_logging(tenant_id: str = "system", *, log_level: str = None, log_dir: str = None):
    logger_name = f"{settings.APP_NAME}.{tenant_id}"
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger
    level = log_level or settings.LOG_LEVEL
    logger.setLevel(getattr(logging, level))
    audit_dir = log_dir or settings.AUDIT_LOG_PATH
    mkdir_safe(audit_dir)
    logfile = Path(audit_dir) / f"{tenant_id}.log"
    handler = RotatingFileHandler(str(logfile), maxBytes=10_000_000, backupCount=5)
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    if os.getenv("DEV", "").lower() in ("1","true","yes"):
        ch = logging.StreamHandler()
        ch.setFormatter(formatter)
        logger.addHandler(ch)
    logger.propagate = False
    return logger

def to_decimal(value: Number) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))

def minor_units(currency: str = None) -> int:
    code = (currency or settings.DEFAULT_CURRENCY).upper()
    return 3 if code in settings.THREE_DECIMAL_CURRENCIES else 2

def round_money(amount: Number, currency: str = None, *, rounding=ROUND_HALF_UP) -> Decimal:
    """Quantize to the currency's minor unit (3 decimals for BHD/KWD/OMR, else 2)."""
    quantum = Decimal(1).scaleb(-minor_units(currency))
    return to_decimal(amount).quantize(quantum, rounding=rounding)

def floor_money(amount: Number, currency: str = None) -> Decimal:
    return round_money(amount, currency, rounding=ROUND_DOWN)

def currency_symbol(currency_code: str) -> str:
    return CURRENCY_SYMBOLS.get(currency_code, currency_code)

def format_currency(amount: Number, currency_code: str) -> str:
    safe_amount = round_money(amount or 0, currency_code)
    return f"{currency_symbol(currency_code)} {safe_amount:,.{minor_units(currency_code)}f}"
