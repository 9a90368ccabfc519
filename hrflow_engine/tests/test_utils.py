import logging
from decimal import Decimal

from hrflow.core.utils import format_currency, floor_money, minor_units, round_money, setup_logging, to_decimal

def test_setup_logging_idempotent(tmp_path):
    tenant = "tmptest"
    logger1 = setup_logging(tenant, log_dir=str(tmp_path))
    handlers_before = len(logger1.handlers)
    logger2 = setup_logging(tenant, log_dir=str(tmp_path))
    handlers_after = len(logger2.handlers)
    assert handlers_before == handlers_after
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger2.handlers)
    assert logger2.propagate is False

def test_minor_units():
    assert minor_units("BHD") == 3
    assert minor_units("kwd") == 3
    assert minor_units("SAR") == 2
    assert minor_units("USD") == 2

def test_round_money_half_up_and_floor():
    assert round_money("1.0005", "BHD") == Decimal("1.001")
    assert round_money("1.005", "SAR") == Decimal("1.01")
    assert floor_money("33.3339", "BHD") == Decimal("33.333")
    assert floor_money("33.339", "USD") == Decimal("33.33")

def test_to_decimal_keeps_short_floats():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal(None) == Decimal("0")

def test_format_currency():
    assert format_currency(1234.5, "BHD") == "BD 1,234.500"
    assert format_currency(10, "USD") == "$ 10.00"
    assert format_currency(None, "SAR") == "SAR 0.00"
