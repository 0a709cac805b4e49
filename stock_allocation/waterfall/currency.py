"""
Currency Conversion
===================
Converts local-currency amounts to the single reporting currency.

System rate chain:
    1. Already in reporting currency        -> amount
    2. Direct rate to reporting exists      -> amount * direct_rate
    3. Otherwise via the reference currency -> amount / base_rate * reference_to_reporting

A zero, missing or NaN rate makes the amount unconvertible: the value is 0.0 and
the result is flagged converted=False. This applies to every value column.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import pandas as pd

logger = logging.getLogger(__name__)

IDENTITY = "identity"
DIRECT = "direct"
REFERENCE = "reference"
TRANSACTION = "transaction"
UNCONVERTIBLE = "unconvertible"


@dataclass(frozen=True)
class ExchangeRateTable:
    """Exchange rates supplied for one allocation run"""
    reporting_currency: str = "GBP"
    reference_currency: str = "EUR"
    # local -> reporting multipliers
    direct_rates: Dict[str, float] = field(default_factory=dict)
    # units of local currency per one unit of reference currency
    base_rates: Dict[str, float] = field(default_factory=dict)
    # units of reporting currency per one unit of reference currency
    reference_to_reporting: Optional[float] = None

    def direct_rate(self, currency: str) -> Optional[float]:
        if currency == self.reference_currency and _usable_rate(self.reference_to_reporting):
            return self.reference_to_reporting
        rate = self.direct_rates.get(currency)
        return rate if _usable_rate(rate) else None

    def base_rate(self, currency: str) -> Optional[float]:
        rate = self.base_rates.get(currency)
        return rate if _usable_rate(rate) else None


@dataclass(frozen=True)
class ConversionResult:
    """Converted amount with the method used; value is 0.0 when unconvertible"""
    value: float
    converted: bool
    method: str


def _usable_rate(rate: Any) -> bool:
    if rate is None:
        return False
    try:
        rate = float(rate)
    except (TypeError, ValueError):
        return False
    return not math.isnan(rate) and rate != 0


def _unconvertible() -> ConversionResult:
    return ConversionResult(value=0.0, converted=False, method=UNCONVERTIBLE)


def convert_to_reporting(amount: Optional[float], source_currency: Optional[str],
                         rates: ExchangeRateTable,
                         system_rate: Optional[float] = None) -> ConversionResult:
    """
    Convert an amount to the reporting currency using system rates

    Args:
        amount: Local-currency amount
        source_currency: Currency of the amount
        rates: Rate table for the run
        system_rate: Line-level local-per-reference rate, preferred over the table

    Returns:
        ConversionResult
    """
    if amount is None or pd.isna(amount):
        return _unconvertible()

    amount = float(amount)
    currency = (source_currency or "").upper()

    if currency == rates.reporting_currency:
        return ConversionResult(value=amount, converted=True, method=IDENTITY)

    direct = rates.direct_rate(currency)
    if direct is not None:
        return ConversionResult(value=amount * float(direct), converted=True, method=DIRECT)

    base = float(system_rate) if _usable_rate(system_rate) else rates.base_rate(currency)
    if base is not None and _usable_rate(rates.reference_to_reporting):
        value = amount * (1 / base) * float(rates.reference_to_reporting)
        return ConversionResult(value=value, converted=True, method=REFERENCE)

    logger.debug(f"No usable rate from {currency or 'unknown'} to {rates.reporting_currency}")
    return _unconvertible()


def convert_with_transaction_rate(amount: Optional[float], exchange_rate: Optional[float]) -> ConversionResult:
    """Convert an amount with the order's own rate (local units per reporting unit)"""
    if amount is None or pd.isna(amount) or not _usable_rate(exchange_rate):
        return _unconvertible()
    return ConversionResult(value=float(amount) / float(exchange_rate), converted=True, method=TRANSACTION)
