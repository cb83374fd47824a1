"""Price conversion between marketplace currencies."""

from orderhub.services.pricing.currency import (
    Currency,
    CurrencyConverter,
    ExchangeRateTable,
)

__all__ = ["Currency", "CurrencyConverter", "ExchangeRateTable"]
