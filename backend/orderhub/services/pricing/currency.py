"""
Currency conversion over a fixed exchange-rate table.

Rates are static configuration, not market data. Every rate is expressed in
units of the base currency, so any pair converts through the base:
``amount * rate(source) / rate(target)``.

Amounts are ``Decimal`` and no rounding policy is applied. Quotients that do
not terminate (USD -> BRL with the default table) are cut at the default
28-digit decimal context, so a conversion followed by the inverse conversion
is not guaranteed to reproduce the input exactly.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from orderhub.core.config import Settings, get_settings
from orderhub.core.exceptions import UnsupportedCurrencyError
from orderhub.core.logging import get_logger

logger = get_logger(__name__)


class Currency(str, Enum):
    """Currencies an order or product price can be denominated in."""

    ARS = "ARS"
    USD = "USD"
    BRL = "BRL"

    @classmethod
    def parse(cls, value: Union["Currency", str]) -> "Currency":
        """
        Convert an ISO code or legacy label to a Currency.

        Args:
            value: Currency, ISO code ("usd") or legacy label ("Dolar_usa")

        Returns:
            Currency enum value

        Raises:
            UnsupportedCurrencyError: If value names no known currency
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnsupportedCurrencyError(value)

        normalized = value.strip()
        legacy = _LEGACY_LABELS.get(normalized.lower())
        if legacy is not None:
            return legacy
        try:
            return cls(normalized.upper())
        except ValueError:
            raise UnsupportedCurrencyError(value) from None


_LEGACY_LABELS = {
    "peso_arg": Currency.ARS,
    "dolar_usa": Currency.USD,
    "real": Currency.BRL,
}


@dataclass(frozen=True)
class ExchangeRateTable:
    """
    Immutable table of rates relative to a base currency.

    Attributes:
        base: Reference currency (rate 1)
        rates: Units of base currency per unit of each currency
    """

    base: Currency
    rates: Mapping[Currency, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", Currency.parse(self.base))
        frozen = {}
        for currency, rate in self.rates.items():
            rate = Decimal(str(rate))
            if rate <= 0:
                raise ValueError(f"Exchange rate for {currency} must be positive")
            frozen[Currency.parse(currency)] = rate
        if frozen.get(self.base) != Decimal("1"):
            raise ValueError(f"Base currency {self.base.value} must have rate 1")
        object.__setattr__(self, "rates", MappingProxyType(frozen))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ExchangeRateTable":
        """Build the table from application settings."""
        settings = settings or get_settings()
        return cls(
            base=Currency.parse(settings.base_currency),
            rates={
                Currency.parse(code): rate
                for code, rate in settings.exchange_rates.items()
            },
        )

    @classmethod
    def default(cls) -> "ExchangeRateTable":
        """Table with the marketplace's standard quotes against ARS."""
        return cls(
            base=Currency.ARS,
            rates={
                Currency.ARS: Decimal("1"),
                Currency.USD: Decimal("1400"),
                Currency.BRL: Decimal("260"),
            },
        )

    def rate_for(self, currency: Any) -> Decimal:
        """
        Get the rate of a currency against the base.

        Raises:
            UnsupportedCurrencyError: If the currency is not configured
        """
        parsed = Currency.parse(currency)
        try:
            return self.rates[parsed]
        except KeyError:
            raise UnsupportedCurrencyError(parsed) from None


class CurrencyConverter:
    """Converts amounts between the currencies of a rate table."""

    def __init__(self, table: ExchangeRateTable):
        self.table = table

    def convert(self, amount: Decimal, source: Any, target: Any) -> Decimal:
        """
        Convert an amount from source to target currency.

        Args:
            amount: Amount denominated in source currency
            source: Source currency
            target: Target currency

        Returns:
            Amount denominated in target currency; ``amount`` itself when
            source and target are the same currency

        Raises:
            UnsupportedCurrencyError: If either currency is not configured
        """
        source_rate = self.table.rate_for(source)
        target_rate = self.table.rate_for(target)

        if Currency.parse(source) == Currency.parse(target):
            return amount

        converted = Decimal(amount) * source_rate / target_rate

        logger.debug(
            "Amount converted",
            amount=str(amount),
            source=Currency.parse(source).value,
            target=Currency.parse(target).value,
            converted=str(converted),
        )

        return converted
