"""
Tests for currency parsing, the exchange-rate table and conversion.
"""

from decimal import Decimal

import pytest

from orderhub.core.config import Settings
from orderhub.core.exceptions import UnsupportedCurrencyError
from orderhub.services.pricing.currency import (
    Currency,
    CurrencyConverter,
    ExchangeRateTable,
)


# ============================================================================
# Currency parsing
# ============================================================================


class TestCurrencyParse:
    """Test Currency.parse."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("ARS", Currency.ARS),
            ("usd", Currency.USD),
            (" brl ", Currency.BRL),
            ("Peso_arg", Currency.ARS),
            ("Dolar_usa", Currency.USD),
            ("Real", Currency.BRL),
            (Currency.USD, Currency.USD),
        ],
    )
    def test_parse_known_values(self, value, expected):
        assert Currency.parse(value) is expected

    @pytest.mark.parametrize("value", ["EUR", "", "peso", None, 42])
    def test_parse_unknown_values(self, value):
        with pytest.raises(UnsupportedCurrencyError) as exc_info:
            Currency.parse(value)

        assert exc_info.value.code == "UNSUPPORTED_CURRENCY"


# ============================================================================
# Exchange-rate table
# ============================================================================


class TestExchangeRateTable:
    """Test ExchangeRateTable construction and lookups."""

    def test_default_table(self, rate_table):
        assert rate_table.base is Currency.ARS
        assert rate_table.rate_for(Currency.ARS) == Decimal("1")
        assert rate_table.rate_for("USD") == Decimal("1400")
        assert rate_table.rate_for("Real") == Decimal("260")

    def test_rates_are_read_only(self, rate_table):
        with pytest.raises(TypeError):
            rate_table.rates[Currency.USD] = Decimal("1")

    def test_base_must_have_rate_one(self):
        with pytest.raises(ValueError, match="rate 1"):
            ExchangeRateTable(
                base=Currency.ARS,
                rates={Currency.ARS: Decimal("2"), Currency.USD: Decimal("1400")},
            )

    def test_rates_must_be_positive(self):
        with pytest.raises(ValueError, match="positive"):
            ExchangeRateTable(
                base=Currency.ARS,
                rates={Currency.ARS: Decimal("1"), Currency.USD: Decimal("0")},
            )

    def test_missing_currency_is_unsupported(self):
        table = ExchangeRateTable(
            base=Currency.USD,
            rates={Currency.USD: Decimal("1"), Currency.ARS: Decimal("0.001")},
        )

        with pytest.raises(UnsupportedCurrencyError):
            table.rate_for(Currency.BRL)

    def test_from_settings(self):
        settings = Settings(
            base_currency="usd",
            exchange_rates={"usd": "1", "ars": "0.0008", "brl": "0.2"},
        )

        table = ExchangeRateTable.from_settings(settings)

        assert table.base is Currency.USD
        assert table.rate_for(Currency.ARS) == Decimal("0.0008")
        assert table.rate_for(Currency.BRL) == Decimal("0.2")


# ============================================================================
# Conversion
# ============================================================================


class TestCurrencyConverter:
    """Test CurrencyConverter.convert."""

    @pytest.mark.parametrize("currency", list(Currency))
    def test_same_currency_returns_amount(self, converter, currency):
        amount = Decimal("123.45")

        assert converter.convert(amount, currency, currency) is amount

    def test_foreign_to_base(self, converter):
        assert converter.convert(Decimal("10"), Currency.USD, Currency.ARS) == Decimal(
            "14000"
        )

    def test_base_to_foreign(self, converter):
        assert converter.convert(Decimal("2600"), Currency.ARS, Currency.BRL) == Decimal(
            "10"
        )

    def test_cross_rate_routes_through_base(self, converter):
        result = converter.convert(Decimal("10"), Currency.USD, Currency.BRL)

        assert result == Decimal("10") * Decimal("1400") / Decimal("260")
        assert Decimal("53.84") < result < Decimal("53.85")

    def test_legacy_labels_accepted(self, converter):
        assert converter.convert(Decimal("1"), "Dolar_usa", "Peso_arg") == Decimal(
            "1400"
        )

    @pytest.mark.parametrize(
        "source,target",
        [("EUR", Currency.ARS), (Currency.ARS, "EUR"), ("EUR", "EUR")],
    )
    def test_unsupported_currency(self, converter, source, target):
        with pytest.raises(UnsupportedCurrencyError):
            converter.convert(Decimal("1"), source, target)

    def test_currency_missing_from_table(self):
        converter = CurrencyConverter(
            ExchangeRateTable(
                base=Currency.ARS,
                rates={Currency.ARS: Decimal("1"), Currency.USD: Decimal("1400")},
            )
        )

        with pytest.raises(UnsupportedCurrencyError):
            converter.convert(Decimal("1"), Currency.BRL, Currency.ARS)
