import itertools

import pytest

from fx_rates import (
    DEFAULT_RATES,
    RateTable,
    RateTableStore,
    convert,
    format_amount,
    static_rate_table,
)


def test_static_table_is_usd_based() -> None:
    table = static_rate_table()
    assert table.base == "USD"
    assert table.rates["USD"] == 1
    assert table.rates["EUR"] == 0.93
    with pytest.raises(TypeError):
        table.rates["EUR"] = 1.0  # type: ignore[index]


def test_convert_pivots_through_base() -> None:
    table = RateTable(base="USD", rates={"USD": 1.0, "EUR": 0.93})
    assert convert(table, 100, "USD", "EUR") == pytest.approx(93.0)
    assert convert(table, 93, "EUR", "USD") == pytest.approx(100.0)


def test_convert_identity_for_every_currency() -> None:
    table = static_rate_table()
    for code in DEFAULT_RATES:
        assert convert(table, 123.45, code, code) == pytest.approx(123.45)


def test_convert_round_trip_for_every_pair() -> None:
    table = static_rate_table()
    for a, b in itertools.permutations(DEFAULT_RATES, 2):
        there = convert(table, 250.0, a, b)
        assert convert(table, there, b, a) == pytest.approx(250.0)


def test_unknown_currency_leaves_amount_unchanged() -> None:
    table = static_rate_table()
    assert convert(table, 42.0, "USD", "XXX") == 42.0
    assert convert(table, 42.0, "XXX", "EUR") == 42.0


def test_codes_are_case_insensitive() -> None:
    table = static_rate_table()
    assert convert(table, 100, "usd", "eur") == pytest.approx(93.0)


def test_rebased_static_table_converts_the_same() -> None:
    usd = static_rate_table("USD")
    eur = static_rate_table("EUR")
    assert eur.base == "EUR"
    assert eur.rates["EUR"] == 1.0
    assert convert(eur, 100, "GBP", "JPY") == pytest.approx(
        convert(usd, 100, "GBP", "JPY")
    )


def test_format_amount() -> None:
    assert format_amount(1234.5, "USD") == "$1,234.50"
    assert format_amount(-12, "EUR") == "-€12.00"
    assert format_amount(14932.4, "JPY") == "¥14,932"
    assert format_amount(57.339, "PHP") == "₱57.34"
    assert format_amount(5, "CHF") == "CHF 5.00"
    assert format_amount(-0.001, "USD") == "$0.00"


def test_store_replaces_whole_table() -> None:
    store = RateTableStore(static_rate_table())
    replacement = RateTable(base="USD", rates={"USD": 1, "EUR": 0.9}, source="test")
    store.replace(replacement)
    assert store.current is replacement
    assert "GBP" not in store.current.rates


def test_table_rescales_when_base_rate_is_not_one() -> None:
    table = RateTable(base="USD", rates={"USD": 2.0, "EUR": 1.86})
    assert table.rates["USD"] == 1.0
    assert table.rates["EUR"] == pytest.approx(0.93)
    assert convert(table, 100, "USD", "EUR") == pytest.approx(93.0)


def test_table_rejects_non_positive_base_rate() -> None:
    with pytest.raises(ValueError):
        RateTable(base="USD", rates={"USD": 0, "EUR": 0.93})
