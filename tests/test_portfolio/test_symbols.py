"""Tests for pair symbol splitting."""

import pytest

from tracker.exceptions import InvalidInputError
from tracker.portfolio.symbols import split_symbol

QUOTES = ["USDT", "FDUSD", "USD", "BTC"]


@pytest.mark.parametrize(
    "symbol,expected",
    [
        ("BTCUSDT", ("BTC", "USDT")),
        ("ethfdusd", ("ETH", "FDUSD")),
        ("ETHBTC", ("ETH", "BTC")),
        ("XYZUSD", ("XYZ", "USD")),
    ],
)
def test_longest_quote_suffix_wins(symbol, expected) -> None:
    assert split_symbol(symbol, QUOTES) == expected


@pytest.mark.parametrize("symbol", ["USDT", "BTCEUR", ""])
def test_unrecognized_quote(symbol) -> None:
    with pytest.raises(InvalidInputError):
        split_symbol(symbol, QUOTES)
