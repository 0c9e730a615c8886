"""Pair symbol parsing against the registered quote assets."""

from tracker.exceptions import InvalidInputError


def split_symbol(symbol: str, quotes: list[str]) -> tuple[str, str]:
    """Split BTCUSDT into ("BTC", "USDT") using the longest matching quote suffix.

    Raises InvalidInputError when no registered quote matches.
    """
    upper = symbol.upper()
    for quote in sorted({q.upper() for q in quotes}, key=len, reverse=True):
        if upper.endswith(quote) and len(upper) > len(quote):
            return upper[: -len(quote)], quote
    raise InvalidInputError(f"Unrecognized quote for {symbol}")
