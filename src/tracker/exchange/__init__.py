"""Exchange client layer -- Binance API integration via ccxt."""

from tracker.exchange.binance_client import BinanceClient
from tracker.exchange.client import ExchangeClient

__all__ = ["BinanceClient", "ExchangeClient"]
