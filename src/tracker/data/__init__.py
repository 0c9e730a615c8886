"""Portfolio persistence layer.

Provides the SQLite database manager and the typed read/write store for
assets, candle series, config registers, transactions and deposits.
"""

from tracker.data.database import PortfolioDatabase
from tracker.data.store import PortfolioStore

__all__ = ["PortfolioDatabase", "PortfolioStore"]
