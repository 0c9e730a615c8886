"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class BinanceSettings(BaseSettings):
    """Binance connection settings (spot prices, klines, balances)."""

    model_config = SettingsConfigDict(env_prefix="BINANCE_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    timeout_ms: int = 10_000  # ccxt request timeout


class StoreSettings(BaseSettings):
    """Persistent store location."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    db_path: str = "data/portfolio.db"


class SyncSettings(BaseSettings):
    """Daily candle synchronization parameters.

    All fields configurable via SYNC_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    lookback_years: int = 7
    timeframe: str = "1d"
    kline_page_limit: int = 1000  # Binance max per klines call
    request_timeout: float = 15.0  # seconds, equity/FX chart calls
    chart_base_url: str = "https://query1.finance.yahoo.com/v8/finance/chart/"
    fx_history_start: str = "1999-01-04"
    synthetic_symbol: str = "USDTUSD"
    max_retries: int = 3
    retry_base_delay: float = 1.0
    daily_run_hour_utc: int = 0
    daily_run_minute_utc: int = 10  # ten minutes after the daily candle closes


class ValuationSettings(BaseSettings):
    """Currency conversion, balance aggregation and capital rebalancing.

    Register names are ordered: the first register present wins.
    """

    model_config = SettingsConfigDict(env_prefix="VALUATION_")

    settlement_currency: str = "USD"
    stablecoin: str = "USDT"
    fee_token: str = "BNB"
    quote_priority: list[str] = ["USDT", "FDUSD", "USDC", "BUSD", "USD"]
    stablecoin_sell_registers: list[str] = ["usdt_sell_price", "lastPriceUsdtSell"]
    stablecoin_buy_registers: list[str] = ["usdt_buy_price", "lastPriceUsdtBuy"]
    total_usd_register: str = "total_usd"
    secondary_fiat: str = "PEN"
    last_created_register: str = "last_created_asset_balance"
    seed_capital: Decimal = Decimal("200")
    earn_page_size: int = 100  # Binance allows 1-100
    yield_wrapped_prefix: str = "LD"
    fx_rates_url: str = "https://open.er-api.com/v6/latest/USD"

    @property
    def stablecoin_registers(self) -> list[str]:
        """Ask-side registers first, then bid-side."""
        return [*self.stablecoin_sell_registers, *self.stablecoin_buy_registers]

    @property
    def secondary_total_register(self) -> str:
        return f"total_{self.secondary_fiat.lower()}"


class ApiSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 3000
    run_sync_on_startup: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    binance: BinanceSettings = BinanceSettings()
    store: StoreSettings = StoreSettings()
    sync: SyncSettings = SyncSettings()
    valuation: ValuationSettings = ValuationSettings()
    api: ApiSettings = ApiSettings()
