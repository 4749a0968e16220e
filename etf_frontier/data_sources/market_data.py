"""Market data client - adjusted close price histories for the estimator.

Primary: yfinance
"""

import pandas as pd
import yfinance as yf

from etf_frontier.exceptions import PriceDataError
from etf_frontier.utils.cache import PriceCache
from etf_frontier.utils.logger import setup_logger
from etf_frontier.utils.rate_limiter import RateLimiter

logger = setup_logger("market_data")


class MarketDataClient:
    """Fetch historical price data for ETFs and stocks.

    The cache is owned by the caller and normally lives for a single run, so
    repeated requests for the same ticker within that run hit memory only.
    """

    def __init__(
        self,
        cache: PriceCache | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.cache = cache if cache is not None else PriceCache()
        self.rate_limiter = rate_limiter or RateLimiter.from_settings()

    def get_price_history(self, ticker: str, years: int) -> pd.Series:
        """Get the adjusted close series covering at least *years* years.

        One extra year is requested so that a full ``252 * years`` trading
        day window survives holidays and a partial current session.

        Raises:
            PriceDataError: the ticker is unknown, delisted, or the download
                returned no usable close prices.
        """
        cache_key = f"{ticker}_{years}y_adjclose"
        cached = self.cache.get_series(cache_key)
        if cached is not None:
            logger.debug("Cache hit: %s", cache_key)
            return cached

        period = f"{years + 1}y"
        logger.info("Fetching price history: %s (period=%s)", ticker, period)
        self.rate_limiter.wait()
        try:
            df = yf.Ticker(ticker).history(period=period, interval="1d", auto_adjust=True)
        except Exception as e:
            raise PriceDataError(ticker, f"download failed: {e}") from e

        if df is None or df.empty or "Close" not in df.columns:
            raise PriceDataError(ticker, "no price data returned")

        series = pd.to_numeric(df["Close"], errors="coerce").sort_index()
        series.name = ticker
        if series.dropna().empty:
            raise PriceDataError(ticker, "no numeric close prices")

        self.cache.set_series(cache_key, series)
        return series
