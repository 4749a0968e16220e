"""Time-decay-weighted return and covariance estimation.

Turns raw adjusted-close histories into the statistics pair consumed by the
allocation solver:

* a daily log-return covariance matrix in which recent trading days weigh up
  to twice as much as the oldest day of the window, and
* an annual return per asset built from one price sample per year, with
  later years weighted more heavily than earlier ones.

Tickers whose history cannot be fetched or is shorter than the lookback
window are dropped from the universe and reported, never raised.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping, Protocol

import numpy as np
import pandas as pd

from etf_frontier.exceptions import EmptyUniverseError, PriceDataError
from etf_frontier.utils.logger import setup_logger

logger = setup_logger("statistics")

TRADING_DAYS = 252

# Replacement for NaN/Inf covariance entries. Lossy: it keeps the quadratic
# program well-posed for degenerate series rather than modelling them.
SANITIZED_COVARIANCE = 1.0

_RETURN_WEIGHT_RANGE = (0.75, 1.25)


class PriceProvider(Protocol):
    def get_price_history(self, ticker: str, years: int) -> pd.Series: ...


@dataclass(frozen=True)
class TickerFailure:
    """A ticker excluded from the universe, with the reason."""

    ticker: str
    reason: str


@dataclass(frozen=True)
class PriceFetch:
    """Outcome of fetching and cleaning one ticker's price history."""

    ticker: str
    series: pd.Series | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.series is not None

    @classmethod
    def success(cls, ticker: str, series: pd.Series) -> PriceFetch:
        return cls(ticker=ticker, series=series)

    @classmethod
    def failure(cls, ticker: str, reason: str) -> PriceFetch:
        return cls(ticker=ticker, reason=reason)


@dataclass
class MarketStatistics:
    """Returns, covariance and the final asset universe for one run."""

    returns: pd.Series
    covariance: pd.DataFrame
    universe: list[str]
    excluded: list[TickerFailure] = field(default_factory=list)
    years: int | None = None

    def with_return_overrides(self, overrides: Mapping[str, float] | None) -> MarketStatistics:
        """Copy with user return estimates substituted; covariance is untouched."""
        if not overrides:
            return self
        return replace(self, returns=apply_return_overrides(self.returns, overrides))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def ordered_universe(tickers: Iterable[str]) -> list[str]:
    """Deduplicate tickers, keeping input order (sets are sorted)."""
    if isinstance(tickers, (set, frozenset)):
        return sorted(tickers)
    return list(dict.fromkeys(tickers))


def clean_price_series(series: pd.Series) -> pd.Series:
    """Treat missing and non-positive prices as gaps and fill them linearly.

    Gaps at either edge cannot be interpolated and are dropped.
    """
    prices = pd.to_numeric(series, errors="coerce").astype(float)
    prices = prices.where(prices > 0)
    return prices.interpolate(method="linear").dropna()


def time_decay_weights(n_rows: int) -> np.ndarray:
    """Linear weights 1 + i/T for rows i = 0..T-1 (oldest to newest)."""
    return 1.0 + np.arange(n_rows) / n_rows


def weighted_covariance(returns: pd.DataFrame) -> np.ndarray:
    """Covariance of the return columns with time-decay row weights."""
    values = returns.to_numpy(dtype=float)
    weights = time_decay_weights(values.shape[0])
    return np.atleast_2d(np.cov(values, rowvar=False, aweights=weights))


def sanitize_covariance(cov: np.ndarray) -> tuple[np.ndarray, int]:
    """Replace NaN/Inf entries with SANITIZED_COVARIANCE.

    Returns the cleaned matrix and the number of entries replaced.
    """
    cov = np.asarray(cov, dtype=float)
    bad = ~np.isfinite(cov)
    n_bad = int(bad.sum())
    if n_bad:
        cov = np.where(bad, SANITIZED_COVARIANCE, cov)
    return cov, n_bad


def weighted_annual_return(prices: np.ndarray, years: int) -> float:
    """Weighted mean of year-over-year returns, rounded to 3 decimals.

    Samples one price every TRADING_DAYS rows from the start of the window
    (``years`` samples), converts the log-price differences between samples
    into simple returns and averages ``return * weight`` with weights evenly
    spaced over [0.75, 1.25] (``numpy.linspace``, so a single interval gets
    0.75). A one-year window has no yearly interval; it uses the first and
    last price of the window with weight 1.0 instead.
    """
    log_prices = np.log(np.asarray(prices, dtype=float))
    if years > 1:
        sampled = log_prices[::TRADING_DAYS][:years]
        yearly = np.expm1(np.diff(sampled))
        weights = np.linspace(*_RETURN_WEIGHT_RANGE, len(yearly))
    else:
        yearly = np.expm1(np.diff(log_prices[[0, -1]]))
        weights = np.ones(1)
    return round(float(np.mean(yearly * weights)), 3)


def apply_return_overrides(returns: pd.Series, overrides: Mapping[str, float]) -> pd.Series:
    """Substitute user-supplied return estimates for the listed tickers."""
    result = returns.copy()
    for ticker, value in overrides.items():
        if ticker not in result.index:
            logger.warning("Return override for %s ignored: not in universe", ticker)
            continue
        result[ticker] = float(value)
        logger.info("Return override: %s -> %.4f", ticker, float(value))
    return result


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------

class StatisticsEstimator:
    """Estimate (returns, covariance, universe) from a price provider."""

    def __init__(self, provider: PriceProvider, max_workers: int = 8) -> None:
        self.provider = provider
        self.max_workers = max_workers

    def _fetch_one(self, ticker: str, years: int) -> PriceFetch:
        lookback = TRADING_DAYS * years
        try:
            raw = self.provider.get_price_history(ticker, years)
        except PriceDataError as e:
            return PriceFetch.failure(ticker, e.reason)
        except Exception as e:
            return PriceFetch.failure(ticker, f"{type(e).__name__}: {e}")

        if raw is None:
            return PriceFetch.failure(ticker, "no price data returned")
        prices = clean_price_series(raw)
        if len(prices) < lookback:
            return PriceFetch.failure(
                ticker, f"insufficient history: {len(prices)} < {lookback} trading days",
            )
        return PriceFetch.success(ticker, prices.iloc[-lookback:])

    def fetch(self, universe: list[str], years: int) -> list[PriceFetch]:
        """Fetch every ticker concurrently; results come back in universe order."""
        if not universe:
            return []
        workers = max(1, min(self.max_workers, len(universe)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda t: self._fetch_one(t, years), universe))

    def estimate(self, tickers: Iterable[str], years: int) -> MarketStatistics:
        """Build the statistics pair for *tickers* over a *years* lookback.

        Raises:
            ValueError: *years* is not a positive integer.
            EmptyUniverseError: no ticker survived retrieval and alignment.
        """
        if isinstance(years, bool) or not isinstance(years, (int, np.integer)) or years < 1:
            raise ValueError(f"years must be a positive integer, got {years!r}")
        years = int(years)

        candidates = ordered_universe(tickers)
        logger.info("Estimating statistics: %d candidates, %d-year lookback", len(candidates), years)

        prices: dict[str, np.ndarray] = {}
        excluded: list[TickerFailure] = []
        for fetch in self.fetch(candidates, years):
            if fetch.ok:
                prices[fetch.ticker] = fetch.series.to_numpy(dtype=float)
            else:
                logger.warning("Excluding %s: %s", fetch.ticker, fetch.reason)
                excluded.append(TickerFailure(fetch.ticker, fetch.reason))

        if not prices:
            raise EmptyUniverseError(excluded)

        universe = list(prices)
        # Positional alignment: every surviving column holds exactly the last
        # 252 * years prices, so the return matrix has lookback - 1 rows.
        price_matrix = pd.DataFrame(prices, columns=universe)
        log_returns = np.log(price_matrix).diff().iloc[1:]

        cov, n_bad = sanitize_covariance(weighted_covariance(log_returns))
        if n_bad:
            logger.warning("Covariance had %d non-finite entries, set to %.1f", n_bad, SANITIZED_COVARIANCE)

        returns = pd.Series(
            [weighted_annual_return(price_matrix[t].to_numpy(), years) for t in universe],
            index=universe,
            name="expected_return",
        )
        logger.info("Universe: %d assets kept, %d excluded", len(universe), len(excluded))
        return MarketStatistics(
            returns=returns,
            covariance=pd.DataFrame(cov, index=universe, columns=universe),
            universe=universe,
            excluded=excluded,
            years=years,
        )
