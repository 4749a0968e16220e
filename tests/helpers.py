"""Synthetic data builders shared by the test modules."""

import numpy as np
import pandas as pd

from etf_frontier.exceptions import PriceDataError


def make_price_series(n=600, start=100.0, drift=0.0003, vol=0.01, seed=42, name=None):
    """Geometric Brownian motion price path on business days."""
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(start="2020-01-01", periods=n)
    log_returns = rng.normal(drift, vol, n)
    prices = start * np.exp(np.cumsum(log_returns))
    return pd.Series(prices, index=dates, name=name)


class FakePriceProvider:
    """Price provider backed by a dict; exceptions in the dict are raised."""

    def __init__(self, data: dict):
        self.data = data
        self.calls: list[tuple[str, int]] = []

    def get_price_history(self, ticker, years):
        self.calls.append((ticker, years))
        value = self.data.get(ticker)
        if value is None:
            raise PriceDataError(ticker, "no price data returned")
        if isinstance(value, Exception):
            raise value
        return value
