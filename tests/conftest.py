"""Shared pytest fixtures for the ETF Frontier test suite.

Provides synthetic price histories and statistics with fixed random seeds.
All fixtures are independent of external APIs.
"""

import numpy as np
import pandas as pd
import pytest

from tests.helpers import FakePriceProvider, make_price_series


# ---------------------------------------------------------------------------
# 1. Three-asset closed-form universe
# ---------------------------------------------------------------------------

@pytest.fixture
def three_assets():
    """Returns [0.05, 0.10, 0.08] with uncorrelated variances (0.01, 0.04, 0.02)."""
    tickers = ["AAA", "BBB", "CCC"]
    returns = pd.Series([0.05, 0.10, 0.08], index=tickers)
    covariance = pd.DataFrame(np.diag([0.01, 0.04, 0.02]), index=tickers, columns=tickers)
    return returns, covariance, tickers


# ---------------------------------------------------------------------------
# 2. Price histories
# ---------------------------------------------------------------------------

@pytest.fixture
def price_histories():
    """Four healthy 600-day histories with distinct drift and volatility."""
    specs = {
        "VTI": (0.0004, 0.012, 1),
        "BND": (0.0001, 0.003, 2),
        "GLD": (0.0002, 0.009, 3),
        "VXUS": (0.0003, 0.011, 4),
    }
    return {
        t: make_price_series(drift=d, vol=v, seed=s, name=t)
        for t, (d, v, s) in specs.items()
    }


@pytest.fixture
def fake_provider(price_histories):
    data = dict(price_histories)
    data["SHORT"] = make_price_series(n=300, seed=9, name="SHORT")
    data["BOOM"] = RuntimeError("connection reset")
    return FakePriceProvider(data)
