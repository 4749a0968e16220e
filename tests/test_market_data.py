"""Tests for etf_frontier.data_sources.market_data and the price cache."""

import os
import time
from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd
import pytest

from etf_frontier.data_sources.market_data import MarketDataClient
from etf_frontier.exceptions import PriceDataError
from etf_frontier.utils.cache import PriceCache
from etf_frontier.utils.rate_limiter import RateLimiter
from tests.helpers import make_price_series


def _history_frame(n=50):
    close = make_price_series(n=n, seed=21)
    # rows reversed so the client has to sort them
    return pd.DataFrame({"Open": close, "Close": close}).iloc[::-1]


def _client(cache=None):
    limiter = MagicMock(spec=RateLimiter)
    return MarketDataClient(cache=cache if cache is not None else PriceCache(), rate_limiter=limiter), limiter


# ---------------------------------------------------------------------------
# MarketDataClient
# ---------------------------------------------------------------------------

class TestMarketDataClient:

    @patch("etf_frontier.data_sources.market_data.yf")
    def test_returns_sorted_close_series(self, mock_yf):
        mock_yf.Ticker.return_value.history.return_value = _history_frame()
        client, limiter = _client()

        series = client.get_price_history("VTI", 2)

        assert series.name == "VTI"
        assert series.index.is_monotonic_increasing
        assert len(series) == 50
        mock_yf.Ticker.assert_called_once_with("VTI")
        mock_yf.Ticker.return_value.history.assert_called_once_with(
            period="3y", interval="1d", auto_adjust=True,
        )
        limiter.wait.assert_called_once()

    @patch("etf_frontier.data_sources.market_data.yf")
    def test_second_call_served_from_cache(self, mock_yf):
        mock_yf.Ticker.return_value.history.return_value = _history_frame()
        client, limiter = _client()

        first = client.get_price_history("VTI", 2)
        second = client.get_price_history("VTI", 2)

        assert second is first
        assert mock_yf.Ticker.call_count == 1
        assert limiter.wait.call_count == 1

    @patch("etf_frontier.data_sources.market_data.yf")
    def test_cache_key_includes_years(self, mock_yf):
        mock_yf.Ticker.return_value.history.return_value = _history_frame()
        client, _ = _client()
        client.get_price_history("VTI", 2)
        client.get_price_history("VTI", 5)
        assert mock_yf.Ticker.call_count == 2

    @patch("etf_frontier.data_sources.market_data.yf")
    def test_empty_frame_raises(self, mock_yf):
        mock_yf.Ticker.return_value.history.return_value = pd.DataFrame()
        client, _ = _client()
        with pytest.raises(PriceDataError, match="no price data") as exc_info:
            client.get_price_history("DELISTED", 2)
        assert exc_info.value.ticker == "DELISTED"

    @patch("etf_frontier.data_sources.market_data.yf")
    def test_download_exception_wrapped(self, mock_yf):
        mock_yf.Ticker.return_value.history.side_effect = ConnectionError("timeout")
        client, _ = _client()
        with pytest.raises(PriceDataError, match="download failed"):
            client.get_price_history("VTI", 2)

    @patch("etf_frontier.data_sources.market_data.yf")
    def test_all_nan_close_raises(self, mock_yf):
        idx = pd.bdate_range("2024-01-01", periods=3)
        mock_yf.Ticker.return_value.history.return_value = pd.DataFrame({"Close": [np.nan] * 3}, index=idx)
        client, _ = _client()
        with pytest.raises(PriceDataError, match="no numeric"):
            client.get_price_history("VTI", 2)

    @patch("etf_frontier.data_sources.market_data.yf")
    def test_failures_not_cached(self, mock_yf):
        mock_yf.Ticker.return_value.history.return_value = pd.DataFrame()
        cache = PriceCache()
        client, _ = _client(cache)
        with pytest.raises(PriceDataError):
            client.get_price_history("VTI", 2)
        assert len(cache) == 0


# ---------------------------------------------------------------------------
# PriceCache
# ---------------------------------------------------------------------------

class TestPriceCache:

    def test_memory_roundtrip(self):
        cache = PriceCache()
        s = make_price_series(n=10)
        cache.set_series("k", s)
        assert "k" in cache
        assert cache.get_series("k") is s
        assert cache.get_series("missing") is None

    def test_clear(self):
        cache = PriceCache()
        cache.set_series("k", make_price_series(n=10))
        cache.clear()
        assert len(cache) == 0

    def test_persisted_series_survive_new_instance(self, tmp_path):
        s = make_price_series(n=30, name="VTI")
        PriceCache(cache_dir=tmp_path).set_series("VTI_2y_adjclose", s)

        fresh = PriceCache(cache_dir=tmp_path)
        loaded = fresh.get_series("VTI_2y_adjclose")

        assert loaded is not None
        assert loaded.to_numpy() == pytest.approx(s.to_numpy())
        assert "VTI_2y_adjclose" in fresh

    def test_expired_file_removed(self, tmp_path):
        PriceCache(cache_dir=tmp_path).set_series("old", make_price_series(n=5))
        files = list(tmp_path.glob("*.parquet"))
        assert len(files) == 1
        stale = time.time() - 3 * 3600
        os.utime(files[0], (stale, stale))

        assert PriceCache(cache_dir=tmp_path, ttl_hours=1).get_series("old") is None
        assert not files[0].exists()


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------

class TestRateLimiter:

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RateLimiter(calls_per_minute=0)

    def test_under_limit_does_not_sleep(self):
        limiter = RateLimiter(calls_per_minute=5)
        with patch("etf_frontier.utils.rate_limiter.time.sleep") as mock_sleep:
            waited = [limiter.wait() for _ in range(5)]
        mock_sleep.assert_not_called()
        assert waited == [0.0] * 5

    def test_from_settings(self):
        assert RateLimiter.from_settings().calls_per_minute > 0

    def test_over_limit_sleeps(self):
        limiter = RateLimiter(calls_per_minute=2)
        with patch("etf_frontier.utils.rate_limiter.time.sleep") as mock_sleep:
            for _ in range(3):
                limiter.wait()
        mock_sleep.assert_called_once()
        assert 0 < mock_sleep.call_args[0][0] <= 60
