"""Data source modules: price histories and the candidate ETF universe."""

from .market_data import MarketDataClient
from .universe import load_candidate_universe
