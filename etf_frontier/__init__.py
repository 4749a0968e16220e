"""ETF Frontier: time-weighted mean-variance optimization for ETF portfolios."""

__version__ = "0.1.0"
