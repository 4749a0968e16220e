"""Exception hierarchy for ETF Frontier."""


class FrontierError(Exception):
    """Base class for errors that abort an optimization run."""


class PriceDataError(FrontierError):
    """Price history could not be retrieved for a ticker."""

    def __init__(self, ticker: str, reason: str):
        super().__init__(f"{ticker}: {reason}")
        self.ticker = ticker
        self.reason = reason


class EmptyUniverseError(FrontierError, ValueError):
    """Every candidate ticker was excluded during estimation."""

    def __init__(self, failures: list | None = None):
        self.failures = list(failures or [])
        detail = "; ".join(f"{f.ticker} ({f.reason})" for f in self.failures)
        message = "No usable assets: every candidate ticker was excluded"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
