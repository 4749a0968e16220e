"""RunParameters and RunContext: inputs and accumulated state of one run."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

from etf_frontier.analysis.frontier import FrontierResult
from etf_frontier.analysis.statistics import MarketStatistics, TickerFailure
from etf_frontier.analysis.tangency import TangencyPoint
from etf_frontier.config import SETTINGS


@dataclass
class RunParameters:
    """Configuration surface of an optimization run."""

    years: int = 10
    principal: float = 10_000.0
    base_return: float = 0.0
    desired_return: float = 0.15
    step_size: float = 0.005
    risk_free_rate: float = 0.04
    return_overrides: dict[str, float] = field(default_factory=dict)
    max_workers: int = 4
    min_allocation_fraction: float = 0.01

    def __post_init__(self):
        if isinstance(self.years, bool) or int(self.years) != self.years or self.years < 1:
            raise ValueError(f"years must be a positive integer, got {self.years!r}")
        self.years = int(self.years)
        if self.principal <= 0:
            raise ValueError(f"principal must be positive, got {self.principal}")
        if self.step_size <= 0:
            raise ValueError(f"step_size must be positive, got {self.step_size}")
        if self.base_return > self.desired_return:
            raise ValueError("base_return must not exceed desired_return")
        self.return_overrides = {str(k): float(v) for k, v in (self.return_overrides or {}).items()}

    @classmethod
    def from_settings(cls, settings: dict | None = None, **overrides: Any) -> RunParameters:
        """Build from the ``optimization`` section; keyword arguments win."""
        settings = SETTINGS if settings is None else settings
        section = dict(settings.get("optimization", {}) or {})
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in section.items() if k in known}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class RunContext:
    """Accumulates data and results as a frontier run executes."""

    # Input
    tickers: list[str]
    params: RunParameters
    run_id: str = field(default_factory=lambda: datetime.now().strftime("%Y%m%d_%H%M%S"))

    # Results
    statistics: MarketStatistics | None = None
    frontier: FrontierResult | None = None
    tangency: TangencyPoint | None = None

    # Run metadata
    timings: dict[str, float] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def universe(self) -> list[str]:
        return self.statistics.universe if self.statistics else []

    @property
    def excluded(self) -> list[TickerFailure]:
        return self.statistics.excluded if self.statistics else []

    def summary(self) -> dict:
        """JSON-friendly summary of the run."""
        return {
            "run_id": self.run_id,
            "years": self.params.years,
            "principal": self.params.principal,
            "universe": self.universe,
            "excluded": [{"ticker": f.ticker, "reason": f.reason} for f in self.excluded],
            "frontier_points": 0 if self.frontier is None else len(self.frontier.table),
            "infeasible_targets": 0 if self.frontier is None else self.frontier.n_infeasible,
            "tangency": None if self.tangency is None else self.tangency.to_dict(),
            "timings": {k: round(v, 3) for k, v in self.timings.items()},
        }
