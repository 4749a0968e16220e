"""FrontierPipeline: estimate -> sweep -> analyze for one run."""

from __future__ import annotations

import time

from etf_frontier.analysis.allocation import AllocationSolver
from etf_frontier.analysis.frontier import RETURN_COL, RISK_COL, FrontierSweeper
from etf_frontier.analysis.statistics import PriceProvider, StatisticsEstimator
from etf_frontier.analysis.tangency import FrontierAnalyzer
from etf_frontier.data_sources.market_data import MarketDataClient
from etf_frontier.pipeline.context import RunContext, RunParameters
from etf_frontier.utils.cache import PriceCache
from etf_frontier.utils.logger import setup_logger

logger = setup_logger("pipeline")


class FrontierPipeline:
    """Executes the optimization steps against a RunContext.

    A fresh PriceCache is created per run unless a provider is injected, so
    price histories never leak between runs.
    """

    def __init__(self, provider: PriceProvider | None = None, solver: AllocationSolver | None = None) -> None:
        self.provider = provider
        self.solver = solver or AllocationSolver()

    def _timed(self, ctx: RunContext, name: str, func):
        start = time.monotonic()
        result = func()
        elapsed = time.monotonic() - start
        ctx.timings[name] = elapsed
        logger.info("Step %s completed in %.1fs", name, elapsed)
        return result

    def run(self, tickers: list[str], params: RunParameters | None = None) -> RunContext:
        """Run estimation, the frontier sweep and the tangency analysis.

        Raises:
            EmptyUniverseError: no ticker had usable price history.
        """
        params = params or RunParameters.from_settings()
        ctx = RunContext(tickers=list(tickers), params=params)
        provider = self.provider or MarketDataClient(cache=PriceCache())

        logger.info(
            "Run %s started: %d tickers, years=%d, principal=%.2f",
            ctx.run_id, len(ctx.tickers), params.years, params.principal,
        )

        estimator = StatisticsEstimator(provider, max_workers=params.max_workers)
        stats = self._timed(ctx, "estimate", lambda: estimator.estimate(ctx.tickers, params.years))
        ctx.statistics = stats.with_return_overrides(params.return_overrides)

        sweeper = FrontierSweeper(
            solver=self.solver,
            max_workers=params.max_workers,
            min_allocation_fraction=params.min_allocation_fraction,
        )
        ctx.frontier = self._timed(ctx, "sweep", lambda: sweeper.sweep(
            params.base_return,
            params.desired_return,
            params.step_size,
            ctx.statistics.returns,
            ctx.statistics.covariance,
            ctx.statistics.universe,
            params.principal,
        ))

        table = ctx.frontier.table
        fittable = {RETURN_COL, RISK_COL} <= set(table.columns)
        if fittable and len(table) >= 3 and table[RISK_COL].nunique() >= 3:
            ctx.tangency = self._timed(
                ctx, "tangency", lambda: FrontierAnalyzer().analyze(table, params.risk_free_rate),
            )
        else:
            logger.warning("Only %d frontier points; skipping tangency fit", len(table))

        logger.info("Run %s finished", ctx.run_id)
        return ctx
