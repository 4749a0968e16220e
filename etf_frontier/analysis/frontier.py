"""Efficient frontier sweep over a grid of target returns."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import pandas as pd

from etf_frontier.analysis.allocation import Allocation, AllocationSolver
from etf_frontier.analysis.statistics import TRADING_DAYS, sanitize_covariance
from etf_frontier.utils.logger import setup_logger

logger = setup_logger("frontier")

RETURN_COL = "Return"
RISK_COL = "Risk"

_GRID_EPS = 1e-9


@dataclass
class FrontierResult:
    """Shaped frontier table plus every per-point allocation, in grid order."""

    table: pd.DataFrame
    allocations: list[Allocation] = field(default_factory=list)
    grid: np.ndarray = field(default_factory=lambda: np.array([]))

    @property
    def assets(self) -> list[str]:
        return [c for c in self.table.columns if c not in (RETURN_COL, RISK_COL)]

    @property
    def n_infeasible(self) -> int:
        return sum(not a.is_feasible for a in self.allocations)


def build_return_grid(base_return: float, desired_return: float, step_size: float) -> np.ndarray:
    """Targets base, base+step, ..., up to desired (inclusive within 1e-9)."""
    if step_size <= 0:
        raise ValueError(f"step_size must be positive, got {step_size}")
    if base_return > desired_return:
        raise ValueError(f"base_return {base_return} exceeds desired_return {desired_return}")
    n = int(math.floor((desired_return - base_return) / step_size + _GRID_EPS)) + 1
    return base_return + step_size * np.arange(n)


def portfolio_metrics(amounts: np.ndarray, mu: np.ndarray, cov: np.ndarray, principal: float) -> tuple[float, float]:
    """(annualized risk, achieved return) of a dollar allocation."""
    x = np.asarray(amounts, dtype=float) / principal
    variance = max(float(x @ cov @ x), 0.0)
    risk = math.sqrt(TRADING_DAYS) * math.sqrt(variance)
    return round(risk, 4), round(float(x @ mu), 2)


def shape_frontier_table(raw: pd.DataFrame, principal: float, min_allocation_fraction: float = 0.01) -> pd.DataFrame:
    """Prune and order the raw frontier table for presentation.

    1. Drop asset columns whose largest allocation is <= the fraction of
       principal.
    2. Order assets by the row where each peaks, latest row first. Ties keep
       universe order (the sort is stable).
    3. Drop rows that are zero everywhere and asset columns that are zero
       everywhere. ``Return`` and ``Risk`` are always kept, even when every
       achieved return rounds to 0.00.
    """
    metric_cols = [c for c in (RETURN_COL, RISK_COL) if c in raw.columns]
    assets = [c for c in raw.columns if c not in metric_cols]

    threshold = min_allocation_fraction * principal
    kept = [a for a in assets if raw[a].max() > threshold]

    if len(raw):
        peak_row = {a: int(np.argmax(raw[a].to_numpy())) for a in kept}
        kept = sorted(kept, key=lambda a: -peak_row[a])

    table = raw[metric_cols + kept]
    nonzero = table != 0
    keep_cols = nonzero.any(axis=0)
    keep_cols[metric_cols] = True
    return table.loc[nonzero.any(axis=1), keep_cols]


class FrontierSweeper:
    """Run AllocationSolver over a target-return grid on a thread pool."""

    def __init__(
        self,
        solver: AllocationSolver | None = None,
        max_workers: int = 4,
        min_allocation_fraction: float = 0.01,
    ) -> None:
        self.solver = solver or AllocationSolver()
        self.max_workers = max_workers
        self.min_allocation_fraction = min_allocation_fraction

    def _solve_all(self, grid: np.ndarray, returns, covariance, universe: tuple[str, ...], principal: float) -> list[Allocation]:
        results: list[Allocation | None] = [None] * len(grid)
        workers = max(1, min(self.max_workers, len(grid)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self.solver.solve, float(t), returns, covariance, universe, principal): i
                for i, t in enumerate(grid)
            }
            for future in as_completed(futures):
                i = futures[future]
                try:
                    results[i] = future.result()
                except Exception as exc:
                    logger.error("Solve failed at target %.4f: %s", grid[i], exc)
                    results[i] = Allocation.infeasible(grid[i], universe, str(exc))
        return results

    def sweep(
        self,
        base_return: float,
        desired_return: float,
        step_size: float,
        returns,
        covariance,
        universe: Sequence[str],
        principal: float,
    ) -> FrontierResult:
        """Trace the frontier from *base_return* to *desired_return*.

        Returns:
            FrontierResult whose table is indexed by target return with
            ``Return``, ``Risk`` and per-asset dollar columns.
        """
        if principal <= 0:
            raise ValueError(f"principal must be positive, got {principal}")
        universe = tuple(universe)
        grid = build_return_grid(base_return, desired_return, step_size)
        logger.info(
            "Sweeping %d target returns [%.4f .. %.4f] over %d assets",
            len(grid), grid[0], grid[-1], len(universe),
        )

        allocations = self._solve_all(grid, returns, covariance, universe, principal)

        mu = returns.reindex(list(universe)).to_numpy(dtype=float) if isinstance(returns, pd.Series) \
            else np.asarray(returns, dtype=float)
        if isinstance(covariance, pd.DataFrame):
            covariance = covariance.reindex(index=list(universe), columns=list(universe))
        cov, _ = sanitize_covariance(np.asarray(covariance, dtype=float))

        rows = []
        for alloc in allocations:
            risk, achieved = portfolio_metrics(alloc.amounts, mu, cov, principal)
            row = {RETURN_COL: achieved, RISK_COL: risk}
            row.update(zip(universe, alloc.amounts))
            rows.append(row)

        raw = pd.DataFrame(rows, index=pd.Index(np.round(grid, 10), name="Target"),
                           columns=[RETURN_COL, RISK_COL, *universe])
        table = shape_frontier_table(raw, principal, self.min_allocation_fraction)

        n_bad = sum(not a.is_feasible for a in allocations)
        if n_bad:
            logger.info("%d of %d target returns infeasible", n_bad, len(grid))
        if table.empty:
            logger.warning("Frontier is empty: no feasible target return in the grid")
        return FrontierResult(table=table, allocations=allocations, grid=grid)
