"""Minimum-variance allocation for a single target return.

Solves::

    minimize    w' S w
    subject to  w . mu = target        (equality)
                sum(w) = 1             (equality)
                w_i >= 0               (no short selling)

The constraints are stacked into one matrix whose first ``meq`` rows are the
equalities, followed by one row per asset for the non-negativity bounds.
Infeasible or failed solves produce a zero-valued sentinel allocation rather
than an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
import pandas as pd
from scipy.optimize import minimize

from etf_frontier.analysis.statistics import sanitize_covariance
from etf_frontier.utils.logger import setup_logger

logger = setup_logger("allocation")

_PSD_TOLERANCE = 1e-10


class SolveStatus(str, Enum):
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"


@dataclass(frozen=True, eq=False)
class Allocation:
    """Weights and dollar amounts for one target return.

    ``weights`` keeps full precision (sums to 1, amounts sum to principal);
    ``rounded_weights`` is the 3-decimal view used for display.
    ``amounts``, and so the frontier table's dollar columns, come from the
    unrounded weights.
    """

    target_return: float
    tickers: tuple[str, ...]
    raw_weights: np.ndarray
    weights: np.ndarray
    amounts: np.ndarray
    status: SolveStatus = SolveStatus.OPTIMAL
    message: str = ""

    def __post_init__(self):
        for arr in (self.raw_weights, self.weights, self.amounts):
            arr.setflags(write=False)

    @classmethod
    def infeasible(cls, target_return: float, tickers: Sequence[str], message: str = "") -> Allocation:
        """Sentinel: no feasible portfolio at *target_return*."""
        n = len(tickers)
        return cls(
            target_return=float(target_return),
            tickers=tuple(tickers),
            raw_weights=np.zeros(n),
            weights=np.zeros(n),
            amounts=np.zeros(n),
            status=SolveStatus.INFEASIBLE,
            message=message,
        )

    @property
    def is_feasible(self) -> bool:
        return self.status is SolveStatus.OPTIMAL

    @property
    def rounded_weights(self) -> np.ndarray:
        return np.round(self.weights, 3)

    def as_frame(self) -> pd.DataFrame:
        """One row per asset: raw solver weight, normalized weight, dollars."""
        return pd.DataFrame(
            {
                "raw_weight": self.raw_weights,
                "weight": self.rounded_weights,
                "amount": self.amounts,
            },
            index=list(self.tickers),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_constraints(mu: np.ndarray, target_return: float) -> tuple[np.ndarray, np.ndarray, int]:
    """Return (C, b, meq) for C @ w (=|>=) b with equalities first."""
    n = len(mu)
    C = np.vstack([mu, np.ones(n), np.eye(n)])
    b = np.concatenate([[target_return, 1.0], np.zeros(n)])
    return C, b, 2


def normalize_weights(raw: np.ndarray) -> np.ndarray:
    """|s| / ||s||_2, then rescaled to sum to 1."""
    s = np.abs(np.asarray(raw, dtype=float))
    norm = np.linalg.norm(s)
    if not np.isfinite(norm) or norm == 0:
        raise ValueError("Cannot normalize a zero or non-finite weight vector")
    s = s / norm
    return s / s.sum()


def _as_vector(values, tickers: tuple[str, ...]) -> np.ndarray:
    if isinstance(values, pd.Series):
        values = values.reindex(list(tickers))
    arr = np.asarray(values, dtype=float).reshape(-1)
    if arr.shape != (len(tickers),):
        raise ValueError(f"Expected {len(tickers)} returns, got shape {arr.shape}")
    return arr


def _as_matrix(values, tickers: tuple[str, ...]) -> np.ndarray:
    if isinstance(values, pd.DataFrame):
        values = values.reindex(index=list(tickers), columns=list(tickers))
    arr = np.atleast_2d(np.asarray(values, dtype=float))
    n = len(tickers)
    if arr.shape != (n, n):
        raise ValueError(f"Expected a {n}x{n} covariance matrix, got shape {arr.shape}")
    return arr


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------

class AllocationSolver:
    """Solve the long-only minimum-variance problem for one target return."""

    def __init__(self, tolerance: float = 1e-6, maxiter: int = 1000, ftol: float = 1e-12) -> None:
        self.tolerance = tolerance
        self.maxiter = maxiter
        self.ftol = ftol

    def _solve_qp(self, cov: np.ndarray, mu: np.ndarray, target_return: float) -> np.ndarray | None:
        """Raw solver weights, or None when SLSQP fails or ends infeasible."""
        n = len(mu)
        if n == 1:
            # Only one fully invested portfolio exists
            return np.ones(1)
        C, b, meq = build_constraints(mu, target_return)
        C_eq, b_eq = C[:meq], b[:meq]
        C_in, b_in = C[meq:], b[meq:]

        # Rescale so ftol is relative to the problem's variance level
        scale = float(np.mean(np.abs(np.diag(cov)))) or 1.0
        P = cov / scale

        constraints = [
            {"type": "eq", "fun": lambda w: C_eq @ w - b_eq, "jac": lambda w: C_eq},
            {"type": "ineq", "fun": lambda w: C_in @ w - b_in, "jac": lambda w: C_in},
        ]
        res = minimize(
            lambda w: float(w @ P @ w),
            np.ones(n) / n,
            jac=lambda w: 2.0 * P @ w,
            method="SLSQP",
            constraints=constraints,
            options={"maxiter": self.maxiter, "ftol": self.ftol},
        )
        if not res.success:
            logger.debug("SLSQP failed at target %.4f: %s", target_return, res.message)
            return None

        w = res.x
        if not np.all(np.isfinite(w)):
            return None
        if np.max(np.abs(C_eq @ w - b_eq)) > self.tolerance:
            return None
        if np.min(C_in @ w - b_in) < -self.tolerance:
            return None
        return w

    def solve(
        self,
        target_return: float,
        returns,
        covariance,
        universe: Sequence[str],
        principal: float,
    ) -> Allocation:
        """Minimum-variance allocation of *principal* achieving *target_return*.

        Args:
            target_return: Required portfolio return (same units as *returns*).
            returns: Per-asset expected returns (Series or array, universe order).
            covariance: Asset covariance (DataFrame or array, universe order).
                NaN/Inf entries are treated as 1.0.
            universe: Asset identifiers, fixing the order of the result.
            principal: Capital to allocate, in dollars.

        Returns:
            An OPTIMAL Allocation, or the INFEASIBLE zero sentinel.
        """
        if principal <= 0:
            raise ValueError(f"principal must be positive, got {principal}")
        tickers = tuple(universe)
        if not tickers:
            raise ValueError("universe must contain at least one asset")

        mu = _as_vector(returns, tickers)
        cov, _ = sanitize_covariance(_as_matrix(covariance, tickers))
        cov = (cov + cov.T) / 2.0

        if not np.isfinite(target_return) or not np.all(np.isfinite(mu)):
            return Allocation.infeasible(target_return, tickers, "non-finite returns")

        # A long-only, fully invested portfolio can only reach returns
        # between the lowest and highest single-asset return.
        lo, hi = float(mu.min()), float(mu.max())
        if target_return < lo - self.tolerance or target_return > hi + self.tolerance:
            logger.debug("Target %.4f outside achievable range [%.4f, %.4f]", target_return, lo, hi)
            return Allocation.infeasible(
                target_return, tickers, f"target outside achievable range [{lo:.4f}, {hi:.4f}]",
            )

        try:
            min_eig = float(np.linalg.eigvalsh(cov).min())
        except np.linalg.LinAlgError as e:
            return Allocation.infeasible(target_return, tickers, f"eigendecomposition failed: {e}")
        if min_eig < -_PSD_TOLERANCE * max(1.0, float(np.abs(cov).max())):
            logger.debug("Covariance not positive semidefinite (min eigenvalue %.3g)", min_eig)
            return Allocation.infeasible(target_return, tickers, "covariance not positive semidefinite")

        try:
            raw = self._solve_qp(cov, mu, target_return)
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.debug("Solver error at target %.4f: %s", target_return, e)
            raw = None
        if raw is None:
            return Allocation.infeasible(target_return, tickers, "solver found no feasible portfolio")

        weights = normalize_weights(raw)
        return Allocation(
            target_return=float(target_return),
            tickers=tickers,
            raw_weights=raw,
            weights=weights,
            amounts=weights * principal,
        )
