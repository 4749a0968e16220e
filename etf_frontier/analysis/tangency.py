"""Quadratic frontier fit and tangency portfolio against a risk-free rate."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

from etf_frontier.analysis.frontier import RETURN_COL, RISK_COL
from etf_frontier.utils.logger import setup_logger

logger = setup_logger("tangency")

_ZERO_DISCRIMINANT = 1e-15


@dataclass(frozen=True)
class TangencyPoint:
    """Point where the capital allocation line from (0, rf) touches the curve."""

    risk: float
    expected_return: float
    coefficients: tuple[float, float, float]  # (a, b, c) of a + b*x + c*x^2
    risk_free_rate: float

    @property
    def sharpe_ratio(self) -> float:
        if self.risk == 0:
            return 0.0
        return (self.expected_return - self.risk_free_rate) / self.risk

    def to_dict(self) -> dict:
        a, b, c = self.coefficients
        return {
            "risk": round(self.risk, 6),
            "expected_return": round(self.expected_return, 6),
            "sharpe_ratio": round(self.sharpe_ratio, 6),
            "risk_free_rate": self.risk_free_rate,
            "coefficients": {"a": a, "b": b, "c": c},
        }


def fit_frontier_curve(risk, returns) -> tuple[float, float, float]:
    """Least-squares fit of return = a + b*risk + c*risk^2; returns (a, b, c)."""
    x = np.asarray(risk, dtype=float)
    y = np.asarray(returns, dtype=float)
    if x.shape != y.shape:
        raise ValueError("risk and returns must have the same length")
    if len(np.unique(x)) < 3:
        raise ValueError("At least 3 distinct frontier points are required for a quadratic fit")
    c, b, a = np.polyfit(x, y, 2)
    return float(a), float(b), float(c)


def tangency_roots(a: float, b: float, c: float, risk_free_rate: float) -> list[float]:
    """Risk levels where the curve's slope equals the slope from (0, rf).

    Setting f'(x) = (f(x) - rf) / x for f(x) = a + b*x + c*x^2 leaves
    c*x^2 + 0*x + (rf - a) = 0. The linear coefficient cancels, so *b* does
    not enter; it is accepted to keep the call symmetric with the fit.
    """
    qa, qb, qc = c, 0.0, risk_free_rate - a
    if qa == 0:
        return []
    disc = qb * qb - 4 * qa * qc
    if abs(disc) <= _ZERO_DISCRIMINANT:
        return [-qb / (2 * qa)]
    if disc < 0:
        return []
    root = math.sqrt(disc)
    return sorted([(-qb - root) / (2 * qa), (-qb + root) / (2 * qa)])


class FrontierAnalyzer:
    """Fit the frontier curve and locate the tangency portfolio."""

    def analyze(self, frontier: pd.DataFrame, risk_free_rate: float) -> TangencyPoint | None:
        """Tangency point of *frontier* for *risk_free_rate*.

        Returns None when the quadratic has no real root (no tangency).

        Raises:
            ValueError: the table lacks Risk/Return columns or has fewer than
                three distinct risk levels.
        """
        missing = [c for c in (RISK_COL, RETURN_COL) if c not in frontier.columns]
        if missing:
            raise ValueError(f"Frontier table is missing columns: {missing}")

        a, b, c = fit_frontier_curve(frontier[RISK_COL], frontier[RETURN_COL])
        logger.info("Frontier fit: return = %.6f + %.6f*risk + %.6f*risk^2", a, b, c)

        roots = tangency_roots(a, b, c, risk_free_rate)
        if not roots:
            logger.info("No tangency for risk-free rate %.4f", risk_free_rate)
            return None

        # Larger root; the smaller one lies on the mirrored (negative-risk) branch
        risk = max(roots)
        expected = a + b * risk + c * risk * risk
        return TangencyPoint(
            risk=float(risk),
            expected_return=float(expected),
            coefficients=(a, b, c),
            risk_free_rate=float(risk_free_rate),
        )
