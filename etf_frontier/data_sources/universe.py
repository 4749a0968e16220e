"""Candidate ETF universe loading and filtering."""

from __future__ import annotations

import re
from pathlib import Path

import numpy as np
import pandas as pd

from etf_frontier.config import SETTINGS
from etf_frontier.utils.logger import setup_logger

logger = setup_logger("universe")

_MONEY_SUFFIXES = {"K": 1e3, "M": 1e6, "B": 1e9, "T": 1e12}


def _parse_money(value) -> float:
    """Parse market-cap style values: 1.2e9, "$1.2B", "850M", "1,234,567"."""
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return np.nan
    if isinstance(value, (int, float, np.number)):
        return float(value)
    text = str(value).strip().replace("$", "").replace(",", "").upper()
    if not text:
        return np.nan
    match = re.fullmatch(r"([-+]?\d*\.?\d+)\s*([KMBT]?)", text)
    if not match:
        return np.nan
    number, suffix = match.groups()
    return float(number) * _MONEY_SUFFIXES.get(suffix, 1.0)


def _parse_percent(value) -> float:
    """Parse expense ratios: "0.03%" -> 0.0003, while 0.0003 stays as is."""
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return np.nan
    if isinstance(value, (int, float, np.number)):
        return float(value)
    text = str(value).strip()
    if not text:
        return np.nan
    if text.endswith("%"):
        try:
            return float(text[:-1].strip()) / 100
        except ValueError:
            return np.nan
    try:
        return float(text)
    except ValueError:
        return np.nan


def filter_candidates(
    df: pd.DataFrame,
    min_market_cap: float = 1e8,
    max_expense_ratio: float = 0.006,
    symbol_col: str = "Symbol",
    market_cap_col: str = "Market cap",
    expense_col: str = "Expense ratio",
) -> list[str]:
    """Keep funds with market cap above and expense ratio below the limits.

    Rows with an unparseable market cap or expense ratio are dropped.
    Returns unique symbols in file order.
    """
    missing = [c for c in (symbol_col, market_cap_col, expense_col) if c not in df.columns]
    if missing:
        raise ValueError(f"Candidate table is missing columns: {missing}")

    caps = df[market_cap_col].map(_parse_money)
    expenses = df[expense_col].map(_parse_percent)
    mask = (caps > min_market_cap) & (expenses < max_expense_ratio)

    symbols = df.loc[mask, symbol_col].astype(str).str.strip().str.upper()
    symbols = [s for s in dict.fromkeys(symbols) if s]
    logger.info(
        "Candidate filter kept %d of %d funds (market cap > %.0f, expense ratio < %.4f)",
        len(symbols), len(df), min_market_cap, max_expense_ratio,
    )
    return symbols


def load_candidate_universe(
    path: Path | str,
    min_market_cap: float | None = None,
    max_expense_ratio: float | None = None,
) -> list[str]:
    """Load a candidate CSV and return the filtered ticker list."""
    cfg = SETTINGS.get("universe", {})
    if min_market_cap is None:
        min_market_cap = cfg.get("min_market_cap", 1e8)
    if max_expense_ratio is None:
        max_expense_ratio = cfg.get("max_expense_ratio", 0.006)

    df = pd.read_csv(path)
    return filter_candidates(
        df,
        min_market_cap=min_market_cap,
        max_expense_ratio=max_expense_ratio,
        symbol_col=cfg.get("symbol_column", "Symbol"),
        market_cap_col=cfg.get("market_cap_column", "Market cap"),
        expense_col=cfg.get("expense_ratio_column", "Expense ratio"),
    )
