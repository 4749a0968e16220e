#!/usr/bin/env python3
"""ETF Frontier: minimum-variance ETF allocations and the efficient frontier.

Usage:
    python main.py frontier VTI BND VXUS GLD                  # frontier + tangency
    python main.py frontier --universe data/etf_candidates.csv --years 15
    python main.py frontier VTI BND --override VTI=0.07       # user return estimate
    python main.py allocate 0.06 VTI BND VXUS --principal 50000
    python main.py stats VTI BND VXUS --years 5               # returns + covariance
    python main.py universe data/etf_candidates.csv           # filtered candidates
"""

import argparse
import json
import sys

import pandas as pd

from etf_frontier.analysis.allocation import AllocationSolver
from etf_frontier.analysis.statistics import StatisticsEstimator
from etf_frontier.config import SETTINGS, Paths
from etf_frontier.data_sources.market_data import MarketDataClient
from etf_frontier.data_sources.universe import load_candidate_universe
from etf_frontier.exceptions import FrontierError
from etf_frontier.pipeline import FrontierPipeline, RunParameters
from etf_frontier.utils.cache import PriceCache
from etf_frontier.utils.logger import set_level, setup_logger

logger = setup_logger("main")


def _make_client() -> MarketDataClient:
    """Price client with a cache scoped to this invocation."""
    cache_cfg = SETTINGS.get("cache", {})
    cache_dir = Paths.DATA_CACHE / "price_historical" if cache_cfg.get("persist") else None
    return MarketDataClient(cache=PriceCache(cache_dir=cache_dir))


def _parse_overrides(items: list[str]) -> dict[str, float]:
    overrides = {}
    for item in items or []:
        ticker, sep, value = item.partition("=")
        if not sep:
            raise argparse.ArgumentTypeError(f"Override must look like TICKER=VALUE, got {item!r}")
        overrides[ticker.strip().upper()] = float(value)
    return overrides


def _resolve_tickers(args) -> list[str]:
    tickers = [t.upper() for t in getattr(args, "tickers", []) or []]
    if getattr(args, "universe", None):
        tickers.extend(load_candidate_universe(args.universe))
    tickers = list(dict.fromkeys(tickers))
    if not tickers:
        print("No tickers given (pass symbols or --universe CSV)")
        sys.exit(1)
    return tickers


def _print_exclusions(excluded) -> None:
    if excluded:
        print("\n--- Excluded tickers ---")
        for f in excluded:
            print(f"  {f.ticker:10s}: {f.reason}")


# ============================================================
# COMMANDS
# ============================================================

def cmd_frontier(args):
    """Trace the efficient frontier and report the tangency portfolio."""
    tickers = _resolve_tickers(args)
    overrides = dict(SETTINGS.get("optimization", {}).get("return_overrides") or {})
    overrides.update(_parse_overrides(args.override))
    params = RunParameters.from_settings(
        years=args.years,
        principal=args.principal,
        base_return=args.base_return,
        desired_return=args.desired_return,
        step_size=args.step,
        risk_free_rate=args.risk_free_rate,
        max_workers=args.workers,
        return_overrides=overrides,
    )
    ctx = FrontierPipeline(provider=_make_client()).run(tickers, params)

    print(f"\n{'='*60}")
    print(f"  Efficient frontier ({len(ctx.universe)} assets, {params.years}y lookback)")
    print(f"{'='*60}")
    with pd.option_context("display.max_columns", None, "display.width", None):
        print(ctx.frontier.table.round(2).to_string())
    _print_exclusions(ctx.excluded)
    print("\n--- Run summary ---")
    print(json.dumps(ctx.summary(), indent=2, default=str))


def cmd_allocate(args):
    """Minimum-variance allocation for a single target return."""
    tickers = _resolve_tickers(args)
    estimator = StatisticsEstimator(_make_client())
    stats = estimator.estimate(tickers, args.years)
    stats = stats.with_return_overrides(_parse_overrides(args.override))
    alloc = AllocationSolver().solve(
        args.target, stats.returns, stats.covariance, stats.universe, args.principal,
    )
    if not alloc.is_feasible:
        print(f"No feasible portfolio at target return {args.target}: {alloc.message}")
    else:
        print(alloc.as_frame().to_string())
    _print_exclusions(stats.excluded)


def cmd_stats(args):
    """Show the time-weighted return vector and covariance matrix."""
    tickers = _resolve_tickers(args)
    stats = StatisticsEstimator(_make_client()).estimate(tickers, args.years)
    print("\n--- Expected annual returns ---")
    print(stats.returns.to_string())
    print("\n--- Daily covariance (time-weighted) ---")
    print(stats.covariance.to_string())
    _print_exclusions(stats.excluded)


def cmd_universe(args):
    """List candidates passing the market-cap and expense-ratio filters."""
    tickers = load_candidate_universe(
        args.path,
        min_market_cap=args.min_market_cap,
        max_expense_ratio=args.max_expense_ratio,
    )
    print(f"{len(tickers)} candidates")
    print(" ".join(tickers))


def main():
    parser = argparse.ArgumentParser(
        description="ETF Frontier: mean-variance ETF portfolio optimization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--log-level", default=None, help="Override log level (DEBUG, INFO, ...)")
    sub = parser.add_subparsers(dest="command", help="Commands")

    # frontier
    p = sub.add_parser("frontier", help="Efficient frontier and tangency portfolio")
    p.add_argument("tickers", nargs="*", help="Ticker symbols")
    p.add_argument("--universe", default="", help="Candidate CSV to filter and add")
    p.add_argument("--years", type=int, default=None)
    p.add_argument("--principal", type=float, default=None)
    p.add_argument("--base-return", type=float, default=None)
    p.add_argument("--desired-return", type=float, default=None)
    p.add_argument("--step", type=float, default=None)
    p.add_argument("--risk-free-rate", type=float, default=None)
    p.add_argument("--workers", type=int, default=None)
    p.add_argument("--override", action="append", default=[], help="TICKER=RETURN estimate")
    p.set_defaults(func=cmd_frontier)

    # allocate
    p = sub.add_parser("allocate", help="Allocation for one target return")
    p.add_argument("target", type=float, help="Target annual return, e.g. 0.06")
    p.add_argument("tickers", nargs="*")
    p.add_argument("--universe", default="")
    p.add_argument("--years", type=int, default=SETTINGS.get("optimization", {}).get("years", 10))
    p.add_argument("--principal", type=float,
                   default=SETTINGS.get("optimization", {}).get("principal", 10_000.0))
    p.add_argument("--override", action="append", default=[])
    p.set_defaults(func=cmd_allocate)

    # stats
    p = sub.add_parser("stats", help="Return vector and covariance matrix")
    p.add_argument("tickers", nargs="*")
    p.add_argument("--universe", default="")
    p.add_argument("--years", type=int, default=SETTINGS.get("optimization", {}).get("years", 10))
    p.set_defaults(func=cmd_stats)

    # universe
    p = sub.add_parser("universe", help="Filter a candidate ETF CSV")
    p.add_argument("path", nargs="?", default=str(Paths.CANDIDATES))
    p.add_argument("--min-market-cap", type=float, default=None)
    p.add_argument("--max-expense-ratio", type=float, default=None)
    p.set_defaults(func=cmd_universe)

    args = parser.parse_args()
    if args.log_level:
        set_level(args.log_level)
    if args.command is None:
        parser.print_help()
        sys.exit(0)
    try:
        args.func(args)
    except FrontierError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
