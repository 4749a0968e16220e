"""Central configuration loader for ETF Frontier."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Project root is the parent of the etf_frontier/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(PROJECT_ROOT / ".env")


def load_settings(path: Path | None = None) -> dict:
    """Load settings from configs/settings.yaml (or $ETF_FRONTIER_SETTINGS)."""
    if path is None:
        override = os.getenv("ETF_FRONTIER_SETTINGS")
        path = Path(override) if override else PROJECT_ROOT / "configs" / "settings.yaml"
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


SETTINGS = load_settings()


def log_level() -> str:
    return os.getenv("ETF_FRONTIER_LOG_LEVEL") or SETTINGS.get("app", {}).get("log_level", "INFO")


# --- Paths ---
class Paths:
    ROOT = PROJECT_ROOT
    DATA = PROJECT_ROOT / "data"
    DATA_CACHE = Path(os.getenv("ETF_FRONTIER_CACHE_DIR", PROJECT_ROOT / "data" / "cache"))
    CANDIDATES = PROJECT_ROOT / "data" / "etf_candidates.csv"
