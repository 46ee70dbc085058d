"""
YAML configuration loader & validator for SMA Monitor.

* merges the user file over ``DEFAULTS`` (deep merge, file wins)
* validates the monitor section (symbols, interval, window size)
* raises early, clear ``InvalidConfiguration`` errors instead of
  logging‑and‑continuing
"""

from __future__ import annotations

import copy
import logging
import math
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import yaml

from sma_monitor.errors import InvalidConfiguration

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# defaults                                                                    #
# --------------------------------------------------------------------------- #
DEFAULTS: Dict[str, Any] = {
    "monitor": {
        "symbols": ["AAPL", "GOOG", "MSFT", "AMZN", "NVDA"],
        "interval_s": 5,
        "window_size": 10,
        "shutdown_grace_s": 5,
    },
    "source": {
        "kind": "simulated",
        "seed": None,
        "max_step": 1.0,
        "initial_prices": {},
        "series": {},
    },
    "sinks": {
        "console": {"enabled": True},
        "file": {
            "enabled": False,
            "base_dir": "data",
            "fmt": "csv",
            "rotate_minutes": 60,
            "max_rows": 50_000,
        },
    },
    "metrics": {"port": None},
}

SOURCE_KINDS = ("simulated", "replay")


def _recursive_merge(base: dict, override: dict) -> dict:
    """Non‑destructive deep merge (override wins)."""
    merged = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            merged[k] = _recursive_merge(base[k], v)
        else:
            merged[k] = v
    return merged


def _is_number(v) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


# --------------------------------------------------------------------------- #
# public API                                                                  #
# --------------------------------------------------------------------------- #
def load_config(path: str | Path | None = None) -> dict:
    """
    Read YAML file, apply defaults, and validate structure.

    :param path: path to config YAML (str or Path); ``None`` → defaults only
    :returns: fully‑populated config dict
    :raises FileNotFoundError, InvalidConfiguration
    """
    raw: dict = {}
    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("r", encoding="utf-8") as fh:
            try:
                raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise InvalidConfiguration(f"Malformed YAML in {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidConfiguration("Config root must be a mapping")
        logger.debug("Loaded config from %s", path)

    cfg = _recursive_merge(DEFAULTS, raw)
    validate(cfg)
    return cfg


def apply_overrides(
    cfg: dict,
    *,
    symbols: Optional[Sequence[str]] = None,
    interval_s: Optional[float] = None,
    window_size: Optional[int] = None,
) -> dict:
    """Return a copy of *cfg* with CLI overrides applied, re‑validated."""
    mon: Dict[str, Any] = {}
    if symbols is not None:
        mon["symbols"] = list(symbols)
    if interval_s is not None:
        mon["interval_s"] = interval_s
    if window_size is not None:
        mon["window_size"] = window_size
    merged = _recursive_merge(cfg, {"monitor": mon})
    validate(merged)
    return merged


def validate(cfg: dict):
    """
    :raises InvalidConfiguration: on the first structural problem found
    """
    for section in ("monitor", "source", "sinks", "metrics"):
        if not isinstance(cfg.get(section), dict):
            raise InvalidConfiguration(f"Config must contain a '{section}' mapping")
    for name in ("console", "file"):
        if not isinstance(cfg["sinks"].get(name), dict):
            raise InvalidConfiguration(f"sinks.{name} must be a mapping")

    # ───── monitor section ──────────────────────────────────────────────── #
    mon = cfg["monitor"]

    symbols = mon.get("symbols")
    if not isinstance(symbols, list) or not symbols:
        raise InvalidConfiguration("monitor.symbols must be a non-empty list")
    if not all(isinstance(s, str) and s for s in symbols):
        raise InvalidConfiguration("monitor.symbols must contain non-empty strings")
    if len(set(symbols)) != len(symbols):
        logger.warning("monitor.symbols contains duplicates: %s", symbols)

    if not _is_number(mon.get("interval_s")) or mon["interval_s"] <= 0:
        raise InvalidConfiguration("monitor.interval_s must be a positive number")

    n = mon.get("window_size")
    if not isinstance(n, int) or isinstance(n, bool) or n < 1:
        raise InvalidConfiguration("monitor.window_size must be an integer >= 1")

    if not _is_number(mon.get("shutdown_grace_s")) or mon["shutdown_grace_s"] < 0:
        raise InvalidConfiguration("monitor.shutdown_grace_s must be a number >= 0")

    # ───── source section ───────────────────────────────────────────────── #
    src = cfg["source"]
    if src.get("kind") not in SOURCE_KINDS:
        raise InvalidConfiguration(
            f"source.kind must be one of {', '.join(SOURCE_KINDS)}"
        )
    if not _is_number(src.get("max_step")) or src["max_step"] < 0:
        raise InvalidConfiguration("source.max_step must be a number >= 0")
    for key in ("initial_prices", "series"):
        if not isinstance(src.get(key), dict):
            raise InvalidConfiguration(f"source.{key} must be a mapping")
    for sym, values in src["series"].items():
        if not isinstance(values, list):
            raise InvalidConfiguration(f"source.series.{sym} must be a list")

    # ───── sinks / metrics ──────────────────────────────────────────────── #
    fcfg = cfg["sinks"]["file"]
    if fcfg.get("fmt") not in ("csv", "parquet"):
        raise InvalidConfiguration("sinks.file.fmt must be 'csv' or 'parquet'")
    for key in ("rotate_minutes", "max_rows"):
        if not isinstance(fcfg.get(key), int) or fcfg[key] <= 0:
            raise InvalidConfiguration(f"sinks.file.{key} must be a positive integer")

    port = cfg["metrics"].get("port")
    if port is not None and (not isinstance(port, int) or not 0 < port < 65536):
        raise InvalidConfiguration("metrics.port must be a TCP port number or null")
