"""scripts/result_analyzer.py
================================
CLI helper to load FileSink result shards, summarise them and optionally
export or plot price vs. SMA.

Usage examples
--------------
1. Summary of one hour of AAPL results, exported to parquet:

```
python -m scripts.result_analyzer \
       --base-dir data           \
       --symbol AAPL             \
       --from "2026-10-19 10:00" \
       --to   "2026-10-19 11:00" \
       --out aapl_sma.parquet
```

2. Plot price and SMA interactively:

```
python -m scripts.result_analyzer --symbol AAPL \
       --from "2026-10-19 10:00" --to "2026-10-19 10:30" --plot
```

Dependencies
~~~~~~~~~~~~
* `polars`, `pyarrow`
* `matplotlib` only when `--plot` or `--save` is requested
"""
from __future__ import annotations

import argparse
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import polars as pl

# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _parse_dt(dt_str: str) -> datetime:
    dt = datetime.fromisoformat(dt_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _bucket_files(base: Path, sym: str, start: datetime, end: datetime) -> List[Path]:
    files: List[Path] = []
    date_range = pl.date_range(start.date(), end.date(), interval="1d", eager=True)
    for day in date_range:
        folder = base / sym / day.strftime("%Y/%m/%d")
        if folder.is_dir():
            files.extend(p for p in folder.iterdir() if p.suffix in (".parquet", ".csv"))
    return sorted(files)


def _read_concat(files: List[Path]) -> pl.DataFrame:
    if not files:
        raise FileNotFoundError("No files found for the given window.")
    parts = [pl.read_parquet(f) if f.suffix == ".parquet" else pl.read_csv(f) for f in files]
    df = pl.concat(parts, how="vertical_relaxed")
    return df.with_columns(
        pl.col("timestamp").cast(pl.Int64),
        pl.col("price").cast(pl.Float64),
        pl.col("sma").cast(pl.Float64),
    ).sort("timestamp")


def summarise(df: pl.DataFrame) -> Dict[str, object]:
    """Row counts, latest SMA and how often price crossed its SMA."""
    ready = df.filter(pl.col("sma").is_not_null())
    crossings = 0
    if ready.height > 1:
        side = (pl.col("price") - pl.col("sma")).sign()
        crossings = ready.select((side.diff().fill_null(0) != 0).sum()).item()
    return {
        "rows": df.height,
        "ready_rows": ready.height,
        "last_price": df["price"][-1] if df.height else None,
        "last_sma": ready["sma"][-1] if ready.height else None,
        "crossings": crossings,
    }

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv=None):
    p = argparse.ArgumentParser(description="SMA result analyzer & plotter")
    p.add_argument("--base-dir", default="data", help="root of FileSink output")
    p.add_argument("--symbol", required=True, help="symbol name, e.g. AAPL")
    p.add_argument("--from", dest="start", required=True, help="UTC start time ISO e.g. '2026-10-19 10:00'")
    p.add_argument("--to", dest="end", required=True, help="UTC end time ISO")
    p.add_argument("--out", help="export DataFrame to parquet/csv path")
    p.add_argument("--plot", action="store_true", help="show interactive plot")
    p.add_argument("--save", help="save plot to image file (png/pdf/svg)")
    args = p.parse_args(argv)

    base   = Path(args.base_dir)
    start  = _parse_dt(args.start)
    end    = _parse_dt(args.end)
    sym    = args.symbol.replace("/", "_")

    files  = _bucket_files(base, sym, start, end)
    df     = _read_concat(files)
    df = df.filter((pl.col("timestamp") >= int(start.timestamp()*1000)) &
                   (pl.col("timestamp") <= int(end.timestamp()*1000)))

    for key, value in summarise(df).items():
        print(f"{key:>11}: {value}")

    # ---------------- export ----------------
    if args.out:
        if args.out.endswith(".parquet"):
            df.write_parquet(args.out)
        else:
            df.write_csv(args.out)

    # ---------------- plot ------------------
    if args.plot or args.save:
        import matplotlib.pyplot as plt
        ts = df["timestamp"].to_numpy() / 1000
        plt.plot(ts, df["price"], label="price")
        plt.plot(ts, df["sma"], label=f"SMA({df['window_size'][0]})")
        plt.legend(); plt.title(args.symbol)
        plt.xlabel("unix time (s)")
        if args.save:
            plt.savefig(args.save, dpi=150, bbox_inches="tight")
        if args.plot:
            plt.show()

if __name__ == "__main__":
    main()
