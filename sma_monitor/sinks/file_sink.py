"""sma_monitor.sinks.file_sink
=============================
CSV/Parquet sink that **rotates files by a configurable interval** so
every cycle's results can be inspected offline (see
``scripts/result_analyzer.py``).

Usage
-----
```python
sink = FileSink(
    base_dir="data",     # root directory for all symbols
    fmt="csv",           # or "parquet"
    rotate_minutes=60,   # 1, 5, 60 …
    max_rows=50_000,     # flush earlier if buffer huge
)
await sink.emit(result)
...
await sink.close()       # flushes whatever is still buffered
```

Resulting files take the form:
```
<base_dir>/<symbol>/<yyyy>/<mm>/<dd>/sma_<yyyy‑mm‑dd>_<HH‑MM>.csv
# with HH‑MM being *floored* to the rotate interval boundary
```

Implementation notes
--------------------
* **Flush conditions**: 1) bucket older than one rotate interval, checked
  at the end of every cycle; 2) buffered rows >= *max_rows*; 3) ``close()``.
* CSV files are appended to; Parquet files get a ``_partN`` suffix when a
  bucket is flushed more than once.
* Parquet uses Zstandard compression via *pyarrow*.
* Write errors are re‑raised as ``SinkFailure``.
"""
from __future__ import annotations

import asyncio
import csv
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List

import pyarrow as pa
import pyarrow.parquet as pq

from sma_monitor.errors import SinkFailure
from sma_monitor.models import AnalysisResult, now_ms
from sma_monitor.sinks.base import ResultSink

logger = logging.getLogger(__name__)

__all__ = ["FileSink"]

FIELDS = ["symbol", "timestamp", "price", "sma", "window_size"]


def _bucket_start(ts_ms: int, rotate_minutes: int) -> datetime:
    """Return the UTC datetime floor‑bucket for *ts_ms*."""
    minutes = ts_ms // 60000  # integer minutes since epoch
    bucket = minutes - (minutes % rotate_minutes)
    return datetime.fromtimestamp(bucket * 60, tz=timezone.utc)


def _bucket_dt(key: str) -> datetime:
    *_, label = key.split("|")
    return datetime.strptime(label, "%Y-%m-%d_%H-%M").replace(tzinfo=timezone.utc)


class FileSink(ResultSink):
    """Buffered file writer with time‑based rotation."""

    def __init__(
        self,
        base_dir: str = "data",
        *,
        fmt: str = "csv",  # or "parquet"
        rotate_minutes: int = 60,
        max_rows: int = 50_000,
        compression: str = "zstd",
    ):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.fmt = fmt.lower()
        if self.fmt not in {"parquet", "csv"}:
            raise ValueError("fmt must be 'parquet' or 'csv'")
        if rotate_minutes <= 0 or max_rows <= 0:
            raise ValueError("rotate_minutes and max_rows must be positive")
        self.rotate = rotate_minutes
        self.max_rows = max_rows
        self.compression = compression

        # bucket_key -> list[row]
        self.buffers: Dict[str, List[dict]] = defaultdict(list)
        # bucket_key -> asyncio.Lock
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------ #
    async def emit(self, result: AnalysisResult):
        ts = result.timestamp or now_ms()
        sym = result.symbol.replace("/", "_")
        label = _bucket_start(ts, self.rotate).strftime("%Y-%m-%d_%H-%M")
        key = f"{sym}|{label}"

        row = result.as_row()
        row["timestamp"] = ts
        buf = self.buffers[key]
        buf.append(row)

        if len(buf) >= self.max_rows:
            async with self._locks[key]:
                await self._flush(key)

    async def end_cycle(self):
        await self.periodic_flush()

    async def close(self):
        for key in list(self.buffers):
            async with self._locks[key]:
                await self._flush(key)

    # ------------------------------------------------------------------ #
    async def _flush(self, key: str):
        """Write buffer *key* to disk and clear it."""
        rows = self.buffers.get(key)
        if not rows:
            return

        sym, label = key.split("|")
        dt = _bucket_dt(key)
        out_dir = self.base_dir / sym / dt.strftime("%Y/%m/%d")
        out_file = out_dir / f"sma_{label}.{self.fmt}"

        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            if self.fmt == "parquet":
                part = 1
                while out_file.exists():
                    out_file = out_dir / f"sma_{label}_part{part}.parquet"
                    part += 1
                table = pa.Table.from_pylist(rows)
                pq.write_table(table, out_file, compression=self.compression)
            else:  # CSV
                write_header = not out_file.exists()
                with open(out_file, "a", newline="", encoding="utf-8") as fh:
                    w = csv.DictWriter(fh, fieldnames=FIELDS)
                    if write_header:
                        w.writeheader()
                    w.writerows(rows)
        except OSError as exc:
            raise SinkFailure(f"could not write {out_file}: {exc}") from exc

        logger.debug("Flushed %d rows → %s", len(rows), out_file)
        self.buffers.pop(key, None)
        self._locks.pop(key, None)

    # ------------------------------------------------------------------ #
    async def periodic_flush(self):
        """Flush every bucket that ended at least one rotate interval ago."""
        threshold = datetime.now(tz=timezone.utc) - timedelta(minutes=self.rotate)
        to_flush = [k for k in self.buffers if _bucket_dt(k) < threshold]
        for k in to_flush:
            async with self._locks[k]:
                await self._flush(k)
