from collections import deque
from typing import Deque, Dict, List


class RollingWindowMixin:
    """
    Helper that maintains a per‑symbol deque of values clipped to the
    last ``window_size`` entries (oldest evicted first).
    """

    def __init__(self, window_size: int):
        self.window_size = window_size
        # insertion order of the dict == first‑seen order of symbols
        self._hist: Dict[str, Deque[float]] = {}

    def _push(self, sym: str, val: float) -> Deque[float]:
        dq = self._hist.get(sym)
        if dq is None:
            dq = self._hist[sym] = deque()
        dq.append(val)
        while len(dq) > self.window_size:
            dq.popleft()
        return dq

    def window(self, sym: str) -> tuple:
        """Snapshot of *sym*'s window, oldest first (empty if never seen)."""
        return tuple(self._hist.get(sym, ()))

    def symbols(self) -> List[str]:
        return list(self._hist)
