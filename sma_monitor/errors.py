"""
Error taxonomy for SMA Monitor.

* ``InvalidConfiguration`` – fatal, raised at construction / start / config load
* ``SourceUnavailable``    – one sample fetch failed; the symbol is skipped
* ``SinkFailure``          – one result could not be delivered
"""


class InvalidConfiguration(ValueError):
    """Bad window size, interval, symbol list or config file structure."""


class SourceUnavailable(RuntimeError):
    """A SampleSource could not produce a sample for a symbol."""

    def __init__(self, symbol: str, reason: str = "no data"):
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class SinkFailure(RuntimeError):
    """A ResultSink failed to deliver or persist a result."""
