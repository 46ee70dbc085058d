import abc

from sma_monitor.models import Sample


class SampleSource(abc.ABC):
    """
    Abstract base class for all sample sources.
    Defines the interface that the Scheduler pulls from once per symbol
    per cycle.
    """

    @abc.abstractmethod
    def next(self, symbol: str) -> Sample:
        """
        Return the latest sample for *symbol*. Must return quickly; a slow
        source stalls the whole cycle.

        :raises SourceUnavailable: no sample could be produced this time
        """

    def close(self):
        """
        Release any resources held by the source.
        """
        pass
