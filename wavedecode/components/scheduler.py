import heapq
from typing import Dict, List, Mapping, Tuple


class ChannelScheduler:
    """
    ChannelScheduler: picks the channel whose next unexamined sample is earliest.

    Ordering: sample time ascending, then sample rate descending
    (finer channel first at equal time), then declaration order.
    Sample times are computed as index / rate, never accumulated.
    """

    def __init__(self, rates: Mapping[str, float], next_index: Mapping[str, int]):
        self.rates = dict(rates)
        self._order = {ch: i for i, ch in enumerate(rates)}
        self._heap: List[Tuple[float, float, int, str]] = []
        self._indices: Dict[str, int] = {}
        for ch, index in next_index.items():
            self.push(ch, index)

    def pop(self) -> Tuple[str, int, float]:
        """Returns (channel, sample index, sample time) of the earliest entry."""
        t, _, _, ch = heapq.heappop(self._heap)
        return ch, self._indices.pop(ch), t

    def push(self, channel: str, index: int):
        rate = self.rates[channel]
        self._indices[channel] = index
        heapq.heappush(self._heap, (index / rate, -rate, self._order[channel], channel))
