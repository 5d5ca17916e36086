"""Process-local counters and latency histograms for the bot.

Everything is exported by ``/metrics`` as one flat ``name -> int`` mapping;
a histogram ``h`` contributes ``histo.h.le_<bound>``, ``histo.h.gt_<last>``,
``histo.h.sum`` and ``histo.h.count``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

# Upper bounds in milliseconds; dispatch latency rarely leaves this range
DEFAULT_BUCKETS_MS: tuple[int, ...] = (1, 2, 5, 10, 20, 50, 100, 250, 500, 1000, 2000, 5000)


@dataclass
class _Histogram:
    bounds: tuple[int, ...]
    hits: Counter = field(default_factory=Counter)
    total: int = 0
    samples: int = 0

    def observe(self, value: int) -> None:
        label = next((f"le_{b}" for b in self.bounds if value <= b), f"gt_{self.bounds[-1]}")
        self.hits[label] += 1
        self.total += value
        self.samples += 1


_counts: Counter = Counter()
_histos: dict[str, _Histogram] = {}


def inc_counter(name: str, value: int = 1) -> None:
    _counts[name] += int(value)


def get_counter(name: str) -> int:
    return _counts[name]


def reset_counters() -> None:
    _counts.clear()
    _histos.clear()


def observe_histogram(name: str, value: int, *, buckets: list[int] | None = None) -> None:
    """Record ``value`` in the named histogram.

    Bounds are fixed by the first observation; later ``buckets`` are ignored.
    """
    histo = _histos.get(name)
    if histo is None:
        histo = _histos[name] = _Histogram(tuple(buckets) if buckets else DEFAULT_BUCKETS_MS)
    histo.observe(int(value))


def get_counters() -> dict[str, int]:
    out = {k: v for k, v in _counts.items() if v}
    for name, histo in _histos.items():
        prefix = f"histo.{name}"
        out.update({f"{prefix}.{label}": n for label, n in histo.hits.items()})
        out[f"{prefix}.sum"] = histo.total
        out[f"{prefix}.count"] = histo.samples
    return out
