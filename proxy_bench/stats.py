"""
Latency aggregation. Pure functions over integer millisecond samples.

Percentiles use nearest-rank rounding up: for n samples the p-th percentile
is the smallest latency whose cumulative count reaches ceil(p / 100 * n).
Results only depend on the multiset of samples, never on arrival order.
"""
import math
from collections import Counter
from fractions import Fraction
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

PERCENTILES: Tuple[float, ...] = (50.0, 90.0, 99.0, 99.9)
NO_DATA = "no data"


@dataclass(frozen=True)
class LatencyReport:
    count: int
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    mean: Optional[float] = None
    percentiles: Dict[float, Optional[int]] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return self.count > 0

    def percentile(self, p: float) -> Optional[int]:
        return self.percentiles.get(p)

    def as_dict(self) -> Dict[str, object]:
        return {
            "count": self.count,
            "min_ms": self.minimum,
            "max_ms": self.maximum,
            "mean_ms": self.mean,
            "percentiles_ms": {_label(p): v for p, v in self.percentiles.items()},
        }


def _label(p: float) -> str:
    # 99.9 -> p999, 50.0 -> p50
    return "p" + f"{p:g}".replace(".", "")


def distribution(samples: Iterable[int]) -> List[Tuple[int, int]]:
    """Millisecond buckets as sorted (latency, count) pairs."""
    return sorted(Counter(int(s) for s in samples).items())


def percentile_from_buckets(buckets: List[Tuple[int, int]], total: int, p: float) -> Optional[int]:
    if total <= 0 or not buckets:
        return None
    if not 0.0 < p <= 100.0:
        raise ValueError(f"percentile must be within (0, 100], got {p}")
    # exact: 99.9 is 999/10, not the nearest binary float
    rank = max(1, math.ceil(Fraction(str(p)) / 100 * total))
    seen = 0
    for latency, count in buckets:
        seen += count
        if seen >= rank:
            return latency
    return buckets[-1][0]


def summarize(samples: Iterable[int], percentiles: Tuple[float, ...] = PERCENTILES) -> LatencyReport:
    buckets = distribution(samples)
    total = sum(count for _, count in buckets)
    if total == 0:
        return LatencyReport(count=0, percentiles={p: None for p in percentiles})
    weighted = sum(latency * count for latency, count in buckets)
    return LatencyReport(
        count=total,
        minimum=buckets[0][0],
        maximum=buckets[-1][0],
        mean=weighted / total,
        percentiles={p: percentile_from_buckets(buckets, total, p) for p in percentiles},
    )


def _ms(value: Optional[float]) -> str:
    if value is None:
        return NO_DATA
    if isinstance(value, float):
        return f"{value:.2f} ms"
    return f"{value} ms"


def render_report(report: LatencyReport, rps: float) -> str:
    lines = [f"RPS: {rps:.2f}", "", f"Samples: {report.count}", ""]
    if not report.has_data:
        lines.append(f"Percentiles: {NO_DATA}")
    else:
        lines.append("Percentiles:")
        for p, value in report.percentiles.items():
            lines.append(f"{_label(p)}: {_ms(value)}")
    lines.append("")
    lines.append(f"Minimum: {_ms(report.minimum)}")
    lines.append(f"Maximum: {_ms(report.maximum)}")
    lines.append(f"Mean: {_ms(report.mean)}")
    return "\n".join(lines) + "\n"
