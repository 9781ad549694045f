"""Resolution tally — decile calibration buckets over resolved predictions."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable

from augur.models.prediction import Prediction, ResolutionState


@dataclass(frozen=True)
class Bucket:
    """Probability range [low, high); the top bucket also includes 100."""
    low: int
    high: int

    def contains(self, probability: int) -> bool:
        if self.high == 100:
            return self.low <= probability <= 100
        return self.low <= probability < self.high

    @property
    def label(self) -> str:
        closing = "]" if self.high == 100 else ")"
        return f"[{self.low},{self.high}{closing}"


@dataclass
class BucketCount:
    true_count: int = 0
    false_count: int = 0

    @property
    def total(self) -> int:
        return self.true_count + self.false_count


BUCKETS: tuple[Bucket, ...] = tuple(Bucket(low, low + 10) for low in range(0, 100, 10))


def bucket_for(probability: int) -> Bucket:
    if not 0 <= probability <= 100:
        raise ValueError(f"Probability must be 0-100, got {probability}")
    return BUCKETS[min(probability // 10, len(BUCKETS) - 1)]


def tally(resolved: Iterable[Prediction]) -> "OrderedDict[Bucket, BucketCount]":
    """Count TRUE/FALSE outcomes per bucket, reporting all ten buckets."""
    counts: "OrderedDict[Bucket, BucketCount]" = OrderedDict(
        (bucket, BucketCount()) for bucket in BUCKETS
    )
    for prediction in resolved:
        if prediction.resolution_state == ResolutionState.UNRESOLVED:
            continue
        count = counts[bucket_for(prediction.probability)]
        if prediction.resolution_state == ResolutionState.TRUE:
            count.true_count += 1
        else:
            count.false_count += 1
    return counts


def format_tally(counts: "OrderedDict[Bucket, BucketCount]") -> list[str]:
    return [
        f"{bucket.low} to {bucket.high} : {count.true_count} TRUE and {count.false_count} FALSE"
        for bucket, count in counts.items()
    ]
