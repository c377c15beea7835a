"""Statistics used to combine redundant sources.

Pure functions over plain sequences of floats. Empty input is a caller bug
and raises ``ValueError``.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

#: Values further than this many standard deviations away are outliers.
OUTLIER_SIGMA = 2.0

#: Outlier rejection needs at least this many values.
MIN_VALUES_FOR_OUTLIERS = 3


def mean(values: Sequence[float]) -> float:
    if not values:
        raise ValueError("mean of empty sequence")
    return math.fsum(values) / len(values)


def median(values: Sequence[float]) -> float:
    """Middle value; the mean of the two middle values for even counts."""
    if not values:
        raise ValueError("median of empty sequence")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def population_stdev(values: Sequence[float]) -> float:
    centre = mean(values)
    return math.sqrt(math.fsum((v - centre) ** 2 for v in values) / len(values))


def outlier_mask(values: Sequence[float], sigma: float = OUTLIER_SIGMA) -> list[bool]:
    """Flag values lying more than ``sigma`` standard deviations from the rest.

    Distance is measured from the mean of the *other* values, in units of
    the population standard deviation of all values. Within a sample of n
    values no value can sit more than sqrt(n - 1) deviations from the
    sample's own mean, so for n <= 5 a plain 2-sigma test never fires:
    10, 10, 10, 1000 has mean 257.5 and stdev 428.7, leaving 1000 only 1.73
    deviations out. From the mean of 10, 10, 10 it is 990 away, 2.3
    deviations.

    Fewer than three values are never flagged. If every value would be
    flagged, none is.
    """
    n = len(values)
    if n < MIN_VALUES_FOR_OUTLIERS:
        return [False] * n

    total = math.fsum(values)
    spread = population_stdev(values)
    mask = []
    for value in values:
        others_mean = (total - value) / (n - 1)
        mask.append(abs(value - others_mean) > sigma * spread)

    if all(mask):
        return [False] * len(values)
    return mask


def filter_outliers(values: Sequence[float], sigma: float = OUTLIER_SIGMA) -> list[float]:
    """Drop the values :func:`outlier_mask` flags, keeping order."""
    mask = outlier_mask(values, sigma)
    return [v for v, rejected in zip(values, mask) if not rejected]


def confidence(values: Sequence[float]) -> float:
    """Agreement score in ``[0, 1]`` from the coefficient of variation.

    ``1 / (1 + 10 * cv)``: identical values score 1.0, a 10% spread about 0.5.
    A single value scores 1.0; a zero mean scores 0.0.
    """
    if len(values) <= 1:
        return 1.0
    centre = mean(values)
    if centre == 0:
        return 0.0
    cv = population_stdev(values) / abs(centre)
    return 1.0 / (1.0 + cv * 10)


def check_quorum(succeeded: int, min_sources: int) -> bool:
    return succeeded >= min_sources


__all__ = [
    "MIN_VALUES_FOR_OUTLIERS",
    "OUTLIER_SIGMA",
    "check_quorum",
    "confidence",
    "filter_outliers",
    "mean",
    "median",
    "outlier_mask",
    "population_stdev",
]
