"""
Numeric helpers shared by the learning models.

All helpers are total: empty inputs and zero denominators return a
neutral value instead of NaN or raising.
"""

import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np


def mean(values: Sequence[float], default: float = 0.0) -> float:
    """Arithmetic mean, `default` for an empty sequence"""
    if len(values) == 0:
        return default
    return float(np.mean(values))


def calculate_variance(values: Sequence[float]) -> float:
    """Population variance (0 for empty input)"""
    if len(values) == 0:
        return 0.0
    return float(np.var(np.asarray(values, dtype=float)))


def safe_max(values: Sequence[float], default: float = 0.0) -> float:
    if len(values) == 0:
        return default
    return float(max(values))


def safe_ratio(numerator: float, denominator: float, default: float = 1.0) -> float:
    """numerator / denominator, `default` when the denominator is zero"""
    if denominator == 0 or math.isnan(denominator):
        return default
    return numerator / denominator


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def euclidean_distance(point1: Sequence[float], point2: Sequence[float]) -> float:
    return float(np.linalg.norm(np.asarray(point1, dtype=float) - np.asarray(point2, dtype=float)))


def argmax_first(values: Sequence[float]) -> int:
    """Index of the first maximum (0 for empty input)"""
    if len(values) == 0:
        return 0
    return int(np.argmax(values))


def is_weekend(when: datetime) -> bool:
    return when.weekday() >= 5


def calculate_hourly_average(samples: List[Dict]) -> List[float]:
    """Average power per hour of day; hours without samples are 0."""
    totals = [0.0] * 24
    counts = [0] * 24

    for point in samples:
        hour = point['timestamp'].hour
        totals[hour] += point.get('power') or 0.0
        counts[hour] += 1

    return [totals[h] / counts[h] if counts[h] > 0 else 0.0 for h in range(24)]


def average_curves(curves: List[Sequence[float]], length: int = 24) -> List[float]:
    """Element-wise mean of equal-length curves (zeros when none given)"""
    if not curves:
        return [0.0] * length
    return [float(v) for v in np.mean(np.asarray(curves, dtype=float), axis=0)]


def normalize_timestamp(value) -> Optional[datetime]:
    """Coerce a timestamp to a naive datetime (None if unparseable)"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if hasattr(value, 'to_pydatetime'):
        return value.to_pydatetime().replace(tzinfo=None)
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        return None


def sorted_samples(samples: Optional[List[Dict]]) -> List[Dict]:
    """
    Normalise and time-order raw samples.

    Drops entries without a usable timestamp; a missing power is read as 0.
    """
    if not samples:
        return []

    cleaned = []
    for point in samples:
        timestamp = normalize_timestamp(point.get('timestamp'))
        if timestamp is None:
            continue
        power = point.get('power')
        cleaned.append({
            'timestamp': timestamp,
            'power': float(power) if power is not None else 0.0,
        })

    cleaned.sort(key=lambda p: p['timestamp'])
    return cleaned
