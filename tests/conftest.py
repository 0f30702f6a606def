"""Synthetic telemetry fixtures."""
import math
from datetime import datetime, timedelta

import pandas as pd
import pytest

# A Monday
START = datetime(2024, 3, 4)


def make_solar_samples(start=START, days=30, peak=4000.0, cloudy_every=None):
    """Hourly bell curve between 06:00 and 20:00; every `cloudy_every`-th day at 30%."""
    samples = []
    for d in range(days):
        factor = 0.3 if cloudy_every and d % cloudy_every == cloudy_every - 1 else 1.0
        for h in range(24):
            power = 0.0
            if 6 <= h <= 20:
                power = peak * factor * math.sin(math.pi * (h - 6) / 14)
            samples.append({'timestamp': start + timedelta(days=d, hours=h), 'power': power})
    return samples


def make_load_samples(start=START, days=30, weekday=650.0, weekend=450.0):
    samples = []
    for d in range(days):
        day = start + timedelta(days=d)
        power = weekend if day.weekday() >= 5 else weekday
        for h in range(24):
            samples.append({'timestamp': day + timedelta(hours=h), 'power': power})
    return samples


@pytest.fixture
def make_solar():
    return make_solar_samples


@pytest.fixture
def make_load():
    return make_load_samples


@pytest.fixture
def dataset():
    return {
        'solar': make_solar_samples(days=60, cloudy_every=3),
        'load': make_load_samples(days=60)
    }


@pytest.fixture
def history_csv(tmp_path):
    """40 days of solar/load history in the CSV export format."""
    solar = make_solar_samples(days=40, cloudy_every=4)
    load = make_load_samples(days=40)
    frame = pd.DataFrame({
        'timestamp': [p['timestamp'] for p in solar],
        'solar': [p['power'] for p in solar],
        'load': [p['power'] for p in load]
    })
    path = tmp_path / 'history.csv'
    frame.to_csv(path, index=False)
    return path
