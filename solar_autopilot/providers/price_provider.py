"""
Price Providers

Provide the hourly grid import price forecast in currency per kWh:
[{'timestamp', 'total', 'level'}, ...]
"""

import json
import logging
import os
from abc import abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..models.stats import normalize_timestamp
from .base_provider import DataProvider

logger = logging.getLogger(__name__)


class PriceProvider(DataProvider):
    """Base for price forecast sources."""

    CHEAP_BELOW = 0.08
    EXPENSIVE_ABOVE = 0.15

    def get_data(self, hours: int = 24, now: Optional[datetime] = None) -> List[Dict]:
        """
        Get the price forecast starting at the current hour.

        Args:
            hours: Number of hourly prices wanted
            now: Reference time (default now)
        """
        start = (now or datetime.now()).replace(minute=0, second=0, microsecond=0)
        return self._get_prices(start, hours)

    @abstractmethod
    def _get_prices(self, start: datetime, hours: int) -> List[Dict]:
        """Hourly prices for `hours` hours from `start`"""
        pass

    @classmethod
    def classify_level(cls, total: float) -> str:
        if total < cls.CHEAP_BELOW:
            return 'CHEAP'
        if total > cls.EXPENSIVE_ABOVE:
            return 'EXPENSIVE'
        return 'NORMAL'


class JsonPriceProvider(PriceProvider):
    """
    Reads a price forecast file: a JSON list of
    {"timestamp": ISO-8601, "total": float, "level": optional str}.
    """

    def __init__(self):
        super().__init__()
        self.path = None

    def setup(self, config: Dict) -> bool:
        """
        Config:
        - price_file: path to the JSON forecast
        """
        self.path = config.get('price_file')

        if not self.path or not os.path.exists(self.path):
            self._mark_unhealthy('degraded', f"Price file not found: {self.path}")
            return False

        self._mark_healthy(f"Price file ready: {self.path}")
        return True

    def _get_prices(self, start: datetime, hours: int) -> List[Dict]:
        if not self.path:
            return []

        try:
            with open(self.path, 'r') as f:
                raw_prices = json.load(f)
        except (OSError, ValueError) as e:
            self._mark_unhealthy('failed', f"Failed to read prices: {e}")
            return []

        prices = []
        for entry in raw_prices:
            timestamp = normalize_timestamp(entry.get('timestamp'))
            if timestamp is None or entry.get('total') is None or timestamp < start:
                continue
            total = float(entry['total'])
            prices.append({
                'timestamp': timestamp,
                'total': total,
                'level': entry.get('level') or self.classify_level(total)
            })

        prices.sort(key=lambda p: p['timestamp'])
        prices = prices[:hours]

        if prices:
            self._mark_healthy(f"{len(prices)}h of prices known")
        else:
            self._mark_unhealthy('degraded', 'No future prices in forecast file')
        return prices


class SyntheticPriceProvider(PriceProvider):
    """
    Time-of-day price curve for when no real forecast exists.

    Evening peak (18-21h) x1.3, night trough (2-5h) x0.7.
    """

    def __init__(self, base_price: float = 0.12):
        super().__init__()
        self.base_price = base_price

    def setup(self, config: Dict) -> bool:
        """
        Config:
        - base_price: average price in currency/kWh (default 0.12)
        """
        self.base_price = float(config.get('base_price', self.base_price))
        self._mark_healthy(f"Synthetic prices around {self.base_price:.3f}/kWh")
        return True

    def _get_prices(self, start: datetime, hours: int) -> List[Dict]:
        prices = []
        for h in range(hours):
            timestamp = start + timedelta(hours=h)
            multiplier = 1.0
            if 18 <= timestamp.hour <= 21:
                multiplier = 1.3
            elif 2 <= timestamp.hour <= 5:
                multiplier = 0.7

            total = self.base_price * multiplier
            prices.append({'timestamp': timestamp, 'total': total, 'level': self.classify_level(total)})

        self._last_update = datetime.now()
        return prices
