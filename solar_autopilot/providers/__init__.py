"""
Data Providers Package

All data providers for Solar Autopilot.
Each provider implements the DataProvider interface.
"""

from .base_provider import DataProvider
from .history_provider import HistoryProvider, CsvHistoryProvider
from .price_provider import PriceProvider, JsonPriceProvider, SyntheticPriceProvider
from .system_state_provider import SystemStateProvider

__all__ = [
    'DataProvider',
    'HistoryProvider',
    'CsvHistoryProvider',
    'PriceProvider',
    'JsonPriceProvider',
    'SyntheticPriceProvider',
    'SystemStateProvider',
]
