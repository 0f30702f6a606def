"""
History Provider

Provides historical solar production and house load telemetry for
training.
"""

import logging
import os
from abc import abstractmethod
from typing import Dict, Optional

import pandas as pd

from .base_provider import DataProvider

logger = logging.getLogger(__name__)


class HistoryProvider(DataProvider):
    """Source of historical {'solar', 'load'} sample lists."""

    @abstractmethod
    def get_data(self, days: Optional[int] = None) -> Dict:
        """
        Get historical telemetry.

        Args:
            days: Only return the last `days` days (None = everything)

        Returns:
            {'solar': [Sample], 'load': [Sample]}
        """
        pass

    @staticmethod
    def empty() -> Dict:
        return {'solar': [], 'load': []}


class CsvHistoryProvider(HistoryProvider):
    """
    Reads an exported CSV with columns timestamp,solar,load (watts).

    Either power column may be blank for a row; blank values are skipped.
    """

    def __init__(self):
        super().__init__()
        self.path = None

    def setup(self, config: Dict) -> bool:
        """
        Config:
        - history_file: path to the CSV export
        """
        self.path = config.get('history_file')

        if not self.path or not os.path.exists(self.path):
            self._mark_unhealthy('degraded', f"History file not found: {self.path}")
            return False

        self._mark_healthy(f"History file ready: {self.path}")
        return True

    def get_data(self, days: Optional[int] = None) -> Dict:
        if not self.path:
            return self.empty()

        try:
            frame = pd.read_csv(self.path)
            frame['timestamp'] = pd.to_datetime(frame['timestamp'])
            if frame['timestamp'].dt.tz is not None:
                frame['timestamp'] = frame['timestamp'].dt.tz_localize(None)
        except Exception as e:
            self._mark_unhealthy('failed', f"Failed to read history: {e}")
            return self.empty()

        frame = frame.sort_values('timestamp')
        if days is not None and not frame.empty:
            cutoff = frame['timestamp'].max() - pd.Timedelta(days=days)
            frame = frame[frame['timestamp'] > cutoff]

        history = {}
        for column in ('solar', 'load'):
            if column not in frame.columns:
                history[column] = []
                continue
            rows = frame[['timestamp', column]].dropna()
            history[column] = [
                {'timestamp': ts.to_pydatetime(), 'power': float(power)}
                for ts, power in zip(rows['timestamp'], rows[column])
            ]

        self._mark_healthy(f"Loaded {len(history['solar'])} solar / {len(history['load'])} load samples")
        logger.info(f"📂 {self._health_message} from {self.path}")
        return history
