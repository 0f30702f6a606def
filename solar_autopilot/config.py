"""Configuration management for the add-on."""
import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class Config:
    """Configuration handler for the add-on."""

    def __init__(self, options: Optional[Dict] = None):
        """
        Initialize configuration from Home Assistant options.

        Args:
            options: Explicit options dict; read from CONFIG_PATH
                (default /data/options.json) when omitted
        """
        if options is not None:
            self.options = dict(options)
            return

        config_path = os.getenv('CONFIG_PATH', '/data/options.json')
        if os.path.exists(config_path):
            with open(config_path, 'r') as f:
                self.options = json.load(f)
        else:
            logger.warning(f"No options file at {config_path}, using defaults")
            self.options = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        value = self.options.get(key)
        return default if value is None else value

    @property
    def enabled(self) -> bool:
        """Whether the engine makes decisions at all."""
        return bool(self.get('enabled', True))

    @property
    def log_level(self) -> str:
        return str(self.get('log_level', 'INFO')).upper()

    # Location
    @property
    def latitude(self) -> float:
        return float(self.get('latitude', 52.5))

    @property
    def longitude(self) -> float:
        return float(self.get('longitude', 13.4))

    # Battery
    @property
    def battery_capacity_kwh(self) -> float:
        """Battery capacity in kWh."""
        return float(self.get('battery_capacity_kwh', 15.0))

    # Pricing thresholds (cents/kWh)
    @property
    def charge_threshold(self) -> float:
        """Grid charging is considered excellent at or below this price."""
        return float(self.get('charge_threshold', 8.0))

    @property
    def max_price(self) -> float:
        """Never grid charge above this price."""
        return float(self.get('max_price', 10.0))

    # Learning
    @property
    def cluster_count(self) -> int:
        """Number of daily-profile clusters."""
        return int(self.get('cluster_count', 5))

    @property
    def history_days(self) -> int:
        """Days of history used for training."""
        return int(self.get('history_days', 365))

    @property
    def baseline_load(self) -> float:
        """House load assumed before anything is learned (W)."""
        return float(self.get('baseline_load', 500.0))

    @property
    def random_seed(self) -> Optional[int]:
        seed = self.get('random_seed')
        return int(seed) if seed is not None else None

    @property
    def forecast_hours(self) -> int:
        return int(self.get('forecast_hours', 24))

    @property
    def evaluation_interval(self) -> int:
        """Evaluation interval in seconds."""
        return int(self.get('evaluation_interval', 300))

    # Files
    @property
    def model_dir(self) -> str:
        return self.get('model_dir', '/data/models')

    @property
    def history_file(self) -> str:
        """CSV export with timestamp,solar,load columns."""
        return self.get('history_file', '/data/history.csv')

    @property
    def price_file(self) -> str:
        """JSON price forecast; synthetic prices are used when absent."""
        return self.get('price_file', '/data/prices.json')

    @property
    def state_file(self) -> str:
        return self.get('state_file', '/data/system_state.json')

    @property
    def base_price(self) -> float:
        """Average price for synthetic forecasts (currency/kWh)."""
        return float(self.get('base_price', 0.12))

    def provider_config(self) -> Dict:
        """Settings handed to DataProvider.setup()."""
        return {
            'history_file': self.history_file,
            'price_file': self.price_file,
            'state_file': self.state_file,
            'base_price': self.base_price
        }
