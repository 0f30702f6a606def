"""
System State Provider

Provides current battery and inverter state from a JSON snapshot that the
inverter bridge rewrites periodically.
"""

import json
import os
from typing import Dict

from .base_provider import DataProvider


class SystemStateProvider(DataProvider):
    """
    Provides current system state (battery SOC, PV power, house load).

    Snapshot keys: battery_soc (%), pv_power (W), load (W). Missing keys
    are left out of the returned state.
    """

    STATE_KEYS = ('battery_soc', 'pv_power', 'load')

    def __init__(self):
        super().__init__()
        self.path = None

    def setup(self, config: Dict) -> bool:
        """
        Config:
        - state_file: path to the JSON snapshot
        """
        self.path = config.get('state_file')

        if not self.path or not os.path.exists(self.path):
            self._mark_unhealthy('degraded', f"State file not found: {self.path}")
            return False

        self._mark_healthy(f"State file ready: {self.path}")
        return True

    def get_data(self) -> Dict:
        """
        Get current system state.

        Returns:
            Dict with battery_soc / pv_power / load (empty if unavailable)
        """
        if not self.path:
            return {}

        try:
            with open(self.path, 'r') as f:
                snapshot = json.load(f)
        except (OSError, ValueError) as e:
            self._mark_unhealthy('failed', f"Failed to read system state: {e}")
            return {}

        state = {key: float(snapshot[key]) for key in self.STATE_KEYS if snapshot.get(key) is not None}
        self._mark_healthy(f"SOC {state.get('battery_soc', '?')}%")
        return state
