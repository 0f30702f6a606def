"""
Base Provider Interface

All data providers (history, pricing, state) inherit from this.
Ensures consistent API across all data sources.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict

logger = logging.getLogger(__name__)


class DataProvider(ABC):
    """
    Abstract base class for all data providers.

    Each provider is responsible for:
    - Fetching/calculating its specific data
    - Reporting its health status
    - Being independently testable
    """

    def __init__(self):
        self._last_update = None
        self._health_status = 'unknown'
        self._health_message = 'Not set up'

    @abstractmethod
    def setup(self, config: Dict) -> bool:
        """
        Setup the provider with configuration.

        Args:
            config: Configuration dictionary

        Returns:
            True if setup successful, False otherwise
        """
        pass

    @abstractmethod
    def get_data(self, **kwargs) -> Any:
        """
        Get the provider's data.

        Returns:
            Provider-specific data structure
        """
        pass

    def get_health(self) -> Dict:
        """
        Get health status of this provider.

        Returns:
            Dict with keys:
                - status: 'healthy', 'degraded', 'failed' or 'unknown'
                - last_update: datetime of last successful update
                - message: human-readable status message
        """
        return {
            'status': self._health_status,
            'last_update': self._last_update,
            'message': self._health_message
        }

    def _mark_healthy(self, message: str):
        self._health_status = 'healthy'
        self._health_message = message
        self._last_update = datetime.now()

    def _mark_unhealthy(self, status: str, message: str):
        self._health_status = status
        self._health_message = message
        level = logging.ERROR if status == 'failed' else logging.WARNING
        logger.log(level, f"{self.get_provider_name()}: {message}")

    def get_provider_name(self) -> str:
        """Get human-readable provider name"""
        return self.__class__.__name__
