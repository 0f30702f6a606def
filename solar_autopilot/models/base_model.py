"""
Base Model Interface

Abstract base class that all learning models implement.
Ensures a consistent lifecycle across the pattern detector, the two
forecasters and the charging optimizer: train once, query many,
reset explicitly.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Sequence

import numpy as np
from sklearn.metrics import mean_absolute_error
from sklearn.utils import check_random_state

from .stats import mean

logger = logging.getLogger(__name__)


class BaseModel(ABC):
    """
    Abstract base class for all self-learning models.

    Each model owns its derived tables exclusively. Consumers only read
    the structures returned by query methods.
    """

    def __init__(self, random_state=None):
        """
        Args:
            random_state: None, int seed or numpy RandomState used for
                every random draw the model makes
        """
        self.rng = check_random_state(random_state)
        self._initial_rng_state = self.rng.get_state()
        self.trained = False
        self.accuracy = 0.0

    def reset(self):
        """
        Drop everything learned and return to the untrained state.

        The generator is rewound to the state it had at construction, so
        a reset model replays the same draws. A RandomState passed in by
        the caller is copied rather than rewound in place.
        """
        self.rng = np.random.RandomState()
        self.rng.set_state(self._initial_rng_state)
        self.trained = False
        self.accuracy = 0.0
        self._reset_models()

    @abstractmethod
    def _reset_models(self):
        """Rebuild empty model tables"""
        pass

    @abstractmethod
    def get_status(self) -> Dict:
        """
        Get observability info for this model.

        Returns:
            Dict with at least 'trained' plus model/table sizes
        """
        pass

    def score(self, predicted: Sequence[float], actual: Sequence[float]) -> float:
        """
        Update last-known accuracy from realised values.

        Accuracy is 1 - MAE / mean(actual), floored at 0.

        Args:
            predicted: Forecast values
            actual: Measured values, aligned with `predicted`

        Returns:
            The new accuracy (unchanged if nothing comparable)
        """
        n = min(len(predicted), len(actual))
        if n == 0:
            return self.accuracy

        actual_mean = mean(actual[:n])
        if actual_mean <= 0:
            return self.accuracy

        mae = mean_absolute_error(actual[:n], predicted[:n])
        self.accuracy = max(0.0, 1.0 - mae / actual_mean)
        logger.debug(f"{self.__class__.__name__} accuracy updated: {self.accuracy:.3f} (MAE {mae:.1f}W)")
        return self.accuracy
