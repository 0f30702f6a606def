"""
Self-learning models for Solar Autopilot.

Each model implements the BaseModel interface.
"""

from .base_model import BaseModel
from .pattern_detector import PatternDetector
from .solar_predictor import SolarPredictor
from .load_forecaster import LoadForecaster
from .charging_optimizer import ChargingOptimizer, RewardHistory

__all__ = [
    'BaseModel',
    'PatternDetector',
    'SolarPredictor',
    'LoadForecaster',
    'ChargingOptimizer',
    'RewardHistory',
]
