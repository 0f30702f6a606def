"""Coordinator for the self-learning charging components."""
import logging
import os
import threading
from datetime import datetime
from typing import Dict, List, Optional

import joblib

from .config import Config
from .data_processor import DataProcessor
from .models import ChargingOptimizer, LoadForecaster, PatternDetector, SolarPredictor
from .providers import (
    CsvHistoryProvider,
    HistoryProvider,
    JsonPriceProvider,
    PriceProvider,
    SyntheticPriceProvider,
    SystemStateProvider,
)

logger = logging.getLogger(__name__)


class LearningCoordinator:
    """
    Owns the four models and serializes every train/evaluate call.

    Queries never see a half-trained model: all model access goes through
    one lock.
    """

    MODEL_FILES = {
        'pattern_detector': 'pattern_detector.joblib',
        'solar_predictor': 'solar_predictor.joblib',
        'load_forecaster': 'load_forecaster.joblib',
        'charging_optimizer': 'charging_optimizer.joblib'
    }

    def __init__(self, config: Config,
                 history_provider: Optional[HistoryProvider] = None,
                 price_provider: Optional[PriceProvider] = None,
                 state_provider: Optional[SystemStateProvider] = None):
        self.config = config
        self.enabled = config.enabled
        self._lock = threading.RLock()

        self.history_provider = history_provider
        self.price_provider = price_provider
        self.state_provider = state_provider
        self.processor = DataProcessor()

        seed = config.random_seed
        self.pattern_detector = PatternDetector(cluster_count=config.cluster_count, random_state=seed)
        self.solar_predictor = SolarPredictor(config.latitude, config.longitude, random_state=seed)
        self.load_forecaster = LoadForecaster(baseline_load=config.baseline_load, random_state=seed)
        self.charging_optimizer = ChargingOptimizer(
            charge_threshold=config.charge_threshold,
            max_price=config.max_price,
            battery_capacity=config.battery_capacity_kwh,
            random_state=seed
        )

        self.latest_data = {
            'last_training': None,
            'training_result': {},
            'last_decision': None,
            'last_update': None
        }
        self._last_observed_hour = None

    @classmethod
    def from_config(cls, config: Config) -> 'LearningCoordinator':
        """Build a coordinator with file-backed providers."""
        provider_config = config.provider_config()

        history_provider = CsvHistoryProvider()
        history_provider.setup(provider_config)

        price_provider = JsonPriceProvider()
        if not price_provider.setup(provider_config):
            logger.info("💰 No price forecast file, using synthetic prices")
            price_provider = SyntheticPriceProvider()
            price_provider.setup(provider_config)

        state_provider = SystemStateProvider()
        state_provider.setup(provider_config)

        return cls(config, history_provider, price_provider, state_provider)

    @property
    def models(self) -> Dict:
        return {
            'pattern_detector': self.pattern_detector,
            'solar_predictor': self.solar_predictor,
            'load_forecaster': self.load_forecaster,
            'charging_optimizer': self.charging_optimizer
        }

    # ========== CORE INTERFACE ==========

    def train_patterns(self, dataset: Dict) -> bool:
        with self._lock:
            return self.pattern_detector.analyze_patterns(dataset)

    def get_relevant_patterns(self, now: datetime) -> Dict:
        with self._lock:
            return self.pattern_detector.get_relevant_patterns(now)

    def train_solar(self, solar_samples: List[Dict]) -> bool:
        with self._lock:
            success = self.solar_predictor.train(solar_samples)
            if success and self.pattern_detector.trained:
                patterns = self.pattern_detector.get_relevant_patterns(datetime.now())
                self.solar_predictor.use_weather_prior(patterns.get('expected_weather'))
            return success

    def predict_solar(self, start_time: datetime, hours_ahead: int = 24) -> List[Dict]:
        with self._lock:
            return self.solar_predictor.predict(start_time, hours_ahead)

    def train_load(self, load_samples: List[Dict]) -> bool:
        with self._lock:
            return self.load_forecaster.train(load_samples)

    def predict_load(self, start_time: datetime, hours_ahead: int = 24) -> List[Dict]:
        with self._lock:
            return self.load_forecaster.predict(start_time, hours_ahead)

    def train_optimizer(self, dataset: Dict, price_provider: Optional[PriceProvider] = None) -> bool:
        """Train the optimizer; `price_provider` defaults to the coordinator's own."""
        with self._lock:
            patterns = None
            if self.pattern_detector.trained:
                patterns = self.pattern_detector.get_relevant_patterns(datetime.now())
            return self.charging_optimizer.train(dataset, price_provider or self.price_provider, patterns)

    def optimize(self, optimization_input: Dict) -> Dict:
        with self._lock:
            return self.charging_optimizer.optimize(optimization_input)

    def update_rewards(self, outcome_data: Dict) -> float:
        with self._lock:
            return self.charging_optimizer.update_rewards(outcome_data)

    def get_status(self) -> Dict:
        with self._lock:
            providers = {}
            for name, provider in (('history', self.history_provider),
                                   ('prices', self.price_provider),
                                   ('system_state', self.state_provider)):
                if provider is not None:
                    providers[name] = provider.get_health()

            return {
                'enabled': self.enabled,
                'last_training': self.latest_data['last_training'],
                'training_result': dict(self.latest_data['training_result']),
                'last_decision': self.latest_data['last_decision'],
                'models': {name: model.get_status() for name, model in self.models.items()},
                'providers': providers
            }

    # ========== CYCLES ==========

    def train_all(self) -> Dict[str, bool]:
        """Load history and train detector -> solar -> load -> optimizer."""
        logger.info("=" * 60)
        logger.info("Starting training cycle")
        logger.info("=" * 60)

        with self._lock:
            dataset = self.processor.prepare_dataset(self._load_history())

            results = {'patterns': self.train_patterns(dataset)}
            results['solar'] = self.train_solar(dataset['solar'])
            results['load'] = self.train_load(dataset['load'])
            results['optimizer'] = self.train_optimizer(dataset)

            self.latest_data['last_training'] = datetime.now()
            self.latest_data['training_result'] = results

        trained = [name for name, ok in results.items() if ok]
        logger.info(f"✅ Training cycle complete: {len(trained)}/{len(results)} models trained "
                    f"({', '.join(trained) or 'none'})")
        return results

    def evaluate(self, system_state: Optional[Dict] = None, now: Optional[datetime] = None) -> Dict:
        """
        Produce the decision for the current moment.

        Never raises: disabled engines return IDLE, failures return ERROR.
        """
        now = now or datetime.now()

        if not self.enabled:
            return self._status_decision('IDLE', 'AI charging engine is disabled', now)

        try:
            with self._lock:
                state = system_state if system_state is not None else self._read_system_state()
                hours = self.config.forecast_hours

                patterns = None
                if self.pattern_detector.trained:
                    patterns = self.pattern_detector.get_relevant_patterns(now)

                decision = self.charging_optimizer.optimize({
                    'current_state': state,
                    'battery_capacity': self.config.battery_capacity_kwh,
                    'solar_forecast': self.solar_predictor.predict(now, hours),
                    'load_forecast': self.load_forecaster.predict(now, hours),
                    'price_forecast': self._read_prices(now, hours),
                    'patterns': patterns,
                    'timestamp': now
                })
                decision['timestamp'] = now

                self.record_observation(state, now)
                self.latest_data['last_decision'] = decision
                self.latest_data['last_update'] = now

            logger.info(f"🔋 Decision: {decision['action']} ({decision['confidence']:.2f}) - {decision['reason']}")
            return decision

        except Exception as e:
            logger.error(f"Error in evaluation cycle: {e}", exc_info=True)
            return self._status_decision('ERROR', str(e), now)

    def score_forecasts(self, start_time: datetime, actual_solar: List[float], actual_load: List[float]) -> Dict:
        """Update forecast accuracy from measured hourly values starting at `start_time`."""
        with self._lock:
            solar = self.solar_predictor.predict(start_time, len(actual_solar))
            load = self.load_forecaster.predict(start_time, len(actual_load))
            return {
                'solar': self.solar_predictor.score([p['power'] for p in solar], actual_solar),
                'load': self.load_forecaster.score([p['power'] for p in load], actual_load)
            }

    # ========== PERSISTENCE ==========

    def save_models(self) -> bool:
        model_dir = self.config.model_dir
        try:
            os.makedirs(model_dir, exist_ok=True)
            with self._lock:
                for name, model in self.models.items():
                    joblib.dump(model, os.path.join(model_dir, self.MODEL_FILES[name]))
            logger.info(f"💾 Saved models to {model_dir}")
            return True
        except Exception as e:
            logger.error(f"Error saving models: {e}", exc_info=True)
            return False

    def load_models(self) -> bool:
        """Load persisted models; True only if all four were restored."""
        model_dir = self.config.model_dir
        paths = {name: os.path.join(model_dir, filename) for name, filename in self.MODEL_FILES.items()}

        if not all(os.path.exists(path) for path in paths.values()):
            logger.info(f"No saved models in {model_dir}")
            return False

        try:
            loaded = {name: joblib.load(path) for name, path in paths.items()}
        except Exception as e:
            logger.error(f"Error loading models: {e}", exc_info=True)
            return False

        with self._lock:
            self.pattern_detector = loaded['pattern_detector']
            self.solar_predictor = loaded['solar_predictor']
            self.load_forecaster = loaded['load_forecaster']
            self.charging_optimizer = loaded['charging_optimizer']

        logger.info(f"Loaded existing models from {model_dir}")
        return True

    # ========== HELPERS ==========

    def _load_history(self) -> Dict:
        if self.history_provider is None:
            return HistoryProvider.empty()
        try:
            return self.history_provider.get_data(days=self.config.history_days)
        except Exception as e:
            logger.error(f"Error loading history: {e}", exc_info=True)
            return HistoryProvider.empty()

    def _read_prices(self, now: datetime, hours: int) -> List[Dict]:
        if self.price_provider is None:
            return []
        try:
            return self.price_provider.get_data(hours=hours, now=now)
        except Exception as e:
            logger.error(f"Error reading prices: {e}", exc_info=True)
            return []

    def _read_system_state(self) -> Dict:
        if self.state_provider is None:
            return {}
        try:
            return self.state_provider.get_data()
        except Exception as e:
            logger.error(f"Error reading system state: {e}", exc_info=True)
            return {}

    def record_observation(self, state: Dict, now: datetime) -> bool:
        """
        Feed live readings into the forecasters' hourly rolling buffers.

        Only the first reading of each clock hour is kept, so the buffers
        span their full 7 / 30 days whatever the evaluation interval.

        Returns:
            True if the reading was recorded
        """
        with self._lock:
            hour = now.replace(minute=0, second=0, microsecond=0)
            if hour == self._last_observed_hour:
                return False

            recorded = False
            if state.get('pv_power') is not None:
                self.solar_predictor.update_model({'timestamp': now, 'solar': state['pv_power']})
                recorded = True
            if state.get('load') is not None:
                self.load_forecaster.update_model({'timestamp': now, 'load': state['load']})
                recorded = True

            if recorded:
                self._last_observed_hour = hour
            return recorded

    @staticmethod
    def _status_decision(action: str, reason: str, now: datetime) -> Dict:
        return {
            'type': action,
            'action': action,
            'source': 'NONE',
            'reason': reason,
            'priority': 'LOW',
            'expected_savings': '¢0.0/h',
            'confidence': 0.0,
            'reasoning': [reason],
            'alternatives': [],
            'timestamp': now
        }
