"""
Solar Predictor - Pattern-based generation forecast without weather APIs

Combines astronomical sun position with patterns learned from history:
- Seasonal model: month -> 24h average production curve
- Hourly model: hour -> mean / variance across all seasons
- Day archetypes: sunny / cloudy / mixed average curves
- Recent trend and volatility from a 7-day rolling buffer
"""

import logging
import math
from collections import deque
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .base_model import BaseModel
from .stats import (
    average_curves,
    calculate_variance,
    clamp,
    mean,
    safe_ratio,
    sorted_samples,
)

logger = logging.getLogger(__name__)


class SolarPredictor(BaseModel):
    """
    Predicts hourly PV production.

    Falls back to a daylight bell curve scaled by sun elevation until
    trained.
    """

    MIN_SAMPLES = 30
    MAX_RECENT_DATA = 168  # 7 days of hourly points
    DEFAULT_SEASONAL_AVERAGE = 1000.0
    FALLBACK_PEAK_W = 3000.0

    SEASONAL_WEIGHT = 0.4
    HOURLY_WEIGHT = 0.3

    def __init__(self, latitude: float = 52.5, longitude: float = 13.4, random_state=None):
        super().__init__(random_state)
        self.location = {'lat': latitude, 'lon': longitude}
        self.recent_data = deque(maxlen=self.MAX_RECENT_DATA)
        self.weather_prior = None
        self._reset_models()

    def _reset_models(self):
        self.models = {
            'seasonal': {},  # month -> [24 hourly averages]
            'hourly': {},    # hour -> {'avg', 'variance', 'count'}
            'patterns': {}   # 'sunny' | 'cloudy' | 'mixed' -> {'profiles', 'avg'}
        }
        self.recent_data = deque(maxlen=self.MAX_RECENT_DATA)
        self.weather_prior = None

    def set_location(self, latitude: float, longitude: float):
        self.location = {'lat': latitude, 'lon': longitude}
        logger.info(f"📍 Solar predictor location set to: {latitude}, {longitude}")

    # ========== TRAINING ==========

    def train(self, historical_solar_data: List[Dict]) -> bool:
        """
        Rebuild seasonal, hourly and day-pattern models.

        Args:
            historical_solar_data: List of {'timestamp', 'power'} samples

        Returns:
            True if trained, False on insufficient data (models untouched)
        """
        logger.info("🌞 Training solar predictor with historical patterns...")

        data = sorted_samples(historical_solar_data)
        if len(data) < self.MIN_SAMPLES:
            logger.warning(f"Insufficient solar data for training: {len(data)} samples (need {self.MIN_SAMPLES})")
            return False

        seasonal = self.build_seasonal_model(data)
        hourly = self.build_hourly_model(data)
        patterns = self.detect_day_patterns(data, seasonal)

        self.models = {'seasonal': seasonal, 'hourly': hourly, 'patterns': patterns}
        self.trained = True

        logger.info(f"✅ Solar predictor trained with {len(data)} data points "
                    f"({len(seasonal)} months, {len(patterns)} day patterns)")
        return True

    @staticmethod
    def build_seasonal_model(data: List[Dict]) -> Dict[int, List[float]]:
        totals = {}
        counts = {}

        for point in data:
            month = point['timestamp'].month
            hour = point['timestamp'].hour
            if month not in totals:
                totals[month] = [0.0] * 24
                counts[month] = [0] * 24
            totals[month][hour] += point['power']
            counts[month][hour] += 1

        return {
            month: [totals[month][h] / counts[month][h] if counts[month][h] > 0 else 0.0
                    for h in range(24)]
            for month in totals
        }

    @staticmethod
    def build_hourly_model(data: List[Dict]) -> Dict[int, Dict]:
        by_hour = {}
        for point in data:
            by_hour.setdefault(point['timestamp'].hour, []).append(point['power'])

        return {
            hour: {'avg': mean(powers), 'variance': calculate_variance(powers), 'count': len(powers)}
            for hour, powers in by_hour.items()
        }

    def detect_day_patterns(self, data: List[Dict], seasonal: Dict[int, List[float]]) -> Dict[str, Dict]:
        """Bucket whole days into sunny / cloudy / mixed against the seasonal norm"""
        patterns = {}

        for day in self.group_by_days(data):
            total = sum(day['hourly'])
            variance = calculate_variance(day['hourly'])
            expected = self._seasonal_average(seasonal, day['date'])

            pattern_type = 'mixed'
            if total > expected * 1.2 and variance < 1000:
                pattern_type = 'sunny'
            elif total < expected * 0.6:
                pattern_type = 'cloudy'

            patterns.setdefault(pattern_type, {'profiles': [], 'avg': []})['profiles'].append(day['hourly'])

        for pattern in patterns.values():
            pattern['avg'] = average_curves(pattern['profiles'])

        return patterns

    @staticmethod
    def group_by_days(data: List[Dict]) -> List[Dict]:
        """Hourly-averaged production curve per calendar day"""
        days = {}
        for point in data:
            day_key = point['timestamp'].date()
            if day_key not in days:
                days[day_key] = {'date': point['timestamp'], 'totals': [0.0] * 24, 'counts': [0] * 24}
            hour = point['timestamp'].hour
            days[day_key]['totals'][hour] += point['power']
            days[day_key]['counts'][hour] += 1

        return [
            {
                'date': day['date'],
                'hourly': [day['totals'][h] / day['counts'][h] if day['counts'][h] > 0 else 0.0
                           for h in range(24)]
            }
            for day in days.values()
        ]

    # ========== PREDICTION ==========

    def predict(self, start_time: datetime, hours_ahead: int = 24) -> List[Dict]:
        """
        Forecast production for each hour from `start_time`.

        Returns:
            List of {'timestamp', 'power', 'confidence', 'factors'} dicts
        """
        if not self.trained:
            return self.fallback_prediction(start_time, hours_ahead)

        predictions = []
        for h in range(hours_ahead):
            target_time = start_time + timedelta(hours=h)
            prediction = self.predict_hour(target_time)
            predictions.append({
                'timestamp': target_time,
                'power': max(0.0, prediction['power']),
                'confidence': prediction['confidence'],
                'factors': prediction['factors']
            })

        return predictions

    def predict_hour(self, target_time: datetime) -> Dict:
        hour = target_time.hour
        month = target_time.month

        base_prediction = 0.0
        if month in self.models['seasonal']:
            base_prediction = self.models['seasonal'][month][hour]

        hourly_adjustment = 0.0
        if hour in self.models['hourly']:
            hourly_adjustment = self.models['hourly'][hour]['avg']

        sun_position = self.calculate_sun_position(target_time)
        sun_factor = self.sun_factor(sun_position)
        trend_factor = self.analyze_trend(target_time)
        pattern_factor = self.match_pattern(target_time)

        power = ((base_prediction * self.SEASONAL_WEIGHT + hourly_adjustment * self.HOURLY_WEIGHT)
                 * sun_factor * trend_factor * pattern_factor)

        return {
            'power': power,
            'confidence': self.calculate_confidence(hour, month, sun_position),
            'factors': {
                'base': base_prediction,
                'hourly': hourly_adjustment,
                'sun': sun_factor,
                'trend': trend_factor,
                'pattern': pattern_factor
            }
        }

    def calculate_sun_position(self, when: datetime) -> Dict:
        """
        Approximate solar position.

        Declination from day of year, hour angle from local clock time
        (15° per hour from noon). Elevation below the horizon is clamped
        to 0.
        """
        day_of_year = when.timetuple().tm_yday
        hour = when.hour + when.minute / 60

        declination = 23.45 * math.sin(math.radians(360 * (284 + day_of_year) / 365))
        hour_angle = 15 * (hour - 12)

        lat = math.radians(self.location['lat'])
        dec = math.radians(declination)
        sin_elevation = (math.sin(dec) * math.sin(lat) +
                         math.cos(dec) * math.cos(lat) * math.cos(math.radians(hour_angle)))
        elevation = math.degrees(math.asin(clamp(sin_elevation, -1.0, 1.0)))

        return {'elevation': max(0.0, elevation), 'declination': declination, 'hour_angle': hour_angle}

    @staticmethod
    def sun_factor(sun_position: Dict) -> float:
        return max(0.0, math.sin(math.radians(sun_position['elevation'])))

    def analyze_trend(self, target_time: datetime) -> float:
        """Recent production relative to what the seasonal curve expected for it"""
        if len(self.recent_data) < 3:
            return 1.0

        recent = list(self.recent_data)
        avg_recent = mean([p['total'] for p in recent])
        avg_expected = mean([self.expected_production(p['timestamp']) for p in recent])

        return clamp(safe_ratio(avg_recent, avg_expected), 0.3, 1.7)

    def expected_production(self, when: datetime) -> float:
        """Seasonal curve value for the month and hour of `when`"""
        curve = self.models['seasonal'].get(when.month)
        if curve is not None:
            return curve[when.hour]
        hourly = self.models['hourly'].get(when.hour)
        if hourly is not None:
            return hourly['avg']
        return self.DEFAULT_SEASONAL_AVERAGE

    def match_pattern(self, target_time: datetime) -> float:
        """Sunny boost / cloudy damping from recent volatility"""
        if len(self.recent_data) < 2 and self.weather_prior:
            return self._prior_pattern_factor()

        recent_variance = self.get_recent_variance()

        if recent_variance < 500:
            return 1.2 if 'sunny' in self.models['patterns'] else 1.0
        if recent_variance > 2000:
            return 0.6 if 'cloudy' in self.models['patterns'] else 0.8
        return 1.0

    def get_recent_variance(self) -> float:
        if len(self.recent_data) < 2:
            return 1000.0
        recent = list(self.recent_data)[-3:]
        return calculate_variance([p['total'] for p in recent])

    def use_weather_prior(self, expected_weather: Optional[Dict]):
        """
        Accept the pattern detector's expected weather as a prior.

        Only consulted while the rolling buffer is too short to judge
        volatility itself.
        """
        self.weather_prior = dict(expected_weather) if expected_weather else None

    def _prior_pattern_factor(self) -> float:
        weather_type = self.weather_prior.get('type')
        confidence = self.weather_prior.get('confidence', 0.0)

        if weather_type == 'sunny':
            class_factor = 1.2 if 'sunny' in self.models['patterns'] else 1.0
        elif weather_type in ('cloudy', 'overcast'):
            class_factor = 0.6 if 'cloudy' in self.models['patterns'] else 0.8
        else:
            class_factor = 1.0

        return 1.0 + (class_factor - 1.0) * confidence

    def _seasonal_average(self, seasonal: Dict[int, List[float]], when: datetime) -> float:
        curve = seasonal.get(when.month)
        if curve is None:
            return self.DEFAULT_SEASONAL_AVERAGE
        return sum(curve)

    def calculate_confidence(self, hour: int, month: int, sun_position: Dict) -> float:
        confidence = 0.5

        if 6 <= hour <= 18 and sun_position['elevation'] > 0:
            confidence += 0.3
        if month in self.models['seasonal']:
            confidence += 0.2
        if hour in self.models['hourly']:
            confidence += 0.1

        return min(0.95, confidence)

    def fallback_prediction(self, start_time: datetime, hours_ahead: int) -> List[Dict]:
        """Daylight bell curve for an untrained model"""
        predictions = []

        for h in range(hours_ahead):
            target_time = start_time + timedelta(hours=h)
            power = 0.0
            if 6 <= target_time.hour <= 18:
                power = self.FALLBACK_PEAK_W * self.sun_factor(self.calculate_sun_position(target_time))

            predictions.append({
                'timestamp': target_time,
                'power': power,
                'confidence': 0.3,
                'factors': {'fallback': True}
            })

        return predictions

    # ========== ONLINE UPDATES ==========

    def update_model(self, new_data_point: Dict):
        """
        Append a live reading to the rolling trend buffer.

        Args:
            new_data_point: {'timestamp': datetime, 'solar': float}
        """
        timestamp = new_data_point['timestamp']
        self.recent_data.append({
            'timestamp': timestamp,
            'total': float(new_data_point.get('solar') or 0.0),
            'hour': timestamp.hour
        })

    def get_status(self) -> Dict:
        return {
            'trained': self.trained,
            'accuracy': self.accuracy,
            'data_points': len(self.recent_data),
            'patterns': len(self.models['patterns']),
            'seasonal_months': len(self.models['seasonal']),
            'location': dict(self.location)
        }
