"""
Load Forecaster - Pattern-based household consumption prediction

Learns from patterns in:
- Time of day (weekday vs weekend)
- Day of week
- Seasonal variations
- Special days (holidays, unusually quiet days)
- Recent trends (30-day rolling buffer)
"""

import logging
from collections import deque
from datetime import date, datetime, timedelta
from typing import Dict, List

from .base_model import BaseModel
from .stats import (
    average_curves,
    calculate_variance,
    clamp,
    is_weekend,
    mean,
    safe_ratio,
    sorted_samples,
)

logger = logging.getLogger(__name__)


class LoadForecaster(BaseModel):
    """
    Predicts hourly house load in watts.

    Multiplies an hour/day-type base by daily-shape, seasonal,
    special-day and trend factors. Never predicts below MIN_LOAD_W.
    """

    MIN_SAMPLES = 30
    MAX_RECENT_DATA = 720  # 30 days of hourly points
    TREND_WINDOW = 168     # last 7 days
    MIN_LOAD_W = 50.0
    SPECIAL_DAY_THRESHOLD = 0.7  # 30% below the average day
    SPECIAL_DAY_FACTOR = 0.7
    HOLIDAY_BUCKETS = ('major_holiday', 'christmas_period', 'new_year_period')

    def __init__(self, baseline_load: float = 500.0, random_state=None):
        super().__init__(random_state)
        self.baseline_load = baseline_load
        self.recent_data = deque(maxlen=self.MAX_RECENT_DATA)
        self._reset_models()

    def _reset_models(self):
        self.models = {
            'hourly': {},    # hour -> {'weekday', 'weekend', 'variance'}
            'daily': {},     # weekday 0-6 -> [24 hourly averages]
            'seasonal': {},  # month -> {'factor', 'avg', 'samples'}
            'special': {}    # bucket -> [24 hourly averages]
        }
        self.recent_data = deque(maxlen=self.MAX_RECENT_DATA)

    # ========== TRAINING ==========

    def train(self, historical_load_data: List[Dict]) -> bool:
        """
        Rebuild all consumption models.

        Args:
            historical_load_data: List of {'timestamp', 'power'} samples

        Returns:
            True if trained, False on insufficient data (models untouched)
        """
        logger.info("⚡ Training load forecaster with consumption patterns...")

        data = sorted_samples(historical_load_data)
        if len(data) < self.MIN_SAMPLES:
            logger.warning(f"Insufficient load data for training: {len(data)} samples (need {self.MIN_SAMPLES})")
            return False

        self.models = {
            'hourly': self.build_hourly_model(data),
            'daily': self.build_daily_model(data),
            'seasonal': self.build_seasonal_model(data),
            'special': self.detect_special_patterns(data)
        }
        self.trained = True

        logger.info(f"✅ Load forecaster trained with {len(data)} data points "
                    f"({len(self.models['special'])} special-day buckets)")
        return True

    def build_hourly_model(self, data: List[Dict]) -> Dict[int, Dict]:
        by_hour = {}
        for point in data:
            bucket = by_hour.setdefault(point['timestamp'].hour, {'weekday': [], 'weekend': []})
            bucket['weekend' if is_weekend(point['timestamp']) else 'weekday'].append(point['power'])

        return {
            hour: {
                'weekday': mean(values['weekday'], default=self.baseline_load),
                'weekend': mean(values['weekend'], default=self.baseline_load),
                'variance': calculate_variance(values['weekday'] + values['weekend'])
            }
            for hour, values in by_hour.items()
        }

    def build_daily_model(self, data: List[Dict]) -> Dict[int, List[float]]:
        by_day = {day: [[] for _ in range(24)] for day in range(7)}
        for point in data:
            by_day[point['timestamp'].weekday()][point['timestamp'].hour].append(point['power'])

        return {
            day: [mean(values, default=self.baseline_load) for values in hours]
            for day, hours in by_day.items()
        }

    @staticmethod
    def build_seasonal_model(data: List[Dict]) -> Dict[int, Dict]:
        by_month = {}
        for point in data:
            by_month.setdefault(point['timestamp'].month, []).append(point['power'])

        overall_avg = mean([p['power'] for p in data])

        return {
            month: {
                'factor': safe_ratio(mean(values), overall_avg),
                'avg': mean(values),
                'samples': len(values)
            }
            for month, values in by_month.items()
        }

    def detect_special_patterns(self, data: List[Dict]) -> Dict[str, List[float]]:
        """Catalogue days well below the average daily consumption"""
        days = self.group_by_days(data)
        avg_daily = mean([d['total'] for d in days])
        threshold = avg_daily * self.SPECIAL_DAY_THRESHOLD

        buckets = {}
        for day in days:
            if day['total'] < threshold:
                buckets.setdefault(self.classify_special_day(day['date']), []).append(day['profile'])

        return {bucket: average_curves(profiles) for bucket, profiles in buckets.items()}

    @staticmethod
    def group_by_days(data: List[Dict]) -> List[Dict]:
        """Hourly-averaged profile and energy total (Wh) per calendar day"""
        days = {}
        for point in data:
            day_key = point['timestamp'].date()
            if day_key not in days:
                days[day_key] = {'totals': [0.0] * 24, 'counts': [0] * 24}
            hour = point['timestamp'].hour
            days[day_key]['totals'][hour] += point['power']
            days[day_key]['counts'][hour] += 1

        grouped = []
        for day_key, day in days.items():
            profile = [day['totals'][h] / day['counts'][h] if day['counts'][h] > 0 else 0.0
                       for h in range(24)]
            grouped.append({'date': day_key, 'profile': profile, 'total': sum(profile)})
        return grouped

    @staticmethod
    def classify_special_day(day: date) -> str:
        month = day.month
        dom = day.day

        if (month == 12 and dom == 25) or (month == 1 and dom == 1):
            return 'major_holiday'
        if month == 12 and 24 <= dom <= 26:
            return 'christmas_period'
        if month == 1 and dom <= 2:
            return 'new_year_period'
        return 'low_consumption_day'

    # ========== PREDICTION ==========

    def predict(self, start_time: datetime, hours_ahead: int = 24) -> List[Dict]:
        """
        Forecast load for each hour from `start_time`.

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
                'power': max(self.MIN_LOAD_W, prediction['power']),
                'confidence': prediction['confidence'],
                'factors': prediction['factors']
            })

        return predictions

    def predict_hour(self, target_time: datetime) -> Dict:
        hour = target_time.hour
        day_of_week = target_time.weekday()
        month = target_time.month

        base_prediction = self.expected_load(target_time)

        daily_adjustment = 1.0
        if day_of_week in self.models['daily']:
            profile = self.models['daily'][day_of_week]
            daily_avg = mean(profile)
            if daily_avg > 0:
                daily_adjustment = profile[hour] / daily_avg

        seasonal_factor = 1.0
        if month in self.models['seasonal']:
            seasonal_factor = self.models['seasonal'][month]['factor']

        special_day_factor = self.check_special_day(target_time)
        trend_factor = self.analyze_trend(target_time)

        power = base_prediction * daily_adjustment * seasonal_factor * special_day_factor * trend_factor

        return {
            'power': power,
            'confidence': self.calculate_confidence(hour, day_of_week, month),
            'factors': {
                'base': base_prediction,
                'daily': daily_adjustment,
                'seasonal': seasonal_factor,
                'special': special_day_factor,
                'trend': trend_factor
            }
        }

    def expected_load(self, when: datetime) -> float:
        """Hourly model value for the hour and day type of `when`"""
        hourly = self.models['hourly'].get(when.hour)
        if hourly is None:
            return self.baseline_load
        return hourly['weekend'] if is_weekend(when) else hourly['weekday']

    def check_special_day(self, when: datetime) -> float:
        bucket = self.classify_special_day(when.date())
        if bucket in self.HOLIDAY_BUCKETS and bucket in self.models['special']:
            return self.SPECIAL_DAY_FACTOR
        return 1.0

    def analyze_trend(self, target_time: datetime) -> float:
        """Recent consumption relative to what the model expected for it"""
        if len(self.recent_data) < 7:
            return 1.0

        recent = list(self.recent_data)[-self.TREND_WINDOW:]
        avg_recent = mean([p['power'] for p in recent])
        avg_expected = mean([self.expected_load(p['timestamp']) for p in recent])

        return clamp(safe_ratio(avg_recent, avg_expected), 0.5, 1.5)

    def calculate_confidence(self, hour: int, day_of_week: int, month: int) -> float:
        confidence = 0.6

        if hour in self.models['hourly']:
            confidence += 0.2
        if day_of_week in self.models['daily']:
            confidence += 0.1
        if month in self.models['seasonal']:
            confidence += 0.1

        return min(0.9, confidence)

    def fallback_prediction(self, start_time: datetime, hours_ahead: int) -> List[Dict]:
        """Fixed morning/evening-peak heuristic for an untrained model"""
        predictions = []

        for h in range(hours_ahead):
            target_time = start_time + timedelta(hours=h)
            hour = target_time.hour
            power = self.baseline_load

            if 6 <= hour <= 8:
                power *= 1.5   # morning peak
            elif 18 <= hour <= 21:
                power *= 1.8   # evening peak
            elif hour >= 23 or hour <= 5:
                power *= 0.6   # night

            if is_weekend(target_time):
                if 9 <= hour <= 11:
                    power *= 1.3  # late morning
                if 6 <= hour <= 8:
                    power *= 0.8  # later start

            predictions.append({
                'timestamp': target_time,
                'power': max(self.MIN_LOAD_W, power),
                'confidence': 0.4,
                'factors': {'fallback': True}
            })

        return predictions

    # ========== ONLINE UPDATES ==========

    def update_model(self, new_data_point: Dict):
        """
        Append a live reading to the rolling trend buffer.

        Args:
            new_data_point: {'timestamp': datetime, 'load': float}
        """
        timestamp = new_data_point['timestamp']
        self.recent_data.append({
            'timestamp': timestamp,
            'power': float(new_data_point.get('load') or 0.0),
            'hour': timestamp.hour,
            'day_of_week': timestamp.weekday()
        })

    def get_status(self) -> Dict:
        return {
            'trained': self.trained,
            'accuracy': self.accuracy,
            'data_points': len(self.recent_data),
            'patterns': {
                'hourly': len(self.models['hourly']),
                'daily': len(self.models['daily']),
                'seasonal': len(self.models['seasonal']),
                'special': len(self.models['special'])
            },
            'special_days': sorted(self.models['special']),
            'baseline_load': self.baseline_load
        }
