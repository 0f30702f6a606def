"""
Pattern Detector - Unsupervised learning over historical energy data

Learns from solar + load telemetry only (no weather API):
- Daily archetypes (k-means over per-day feature vectors)
- Weekday vs weekend profiles
- Seasonal (monthly) transitions and cycle strength
- Weather-like classes inferred from solar shape
- Anomalous days (|z| > 2 on daily totals)
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

import numpy as np

from .base_model import BaseModel
from .stats import (
    argmax_first,
    average_curves,
    calculate_hourly_average,
    calculate_variance,
    euclidean_distance,
    is_weekend,
    mean,
    safe_max,
    safe_ratio,
    sorted_samples,
)

logger = logging.getLogger(__name__)


class PatternDetector(BaseModel):
    """
    Clusters historical days into archetypes and derives pattern summaries.

    All sub-models are rebuilt together on each successful analysis pass;
    a failed pass leaves the previous patterns in place.
    """

    MIN_SOLAR_SAMPLES = 100
    MAX_ITERATIONS = 50
    CONVERGENCE_DISTANCE = 0.01
    ANOMALY_Z_SCORE = 2.0
    TRANSITION_THRESHOLD = 0.2  # 20% month-over-month change

    WEATHER_TYPES = ('sunny', 'partlyCloudy', 'cloudy', 'overcast')

    def __init__(self, cluster_count: int = 5, random_state=None):
        super().__init__(random_state)
        self.cluster_count = cluster_count
        self._reset_models()

    def _reset_models(self):
        self.patterns = {
            'daily': {},      # pattern_<n> -> cluster summary
            'weekly': {},     # 'weekday_vs_weekend' -> profiles
            'seasonal': {},   # 'monthly_transitions' -> monthly stats
            'weather': {},    # weather type -> averaged curve + probability
            'anomalies': []   # AnomalyRecord dicts
        }
        self.day_count = 0

    # ========== TRAINING ==========

    def analyze_patterns(self, historical_data: Dict) -> bool:
        """
        Run the full analysis pass.

        Args:
            historical_data: {'solar': [Sample], 'load': [Sample]}

        Returns:
            True if patterns were rebuilt, False on insufficient data
        """
        logger.info("🔍 Analyzing energy patterns...")

        solar = sorted_samples((historical_data or {}).get('solar'))
        load = sorted_samples((historical_data or {}).get('load'))

        if len(solar) < self.MIN_SOLAR_SAMPLES:
            logger.warning(f"Insufficient data for pattern analysis: {len(solar)} solar samples "
                           f"(need {self.MIN_SOLAR_SAMPLES})")
            return False

        profiles = self.extract_daily_profiles(solar, load)

        patterns = {
            'daily': self._detect_daily_patterns(profiles),
            'weekly': self._detect_weekly_patterns(solar),
            'seasonal': self._detect_seasonal_patterns(solar),
            'weather': self._detect_weather_patterns(profiles),
            'anomalies': self._detect_anomalies(profiles)
        }

        self.patterns = patterns
        self.day_count = len(profiles)
        self.trained = True

        logger.info(f"✅ Pattern analysis complete: {len(profiles)} days, "
                    f"{len(patterns['daily'])} daily patterns, "
                    f"{len(patterns['anomalies'])} anomalies")
        return True

    def extract_daily_profiles(self, solar: List[Dict], load: List[Dict]) -> List[Dict]:
        """
        Build one DailyProfile per calendar day that has solar samples.

        Load samples only contribute to days that already have solar data.
        """
        days = {}

        for point in solar:
            day_key = point['timestamp'].date()
            profile = days.get(day_key)
            if profile is None:
                profile = {
                    'date': day_key,
                    'solar': [0.0] * 24,
                    'load': [0.0] * 24,
                    'solar_counts': [0] * 24,
                    'load_counts': [0] * 24
                }
                days[day_key] = profile

            hour = point['timestamp'].hour
            profile['solar'][hour] += point['power']
            profile['solar_counts'][hour] += 1

        for point in load:
            profile = days.get(point['timestamp'].date())
            if profile is None:
                continue
            hour = point['timestamp'].hour
            profile['load'][hour] += point['power']
            profile['load_counts'][hour] += 1

        profiles = []
        for profile in days.values():
            for h in range(24):
                if profile['solar_counts'][h] > 0:
                    profile['solar'][h] /= profile['solar_counts'][h]
                if profile['load_counts'][h] > 0:
                    profile['load'][h] /= profile['load_counts'][h]

            profiles.append({
                'date': profile['date'],
                'solar': profile['solar'],
                'load': profile['load'],
                'features': self.extract_daily_features(profile['date'], profile['solar'], profile['load'])
            })

        return profiles

    @staticmethod
    def extract_daily_features(day: date, solar: List[float], load: List[float]) -> List[float]:
        """8-dimensional normalised feature vector used for clustering"""
        solar_peak = safe_max(solar)
        return [
            sum(solar) / 1000,                    # kWh
            sum(load) / 1000,                     # kWh
            solar_peak / 1000,                    # kW
            argmax_first(solar) / 24,             # 0-1
            calculate_variance(solar) / 1000000,
            safe_max(load) / 1000,                # kW
            calculate_variance(load) / 1000000,
            day.weekday() / 7
        ]

    def k_means_clustering(self, profiles: List[Dict], k: int) -> List[List[Dict]]:
        """
        Cluster profiles on their feature vectors.

        Seeds centroids with random profiles (with replacement). An empty
        cluster takes a copy of the previous first centroid. Only
        non-empty clusters are returned, so every profile lands in
        exactly one cluster.
        """
        if not profiles:
            return []
        if len(profiles) < k:
            return [list(profiles)]

        features = np.asarray([p['features'] for p in profiles], dtype=float)
        seeds = self.rng.randint(0, len(profiles), size=k)
        centroids = features[seeds].copy()

        assignments = np.zeros(len(profiles), dtype=int)
        for _ in range(self.MAX_ITERATIONS):
            # argmin picks the lowest index on ties
            distances = np.linalg.norm(features[:, None, :] - centroids[None, :, :], axis=2)
            assignments = np.argmin(distances, axis=1)

            new_centroids = np.empty_like(centroids)
            for index in range(k):
                members = features[assignments == index]
                if len(members) == 0:
                    new_centroids[index] = centroids[0]
                else:
                    new_centroids[index] = members.mean(axis=0)

            converged = all(
                euclidean_distance(centroids[i], new_centroids[i]) <= self.CONVERGENCE_DISTANCE
                for i in range(k)
            )
            centroids = new_centroids
            if converged:
                break

        clusters = [[] for _ in range(k)]
        for profile, index in zip(profiles, assignments):
            clusters[index].append(profile)

        return [cluster for cluster in clusters if cluster]

    def _detect_daily_patterns(self, profiles: List[Dict]) -> Dict:
        daily = {}
        for index, cluster in enumerate(self.k_means_clustering(profiles, self.cluster_count)):
            daily[f'pattern_{index}'] = self.analyze_daily_cluster(cluster)
        return daily

    def analyze_daily_cluster(self, cluster: List[Dict]) -> Optional[Dict]:
        """Average a cluster's curves and classify it into a named pattern"""
        if not cluster:
            return None

        avg_solar = average_curves([p['solar'] for p in cluster])
        avg_load = average_curves([p['load'] for p in cluster])

        solar_total = sum(avg_solar)
        solar_variance = calculate_variance(avg_solar)
        solar_peak = safe_max(avg_solar)

        return {
            'type': self.classify_cluster(solar_total, solar_peak, solar_variance),
            'count': len(cluster),
            'avg_solar': avg_solar,
            'avg_load': avg_load,
            'characteristics': {
                'solar_total': solar_total,
                'solar_peak': solar_peak,
                'solar_peak_hour': argmax_first(avg_solar),
                'solar_variance': solar_variance,
                'load_total': sum(avg_load),
                'load_peak': safe_max(avg_load)
            },
            'confidence': min(0.95, len(cluster) / 10)
        }

    @staticmethod
    def classify_cluster(solar_total: float, solar_peak: float, solar_variance: float) -> str:
        if solar_variance < 100000 and solar_peak > 2000:
            return 'sunny'
        if solar_total < 5000:
            return 'cloudy'
        if solar_variance > 500000:
            return 'variable'
        return 'mixed'

    def _detect_weekly_patterns(self, solar: List[Dict]) -> Dict:
        weekday = [p for p in solar if not is_weekend(p['timestamp'])]
        weekend = [p for p in solar if is_weekend(p['timestamp'])]

        weekday_avg = calculate_hourly_average(weekday)
        weekend_avg = calculate_hourly_average(weekend)

        return {
            'weekday_vs_weekend': {
                'weekday': weekday_avg,
                'weekend': weekend_avg,
                'difference': [w - e for w, e in zip(weekday_avg, weekend_avg)],
                'significance': self.calculate_significance(weekday_avg, weekend_avg)
            }
        }

    @staticmethod
    def calculate_significance(profile1: List[float], profile2: List[float]) -> float:
        """Normalised difference of means (0 when both means are zero)"""
        mean1 = mean(profile1)
        mean2 = mean(profile2)
        return safe_ratio(abs(mean1 - mean2), max(mean1, mean2), default=0.0)

    def _detect_seasonal_patterns(self, solar: List[Dict]) -> Dict:
        monthly = {}
        for point in solar:
            monthly.setdefault(point['timestamp'].month, []).append(point['power'])

        # samples are time-ordered, so months appear in chronological order
        monthly_averages = [
            {'month': month, 'avg': mean(values), 'samples': len(values)}
            for month, values in monthly.items()
        ]

        transitions = []
        for prev, curr in zip(monthly_averages, monthly_averages[1:]):
            if prev['avg'] == 0:
                continue
            change = (curr['avg'] - prev['avg']) / prev['avg']
            if abs(change) > self.TRANSITION_THRESHOLD:
                transitions.append({
                    'from': prev['month'],
                    'to': curr['month'],
                    'change': change,
                    'type': 'increase' if change > 0 else 'decrease'
                })

        return {
            'monthly_transitions': {
                'monthly_averages': monthly_averages,
                'transitions': transitions,
                'seasonal_cycle': self.detect_seasonal_cycle(monthly_averages)
            }
        }

    def detect_seasonal_cycle(self, monthly_averages: List[Dict]) -> Optional[Dict]:
        if not monthly_averages:
            return None

        values = [m['avg'] for m in monthly_averages]
        peak = max(monthly_averages, key=lambda m: m['avg'])
        low = min(monthly_averages, key=lambda m: m['avg'])

        return {
            'peak_month': peak['month'],
            'peak_value': peak['avg'],
            'low_month': low['month'],
            'low_value': low['avg'],
            'amplitude': safe_ratio(peak['avg'] - low['avg'], low['avg'], default=0.0),
            'cycle_strength': self.calculate_cycle_strength(values)
        }

    @staticmethod
    def calculate_cycle_strength(values: List[float]) -> float:
        """Squared coefficient of variation"""
        avg = mean(values)
        return safe_ratio(calculate_variance(values), avg * avg, default=0.0)

    @staticmethod
    def classify_weather(solar: List[float]) -> str:
        solar_total = sum(solar)
        solar_variance = calculate_variance(solar)
        solar_peak = safe_max(solar)

        if solar_peak > 3000 and solar_variance < 500000:
            return 'sunny'
        if solar_total < 2000 and solar_variance < 100000:
            return 'overcast'
        if solar_variance > 1000000:
            return 'cloudy'
        return 'partlyCloudy'

    def _detect_weather_patterns(self, profiles: List[Dict]) -> Dict:
        buckets = {weather_type: [] for weather_type in self.WEATHER_TYPES}
        for profile in profiles:
            buckets[self.classify_weather(profile['solar'])].append(profile)

        weather = {}
        for weather_type, members in buckets.items():
            if not members:
                continue
            avg_solar = average_curves([p['solar'] for p in members])
            avg_load = average_curves([p['load'] for p in members])
            weather[weather_type] = {
                'count': len(members),
                'avg_solar': avg_solar,
                'characteristics': {
                    'solar_total': sum(avg_solar),
                    'load_total': sum(avg_load),
                    'solar_peak': safe_max(avg_solar),
                    'load_peak': safe_max(avg_load)
                },
                'probability': len(members) / len(profiles)
            }
        return weather

    def _detect_anomalies(self, profiles: List[Dict]) -> List[Dict]:
        solar_totals = [sum(p['solar']) for p in profiles]
        load_totals = [sum(p['load']) for p in profiles]

        solar_mean = mean(solar_totals)
        load_mean = mean(load_totals)
        solar_std = calculate_variance(solar_totals) ** 0.5
        load_std = calculate_variance(load_totals) ** 0.5

        anomalies = []
        for profile, solar_total, load_total in zip(profiles, solar_totals, load_totals):
            solar_z = safe_ratio(abs(solar_total - solar_mean), solar_std, default=0.0)
            load_z = safe_ratio(abs(load_total - load_mean), load_std, default=0.0)

            if solar_z > self.ANOMALY_Z_SCORE or load_z > self.ANOMALY_Z_SCORE:
                anomalies.append({
                    'date': profile['date'],
                    'type': 'solar_anomaly' if solar_z > self.ANOMALY_Z_SCORE else 'load_anomaly',
                    'severity': max(solar_z, load_z),
                    'solar_total': solar_total,
                    'load_total': load_total,
                    'description': self.describe_anomaly(solar_z, load_z, solar_total, load_total)
                })
        return anomalies

    def describe_anomaly(self, solar_z: float, load_z: float, solar_total: float, load_total: float) -> str:
        if solar_z > self.ANOMALY_Z_SCORE:
            return ('Exceptionally high solar production' if solar_total > 10000
                    else 'Exceptionally low solar production')
        if load_z > self.ANOMALY_Z_SCORE:
            return ('Exceptionally high consumption' if load_total > 15000
                    else 'Exceptionally low consumption')
        return 'Unusual energy pattern detected'

    # ========== QUERIES ==========

    def get_relevant_patterns(self, current_time: datetime) -> Dict:
        """
        Summarise what the learned patterns expect at `current_time`.

        'time_context' and 'daily_patterns' are always present; the
        weekly, seasonal and weather keys only when that sub-model has data.
        """
        hour = current_time.hour
        month = current_time.month
        weekend = is_weekend(current_time)

        relevant = {
            'time_context': {
                'hour': hour,
                'day_of_week': current_time.weekday(),
                'month': month,
                'is_weekend': weekend
            },
            'daily_patterns': []
        }

        for pattern in self.patterns['daily'].values():
            if pattern and pattern.get('avg_solar'):
                relevant['daily_patterns'].append({
                    'type': pattern['type'],
                    'expected_solar': pattern['avg_solar'][hour],
                    'expected_load': pattern['avg_load'][hour],
                    'confidence': pattern['confidence']
                })

        weekly = self.patterns['weekly'].get('weekday_vs_weekend')
        if weekly:
            profile = weekly['weekend'] if weekend else weekly['weekday']
            relevant['weekly_pattern'] = {
                'expected': profile[hour],
                'type': 'weekend' if weekend else 'weekday',
                'significance': weekly['significance']
            }

        seasonal = self.patterns['seasonal'].get('monthly_transitions')
        if seasonal:
            month_data = next((m for m in seasonal['monthly_averages'] if m['month'] == month), None)
            if month_data:
                relevant['seasonal_pattern'] = {
                    'monthly_avg': month_data['avg'],
                    'samples': month_data['samples'],
                    'transitions': [t for t in seasonal['transitions']
                                    if t['from'] == month or t['to'] == month]
                }

        expected_weather = self.predict_weather_pattern(current_time)
        if expected_weather:
            relevant['expected_weather'] = expected_weather

        return relevant

    def predict_weather_pattern(self, current_time: datetime) -> Optional[Dict]:
        """Most probable weather class from historical frequencies"""
        best_match = None
        highest_probability = 0.0

        for weather_type in self.WEATHER_TYPES:
            pattern = self.patterns['weather'].get(weather_type)
            if pattern and pattern['probability'] > highest_probability:
                highest_probability = pattern['probability']
                best_match = {
                    'type': weather_type,
                    'probability': pattern['probability'],
                    'expected_solar': list(pattern['avg_solar']),
                    'confidence': min(0.7, pattern['count'] / 50)
                }

        return best_match

    def get_anomalies(self) -> List[Dict]:
        return [dict(a) for a in self.patterns['anomalies']]

    def get_status(self) -> Dict:
        return {
            'trained': self.trained,
            'accuracy': self.accuracy,
            'days_analyzed': self.day_count,
            'patterns': {
                'daily': len(self.patterns['daily']),
                'weekly': len(self.patterns['weekly']),
                'seasonal': len(self.patterns['seasonal']),
                'weather': len(self.patterns['weather']),
                'anomalies': len(self.patterns['anomalies'])
            },
            'cluster_count': self.cluster_count
        }
