"""Tests for the pattern detector."""
from datetime import datetime

import pytest

from solar_autopilot.models import PatternDetector


def test_insufficient_data_leaves_previous_patterns(dataset, make_solar):
    # Arrange
    detector = PatternDetector(random_state=42)
    assert detector.analyze_patterns(dataset)
    previous = detector.patterns

    # Act
    result = detector.analyze_patterns({'solar': make_solar(days=2), 'load': []})

    # Assert
    assert result is False
    assert detector.patterns is previous
    assert detector.trained


def test_untrained_detector_rejects_small_dataset(make_solar):
    detector = PatternDetector()

    assert detector.analyze_patterns({'solar': make_solar(days=4)[:99], 'load': []}) is False
    assert not detector.trained


def test_k_means_partitions_every_profile_exactly_once(make_solar, make_load):
    # Arrange
    detector = PatternDetector(random_state=1)
    profiles = detector.extract_daily_profiles(make_solar(days=20, cloudy_every=3), make_load(days=20))

    # Act
    clusters = detector.k_means_clustering(profiles, 5)

    # Assert
    assigned = [id(p) for cluster in clusters for p in cluster]
    assert len(assigned) == len(profiles)
    assert sorted(assigned) == sorted(id(p) for p in profiles)
    assert all(cluster for cluster in clusters)


def test_k_means_with_fewer_profiles_than_k_returns_single_cluster(make_solar):
    detector = PatternDetector()
    profiles = detector.extract_daily_profiles(make_solar(days=3), [])

    clusters = detector.k_means_clustering(profiles, 5)

    assert len(clusters) == 1
    assert len(clusters[0]) == 3


def test_seeded_detectors_find_the_same_patterns(dataset):
    # Arrange
    first = PatternDetector(random_state=7)
    second = PatternDetector(random_state=7)

    # Act
    first.analyze_patterns(dataset)
    second.analyze_patterns(dataset)

    # Assert
    assert first.patterns['daily'] == second.patterns['daily']


def test_daily_features_are_eight_dimensional(make_solar, make_load):
    detector = PatternDetector()
    profiles = detector.extract_daily_profiles(make_solar(days=1), make_load(days=1))

    features = profiles[0]['features']

    assert len(features) == 8
    assert features[1] == pytest.approx(650 * 24 / 1000)
    assert features[7] == 0.0  # Monday


@pytest.mark.parametrize('total, peak, variance, expected', [
    (20000, 2500, 50000, 'sunny'),
    (4000, 1000, 200000, 'cloudy'),
    (20000, 3000, 600000, 'variable'),
    (8000, 1500, 200000, 'mixed'),
])
def test_cluster_classification(total, peak, variance, expected):
    assert PatternDetector.classify_cluster(total, peak, variance) == expected


def test_weather_classification():
    single_peak = [0.0] * 24
    single_peak[12] = 3100.0

    assert PatternDetector.classify_weather(single_peak) == 'sunny'
    assert PatternDetector.classify_weather([0.0] * 24) == 'overcast'


def test_cluster_confidence_is_capped():
    detector = PatternDetector()
    profile = {'solar': [100.0] * 24, 'load': [500.0] * 24}

    summary = detector.analyze_daily_cluster([profile] * 30)

    assert summary['confidence'] == 0.95
    assert summary['count'] == 30


def test_significance_of_two_zero_profiles_is_zero():
    assert PatternDetector.calculate_significance([0.0] * 24, [0.0] * 24) == 0.0


def test_anomalous_day_is_detected(make_solar, make_load):
    # Arrange
    solar = make_solar(days=21)
    spike_day = solar[10 * 24]['timestamp'].date()
    for point in solar:
        if point['timestamp'].date() == spike_day:
            point['power'] *= 5
    detector = PatternDetector(random_state=3)

    # Act
    detector.analyze_patterns({'solar': solar, 'load': make_load(days=21)})

    # Assert
    anomalies = detector.get_anomalies()
    assert len(anomalies) == 1
    assert anomalies[0]['date'] == spike_day
    assert anomalies[0]['type'] == 'solar_anomaly'
    assert anomalies[0]['description'] == 'Exceptionally high solar production'


def test_relevant_patterns_before_training_only_has_context():
    detector = PatternDetector()

    relevant = detector.get_relevant_patterns(datetime(2024, 6, 1, 12))

    assert set(relevant) == {'time_context', 'daily_patterns'}
    assert relevant['daily_patterns'] == []
    assert relevant['time_context']['is_weekend'] is True


def test_relevant_patterns_after_training(dataset):
    # Arrange
    detector = PatternDetector(random_state=42)
    detector.analyze_patterns(dataset)

    # Act
    relevant = detector.get_relevant_patterns(datetime(2024, 4, 10, 12))

    # Assert
    assert relevant['daily_patterns']
    assert relevant['weekly_pattern']['type'] == 'weekday'
    assert relevant['seasonal_pattern']['samples'] > 0
    weather = relevant['expected_weather']
    assert weather['type'] in PatternDetector.WEATHER_TYPES
    assert weather['confidence'] <= 0.7
    assert len(weather['expected_solar']) == 24


def test_seasonal_cycle_over_two_months(make_solar):
    # Arrange
    detector = PatternDetector()
    march = make_solar(start=datetime(2024, 3, 1), days=31, peak=2000.0)
    april = make_solar(start=datetime(2024, 4, 1), days=30, peak=4000.0)

    # Act
    detector.analyze_patterns({'solar': march + april, 'load': []})

    # Assert
    seasonal = detector.patterns['seasonal']['monthly_transitions']
    assert seasonal['seasonal_cycle']['peak_month'] == 4
    assert seasonal['seasonal_cycle']['low_month'] == 3
    assert seasonal['transitions'][0]['type'] == 'increase'


def test_reset_returns_to_untrained(dataset):
    detector = PatternDetector(random_state=1)
    detector.analyze_patterns(dataset)

    detector.reset()

    assert not detector.trained
    assert detector.patterns['daily'] == {}
    assert detector.get_status()['days_analyzed'] == 0


def test_status_counts_days(dataset):
    detector = PatternDetector(random_state=1)
    detector.analyze_patterns(dataset)

    status = detector.get_status()

    assert status['trained'] is True
    assert status['days_analyzed'] == 60
    assert status['patterns']['daily'] >= 1
