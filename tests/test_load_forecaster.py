"""Tests for the load forecaster."""
from datetime import date, datetime, timedelta

import pytest

from solar_autopilot.models import LoadForecaster


@pytest.fixture
def trained_forecaster(make_load):
    forecaster = LoadForecaster()
    assert forecaster.train(make_load(days=35, weekday=650.0, weekend=450.0))
    return forecaster


def test_learns_weekday_and_weekend_levels(trained_forecaster):
    # Arrange
    tuesday = datetime(2024, 4, 9, 0)
    saturday = datetime(2024, 4, 13, 0)

    # Act
    weekday = trained_forecaster.predict(tuesday, 24)
    weekend = trained_forecaster.predict(saturday, 24)

    # Assert
    assert all(p['power'] == pytest.approx(650.0, rel=1e-6) for p in weekday)
    assert all(p['power'] == pytest.approx(450.0, rel=1e-6) for p in weekend)


def test_hourly_model_splits_day_types(trained_forecaster):
    hourly = trained_forecaster.models['hourly'][18]

    assert hourly['weekday'] == pytest.approx(650.0)
    assert hourly['weekend'] == pytest.approx(450.0)


def test_untrained_prediction_never_below_floor():
    forecaster = LoadForecaster(baseline_load=10.0)

    predictions = forecaster.predict(datetime(2024, 1, 1), 24)

    assert all(p['power'] >= 50.0 for p in predictions)
    assert all(p['confidence'] == 0.4 for p in predictions)


def test_trained_prediction_never_below_floor(make_load):
    # Arrange
    forecaster = LoadForecaster()
    forecaster.train(make_load(days=2, weekday=10.0, weekend=10.0))

    # Act
    predictions = forecaster.predict(datetime(2024, 3, 6), 24)

    # Assert
    assert [p['power'] for p in predictions] == [50.0] * 24


def test_training_needs_thirty_samples(make_load):
    forecaster = LoadForecaster()

    assert forecaster.train(make_load(days=1)) is False
    assert not forecaster.trained


def test_fallback_has_evening_peak():
    forecaster = LoadForecaster()

    predictions = forecaster.predict(datetime(2024, 3, 4), 24)

    assert predictions[19]['power'] == pytest.approx(900.0)
    assert predictions[3]['power'] == pytest.approx(300.0)


@pytest.mark.parametrize('day, bucket', [
    (date(2024, 12, 25), 'major_holiday'),
    (date(2024, 1, 1), 'major_holiday'),
    (date(2024, 12, 24), 'christmas_period'),
    (date(2024, 1, 2), 'new_year_period'),
    (date(2024, 3, 3), 'low_consumption_day'),
])
def test_special_day_classification(day, bucket):
    assert LoadForecaster.classify_special_day(day) == bucket


def test_catalogued_holiday_dampens_prediction():
    # Arrange
    forecaster = LoadForecaster()
    forecaster.models['special'] = {'major_holiday': [300.0] * 24, 'low_consumption_day': [200.0] * 24}

    # Act / Assert
    assert forecaster.check_special_day(datetime(2024, 12, 25, 12)) == 0.7
    assert forecaster.check_special_day(datetime(2024, 12, 20, 12)) == 1.0


def test_quiet_days_are_catalogued(make_load):
    # Arrange
    samples = make_load(days=14, weekday=650.0, weekend=650.0)
    quiet = datetime(2024, 3, 10).date()
    for point in samples:
        if point['timestamp'].date() == quiet:
            point['power'] = 100.0
    forecaster = LoadForecaster()

    # Act
    forecaster.train(samples)

    # Assert
    assert list(forecaster.models['special']) == ['low_consumption_day']
    assert forecaster.models['special']['low_consumption_day'] == [100.0] * 24


def test_trend_factor_is_clamped(trained_forecaster):
    # Arrange
    start = datetime(2024, 4, 9, 0)
    for h in range(20):
        trained_forecaster.update_model({'timestamp': start + timedelta(hours=h), 'load': 5000.0})

    # Act
    trend = trained_forecaster.analyze_trend(start)

    # Assert
    assert trend == 1.5


def test_trend_needs_seven_points(trained_forecaster):
    trained_forecaster.update_model({'timestamp': datetime(2024, 4, 9), 'load': 5000.0})

    assert trained_forecaster.analyze_trend(datetime(2024, 4, 9, 1)) == 1.0


def test_rolling_buffer_is_capped():
    forecaster = LoadForecaster()
    start = datetime(2024, 1, 1)

    for h in range(800):
        forecaster.update_model({'timestamp': start + timedelta(hours=h), 'load': 400.0})

    assert len(forecaster.recent_data) == LoadForecaster.MAX_RECENT_DATA


def test_status_reports_model_sizes(trained_forecaster):
    status = trained_forecaster.get_status()

    assert status['trained'] is True
    assert status['patterns']['hourly'] == 24
    assert status['patterns']['daily'] == 7
    assert status['baseline_load'] == 500.0
