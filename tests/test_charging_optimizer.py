"""Tests for the Q-learning charging optimizer."""
from datetime import datetime

import numpy as np
import pytest

from solar_autopilot.models import ChargingOptimizer, RewardHistory


def make_scenario(**overrides):
    scenario = {
        'timestamp': datetime(2024, 3, 4, 12),
        'current_soc': 50.0,
        'grid_price': 10.0,
        'solar_power': 0.0,
        'load_power': 500.0,
        'battery_capacity': 15.0
    }
    scenario.update(overrides)
    return scenario


def test_state_encoding_is_stable():
    # Arrange
    optimizer = ChargingOptimizer()
    scenario = make_scenario(current_soc=45, grid_price=7, solar_power=2500, load_power=800,
                             timestamp=datetime(2024, 3, 4, 3))

    # Act
    state = optimizer.encode_state(scenario)

    # Assert
    assert state == '4-3-2-1-0'
    assert optimizer.encode_state(scenario) == state


def test_missing_price_encodes_at_default():
    optimizer = ChargingOptimizer()

    state = optimizer.encode_state(make_scenario(grid_price=None))

    assert state.split('-')[1] == '5'


def test_q_update_moves_toward_reward():
    # Arrange
    optimizer = ChargingOptimizer(learning_rate=0.1)

    # Act
    new_q = optimizer.update_q_table('5-5-0-1-3', 'CHARGE_GRID', 10.0)

    # Assert
    assert new_q == pytest.approx(1.0)
    assert optimizer.q_table['5-5-0-1-3']['CHARGE_GRID'] == pytest.approx(1.0)


def test_cheap_grid_charging_is_rewarded():
    optimizer = ChargingOptimizer()

    cost = optimizer.calculate_cost_reward(make_scenario(grid_price=5.0), 'CHARGE_GRID')

    assert cost == pytest.approx((12 - 5) * 3)


def test_expensive_grid_charging_is_penalised():
    optimizer = ChargingOptimizer()
    scenario = make_scenario(grid_price=12.0)

    assert optimizer.calculate_cost_reward(scenario, 'CHARGE_GRID') == pytest.approx(-36.0)
    assert optimizer.calculate_reward(scenario, 'CHARGE_GRID') < 0


def test_moderate_price_grid_charging_costs_a_little():
    optimizer = ChargingOptimizer()

    assert optimizer.calculate_cost_reward(make_scenario(grid_price=9.0), 'CHARGE_GRID') == -2.0


def test_battery_health_terms():
    optimizer = ChargingOptimizer()

    assert optimizer.calculate_battery_health_reward(make_scenario(current_soc=10), 'CHARGE_GRID') == 2.0
    assert optimizer.calculate_battery_health_reward(make_scenario(current_soc=10), 'HOLD') == -3.0
    assert optimizer.calculate_battery_health_reward(make_scenario(current_soc=97), 'HOLD') == 1.0
    assert optimizer.calculate_battery_health_reward(make_scenario(current_soc=97), 'CHARGE_GRID') == -2.0
    assert optimizer.calculate_battery_health_reward(make_scenario(current_soc=85), 'HOLD') == 0.0


def test_solar_surplus_charging_is_rewarded():
    optimizer = ChargingOptimizer()
    scenario = make_scenario(solar_power=2500.0, load_power=500.0)

    breakdown = optimizer.reward_breakdown(scenario, 'CHARGE_SOLAR')

    assert breakdown['cost'] == pytest.approx((12 - 8) * 2.0)
    assert breakdown['self_consumption'] == 3.0


def test_evening_grid_charging_hurts_stability():
    assert ChargingOptimizer.calculate_stability_reward(
        make_scenario(timestamp=datetime(2024, 3, 4, 19)), 'CHARGE_GRID') == -1.0
    assert ChargingOptimizer.calculate_stability_reward(
        make_scenario(timestamp=datetime(2024, 3, 4, 3)), 'CHARGE_GRID') == 1.0


def test_expected_sunny_weather_discourages_grid_charging():
    # Arrange
    optimizer = ChargingOptimizer()
    patterns = {'expected_weather': {'type': 'sunny', 'confidence': 0.6}}

    # Act
    shaped = optimizer.calculate_self_consumption_reward(make_scenario(), 'CHARGE_GRID', patterns)

    # Assert
    assert shaped == pytest.approx(-0.6)


def test_greedy_selection_does_not_touch_the_table():
    optimizer = ChargingOptimizer()

    action = optimizer.select_action('9-9-9-9-9')

    assert action == 'CHARGE_GRID'
    assert optimizer.q_table == {}


def test_ties_go_to_the_earliest_action():
    optimizer = ChargingOptimizer()
    optimizer.q_table['s'] = {'HOLD': 1.0, 'DISCHARGE': 1.0}

    assert optimizer.select_action('s') == 'DISCHARGE'


def test_action_confidence():
    # Arrange
    optimizer = ChargingOptimizer()
    optimizer.q_table['flat'] = {'HOLD': 2.0, 'DISCHARGE': 2.0}
    optimizer.q_table['spread'] = {'HOLD': 4.0, 'DISCHARGE': 0.0}

    # Act / Assert
    assert optimizer.calculate_action_confidence('unknown', 'HOLD') == 0.3
    assert optimizer.calculate_action_confidence('flat', 'HOLD') == 0.5
    assert optimizer.calculate_action_confidence('spread', 'HOLD') == pytest.approx(0.95)
    assert optimizer.calculate_action_confidence('spread', 'DISCHARGE') == pytest.approx(0.3)


def test_alternatives_sorted_by_value():
    optimizer = ChargingOptimizer()
    optimizer.q_table['s'] = {'HOLD': 1.234, 'DISCHARGE': 3.0, 'CHARGE_GRID': -1.0}

    alternatives = optimizer.get_alternative_actions('s')

    assert [a['action'] for a in alternatives] == ['DISCHARGE', 'HOLD', 'CHARGE_GRID']
    assert alternatives[1]['q_value'] == 1.23


def test_low_battery_cheap_price_charges_from_grid():
    # Arrange
    optimizer = ChargingOptimizer(random_state=0)
    optimization_input = {
        'current_state': {'battery_soc': 10, 'pv_power': 0, 'load': 400},
        'price_forecast': [{'timestamp': datetime(2024, 3, 4, 3), 'total': 0.03}],
        'timestamp': datetime(2024, 3, 4, 3)
    }

    # Act
    decision = optimizer.optimize(optimization_input)

    # Assert
    scenario = make_scenario(current_soc=10, grid_price=3.0, load_power=400.0)
    health = optimizer.reward_breakdown(scenario, decision['action'])['battery_health']
    assert decision['action'] == 'CHARGE_GRID' or health >= 2
    assert decision['type'] == 'CHARGE'
    assert decision['priority'] == 'HIGH'
    assert 'Excellent price: 3.0¢ ≤ 8¢ threshold' in decision['reasoning']
    assert 'Low battery: 10% < 20% minimum' in decision['reasoning']


def test_optimize_without_prices_omits_price_reasoning():
    optimizer = ChargingOptimizer()

    decision = optimizer.optimize({
        'current_state': {'battery_soc': 50, 'pv_power': 0, 'load': 500},
        'timestamp': datetime(2024, 3, 4, 12)
    })

    assert decision['action'] in ChargingOptimizer.ACTIONS
    assert not any('price' in line.lower() for line in decision['reasoning'])
    assert decision['state'] == '5-5-0-1-3'


def test_optimize_keeps_zero_readings():
    optimizer = ChargingOptimizer()

    decision = optimizer.optimize({
        'current_state': {'battery_soc': 0, 'pv_power': 0, 'load': 0},
        'timestamp': datetime(2024, 3, 4, 12)
    })

    assert decision['state'] == '0-5-0-0-3'


def test_decision_texts():
    optimizer = ChargingOptimizer()

    hold = optimizer.generate_decision(make_scenario(), 'HOLD', 1.0)
    stop = optimizer.generate_decision(make_scenario(grid_price=14.0), 'STOP_CHARGING', 1.0)

    assert hold['priority'] == 'LOW'
    assert hold['expected_savings'] == '¢0.0/h'
    assert hold['reason'].startswith('Waiting for better conditions')
    assert stop['type'] == 'STOP'
    assert stop['reason'] == 'Stop charging - price too high (14.0¢/kWh) or battery full'


def test_training_needs_one_hundred_solar_samples(make_solar, make_load):
    optimizer = ChargingOptimizer()

    trained = optimizer.train({'solar': make_solar(days=4)[:99], 'load': make_load(days=4)})

    assert trained is False
    assert optimizer.q_table == {}
    assert len(optimizer.reward_history) == 0


def test_training_fills_the_table(make_solar, make_load):
    # Arrange
    optimizer = ChargingOptimizer(random_state=42)

    # Act
    trained = optimizer.train({'solar': make_solar(days=10), 'load': make_load(days=10)})

    # Assert
    assert trained
    assert optimizer.q_table
    # one scenario every 6 hours while a full day of look-ahead remains
    assert len(optimizer.reward_history) == 36
    assert all(entry['source'] == 'training' for entry in optimizer.reward_history)


def test_training_is_reproducible_with_a_seed(make_solar, make_load):
    dataset = {'solar': make_solar(days=10), 'load': make_load(days=10)}
    first = ChargingOptimizer(random_state=5)
    second = ChargingOptimizer(random_state=5)

    first.train(dataset)
    second.train(dataset)

    assert first.q_table == second.q_table


def test_price_scenario_shape():
    # Arrange
    optimizer = ChargingOptimizer(random_state=1)

    # Act
    prices = optimizer.generate_price_scenario(datetime(2024, 3, 4, 0), 24, base_price=10.0)

    # Assert
    assert len(prices) == 24
    assert all(p['total'] >= 2.0 for p in prices)
    assert all(p['level'] in ('CHEAP', 'NORMAL', 'EXPENSIVE') for p in prices)
    assert 10.0 * 1.3 * 0.8 <= prices[19]['total'] <= 10.0 * 1.3 * 1.2
    assert 10.0 * 0.7 * 0.8 <= prices[3]['total'] <= 10.0 * 0.7 * 1.2


def test_reward_history_evicts_oldest_first():
    # Arrange
    history = RewardHistory(capacity=3)

    # Act
    for reward in range(5):
        history.append({'reward': float(reward)})

    # Assert
    assert len(history) == 3
    assert [entry['reward'] for entry in history] == [2.0, 3.0, 4.0]


def test_actual_reward_from_outcome():
    assert ChargingOptimizer.calculate_actual_reward({'cost': -0.5, 'self_consumption': 0.9}) == pytest.approx(10.0)
    assert ChargingOptimizer.calculate_actual_reward({'cost': 2.0}) == pytest.approx(-10.0)


def test_learning_rate_adapts_after_one_hundred_outcomes():
    # Arrange
    optimizer = ChargingOptimizer(learning_rate=0.1)
    for _ in range(99):
        optimizer.update_rewards({'cost': -1.0})
    assert optimizer.learning_rate == pytest.approx(0.1)

    # Act
    optimizer.update_rewards({'cost': -1.0})

    # Assert
    assert optimizer.learning_rate == pytest.approx(0.095)


def test_learning_rate_stays_within_bounds():
    optimizer = ChargingOptimizer(learning_rate=0.29)

    for _ in range(150):
        optimizer.update_rewards({'cost': 1.0})

    assert optimizer.learning_rate == pytest.approx(0.3)


def test_reset_forgets_everything(make_solar, make_load):
    optimizer = ChargingOptimizer(learning_rate=0.1, random_state=1)
    optimizer.train({'solar': make_solar(days=10), 'load': make_load(days=10)})
    optimizer.learning_rate = 0.2

    optimizer.reset()

    assert optimizer.q_table == {}
    assert len(optimizer.reward_history) == 0
    assert optimizer.learning_rate == 0.1
    assert not optimizer.trained


def test_reset_replays_draws_from_a_passed_generator():
    # Arrange
    optimizer = ChargingOptimizer(random_state=np.random.RandomState(5))
    first = [optimizer.rng.random_sample() for _ in range(3)]

    # Act
    optimizer.reset()

    # Assert
    assert [optimizer.rng.random_sample() for _ in range(3)] == first


def test_status():
    optimizer = ChargingOptimizer()
    optimizer.update_rewards({'cost': -1.0})

    status = optimizer.get_status()

    assert status['reward_history'] == 1
    assert status['reward_history_capacity'] == 500
    assert status['avg_reward'] == pytest.approx(10.0)
