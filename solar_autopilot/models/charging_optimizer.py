"""
Reinforcement Learning Charging Optimizer

Learns which battery action pays off in which situation:
1. State encoder - discretises SOC / price / solar / load / hour into a key
2. Action-value table - state key -> action -> learned value
3. Reward function - cost, battery health, self-consumption, grid stability
4. Online learner - adapts its learning rate from realised outcomes

Each evaluation is a one-shot decision; training uses single-step
Q-learning without a next-state term.
"""

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional

from .base_model import BaseModel
from .stats import clamp, mean, sorted_samples

logger = logging.getLogger(__name__)


class RewardHistory:
    """Fixed-capacity FIFO of reward records; the oldest entry is evicted first."""

    DEFAULT_CAPACITY = 500

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)

    def append(self, entry: Dict):
        self._entries.append(entry)

    def latest(self, count: int) -> List[Dict]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def average_reward(self, count: int) -> float:
        return mean([e['reward'] for e in self.latest(count)])

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Dict]:
        return iter(self._entries)


class ChargingOptimizer(BaseModel):
    """
    Q-learning battery optimizer.

    Prices inside scenarios are in cents per kWh; prices arriving from a
    price forecast (currency per kWh) are converted on entry.
    """

    ACTIONS = ('CHARGE_GRID', 'CHARGE_SOLAR', 'DISCHARGE', 'HOLD', 'STOP_CHARGING')

    MIN_SOLAR_SAMPLES = 100
    MAX_SCENARIOS = 200
    SCENARIO_STEP_HOURS = 6
    LOOKAHEAD_HOURS = 24
    ADAPT_AFTER = 100
    ADAPT_WINDOW = 50

    DEFAULT_PRICE = 10.0       # ¢/kWh when no forecast is available
    AVERAGE_PRICE = 12.0       # ¢/kWh assumed average grid price
    FEED_IN_TARIFF = 8.0       # ¢/kWh
    MAX_POWER_W = 3000.0
    PRICE_TO_CENTS = 100.0

    def __init__(self,
                 charge_threshold: float = 8.0,
                 max_price: float = 10.0,
                 battery_capacity: float = 15.0,
                 learning_rate: float = 0.1,
                 exploration_rate: float = 0.1,
                 history_capacity: int = RewardHistory.DEFAULT_CAPACITY,
                 random_state=None):
        super().__init__(random_state)
        self.params = {
            'charge_threshold': charge_threshold,  # ¢/kWh
            'max_price': max_price,                # ¢/kWh
            'efficiency': 0.95,                    # round trip
            'soc_min': 20,
            'soc_max': 100,
            'soc_target': 80
        }
        self.battery_capacity = battery_capacity
        self.initial_learning_rate = learning_rate
        self.exploration_rate = exploration_rate
        self.history_capacity = history_capacity
        self._reset_models()

    def _reset_models(self):
        self.q_table = {}
        self.reward_history = RewardHistory(self.history_capacity)
        self.learning_rate = self.initial_learning_rate

    # ========== TRAINING ==========

    def train(self, historical_data: Dict, price_provider=None, patterns: Optional[Dict] = None) -> bool:
        """
        Learn action values from synthetic scenarios built on history.

        Args:
            historical_data: {'solar': [Sample], 'load': [Sample]}
            price_provider: Optional provider whose current forecast sets
                the base level of the synthetic price curves
            patterns: Optional pattern summary used in reward shaping

        Returns:
            True if trained, False on insufficient data (table untouched)
        """
        logger.info("🧠 Training charging optimizer with reinforcement learning...")

        solar = sorted_samples((historical_data or {}).get('solar'))
        if len(solar) < self.MIN_SOLAR_SAMPLES:
            logger.warning(f"Insufficient data for RL training: {len(solar)} solar samples "
                           f"(need {self.MIN_SOLAR_SAMPLES})")
            return False

        load = sorted_samples((historical_data or {}).get('load'))
        scenarios = self.create_scenarios(solar, load, self._base_price_from(price_provider))
        if not scenarios:
            logger.warning("No training scenarios: history shorter than the look-ahead window")
            return False

        for scenario in scenarios:
            state = self.encode_state(scenario)
            action = self.select_action(state, training=True)
            reward = self.calculate_reward(scenario, action, patterns)

            self.update_q_table(state, action, reward)
            self.reward_history.append({
                'timestamp': scenario['timestamp'],
                'action': action,
                'reward': reward,
                'source': 'training'
            })

        self.trained = True
        logger.info(f"✅ Charging optimizer trained with {len(scenarios)} scenarios "
                    f"({len(self.q_table)} states)")
        return True

    def _base_price_from(self, price_provider) -> Optional[float]:
        """Mean of the provider's forecast in ¢/kWh, None if unavailable"""
        if price_provider is None:
            return None

        try:
            forecast = price_provider.get_data(hours=self.LOOKAHEAD_HOURS) or []
        except Exception as e:
            logger.warning(f"Price provider unavailable, using random base prices: {e}")
            return None

        totals = [p['total'] for p in forecast if p.get('total') is not None]
        if not totals:
            return None
        return mean(totals) * self.PRICE_TO_CENTS

    def create_scenarios(self, solar: List[Dict], load: List[Dict], base_price: Optional[float] = None) -> List[Dict]:
        """
        Sample training scenarios every SCENARIO_STEP_HOURS of history.

        Each scenario needs a full look-ahead window inside the data.
        """
        if not solar:
            return []

        load_by_hour = {}
        for point in load:
            load_by_hour[point['timestamp'].replace(minute=0, second=0, microsecond=0)] = point['power']

        last_timestamp = solar[-1]['timestamp']
        horizon = timedelta(hours=self.LOOKAHEAD_HOURS)
        scenarios = []
        next_time = None

        for point in solar:
            timestamp = point['timestamp']
            if next_time is not None and timestamp < next_time:
                continue
            if timestamp + horizon > last_timestamp:
                break

            window_end = timestamp + horizon
            hour_key = timestamp.replace(minute=0, second=0, microsecond=0)

            scenarios.append({
                'timestamp': timestamp,
                'current_soc': self.rng.uniform(20, 80),
                'solar_power': point['power'],
                'load_power': load_by_hour.get(hour_key, 500.0),
                'battery_capacity': self.battery_capacity,
                'future_solar': [p for p in solar if timestamp <= p['timestamp'] < window_end],
                'future_load': [p for p in load if timestamp <= p['timestamp'] < window_end],
                'future_prices': self.generate_price_scenario(timestamp, self.LOOKAHEAD_HOURS, base_price)
            })
            scenarios[-1]['grid_price'] = scenarios[-1]['future_prices'][0]['total']

            next_time = timestamp + timedelta(hours=self.SCENARIO_STEP_HOURS)
            if len(scenarios) >= self.MAX_SCENARIOS:
                break

        return scenarios

    def generate_price_scenario(self, start: datetime, hours: int, base_price: Optional[float] = None) -> List[Dict]:
        """
        Synthetic hourly price curve in ¢/kWh.

        Evening peak (18-21h) x1.3, night trough (2-5h) x0.7,
        ±20% uniform noise, floor 2¢.
        """
        base = base_price if base_price is not None else self.rng.uniform(8, 18)
        prices = []

        for h in range(hours):
            timestamp = start + timedelta(hours=h)
            multiplier = 1.0
            if 18 <= timestamp.hour <= 21:
                multiplier = 1.3
            elif 2 <= timestamp.hour <= 5:
                multiplier = 0.7

            noise = (self.rng.random_sample() - 0.5) * 0.4
            price = base * multiplier * (1 + noise)

            prices.append({
                'timestamp': timestamp,
                'total': max(2.0, price),
                'level': 'CHEAP' if price < 8 else 'EXPENSIVE' if price > 15 else 'NORMAL'
            })

        return prices

    # ========== STATE / ACTION ==========

    def encode_state(self, scenario: Dict) -> str:
        """
        Discretise a scenario into the action-value table key.

        Buckets: SOC 10%, price 2¢, solar 1kW, load 500W, hour 4h.
        """
        price = scenario.get('grid_price')
        if price is None:
            price = self.DEFAULT_PRICE

        soc_bucket = int(scenario['current_soc'] // 10)
        price_bucket = int(price // 2)
        solar_bucket = int(scenario['solar_power'] // 1000)
        load_bucket = int(scenario['load_power'] // 500)
        hour_bucket = scenario['timestamp'].hour // 4

        return f"{soc_bucket}-{price_bucket}-{solar_bucket}-{load_bucket}-{hour_bucket}"

    def select_action(self, state: str, training: bool = False) -> str:
        """
        Epsilon-greedy during training, pure greedy otherwise.

        Unknown actions count as 0; ties go to the earliest action.
        """
        if training and self.rng.random_sample() < self.exploration_rate:
            return self.ACTIONS[self.rng.randint(len(self.ACTIONS))]

        values = self.q_table.get(state, {})
        best_action = self.ACTIONS[0]
        best_value = float('-inf')

        for action in self.ACTIONS:
            value = values.get(action, 0.0)
            if value > best_value:
                best_value = value
                best_action = action

        return best_action

    def update_q_table(self, state: str, action: str, reward: float) -> float:
        """Q(s,a) <- Q(s,a) + lr * (r - Q(s,a)); returns the new value"""
        values = self.q_table.setdefault(state, {})
        current_q = values.get(action, 0.0)
        new_q = current_q + self.learning_rate * (reward - current_q)
        values[action] = new_q
        return new_q

    # ========== REWARD ==========

    def calculate_reward(self, scenario: Dict, action: str, patterns: Optional[Dict] = None) -> float:
        """Total reward in ¢/hour"""
        breakdown = self.reward_breakdown(scenario, action, patterns)
        return (breakdown['cost'] +
                breakdown['battery_health'] * 0.5 +
                breakdown['self_consumption'] +
                breakdown['stability'] * 0.2)

    def reward_breakdown(self, scenario: Dict, action: str, patterns: Optional[Dict] = None) -> Dict[str, float]:
        """Unweighted reward components"""
        return {
            'cost': self.calculate_cost_reward(scenario, action),
            'battery_health': self.calculate_battery_health_reward(scenario, action),
            'self_consumption': self.calculate_self_consumption_reward(scenario, action, patterns),
            'stability': self.calculate_stability_reward(scenario, action)
        }

    def _charge_power(self, scenario: Dict) -> float:
        capacity = scenario.get('battery_capacity') or self.battery_capacity
        return min(self.MAX_POWER_W, capacity * 1000 * 0.5)  # 0.5C

    def calculate_cost_reward(self, scenario: Dict, action: str) -> float:
        price = scenario.get('grid_price')
        solar_power = scenario['solar_power']
        load_power = scenario['load_power']
        charge_kw = self._charge_power(scenario) / 1000

        if action == 'CHARGE_GRID':
            if price is None:
                return 0.0
            if price <= self.params['charge_threshold']:
                return max(0.0, (self.AVERAGE_PRICE - price) * charge_kw)
            if price <= self.params['max_price']:
                return -2.0
            return -price * charge_kw

        if action == 'CHARGE_SOLAR':
            surplus = solar_power - load_power
            if surplus > 100:
                return (self.AVERAGE_PRICE - self.FEED_IN_TARIFF) * (min(surplus, charge_kw * 1000) / 1000)
            return 0.0

        if action == 'DISCHARGE':
            if price is None:
                return 0.0
            if price > 15 or load_power > solar_power + 500:
                discharge_kw = min(self.MAX_POWER_W, max(0.0, load_power - solar_power)) / 1000
                return price * discharge_kw * self.params['efficiency']
            return 0.0

        if action == 'STOP_CHARGING':
            if price is not None and price > self.params['max_price']:
                return price * charge_kw * 0.1
            return 0.0

        return 0.0

    def calculate_battery_health_reward(self, scenario: Dict, action: str) -> float:
        soc = scenario['current_soc']

        if soc < self.params['soc_min']:
            return 2.0 if action in ('CHARGE_GRID', 'CHARGE_SOLAR') else -3.0
        if soc > 95:
            return 1.0 if action in ('STOP_CHARGING', 'HOLD') else -2.0
        if 30 <= soc <= 80:
            return 1.0
        return 0.0

    def calculate_self_consumption_reward(self, scenario: Dict, action: str, patterns: Optional[Dict] = None) -> float:
        solar_power = scenario['solar_power']
        load_power = scenario['load_power']
        reward = 0.0

        if solar_power - load_power > 100 and action == 'CHARGE_SOLAR':
            reward = 3.0
        elif solar_power > 0 and action == 'DISCHARGE' and load_power > solar_power:
            reward = 2.0

        weather = (patterns or {}).get('expected_weather')
        if weather and action == 'CHARGE_GRID':
            confidence = weather.get('confidence', 0.0)
            price = scenario.get('grid_price')
            if weather.get('type') == 'sunny' and scenario['current_soc'] >= self.params['soc_min']:
                # leave headroom for the expected solar
                reward -= confidence
            elif (weather.get('type') in ('cloudy', 'overcast') and price is not None
                  and price <= self.params['charge_threshold']):
                reward += confidence

        return reward

    @staticmethod
    def calculate_stability_reward(scenario: Dict, action: str) -> float:
        hour = scenario['timestamp'].hour

        if action == 'CHARGE_GRID':
            if 18 <= hour <= 21:
                return -1.0
            if 2 <= hour <= 5:
                return 1.0
        return 0.0

    # ========== INFERENCE ==========

    def optimize(self, optimization_input: Dict) -> Dict:
        """
        Decide the battery action for the current moment.

        Args:
            optimization_input: Dict with
                - current_state: {'battery_soc', 'pv_power', 'load'}
                - battery_capacity: kWh (optional)
                - solar_forecast / load_forecast: Forecast lists (optional)
                - price_forecast: [{'timestamp', 'total', 'level'?}] in currency/kWh
                - patterns: PatternDetector.get_relevant_patterns() output (optional)
                - timestamp: decision time (default now)

        Returns:
            Decision dict
        """
        current_state = optimization_input.get('current_state') or {}
        price_forecast = optimization_input.get('price_forecast') or []
        patterns = optimization_input.get('patterns')

        grid_price = None
        price_level = None
        if price_forecast and price_forecast[0].get('total') is not None:
            grid_price = price_forecast[0]['total'] * self.PRICE_TO_CENTS
            price_level = price_forecast[0].get('level')

        scenario = {
            'timestamp': optimization_input.get('timestamp') or datetime.now(),
            'current_soc': _value_or(current_state.get('battery_soc'), 50.0),
            'solar_power': _value_or(current_state.get('pv_power'), 0.0),
            'load_power': _value_or(current_state.get('load'), 500.0),
            'grid_price': grid_price,
            'price_level': price_level,
            'battery_capacity': optimization_input.get('battery_capacity') or self.battery_capacity,
            'future_solar': optimization_input.get('solar_forecast') or [],
            'future_load': optimization_input.get('load_forecast') or [],
            'future_prices': price_forecast
        }

        state = self.encode_state(scenario)
        action = self.select_action(state)
        expected_reward = self.calculate_reward(scenario, action, patterns)
        decision = self.generate_decision(scenario, action, expected_reward)

        return {
            'type': decision['type'],
            'action': decision['action'],
            'source': decision['source'],
            'reason': decision['reason'],
            'priority': decision['priority'],
            'expected_savings': decision['expected_savings'],
            'confidence': self.calculate_action_confidence(state, action),
            'reasoning': self.explain_decision(scenario, action),
            'alternatives': self.get_alternative_actions(state),
            'state': state
        }

    def generate_decision(self, scenario: Dict, action: str, expected_reward: float) -> Dict:
        soc = scenario['current_soc']
        price_text = _format_price(scenario.get('grid_price'))
        savings = f"¢{expected_reward:.1f}/h"

        if action == 'CHARGE_GRID':
            return {
                'type': 'CHARGE', 'action': action, 'source': 'GRID', 'priority': 'HIGH',
                'reason': f"Optimal grid charging at {price_text} (SOC: {soc:.0f}%)",
                'expected_savings': savings
            }
        if action == 'CHARGE_SOLAR':
            surplus = scenario['solar_power'] - scenario['load_power']
            return {
                'type': 'CHARGE', 'action': action, 'source': 'SOLAR', 'priority': 'HIGH',
                'reason': f"Solar surplus charging: {surplus:.0f}W available",
                'expected_savings': savings
            }
        if action == 'DISCHARGE':
            return {
                'type': 'DISCHARGE', 'action': action, 'source': 'BATTERY', 'priority': 'MEDIUM',
                'reason': f"Peak discharge at {price_text} (SOC: {soc:.0f}%)",
                'expected_savings': savings
            }
        if action == 'STOP_CHARGING':
            return {
                'type': 'STOP', 'action': action, 'source': 'NONE', 'priority': 'HIGH',
                'reason': f"Stop charging - price too high ({price_text}) or battery full",
                'expected_savings': '¢0.0/h'
            }
        return {
            'type': 'HOLD', 'action': 'HOLD', 'source': 'NONE', 'priority': 'LOW',
            'reason': f"Waiting for better conditions (SOC: {soc:.0f}%)",
            'expected_savings': '¢0.0/h'
        }

    def explain_decision(self, scenario: Dict, action: str) -> List[str]:
        """
        Human-readable reasons from plain threshold checks.

        Computed independently of the reward, so the two can disagree.
        """
        reasons = []
        price = scenario.get('grid_price')
        soc = scenario['current_soc']
        solar = scenario['solar_power']
        load = scenario['load_power']
        threshold = self.params['charge_threshold']
        max_price = self.params['max_price']

        if price is not None:
            if price <= threshold:
                reasons.append(f"Excellent price: {price:.1f}¢ ≤ {threshold:g}¢ threshold")
            elif price > max_price:
                reasons.append(f"Price too high: {price:.1f}¢ > {max_price:g}¢ limit")
            if scenario.get('price_level'):
                reasons.append(f"Price level: {scenario['price_level']}")

        if soc < self.params['soc_min']:
            reasons.append(f"Low battery: {soc:.0f}% < {self.params['soc_min']}% minimum")
        elif soc > 90:
            reasons.append(f"Battery nearly full: {soc:.0f}%")

        surplus = solar - load
        if surplus > 100:
            reasons.append(f"Solar surplus available: {surplus:.0f}W")
        elif solar > 0:
            reasons.append(f"Solar active: {solar:.0f}W generation")

        future_solar = scenario.get('future_solar') or []
        if future_solar:
            solar_kwh = sum(p.get('power', 0.0) for p in future_solar) / 1000
            reasons.append(f"Solar forecast: {solar_kwh:.1f}kWh over next {len(future_solar)}h")

        if action == 'CHARGE_GRID':
            reasons.append('AI learned: Grid charging optimal now')
        elif action == 'CHARGE_SOLAR':
            reasons.append('AI learned: Maximize self-consumption')
        elif action == 'DISCHARGE':
            reasons.append('AI learned: Peak arbitrage opportunity')

        return reasons

    def calculate_action_confidence(self, state: str, action: str) -> float:
        """Min-max normalised action value scaled into [0.3, 0.95]"""
        values = self.q_table.get(state)
        if not values:
            return 0.3

        q_value = values.get(action, 0.0)
        max_q = max(values.values())
        min_q = min(values.values())

        if max_q == min_q:
            return 0.5

        normalized = (q_value - min_q) / (max_q - min_q)
        return clamp(0.3 + normalized * 0.65, 0.3, 0.95)

    def get_alternative_actions(self, state: str) -> List[Dict]:
        values = self.q_table.get(state, {})
        alternatives = [{'action': action, 'q_value': round(q, 2)} for action, q in values.items()]
        return sorted(alternatives, key=lambda a: a['q_value'], reverse=True)

    # ========== ONLINE LEARNING ==========

    def update_rewards(self, outcome_data: Dict) -> float:
        """
        Record a realised outcome and adapt the learning rate.

        Args:
            outcome_data: {'timestamp', 'cost' (negative = earned),
                'self_consumption' (0-1), 'action'?}

        Returns:
            The actual reward recorded
        """
        actual_reward = self.calculate_actual_reward(outcome_data)
        self.reward_history.append({
            'timestamp': outcome_data.get('timestamp') or datetime.now(),
            'action': outcome_data.get('action'),
            'reward': actual_reward,
            'cost': outcome_data.get('cost', 0.0),
            'source': 'outcome'
        })

        if len(self.reward_history) >= self.ADAPT_AFTER:
            self.adjust_learning_rate()

        return actual_reward

    @staticmethod
    def calculate_actual_reward(outcome_data: Dict) -> float:
        cost = outcome_data.get('cost') or 0.0
        reward = 0.0

        if cost < 0:
            reward += abs(cost) * 10  # earned
        else:
            reward -= cost * 5        # spent

        if (outcome_data.get('self_consumption') or 0.0) > 0.8:
            reward += 5

        return reward

    def adjust_learning_rate(self):
        avg_reward = self.reward_history.average_reward(self.ADAPT_WINDOW)

        if avg_reward > 0:
            self.learning_rate *= 0.95  # performing well, settle
        else:
            self.learning_rate *= 1.05

        self.learning_rate = clamp(self.learning_rate, 0.01, 0.3)
        logger.debug(f"Learning rate adjusted to {self.learning_rate:.4f} (avg reward {avg_reward:.2f})")

    def get_status(self) -> Dict:
        return {
            'trained': self.trained,
            'accuracy': self.accuracy,
            'q_table_size': len(self.q_table),
            'reward_history': len(self.reward_history),
            'reward_history_capacity': self.reward_history.capacity,
            'learning_rate': self.learning_rate,
            'exploration_rate': self.exploration_rate,
            'avg_reward': self.reward_history.average_reward(100)
        }


def _value_or(value, default: float) -> float:
    return float(value) if value is not None else default


def _format_price(price: Optional[float]) -> str:
    if price is None:
        return "unknown price"
    return f"{price:.1f}¢/kWh"
