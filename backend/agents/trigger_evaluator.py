"""
Trigger Evaluator
Decides which registered triggers fire for an agent's current state and memory.

Trigger types:
- threshold: metric vs value under an operator
- schedule: interval elapsed since the trigger last fired for this agent
- event: matching (contract address, event name) in recent events
- pattern: last N action types equal the configured sequence
- ml_prediction: scored feature vector reaches the threshold
"""

import logging
import re
import threading
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from .model_scoring import extract_features, score_model
from .models import (
    AgentMemory,
    EventConfig,
    MLPredictionConfig,
    ObservedState,
    Operator,
    PatternConfig,
    ScheduleConfig,
    ThresholdConfig,
    Trigger,
    TriggerType,
    utcnow,
)
from .registry import DecisionRegistry, RegistrySnapshot

logger = logging.getLogger("TriggerEvaluator")

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def to_number(value: Any) -> Optional[float]:
    """Numeric view of a value (balances travel as decimal strings); None if not numeric"""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
        return int(number) if number == number.to_integral_value() else float(number)
    return None


def get_metric_value(state: ObservedState, metric: str, token: Optional[str] = None) -> float:
    """Read a named metric from the observed state; missing or unknown metrics read as 0"""
    if metric == "balance":
        return state.balance_of(token) if token else (to_number(state.cusd_balance) or 0)

    attribute = {
        "gas_price": "gas_price",
        "apy": "current_apy",
        "volume": "trading_volume",
        "price": "price",
        "price_difference": "price_difference",
        "time_since_last_rebalance": "time_since_last_rebalance",
        "donation_amount": "donation_amount",
        "liquidity": "liquidity",
        "volatility": "volatility",
    }.get(metric)
    if attribute is None:
        return 0
    return to_number(getattr(state, attribute)) or 0


def compare_values(actual: Any, operator: Operator, expected: Any) -> bool:
    operator = Operator(operator)

    if operator == Operator.CONTAINS:
        return str(expected) in str(actual)
    if operator == Operator.MATCHES:
        try:
            return re.search(str(expected), str(actual)) is not None
        except re.error:
            logger.warning(f"Invalid pattern in matches condition: {expected!r}")
            return False

    left, right = to_number(actual), to_number(expected)
    if operator == Operator.EQ:
        if left is not None and right is not None:
            return left == right
        return actual == expected
    if left is None or right is None:
        return False

    if operator == Operator.GT:
        return left > right
    if operator == Operator.LT:
        return left < right
    if operator == Operator.GTE:
        return left >= right
    if operator == Operator.LTE:
        return left <= right
    return False


class ScheduleTracker:
    """Last time each schedule trigger fired, per agent"""

    def __init__(self):
        self._lock = threading.Lock()
        self._last_fired: Dict[Tuple[str, str], datetime] = {}

    def last_fired(self, agent_id: str, trigger_id: str) -> datetime:
        with self._lock:
            return self._last_fired.get((str(agent_id), trigger_id), EPOCH)

    def record_fire(self, agent_id: str, trigger_id: str, when: datetime) -> None:
        with self._lock:
            self._last_fired[(str(agent_id), trigger_id)] = when

    def reset(self, agent_id: Optional[str] = None) -> None:
        with self._lock:
            if agent_id is None:
                self._last_fired.clear()
            else:
                for key in [k for k in self._last_fired if k[0] == str(agent_id)]:
                    del self._last_fired[key]


class TriggerEvaluator:
    def __init__(
        self,
        registry: DecisionRegistry,
        tracker: Optional[ScheduleTracker] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.registry = registry
        self.tracker = tracker or ScheduleTracker()
        self.clock = clock

    def evaluate_triggers(
        self,
        agent_id: str,
        state: ObservedState,
        memory: AgentMemory,
        snapshot: Optional[RegistrySnapshot] = None
    ) -> List[Trigger]:
        """Enabled triggers that fire, ascending by priority (registration order on ties)"""
        snapshot = snapshot or self.registry.snapshot()

        fired = [
            trigger for trigger in snapshot.triggers
            if trigger.enabled and self.evaluate_trigger(trigger, agent_id, state, memory, snapshot)
        ]
        return sorted(fired, key=lambda t: t.priority)

    def evaluate_trigger(
        self,
        trigger: Trigger,
        agent_id: str,
        state: ObservedState,
        memory: AgentMemory,
        snapshot: Optional[RegistrySnapshot] = None
    ) -> bool:
        if trigger.type == TriggerType.THRESHOLD:
            return self._evaluate_threshold(trigger.config, state)
        if trigger.type == TriggerType.SCHEDULE:
            return self._evaluate_schedule(trigger, agent_id)
        if trigger.type == TriggerType.EVENT:
            return self._evaluate_event(trigger.config, state)
        if trigger.type == TriggerType.PATTERN:
            return self._evaluate_pattern(trigger.config, memory)
        if trigger.type == TriggerType.ML_PREDICTION:
            return self._evaluate_ml(trigger.config, state, memory, snapshot or self.registry.snapshot())
        return False

    def _evaluate_threshold(self, config: ThresholdConfig, state: ObservedState) -> bool:
        value = get_metric_value(state, config.metric, config.token)
        return compare_values(value, config.operator, config.value)

    def _evaluate_schedule(self, trigger: Trigger, agent_id: str) -> bool:
        config: ScheduleConfig = trigger.config
        now = self.clock()
        elapsed = (now - self.tracker.last_fired(agent_id, trigger.id)).total_seconds()
        if elapsed < config.interval.seconds:
            return False
        self.tracker.record_fire(agent_id, trigger.id, now)
        return True

    def _evaluate_event(self, config: EventConfig, state: ObservedState) -> bool:
        address = str(config.contract_address).lower()
        return any(
            str(event.get("address", "")).lower() == address and event.get("name") == config.event_name
            for event in state.recent_events
        )

    def _evaluate_pattern(self, config: PatternConfig, memory: AgentMemory) -> bool:
        expected = list(config.sequence)
        if not expected:
            return False

        actual = [action.type for action in memory.actions[-len(expected):]]
        if actual != expected:
            return False

        matches = sum(1 for a, e in zip(actual, expected) if a == e)
        return matches / len(expected) >= config.confidence

    def _evaluate_ml(
        self,
        config: MLPredictionConfig,
        state: ObservedState,
        memory: AgentMemory,
        snapshot: RegistrySnapshot
    ) -> bool:
        model = snapshot.models.get(config.model)
        if model is None:
            logger.warning(f"ml_prediction trigger references unknown model {config.model}")
            return False

        features = extract_features(state, memory, config.features)
        return score_model(model, features) >= config.threshold
