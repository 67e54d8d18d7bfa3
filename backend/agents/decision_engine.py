"""
Decision Engine
Turns an agent's observed state and memory into one DecisionResponse.

Flow:
1. Evaluate triggers (any subset may fire)
2. Keep enabled rules bound to a fired trigger whose conditions ALL hold
3. Score candidates (met weight / condition count), best wins, priority breaks ties
4. Resolve the winner's first action template into concrete params
"""

import logging
from typing import List, Optional, Tuple

from infrastructure.config import DecisionConfig

from .action_resolver import ActionResolver
from .models import (
    ActionType,
    AgentMemory,
    DecisionResponse,
    MLModel,
    ObservedState,
    Rule,
    RuleCondition,
    Trigger,
)
from .registry import DecisionRegistry, RegistrySnapshot
from .trigger_evaluator import ScheduleTracker, TriggerEvaluator, compare_values, get_metric_value

logger = logging.getLogger("DecisionEngine")


class DecisionEngine:
    """
    Stateless per call: everything an agent owns arrives as arguments.
    The registry is shared by all agents.
    """

    def __init__(
        self,
        registry: Optional[DecisionRegistry] = None,
        resolver: Optional[ActionResolver] = None,
        tracker: Optional[ScheduleTracker] = None,
        config: Optional[DecisionConfig] = None
    ):
        self.config = config or DecisionConfig()
        if registry is None:
            registry = DecisionRegistry.with_defaults() if self.config.load_defaults else DecisionRegistry()
        self.registry = registry
        self.resolver = resolver or ActionResolver(self.config)
        self.evaluator = TriggerEvaluator(registry, tracker)

    # ===========================================
    # DECISION
    # ===========================================

    def generate_decision(self, agent_id: str, state: ObservedState, memory: AgentMemory) -> DecisionResponse:
        snapshot = self.registry.snapshot()

        fired = self.evaluator.evaluate_triggers(agent_id, state, memory, snapshot)
        if not fired:
            return DecisionResponse(
                action=ActionType.NONE.value,
                params={},
                reasoning="No triggers activated",
                confidence=1.0,
                triggered_by=[],
            )

        triggered_by = [t.id for t in fired]
        candidates = self.find_applicable_rules(fired, state, snapshot)
        if not candidates:
            return DecisionResponse(
                action=ActionType.NONE.value,
                params={},
                reasoning="No applicable rules found",
                confidence=0.5,
                triggered_by=triggered_by,
            )

        best, score = self.select_best_rule(candidates, state)
        resolved = self.resolver.resolve(best.actions[0], state)

        logger.info(f"🎯 Agent {agent_id}: rule {best.id} selected ({resolved.type}, score {score:.2f})")

        return DecisionResponse(
            action=resolved.type,
            params=resolved.params,
            reasoning=f"Executed rule: {best.name} based on triggers: {', '.join(t.name for t in fired)}",
            confidence=score,
            triggered_by=triggered_by,
            rule_id=best.id,
        )

    def find_applicable_rules(
        self,
        fired: List[Trigger],
        state: ObservedState,
        snapshot: Optional[RegistrySnapshot] = None
    ) -> List[Rule]:
        """Enabled rules bound to a fired trigger with every condition met, ascending by priority"""
        snapshot = snapshot or self.registry.snapshot()
        fired_ids = {t.id for t in fired}

        applicable = [
            rule for rule in snapshot.rules
            if rule.enabled
            and rule.trigger_id in fired_ids
            and self.evaluate_rule_conditions(rule.conditions, state)
        ]
        return sorted(applicable, key=lambda r: r.priority)

    def evaluate_rule_conditions(self, conditions: List[RuleCondition], state: ObservedState) -> bool:
        return all(self._condition_met(c, state) for c in conditions)

    def _condition_met(self, condition: RuleCondition, state: ObservedState) -> bool:
        value = get_metric_value(state, condition.metric, condition.token)
        return compare_values(value, condition.operator, condition.value)

    def calculate_rule_score(self, rule: Rule, state: ObservedState) -> float:
        if not rule.conditions:
            return 0.0
        met_weight = sum(c.weight for c in rule.conditions if self._condition_met(c, state))
        return met_weight / len(rule.conditions)

    def select_best_rule(self, rules: List[Rule], state: ObservedState) -> Tuple[Rule, float]:
        """Highest score wins; ties keep the earliest (rules arrive priority-sorted)"""
        best, best_score = rules[0], self.calculate_rule_score(rules[0], state)
        for rule in rules[1:]:
            score = self.calculate_rule_score(rule, state)
            if score > best_score:
                best, best_score = rule, score
        return best, best_score

    # ===========================================
    # REGISTRY PASSTHROUGH
    # ===========================================

    def add_trigger(self, trigger: Trigger) -> None:
        self.registry.add_trigger(trigger)

    def add_rule(self, rule: Rule) -> None:
        self.registry.add_rule(rule)

    def add_ml_model(self, model: MLModel) -> None:
        self.registry.add_ml_model(model)

    def get_triggers(self) -> List[Trigger]:
        return self.registry.get_triggers()

    def get_rules(self) -> List[Rule]:
        return self.registry.get_rules()

    def get_ml_models(self) -> List[MLModel]:
        return self.registry.get_ml_models()
