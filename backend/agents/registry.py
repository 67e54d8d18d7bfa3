"""
Decision Registry - Triggers, rules and scoring models shared by all agents.

Read-mostly: mutation goes through the add/remove API under a lock, and
evaluation works on an immutable snapshot so a concurrent update can never
be observed half-applied.
"""

import copy
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .models import MLModel, Rule, Trigger

logger = logging.getLogger("DecisionRegistry")


@dataclass(frozen=True)
class RegistrySnapshot:
    """Point-in-time view used for one decision"""
    triggers: Tuple[Trigger, ...]
    rules: Tuple[Rule, ...]
    models: Mapping[str, MLModel]
    version: int


class DecisionRegistry:
    """
    Registration-ordered maps of Trigger / Rule / MLModel.
    Re-adding an id replaces the definition in place.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._triggers: Dict[str, Trigger] = {}
        self._rules: Dict[str, Rule] = {}
        self._models: Dict[str, MLModel] = {}
        self._version = 0
        self._snapshot: Optional[RegistrySnapshot] = None

    @classmethod
    def with_defaults(cls) -> "DecisionRegistry":
        from .defaults import load_defaults

        registry = cls()
        load_defaults(registry)
        return registry

    def _changed(self):
        self._version += 1
        self._snapshot = None

    # ===========================================
    # MUTATION
    # ===========================================

    def add_trigger(self, trigger: Trigger) -> None:
        with self._lock:
            self._triggers[trigger.id] = copy.deepcopy(trigger)
            self._changed()
        logger.debug(f"Trigger registered: {trigger.id}")

    def add_rule(self, rule: Rule) -> None:
        if rule.trigger_id not in self._triggers:
            logger.warning(f"Rule {rule.id} references unknown trigger {rule.trigger_id}")
        with self._lock:
            self._rules[rule.id] = copy.deepcopy(rule)
            self._changed()
        logger.debug(f"Rule registered: {rule.id}")

    def add_ml_model(self, model: MLModel) -> None:
        with self._lock:
            self._models[model.id] = copy.deepcopy(model)
            self._changed()
        logger.debug(f"Model registered: {model.id}")

    def remove_trigger(self, trigger_id: str) -> bool:
        with self._lock:
            removed = self._triggers.pop(trigger_id, None) is not None
            if removed:
                self._changed()
            return removed

    def remove_rule(self, rule_id: str) -> bool:
        with self._lock:
            removed = self._rules.pop(rule_id, None) is not None
            if removed:
                self._changed()
            return removed

    def remove_ml_model(self, model_id: str) -> bool:
        with self._lock:
            removed = self._models.pop(model_id, None) is not None
            if removed:
                self._changed()
            return removed

    # ===========================================
    # READS
    # ===========================================

    def snapshot(self) -> RegistrySnapshot:
        with self._lock:
            if self._snapshot is None:
                self._snapshot = RegistrySnapshot(
                    triggers=tuple(self._triggers.values()),
                    rules=tuple(self._rules.values()),
                    models=MappingProxyType(dict(self._models)),
                    version=self._version,
                )
            return self._snapshot

    def get_trigger(self, trigger_id: str) -> Optional[Trigger]:
        trigger = self._triggers.get(trigger_id)
        return copy.deepcopy(trigger) if trigger else None

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        rule = self._rules.get(rule_id)
        return copy.deepcopy(rule) if rule else None

    def get_ml_model(self, model_id: str) -> Optional[MLModel]:
        model = self._models.get(model_id)
        return copy.deepcopy(model) if model else None

    def get_triggers(self) -> List[Trigger]:
        return [copy.deepcopy(t) for t in self.snapshot().triggers]

    def get_rules(self) -> List[Rule]:
        return [copy.deepcopy(r) for r in self.snapshot().rules]

    def get_ml_models(self) -> List[MLModel]:
        return [copy.deepcopy(m) for m in self.snapshot().models.values()]
