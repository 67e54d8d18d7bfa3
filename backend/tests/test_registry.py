"""
Decision Registry Tests
Registration order, replacement, removal and snapshot isolation

Run: python -m pytest tests/test_registry.py -v
"""

from agents.models import MLModel, Rule, Trigger
from agents.registry import DecisionRegistry


def trigger(trigger_id, value=100):
    return Trigger(
        id=trigger_id,
        name=trigger_id,
        type="threshold",
        config={"metric": "balance", "operator": "lt", "value": value},
    )


def rule(rule_id, trigger_id="t1"):
    return Rule(
        id=rule_id,
        name=rule_id,
        trigger_id=trigger_id,
        actions=[{"type": "claim", "config": {"protocol": "moola"}}],
    )


class TestRegistration:
    def test_keeps_registration_order(self):
        registry = DecisionRegistry()
        for trigger_id in ["t3", "t1", "t2"]:
            registry.add_trigger(trigger(trigger_id))

        assert [t.id for t in registry.get_triggers()] == ["t3", "t1", "t2"]

    def test_re_adding_replaces_in_place(self):
        registry = DecisionRegistry()
        registry.add_trigger(trigger("t1", 100))
        registry.add_trigger(trigger("t2"))
        registry.add_trigger(trigger("t1", 5))

        triggers = registry.get_triggers()
        assert [t.id for t in triggers] == ["t1", "t2"]
        assert triggers[0].config.value == 5

    def test_remove(self):
        registry = DecisionRegistry()
        registry.add_trigger(trigger("t1"))
        registry.add_rule(rule("r1"))
        registry.add_ml_model(MLModel(id="m1", name="m1", type="regression", features=["apy"], weights=[1.0]))

        assert registry.remove_rule("r1")
        assert not registry.remove_rule("r1")
        assert registry.remove_trigger("t1")
        assert registry.remove_ml_model("m1")
        assert registry.get_rules() == [] and registry.get_triggers() == [] and registry.get_ml_models() == []

    def test_rule_for_unknown_trigger_is_still_stored(self):
        registry = DecisionRegistry()
        registry.add_rule(rule("r1", trigger_id="missing"))
        assert registry.get_rule("r1").trigger_id == "missing"


class TestIsolation:
    def test_snapshot_is_unaffected_by_later_mutation(self):
        registry = DecisionRegistry()
        registry.add_trigger(trigger("t1"))
        snapshot = registry.snapshot()

        registry.add_trigger(trigger("t2"))
        registry.remove_trigger("t1")

        assert [t.id for t in snapshot.triggers] == ["t1"]
        assert [t.id for t in registry.snapshot().triggers] == ["t2"]
        assert registry.snapshot().version > snapshot.version

    def test_snapshot_is_cached_until_changed(self):
        registry = DecisionRegistry()
        registry.add_trigger(trigger("t1"))
        assert registry.snapshot() is registry.snapshot()

    def test_caller_mutation_does_not_leak_in(self):
        registry = DecisionRegistry()
        original = trigger("t1", 100)
        registry.add_trigger(original)
        original.config.value = 1

        registry.get_triggers()[0].config.value = 2

        assert registry.get_trigger("t1").config.value == 100

    def test_defaults(self):
        registry = DecisionRegistry.with_defaults()
        assert registry.get_rule("emergency_withdrawal").trigger_id == "low_balance_alert"
        assert registry.get_ml_model("yield_predictor").features == ["apy", "volume", "risk_score", "liquidity"]
