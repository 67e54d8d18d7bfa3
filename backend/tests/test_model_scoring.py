"""
Model Scoring Tests
Feature extraction and per-type scorers

Run: python -m pytest tests/test_model_scoring.py -v
"""

from datetime import timedelta

import pytest

from agents.model_scoring import (
    calculate_amount_variance,
    calculate_historical_performance,
    calculate_time_patterns,
    euclidean_distance,
    extract_features,
    score_model,
)
from agents.models import ActionRecord, AgentMemory, MLModel
from infrastructure.errors import ValidationError


def model(model_type, features, weights, threshold=0.5, training_data=None):
    return MLModel(
        id="m",
        name="m",
        type=model_type,
        features=features,
        weights=weights,
        threshold=threshold,
        training_data=training_data or [],
    )


class TestFeatures:
    def test_historical_performance(self, fixed_now):
        memory = AgentMemory(agent_id="1", actions=[
            ActionRecord(fixed_now, "transfer", {}, None, True),
            ActionRecord(fixed_now, "transfer", {}, None, False),
        ])
        assert calculate_historical_performance(memory) == 0.5
        assert calculate_historical_performance(AgentMemory(agent_id="1")) == 0.0

    def test_even_spacing_is_perfectly_regular(self, fixed_now):
        memory = AgentMemory(agent_id="1", actions=[
            ActionRecord(fixed_now + timedelta(minutes=10 * i), "claim", {}, None, True) for i in range(4)
        ])
        assert calculate_time_patterns(memory) == pytest.approx(1.0)

    def test_amount_variance(self, fixed_now):
        same = AgentMemory(agent_id="1", actions=[
            ActionRecord(fixed_now, "transfer", {"amount": "5"}, None, True) for _ in range(3)
        ])
        assert calculate_amount_variance(same) == 0.0

        mixed = AgentMemory(agent_id="1", actions=[
            ActionRecord(fixed_now, "transfer", {"amount": "1"}, None, True),
            ActionRecord(fixed_now, "transfer", {"amount": "3"}, None, True),
        ])
        assert calculate_amount_variance(mixed) == pytest.approx(0.5)

    def test_extract_in_requested_order_with_unknowns_as_zero(self, make_state, empty_memory):
        state = make_state(current_apy=4.0, trading_volume=100.0)
        assert extract_features(state, empty_memory, ["volume", "apy", "mystery"]) == [100.0, 4.0, 0.0]


class TestScorers:
    def test_regression_is_clamped(self):
        m = model("regression", ["a", "b"], [0.5, 0.5])
        assert score_model(m, [0.4, 0.6]) == pytest.approx(0.5)
        assert score_model(m, [10, 10]) == 1.0
        assert score_model(m, [-10, -10]) == 0.0

    def test_classification_thresholds_weighted_sum(self):
        m = model("classification", ["a"], [1.0], threshold=0.6)
        assert score_model(m, [0.6]) == 1.0
        assert score_model(m, [0.59]) == 0.0

    def test_clustering_closeness(self):
        m = model("clustering", ["a"], [1.0], training_data=[[0.0], [10.0]])
        assert score_model(m, [0.0]) == pytest.approx(1.0)
        assert score_model(m, [5.0]) == pytest.approx(0.0)

    def test_anomaly_flags_distant_points(self):
        m = model("anomaly_detection", ["a"], [1.0], threshold=1.0, training_data=[[0.0], [1.0]])
        assert score_model(m, [0.5]) == 0.0
        assert score_model(m, [9.0]) == 1.0

    def test_feature_count_mismatch_scores_zero(self):
        m = model("regression", ["a", "b"], [1.0, 1.0])
        assert score_model(m, [1.0]) == 0.0

    def test_weights_must_match_features(self):
        with pytest.raises(ValidationError):
            model("regression", ["a", "b"], [1.0])

    def test_euclidean_distance(self):
        assert euclidean_distance([0, 0], [3, 4]) == 5.0
