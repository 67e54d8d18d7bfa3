"""
Model Scoring - feature extraction and scoring strategies for ml_prediction triggers.

These are rule-weighting heuristics: a fixed linear weighted sum over named
features, post-processed per model type. Nothing here trains or updates
weights.
"""

import math
from typing import Callable, Dict, List, Sequence

from .models import AgentMemory, MLModel, ModelType, ObservedState


# ============================================
# FEATURE EXTRACTION
# ============================================

def calculate_amount_variance(memory: AgentMemory) -> float:
    """Coefficient of variation of recorded action amounts"""
    amounts = []
    for action in memory.actions:
        raw = (action.params or {}).get("amount")
        if not raw:
            continue
        try:
            amounts.append(float(raw))
        except (TypeError, ValueError):
            amounts.append(0.0)

    if len(amounts) < 2:
        return 0.0

    mean = sum(amounts) / len(amounts)
    if mean == 0:
        return 0.0
    variance = sum((a - mean) ** 2 for a in amounts) / len(amounts)
    return math.sqrt(variance) / mean


def calculate_time_patterns(memory: AgentMemory) -> float:
    """Regularity of action spacing: 1.0 means perfectly even intervals"""
    timestamps = [a.timestamp.timestamp() for a in memory.actions]
    if len(timestamps) < 2:
        return 0.0

    intervals = [timestamps[i] - timestamps[i - 1] for i in range(1, len(timestamps))]
    mean_interval = sum(intervals) / len(intervals)
    if mean_interval == 0:
        return 0.0
    variance = sum((i - mean_interval) ** 2 for i in intervals) / len(intervals)
    return 1 - (math.sqrt(variance) / mean_interval)


def calculate_historical_performance(memory: AgentMemory) -> float:
    if not memory.actions:
        return 0.0
    return sum(1 for a in memory.actions if a.success) / len(memory.actions)


def calculate_risk_score(state: ObservedState, memory: AgentMemory) -> float:
    factors = [
        state.volatility or 0,
        len(memory.actions) / 100,
        calculate_amount_variance(memory),
    ]
    return sum(factors) / len(factors)


FEATURE_EXTRACTORS: Dict[str, Callable[[ObservedState, AgentMemory], float]] = {
    "apy": lambda state, memory: state.current_apy or 0,
    "volume": lambda state, memory: state.trading_volume or 0,
    "risk_score": calculate_risk_score,
    "liquidity": lambda state, memory: state.liquidity or 0,
    "transaction_frequency": lambda state, memory: len(memory.actions),
    "amount_variance": lambda state, memory: calculate_amount_variance(memory),
    "time_patterns": lambda state, memory: calculate_time_patterns(memory),
    "volatility": lambda state, memory: state.volatility or 0,
    "historical_performance": lambda state, memory: calculate_historical_performance(memory),
}


def extract_features(state: ObservedState, memory: AgentMemory, names: Sequence[str]) -> List[float]:
    """Feature vector in the order of names; unknown features read as 0"""
    vector = []
    for name in names:
        extractor = FEATURE_EXTRACTORS.get(name)
        vector.append(float(extractor(state, memory)) if extractor else 0.0)
    return vector


# ============================================
# SCORERS
# ============================================

def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        return math.inf
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


class ModelScorer:
    """Base strategy: plain weighted sum"""

    def weighted_sum(self, model: MLModel, features: Sequence[float]) -> float:
        return sum(f * w for f, w in zip(features, model.weights))

    def score(self, model: MLModel, features: Sequence[float]) -> float:
        return self.weighted_sum(model, features)


class ClassificationScorer(ModelScorer):
    def score(self, model, features):
        return 1.0 if self.weighted_sum(model, features) >= (model.threshold or 0.5) else 0.0


class RegressionScorer(ModelScorer):
    def score(self, model, features):
        return max(0.0, min(1.0, self.weighted_sum(model, features)))


class ClusteringScorer(ModelScorer):
    """Closeness to the nearest seed point relative to the farthest"""

    def score(self, model, features):
        if not model.training_data:
            return 0.0
        distances = [euclidean_distance(features, point) for point in model.training_data]
        farthest = max(distances)
        if farthest == 0:
            return 1.0
        if math.isinf(farthest):
            return 0.0
        return 1 - (min(distances) / farthest)


class AnomalyScorer(ModelScorer):
    """1 when the mean distance to seed data exceeds the threshold"""

    def score(self, model, features):
        if not model.training_data:
            return 0.0
        distances = [euclidean_distance(features, point) for point in model.training_data]
        average = sum(distances) / len(distances)
        return 1.0 if average > (model.threshold or 0.5) else 0.0


SCORERS: Dict[ModelType, ModelScorer] = {
    ModelType.CLASSIFICATION: ClassificationScorer(),
    ModelType.REGRESSION: RegressionScorer(),
    ModelType.CLUSTERING: ClusteringScorer(),
    ModelType.ANOMALY_DETECTION: AnomalyScorer(),
}


def score_model(model: MLModel, features: Sequence[float]) -> float:
    if len(features) != len(model.features):
        return 0.0
    return SCORERS.get(model.type, ModelScorer()).score(model, features)
