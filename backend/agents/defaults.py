"""
Built-in triggers, rules and scoring models.
Loaded into a DecisionRegistry on request (DecisionRegistry.with_defaults()).
"""

from infrastructure.config import ZERO_ADDRESS

from .models import MLModel, Rule, Trigger

DEFAULT_TRIGGERS = [
    {
        "id": "low_balance_alert",
        "name": "Low Balance Alert",
        "type": "threshold",
        "config": {"metric": "balance", "operator": "lt", "value": 100, "token": "cUSD"},
        "priority": 1,
    },
    {
        "id": "high_gas_price",
        "name": "High Gas Price",
        "type": "threshold",
        "config": {"metric": "gas_price", "operator": "gt", "value": 20},
        "priority": 2,
    },
    {
        "id": "daily_rebalance",
        "name": "Daily Rebalance",
        "type": "schedule",
        "config": {"interval": "daily", "time": "09:00", "timezone": "UTC"},
        "priority": 3,
    },
    {
        "id": "donation_received",
        "name": "Donation Received",
        "type": "event",
        "config": {
            "contractAddress": ZERO_ADDRESS,
            "eventName": "DonationReceived",
            "filter": {},
        },
        "priority": 4,
    },
    {
        "id": "yield_optimization",
        "name": "Yield Optimization",
        "type": "ml_prediction",
        "config": {"model": "yield_predictor", "features": ["apy", "volume", "risk_score"], "threshold": 0.7},
        "priority": 5,
    },
    {
        "id": "price_arbitrage",
        "name": "Price Arbitrage Opportunity",
        "type": "threshold",
        "config": {"metric": "price", "operator": "gt", "value": 0.05},
        "priority": 6,
    },
    {
        "id": "trading_volume_spike",
        "name": "Trading Volume Spike",
        "type": "threshold",
        "config": {"metric": "volume", "operator": "gt", "value": 1000000},
        "priority": 7,
    },
]

DEFAULT_RULES = [
    {
        "id": "emergency_withdrawal",
        "name": "Emergency Withdrawal",
        "triggerId": "low_balance_alert",
        "conditions": [{"metric": "balance", "operator": "lt", "value": 50, "weight": 1.0, "token": "cUSD"}],
        "actions": [{"type": "transfer", "config": {"to": "emergency_wallet", "amount": "all", "token": "cUSD"}}],
        "priority": 1,
    },
    {
        "id": "gas_optimization",
        "name": "Gas Price Optimization",
        "triggerId": "high_gas_price",
        "conditions": [{"metric": "gas_price", "operator": "gt", "value": 20, "weight": 0.8}],
        "actions": [{
            "type": "notify",
            "config": {"message": "High gas prices detected, delaying transactions", "channel": "telegram"},
        }],
        "priority": 2,
    },
    {
        "id": "portfolio_rebalance",
        "name": "Portfolio Rebalance",
        "triggerId": "daily_rebalance",
        "conditions": [{"metric": "time_since_last_rebalance", "operator": "gte", "value": 86400, "weight": 1.0}],
        "actions": [{"type": "stake", "config": {"protocol": "moola", "token": "cUSD", "amount": "auto"}}],
        "priority": 3,
    },
    {
        "id": "donation_processing",
        "name": "Process Donation",
        "triggerId": "donation_received",
        "conditions": [{"metric": "donation_amount", "operator": "gt", "value": 0, "weight": 1.0}],
        "actions": [
            {"type": "transfer", "config": {"to": "splitter_contract", "amount": "all", "token": "auto"}},
            {"type": "mint", "config": {"recipient": "donor", "metadata": "donation_receipt", "soulbound": False}},
        ],
        "priority": 4,
    },
    {
        "id": "arbitrage_trading",
        "name": "Arbitrage Trading",
        "triggerId": "price_arbitrage",
        "conditions": [{"metric": "price_difference", "operator": "gt", "value": 0.05, "weight": 1.0}],
        "actions": [
            {"type": "buy", "config": {"token": "auto", "amount": "auto", "maxPrice": "auto"}},
            {"type": "sell", "config": {"token": "auto", "amount": "auto", "minPrice": "auto"}},
        ],
        "priority": 5,
    },
    {
        "id": "volume_based_trading",
        "name": "Volume-Based Trading",
        "triggerId": "trading_volume_spike",
        "conditions": [{"metric": "volume", "operator": "gt", "value": 1000000, "weight": 0.8}],
        "actions": [{"type": "buy", "config": {"token": "cUSD", "amount": "1000", "maxPrice": "1.02"}}],
        "priority": 6,
    },
    {
        "id": "request_liquidity",
        "name": "Request Liquidity",
        "triggerId": "low_balance_alert",
        "conditions": [{"metric": "balance", "operator": "lt", "value": 100, "weight": 1.0, "token": "cUSD"}],
        "actions": [{
            "type": "request",
            "config": {"tokenIn": "cUSD", "tokenOut": "CELO", "amountIn": "1000", "amountOut": "auto"},
        }],
        "priority": 7,
    },
]

DEFAULT_MODELS = [
    {
        "id": "yield_predictor",
        "name": "Yield Prediction Model",
        "type": "regression",
        "features": ["apy", "volume", "risk_score", "liquidity"],
        "weights": [0.4, 0.3, 0.2, 0.1],
        "threshold": 0.7,
        "trainingData": [
            [5.2, 1000000, 0.3, 5000000],
            [3.8, 500000, 0.5, 2000000],
            [7.1, 2000000, 0.2, 8000000],
        ],
        "accuracy": 0.85,
    },
    {
        "id": "anomaly_detector",
        "name": "Anomaly Detection Model",
        "type": "anomaly_detection",
        "features": ["transaction_frequency", "amount_variance", "time_patterns"],
        "weights": [0.5, 0.3, 0.2],
        "threshold": 0.8,
        "trainingData": [[10, 0.1, 0.8], [50, 0.3, 0.6], [5, 0.05, 0.9]],
        "accuracy": 0.92,
    },
    {
        "id": "risk_assessor",
        "name": "Risk Assessment Model",
        "type": "classification",
        "features": ["volatility", "liquidity", "historical_performance"],
        "weights": [0.4, 0.4, 0.2],
        "threshold": 0.6,
        "trainingData": [[0.2, 0.8, 0.7], [0.5, 0.6, 0.4], [0.1, 0.9, 0.8]],
        "accuracy": 0.88,
    },
]


def load_defaults(registry) -> None:
    """Register every built-in definition (models and triggers before rules)"""
    for data in DEFAULT_MODELS:
        registry.add_ml_model(MLModel.from_dict(data))
    for data in DEFAULT_TRIGGERS:
        registry.add_trigger(Trigger.from_dict(data))
    for data in DEFAULT_RULES:
        registry.add_rule(Rule.from_dict(data))
