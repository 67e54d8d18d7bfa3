"""
Agent Core - Data Models
Triggers, rules, scoring models, agent configuration and agent memory.

Dict input accepts both the snake_case field names used here and the
camelCase keys used by the JSON clients (triggerId, perTx, contractAddress...).
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from infrastructure.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _pick(data: dict, *keys, default=None):
    """First present key wins (snake_case or camelCase)"""
    for key in keys:
        if key in data:
            return data[key]
    return default


class TriggerType(str, Enum):
    THRESHOLD = "threshold"
    SCHEDULE = "schedule"
    EVENT = "event"
    PATTERN = "pattern"
    ML_PREDICTION = "ml_prediction"


class Operator(str, Enum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"
    MATCHES = "matches"


class ScheduleInterval(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def seconds(self) -> int:
        return INTERVAL_SECONDS[self]


INTERVAL_SECONDS = {
    ScheduleInterval.HOURLY: 3600,
    ScheduleInterval.DAILY: 86400,
    ScheduleInterval.WEEKLY: 604800,
    ScheduleInterval.MONTHLY: 2592000,
}


class ModelType(str, Enum):
    REGRESSION = "regression"
    CLASSIFICATION = "classification"
    CLUSTERING = "clustering"
    ANOMALY_DETECTION = "anomaly_detection"


class ExecutionMode(str, Enum):
    AUTO = "auto"        # execute decisions on-chain
    PROPOSE = "propose"  # return decisions without executing


class ActionType(str, Enum):
    NONE = "none"
    ERROR = "error"
    TRANSFER = "transfer"
    SWAP = "swap"
    STAKE = "stake"
    UNSTAKE = "unstake"
    CLAIM = "claim"
    BUY = "buy"
    SELL = "sell"
    REQUEST = "request"
    MINT = "mint"


class Placeholder(str, Enum):
    """Template values filled in at decision time by the ActionResolver"""
    AUTO = "auto"
    ALL = "all"
    EMERGENCY_WALLET = "emergency_wallet"


def parse_placeholder(value):
    if isinstance(value, str) and not isinstance(value, Placeholder):
        try:
            return Placeholder(value)
        except ValueError:
            return value
    return value


# ============================================
# TRIGGERS
# ============================================

@dataclass
class ThresholdConfig:
    metric: str
    operator: Operator
    value: Any
    token: Optional[str] = None

    def __post_init__(self):
        try:
            self.operator = Operator(self.operator)
        except ValueError:
            raise ValidationError(f"Unknown operator: {self.operator}", {"metric": self.metric})

    @classmethod
    def from_dict(cls, data: dict) -> "ThresholdConfig":
        return cls(
            metric=data["metric"],
            operator=data["operator"],
            value=data["value"],
            token=data.get("token"),
        )

    def to_dict(self) -> dict:
        result = {"metric": self.metric, "operator": self.operator.value, "value": self.value}
        if self.token:
            result["token"] = self.token
        return result


@dataclass
class ScheduleConfig:
    interval: ScheduleInterval
    time: Optional[str] = None      # informational, e.g. "09:00"
    timezone: Optional[str] = None

    def __post_init__(self):
        self.interval = ScheduleInterval(self.interval)

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleConfig":
        return cls(interval=data["interval"], time=data.get("time"), timezone=data.get("timezone"))

    def to_dict(self) -> dict:
        return {"interval": self.interval.value, "time": self.time, "timezone": self.timezone}


@dataclass
class EventConfig:
    contract_address: str
    event_name: str
    filter: Dict[str, Any] = field(default_factory=dict)
    signature: Optional[str] = None  # e.g. "DonationReceived(address,uint256)"

    @classmethod
    def from_dict(cls, data: dict) -> "EventConfig":
        return cls(
            contract_address=_pick(data, "contract_address", "contractAddress"),
            event_name=_pick(data, "event_name", "eventName"),
            filter=data.get("filter") or {},
            signature=data.get("signature"),
        )

    @property
    def event_signature(self) -> str:
        """Canonical signature whose keccak hash is the log's first topic"""
        if self.signature:
            return self.signature
        if "(" in self.event_name:
            return self.event_name
        return f"{self.event_name}()"

    def to_dict(self) -> dict:
        result = {"contractAddress": self.contract_address, "eventName": self.event_name, "filter": self.filter}
        if self.signature:
            result["signature"] = self.signature
        return result


@dataclass
class PatternConfig:
    sequence: List[str]
    confidence: float = 1.0

    @classmethod
    def from_dict(cls, data: dict) -> "PatternConfig":
        return cls(sequence=list(data["sequence"]), confidence=float(data.get("confidence", 1.0)))

    def to_dict(self) -> dict:
        return {"sequence": list(self.sequence), "confidence": self.confidence}


@dataclass
class MLPredictionConfig:
    model: str
    features: List[str]
    threshold: float

    @classmethod
    def from_dict(cls, data: dict) -> "MLPredictionConfig":
        return cls(model=data["model"], features=list(data["features"]), threshold=float(data["threshold"]))

    def to_dict(self) -> dict:
        return {"model": self.model, "features": list(self.features), "threshold": self.threshold}


TriggerConfig = Union[ThresholdConfig, ScheduleConfig, EventConfig, PatternConfig, MLPredictionConfig]

TRIGGER_CONFIG_TYPES = {
    TriggerType.THRESHOLD: ThresholdConfig,
    TriggerType.SCHEDULE: ScheduleConfig,
    TriggerType.EVENT: EventConfig,
    TriggerType.PATTERN: PatternConfig,
    TriggerType.ML_PREDICTION: MLPredictionConfig,
}


@dataclass
class Trigger:
    """A named condition-check that makes bound rules eligible"""
    id: str
    name: str
    type: TriggerType
    config: TriggerConfig
    enabled: bool = True
    priority: int = 0  # lower = evaluated first

    def __post_init__(self):
        try:
            self.type = TriggerType(self.type)
        except ValueError:
            raise ValidationError(f"Unknown trigger type: {self.type}", {"trigger_id": self.id})

        expected = TRIGGER_CONFIG_TYPES[self.type]
        if isinstance(self.config, dict):
            raw = self.config
            # Accept the nested {"threshold": {...}} shape as well as the flat one
            if self.type.value in raw and isinstance(raw[self.type.value], dict):
                raw = raw[self.type.value]
            try:
                self.config = expected.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(
                    f"Invalid {self.type.value} config for trigger {self.id}: {e}",
                    {"trigger_id": self.id}
                )
        elif not isinstance(self.config, expected):
            raise ValidationError(
                f"Trigger {self.id} of type {self.type.value} needs a {expected.__name__}",
                {"trigger_id": self.id}
            )

    @classmethod
    def from_dict(cls, data: dict) -> "Trigger":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            type=data["type"],
            config=data.get("config", {}),
            enabled=data.get("enabled", True),
            priority=int(data.get("priority", 0)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "config": self.config.to_dict(),
            "enabled": self.enabled,
            "priority": self.priority,
        }


# ============================================
# RULES
# ============================================

@dataclass
class RuleCondition:
    """Weighted metric check; all conditions of a rule must hold"""
    metric: str
    operator: Operator
    value: Any
    weight: float = 1.0
    token: Optional[str] = None

    def __post_init__(self):
        try:
            self.operator = Operator(self.operator)
        except ValueError:
            raise ValidationError(f"Unknown operator: {self.operator}", {"metric": self.metric})
        self.weight = float(self.weight)
        if not 0.0 <= self.weight <= 1.0:
            raise ValidationError(f"Condition weight must be within [0, 1], got {self.weight}")

    @classmethod
    def from_dict(cls, data: dict) -> "RuleCondition":
        return cls(
            metric=data["metric"],
            operator=data["operator"],
            value=data["value"],
            weight=data.get("weight", 1.0),
            token=data.get("token"),
        )

    def to_dict(self) -> dict:
        result = {
            "metric": self.metric,
            "operator": self.operator.value,
            "value": self.value,
            "weight": self.weight,
        }
        if self.token:
            result["token"] = self.token
        return result


@dataclass
class ActionTemplate:
    """Action type plus config that may hold Placeholder values"""
    type: str
    config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.config = {k: parse_placeholder(v) for k, v in self.config.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "ActionTemplate":
        return cls(type=data["type"], config=dict(data.get("config") or {}))

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "config": {k: (v.value if isinstance(v, Placeholder) else v) for k, v in self.config.items()},
        }


@dataclass
class Rule:
    """Trigger-bound, condition-gated mapping to action templates"""
    id: str
    name: str
    trigger_id: str
    conditions: List[RuleCondition] = field(default_factory=list)
    actions: List[ActionTemplate] = field(default_factory=list)
    priority: int = 0
    enabled: bool = True

    def __post_init__(self):
        self.conditions = [c if isinstance(c, RuleCondition) else RuleCondition.from_dict(c) for c in self.conditions]
        self.actions = [a if isinstance(a, ActionTemplate) else ActionTemplate.from_dict(a) for a in self.actions]
        if not self.actions:
            raise ValidationError(f"Rule {self.id} has no actions", {"rule_id": self.id})

    @classmethod
    def from_dict(cls, data: dict) -> "Rule":
        try:
            return cls(
                id=data["id"],
                name=data.get("name", data["id"]),
                trigger_id=_pick(data, "trigger_id", "triggerId"),
                conditions=list(data.get("conditions") or []),
                actions=list(data.get("actions") or []),
                priority=int(data.get("priority", 0)),
                enabled=data.get("enabled", True),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid rule definition: {e}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "triggerId": self.trigger_id,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "priority": self.priority,
            "enabled": self.enabled,
        }


# ============================================
# SCORING MODELS
# ============================================

@dataclass
class MLModel:
    """
    Fixed linear weighting over named features.
    training_data is static seed data; nothing is learned online.
    """
    id: str
    name: str
    type: ModelType
    features: List[str]
    weights: List[float]
    threshold: float = 0.5
    training_data: List[List[float]] = field(default_factory=list)
    accuracy: float = 0.0

    def __post_init__(self):
        try:
            self.type = ModelType(self.type)
        except ValueError:
            raise ValidationError(f"Unknown model type: {self.type}", {"model_id": self.id})
        if len(self.weights) != len(self.features):
            raise ValidationError(
                f"Model {self.id} has {len(self.features)} features but {len(self.weights)} weights",
                {"model_id": self.id}
            )

    @classmethod
    def from_dict(cls, data: dict) -> "MLModel":
        try:
            return cls(
                id=data["id"],
                name=data.get("name", data["id"]),
                type=data["type"],
                features=list(data["features"]),
                weights=[float(w) for w in data["weights"]],
                threshold=float(data.get("threshold", 0.5)),
                training_data=[list(row) for row in _pick(data, "training_data", "trainingData", default=[])],
                accuracy=float(data.get("accuracy", 0.0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid model definition: {e}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "features": list(self.features),
            "weights": list(self.weights),
            "threshold": self.threshold,
            "trainingData": [list(row) for row in self.training_data],
            "accuracy": self.accuracy,
        }


# ============================================
# AGENT CONFIGURATION
# ============================================

def _to_limit(value) -> Optional[int]:
    if value in (None, ""):
        return None
    return int(value)


@dataclass
class SpendingLimits:
    """Limits in token base units; None means unlimited"""
    daily: Optional[int] = None
    per_tx: Optional[int] = None
    token: Optional[str] = None  # symbol or address the limits count; None counts every token

    def __post_init__(self):
        self.daily = _to_limit(self.daily)
        self.per_tx = _to_limit(self.per_tx)

    @classmethod
    def from_dict(cls, data: dict) -> "SpendingLimits":
        return cls(daily=data.get("daily"), per_tx=_pick(data, "per_tx", "perTx"), token=data.get("token") or None)

    def to_dict(self) -> dict:
        result = {
            "daily": str(self.daily) if self.daily is not None else None,
            "perTx": str(self.per_tx) if self.per_tx is not None else None,
        }
        if self.token:
            result["token"] = self.token
        return result


@dataclass
class AgentConfig:
    goal: str
    constraints: str = ""
    execution_mode: ExecutionMode = ExecutionMode.AUTO
    spending_limits: SpendingLimits = field(default_factory=SpendingLimits)
    whitelist: Set[str] = field(default_factory=set)
    blacklist: Set[str] = field(default_factory=set)
    permissions: Set[str] = field(default_factory=set)

    def __post_init__(self):
        self.execution_mode = ExecutionMode(self.execution_mode)
        if isinstance(self.spending_limits, dict):
            self.spending_limits = SpendingLimits.from_dict(self.spending_limits)
        self.whitelist = {a.lower() for a in self.whitelist}
        self.blacklist = {a.lower() for a in self.blacklist}
        self.permissions = set(self.permissions)

    @classmethod
    def from_dict(cls, data: dict) -> "AgentConfig":
        return cls(
            goal=data.get("goal", ""),
            constraints=data.get("constraints", ""),
            execution_mode=_pick(data, "execution_mode", "executionMode", default=ExecutionMode.AUTO),
            spending_limits=_pick(data, "spending_limits", "spendingLimits", default={}) or {},
            whitelist=set(data.get("whitelist") or []),
            blacklist=set(data.get("blacklist") or []),
            permissions=set(data.get("permissions") or []),
        )

    def to_dict(self) -> dict:
        return {
            "goal": self.goal,
            "constraints": self.constraints,
            "executionMode": self.execution_mode.value,
            "spendingLimits": self.spending_limits.to_dict(),
            "whitelist": sorted(self.whitelist),
            "blacklist": sorted(self.blacklist),
            "permissions": sorted(self.permissions),
        }

    def merged(self, updates: dict) -> "AgentConfig":
        """Shallow partial update: given keys replace, the rest is kept"""
        data = self.to_dict()
        for key, value in updates.items():
            if value is None:
                continue
            normalized = {
                "execution_mode": "executionMode",
                "spending_limits": "spendingLimits",
            }.get(key, key)
            if isinstance(value, SpendingLimits):
                value = value.to_dict()
            elif isinstance(value, Enum):
                value = value.value
            elif isinstance(value, set):
                value = sorted(value)
            data[normalized] = value
        return AgentConfig.from_dict(data)


# ============================================
# OBSERVED STATE
# ============================================

@dataclass
class ObservedState:
    """Snapshot of what the agent can see on-chain at decision time"""
    wallet: Optional[str] = None
    celo_balance: int = 0
    cusd_balance: int = 0
    ceur_balance: int = 0
    token_balances: Dict[str, int] = field(default_factory=dict)  # lowercased symbol/address -> balance
    recent_transactions: List[Dict[str, Any]] = field(default_factory=list)
    recent_events: List[Dict[str, Any]] = field(default_factory=list)
    agent_data: Dict[str, Any] = field(default_factory=dict)

    # Market metrics, absent unless a reader supplies them
    gas_price: Optional[float] = None
    current_apy: Optional[float] = None
    trading_volume: Optional[float] = None
    liquidity: Optional[float] = None
    volatility: Optional[float] = None
    price: Optional[float] = None
    price_difference: Optional[float] = None
    time_since_last_rebalance: Optional[float] = None
    donation_amount: Optional[float] = None

    degraded: List[str] = field(default_factory=list)  # names of reads that failed
    observed_at: datetime = field(default_factory=utcnow)

    def balance_of(self, token: str) -> int:
        """Balance by token symbol or address; the cUSD/cEUR/CELO symbols fall back to the named fields"""
        key = str(token).lower()
        if key in self.token_balances:
            return int(self.token_balances[key] or 0)
        named = {"cusd": self.cusd_balance, "ceur": self.ceur_balance, "celo": self.celo_balance}
        return int(named.get(key) or 0)

    @classmethod
    def from_dict(cls, data: dict) -> "ObservedState":
        values = dict(data)
        if "observed_at" in values:
            values["observed_at"] = _parse_timestamp(values["observed_at"])
        return cls(**values)

    def to_dict(self) -> dict:
        return {
            "wallet": self.wallet,
            "celo_balance": self.celo_balance,
            "cusd_balance": self.cusd_balance,
            "ceur_balance": self.ceur_balance,
            "token_balances": dict(self.token_balances),
            "recent_transactions": [dict(tx) for tx in self.recent_transactions],
            "recent_events": [dict(e) for e in self.recent_events],
            "agent_data": dict(self.agent_data),
            "gas_price": self.gas_price,
            "current_apy": self.current_apy,
            "trading_volume": self.trading_volume,
            "liquidity": self.liquidity,
            "volatility": self.volatility,
            "price": self.price,
            "price_difference": self.price_difference,
            "time_since_last_rebalance": self.time_since_last_rebalance,
            "donation_amount": self.donation_amount,
            "degraded": list(self.degraded),
            "observed_at": self.observed_at.isoformat(),
        }


# ============================================
# AGENT MEMORY
# ============================================

@dataclass
class Observation:
    timestamp: datetime
    type: str
    data: Dict[str, Any]

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp.isoformat(), "type": self.type, "data": self.data}

    @classmethod
    def from_dict(cls, data: dict) -> "Observation":
        return cls(timestamp=_parse_timestamp(data["timestamp"]), type=data["type"], data=data["data"])


@dataclass
class ActionRecord:
    timestamp: datetime
    type: str
    params: Dict[str, Any]
    result: Optional[Dict[str, Any]]
    success: bool

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "type": self.type,
            "params": self.params,
            "result": self.result,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActionRecord":
        return cls(
            timestamp=_parse_timestamp(data["timestamp"]),
            type=data["type"],
            params=data.get("params") or {},
            result=data.get("result"),
            success=bool(data["success"]),
        )


@dataclass
class AgentMemory:
    """Per-agent log of observations, actions and learnings (FIFO-trimmed)"""
    agent_id: str
    observations: List[Observation] = field(default_factory=list)
    actions: List[ActionRecord] = field(default_factory=list)
    learnings: List[str] = field(default_factory=list)
    last_run: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "agentId": self.agent_id,
            "observations": [o.to_dict() for o in self.observations],
            "actions": [a.to_dict() for a in self.actions],
            "learnings": list(self.learnings),
            "lastRun": self.last_run.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentMemory":
        return cls(
            agent_id=_pick(data, "agent_id", "agentId"),
            observations=[Observation.from_dict(o) for o in data.get("observations", [])],
            actions=[ActionRecord.from_dict(a) for a in data.get("actions", [])],
            learnings=list(data.get("learnings", [])),
            last_run=_parse_timestamp(_pick(data, "last_run", "lastRun")),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_json(cls, payload: str) -> "AgentMemory":
        return cls.from_dict(json.loads(payload))


# ============================================
# DECISIONS AND RESULTS
# ============================================

@dataclass
class DecisionResponse:
    action: str
    params: Dict[str, Any]
    reasoning: str
    confidence: float
    triggered_by: List[str] = field(default_factory=list)
    rule_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "params": self.params,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "triggeredBy": list(self.triggered_by),
            "ruleId": self.rule_id,
        }


@dataclass
class ExecutionResult:
    action: str
    params: Dict[str, Any]
    reasoning: str
    confidence: float
    executed: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    proposed: bool = False

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "params": self.params,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "executed": self.executed,
            "txHash": self.tx_hash,
            "error": self.error,
            "errorCode": self.error_code,
            "proposed": self.proposed,
        }
