"""
Agent Core - Decision and Execution
Autonomous on-chain agents driven by triggers and rules

Decision:
- DecisionRegistry: shared triggers, rules and scoring models
- TriggerEvaluator: which triggers fire for an agent's state
- DecisionEngine: rule selection and action resolution

Execution:
- AgentEngine: observe -> decide -> validate -> execute -> record
- AgentStateStore: per-agent config and memory (in-memory or SQLite)
- AgentScheduler: periodic runs on APScheduler
"""

from .models import (
    ActionRecord,
    ActionTemplate,
    ActionType,
    AgentConfig,
    AgentMemory,
    DecisionResponse,
    ExecutionMode,
    ExecutionResult,
    MLModel,
    Observation,
    ObservedState,
    Operator,
    Placeholder,
    Rule,
    RuleCondition,
    SpendingLimits,
    Trigger,
    TriggerType,
)
from .registry import DecisionRegistry, RegistrySnapshot
from .trigger_evaluator import ScheduleTracker, TriggerEvaluator, compare_values, get_metric_value
from .action_resolver import ActionResolver, ResolvedAction
from .action_validator import ValidationResult, validate_action
from .decision_engine import DecisionEngine
from .memory_store import (
    AgentStateStore,
    InMemoryAgentStateStore,
    SqliteAgentStateStore,
    create_store,
    trim_memory,
)
from .agent_engine import AgentEngine
from .agent_scheduler import AgentScheduler

__all__ = [
    # Models
    "ActionRecord",
    "ActionTemplate",
    "ActionType",
    "AgentConfig",
    "AgentMemory",
    "DecisionResponse",
    "ExecutionMode",
    "ExecutionResult",
    "MLModel",
    "Observation",
    "ObservedState",
    "Operator",
    "Placeholder",
    "Rule",
    "RuleCondition",
    "SpendingLimits",
    "Trigger",
    "TriggerType",

    # Decision
    "DecisionRegistry",
    "RegistrySnapshot",
    "ScheduleTracker",
    "TriggerEvaluator",
    "compare_values",
    "get_metric_value",
    "ActionResolver",
    "ResolvedAction",
    "ValidationResult",
    "validate_action",
    "DecisionEngine",

    # Execution
    "AgentStateStore",
    "InMemoryAgentStateStore",
    "SqliteAgentStateStore",
    "create_store",
    "trim_memory",
    "AgentEngine",
    "AgentScheduler",
]
