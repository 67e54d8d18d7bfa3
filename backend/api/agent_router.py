"""
Agent Core API Router
Endpoints for agent registration, execution, memory and the shared
trigger / rule / model registry.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from agents.agent_engine import AgentEngine
from agents.models import AgentConfig, MLModel, Rule, Trigger
from infrastructure.celo_client import CeloClient
from infrastructure.config import get_config, get_secrets
from infrastructure.errors import NotFoundError, UnregisteredAgentError

logger = logging.getLogger("AgentRouter")

router = APIRouter(prefix="/api/agents", tags=["Agent Core"])

_engine: Optional[AgentEngine] = None


def set_engine(engine: Optional[AgentEngine]):
    """Install the engine served by this router (tests, app factory)"""
    global _engine
    _engine = engine


def get_engine() -> AgentEngine:
    """Engine dependency; built lazily from the environment on first use"""
    global _engine
    if _engine is None:
        config = get_config()
        _engine = AgentEngine(CeloClient.from_config(config, get_secrets()), config=config)
    return _engine


# ============================================
# MODELS
# ============================================

class SpendingLimitsRequest(BaseModel):
    daily: Optional[str] = None
    perTx: Optional[str] = None
    token: Optional[str] = None


class RegisterAgentRequest(BaseModel):
    agentId: str
    goal: str
    constraints: str = ""
    executionMode: str = "auto"
    spendingLimits: SpendingLimitsRequest = Field(default_factory=SpendingLimitsRequest)
    whitelist: List[str] = Field(default_factory=list)
    blacklist: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)


class UpdateAgentConfigRequest(BaseModel):
    goal: Optional[str] = None
    constraints: Optional[str] = None
    executionMode: Optional[str] = None
    spendingLimits: Optional[SpendingLimitsRequest] = None
    whitelist: Optional[List[str]] = None
    blacklist: Optional[List[str]] = None
    permissions: Optional[List[str]] = None


class TriggerRequest(BaseModel):
    id: str
    name: Optional[str] = None
    type: str
    config: Dict[str, Any]
    enabled: bool = True
    priority: int = 0


class RuleRequest(BaseModel):
    id: str
    name: Optional[str] = None
    triggerId: str
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    actions: List[Dict[str, Any]]
    priority: int = 0
    enabled: bool = True


class ModelRequest(BaseModel):
    id: str
    name: Optional[str] = None
    type: str
    features: List[str]
    weights: List[float]
    threshold: float = 0.5
    trainingData: List[List[float]] = Field(default_factory=list)
    accuracy: float = 0.0


def _payload(request: BaseModel) -> Dict[str, Any]:
    return {k: v for k, v in request.model_dump().items() if v is not None}


# ============================================
# AGENTS
# ============================================

@router.post("/register")
async def register_agent(request: RegisterAgentRequest, engine: AgentEngine = Depends(get_engine)):
    """Register (or re-register) an agent; memory starts empty"""
    data = _payload(request)
    agent_id = data.pop("agentId")
    config = AgentConfig.from_dict(data)
    engine.register_agent(agent_id, config)

    return {"success": True, "agentId": agent_id, "config": config.to_dict()}


@router.get("")
async def list_agents(engine: AgentEngine = Depends(get_engine)):
    agents = engine.list_agents()
    return {"success": True, "count": len(agents), "agents": agents}


@router.delete("/{agent_id}")
async def remove_agent(agent_id: str, engine: AgentEngine = Depends(get_engine)):
    if not engine.remove_agent(agent_id):
        raise UnregisteredAgentError(agent_id)
    return {"success": True, "agentId": agent_id}


@router.post("/{agent_id}/execute")
async def execute_agent(agent_id: str, engine: AgentEngine = Depends(get_engine)):
    """
    Run one observe/decide/execute cycle.

    Failures inside the cycle come back in the body (executed=false, error);
    only an unknown agent id is an HTTP error (404).
    """
    result = await engine.execute_agent(agent_id)
    return {"success": result.error is None, "agentId": agent_id, "result": result.to_dict()}


@router.get("/{agent_id}/memory")
async def get_agent_memory(agent_id: str, engine: AgentEngine = Depends(get_engine)):
    memory = engine.get_agent_memory(agent_id)
    if memory is None:
        raise NotFoundError("Agent memory", agent_id)
    return {"success": True, "memory": memory.to_dict()}


@router.get("/{agent_id}/config")
async def get_agent_config(agent_id: str, engine: AgentEngine = Depends(get_engine)):
    config = engine.get_agent_config(agent_id)
    if config is None:
        raise UnregisteredAgentError(agent_id)
    return {"success": True, "agentId": agent_id, "config": config.to_dict()}


@router.patch("/{agent_id}/config")
async def update_agent_config(
    agent_id: str,
    request: UpdateAgentConfigRequest,
    engine: AgentEngine = Depends(get_engine)
):
    updated = engine.update_agent_config(agent_id, _payload(request))
    if updated is None:
        raise UnregisteredAgentError(agent_id)
    return {"success": True, "agentId": agent_id, "config": updated.to_dict()}


# ============================================
# REGISTRY
# ============================================

@router.get("/triggers")
async def list_triggers(engine: AgentEngine = Depends(get_engine)):
    triggers = engine.decision_engine.get_triggers()
    return {"success": True, "count": len(triggers), "triggers": [t.to_dict() for t in triggers]}


@router.post("/triggers")
async def add_trigger(request: TriggerRequest, engine: AgentEngine = Depends(get_engine)):
    trigger = Trigger.from_dict(_payload(request))
    engine.decision_engine.add_trigger(trigger)
    logger.info(f"Trigger {trigger.id} added via API")
    return {"success": True, "trigger": trigger.to_dict()}


@router.get("/rules")
async def list_rules(engine: AgentEngine = Depends(get_engine)):
    rules = engine.decision_engine.get_rules()
    return {"success": True, "count": len(rules), "rules": [r.to_dict() for r in rules]}


@router.post("/rules")
async def add_rule(request: RuleRequest, engine: AgentEngine = Depends(get_engine)):
    rule = Rule.from_dict(_payload(request))
    engine.decision_engine.add_rule(rule)
    logger.info(f"Rule {rule.id} added via API")
    return {"success": True, "rule": rule.to_dict()}


@router.get("/models")
async def list_models(engine: AgentEngine = Depends(get_engine)):
    models = engine.decision_engine.get_ml_models()
    return {"success": True, "count": len(models), "models": [m.to_dict() for m in models]}


@router.post("/models")
async def add_model(request: ModelRequest, engine: AgentEngine = Depends(get_engine)):
    model = MLModel.from_dict(_payload(request))
    engine.decision_engine.add_ml_model(model)
    logger.info(f"Model {model.id} added via API")
    return {"success": True, "model": model.to_dict()}
