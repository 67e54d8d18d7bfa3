"""
Action Validation
Structural checks per action type, then the agent's own policy
(per-tx and daily limits, recipient black/whitelist, permissions).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from infrastructure.config import ZERO_ADDRESS
from infrastructure.errors import ErrorCode

from .models import ActionType, AgentConfig, AgentMemory, ObservedState, utcnow
from .trigger_evaluator import to_number


@dataclass
class ValidationResult:
    is_valid: bool
    reason: Optional[str] = None
    code: Optional[ErrorCode] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def fail(cls, reason: str, code: ErrorCode = ErrorCode.VALIDATION_ERROR) -> "ValidationResult":
        return cls(False, reason, code)


# action -> (required fields, reason when missing, fields that must be > 0, reason when not positive)
ACTION_SCHEMAS = {
    "transfer": (("to", "amount"), "Missing recipient or amount", ("amount",), "Amount must be positive"),
    "stake": (("protocol", "amount"), "Missing protocol or amount", ("amount",), "Amount must be positive"),
    "unstake": (("protocol", "shares"), "Missing protocol or shares", ("shares",), "Shares must be positive"),
    "claim": (("protocol",), "Missing protocol", (), None),
    "swap": (("tokenIn", "tokenOut", "amountIn"), "Missing swap parameters", (), None),
    "buy": (
        ("token", "amount", "maxPrice"), "Missing token, amount, or max price",
        ("amount", "maxPrice"), "Amount and max price must be positive",
    ),
    "sell": (
        ("token", "amount", "minPrice"), "Missing token, amount, or min price",
        ("amount", "minPrice"), "Amount and min price must be positive",
    ),
    "request": (
        ("tokenIn", "tokenOut", "amountIn", "amountOut"), "Missing token addresses or amounts",
        ("amountIn", "amountOut"), "Amounts must be positive",
    ),
    "mint": (("recipient", "metadataURI"), "Missing recipient or metadata URI", (), None),
}

# Field holding the value that counts against spending limits
SPEND_FIELDS = {
    "transfer": "amount",
    "stake": "amount",
    "buy": "amount",
    "sell": "amount",
    "request": "amountIn",
    "swap": "amountIn",
}

RECIPIENT_FIELDS = ("to", "recipient")

# Field naming the token being spent; transfers and stakes default to cUSD
SPEND_TOKEN_FIELDS = {"request": "tokenIn", "swap": "tokenIn"}
DEFAULT_SPEND_TOKEN = "cUSD"


def _present(value: Any) -> bool:
    return value not in (None, "", 0)


def spend_amount(action: str, params: Dict[str, Any]) -> int:
    field_name = SPEND_FIELDS.get(action)
    if not field_name:
        return 0
    value = to_number(params.get(field_name))
    return int(value) if value else 0


def counts_against(limit_token: Optional[str], action: str, params: Dict[str, Any]) -> bool:
    """Whether the action's spend is measured by limits scoped to limit_token"""
    if not limit_token:
        return True
    token = params.get(SPEND_TOKEN_FIELDS.get(action, "token")) or DEFAULT_SPEND_TOKEN
    return str(token).lower() == str(limit_token).lower()


def spent_since(memory: AgentMemory, since: datetime, token: Optional[str] = None) -> int:
    """Total spend of successful actions recorded at or after since, optionally in one token"""
    return sum(
        spend_amount(record.type, record.params or {})
        for record in memory.actions
        if record.success and record.timestamp >= since
        and counts_against(token, record.type, record.params or {})
    )


def start_of_day(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def validate_action(
    action: str,
    params: Dict[str, Any],
    state: ObservedState,
    agent_config: Optional[AgentConfig] = None,
    spent_today: int = 0
) -> ValidationResult:
    if action == ActionType.NONE.value:
        return ValidationResult.ok()

    schema = ACTION_SCHEMAS.get(action)
    if schema is None:
        return ValidationResult.fail(f"Unknown action: {action}", ErrorCode.UNSUPPORTED_ACTION)

    required, missing_reason, positive, positive_reason = schema
    if not all(_present(params.get(name)) for name in required):
        return ValidationResult.fail(missing_reason)

    for name in positive:
        value = to_number(params.get(name))
        if value is None or value <= 0:
            return ValidationResult.fail(positive_reason)

    for name in RECIPIENT_FIELDS:
        if str(params.get(name, "")).lower() == ZERO_ADDRESS:
            return ValidationResult.fail("Recipient is the zero address")

    if action == ActionType.TRANSFER.value:
        if to_number(params["amount"]) > (to_number(state.cusd_balance) or 0):
            return ValidationResult.fail("Insufficient balance", ErrorCode.INSUFFICIENT_FUNDS)

    if agent_config is not None:
        return check_policy(action, params, agent_config, spent_today)
    return ValidationResult.ok()


def check_policy(action: str, params: Dict[str, Any], agent_config: AgentConfig, spent_today: int = 0) -> ValidationResult:
    if agent_config.permissions and action not in agent_config.permissions:
        return ValidationResult.fail(f"Action {action} not permitted for this agent", ErrorCode.FORBIDDEN)

    for name in RECIPIENT_FIELDS:
        recipient = params.get(name)
        if not recipient:
            continue
        recipient = str(recipient).lower()
        if recipient in agent_config.blacklist:
            return ValidationResult.fail(f"Recipient {params[name]} is blacklisted", ErrorCode.FORBIDDEN)
        if agent_config.whitelist and recipient not in agent_config.whitelist:
            return ValidationResult.fail(f"Recipient {params[name]} is not whitelisted", ErrorCode.FORBIDDEN)

    limits = agent_config.spending_limits
    amount = spend_amount(action, params) if counts_against(limits.token, action, params) else 0
    if amount and limits.per_tx is not None and amount > limits.per_tx:
        return ValidationResult.fail(
            f"Per-transaction limit exceeded ({amount} > {limits.per_tx})", ErrorCode.LIMIT_EXCEEDED
        )
    if amount and limits.daily is not None and spent_today + amount > limits.daily:
        return ValidationResult.fail(
            f"Daily limit exceeded ({spent_today + amount} > {limits.daily})", ErrorCode.LIMIT_EXCEEDED
        )

    return ValidationResult.ok()
