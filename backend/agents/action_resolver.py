"""
Action Resolver - turns a rule's action template into concrete parameters.

Placeholders:
- token AUTO      -> whichever of cUSD / cEUR / CELO holds the largest balance
- amount AUTO     -> per-action heuristic (fraction of cUSD balance, capped)
- amount ALL      -> full balance of the action's token
- EMERGENCY_WALLET -> configured emergency address
- any other AUTO  -> configured default amount

Resolution happens once per decision; templates are never modified.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from infrastructure.config import DecisionConfig

from .models import ActionTemplate, ObservedState, Placeholder

STABLE_PREFERENCE = ("cUSD", "cEUR", "CELO")


@dataclass
class ResolvedAction:
    type: str
    params: Dict[str, Any] = field(default_factory=dict)


class ActionResolver:
    def __init__(self, config: Optional[DecisionConfig] = None):
        self.config = config or DecisionConfig()

    def resolve(self, template: ActionTemplate, state: ObservedState) -> ResolvedAction:
        params = dict(template.config)

        if params.get("token") is Placeholder.AUTO:
            params["token"] = self.select_optimal_token(state)

        for key, value in list(params.items()):
            if value is Placeholder.EMERGENCY_WALLET:
                params[key] = self.config.emergency_wallet
            elif value is Placeholder.ALL:
                params[key] = str(self.balance_for_token(state, params.get("token")))
            elif value is Placeholder.AUTO:
                if key == "amount":
                    params[key] = self.calculate_optimal_amount(state, template.type)
                else:
                    params[key] = str(self.config.default_auto_amount)

        return ResolvedAction(type=template.type, params=params)

    def calculate_optimal_amount(self, state: ObservedState, action_type: str) -> str:
        balance = int(state.cusd_balance or 0)
        if action_type == "stake":
            amount = min(balance * self.config.stake_auto_fraction, self.config.stake_auto_ceiling)
        elif action_type == "transfer":
            amount = min(balance * self.config.transfer_auto_fraction, self.config.transfer_auto_ceiling)
        else:
            amount = self.config.default_auto_amount
        return str(int(amount))

    def select_optimal_token(self, state: ObservedState) -> str:
        balances = {
            "cUSD": int(state.cusd_balance or 0),
            "cEUR": int(state.ceur_balance or 0),
            "CELO": int(state.celo_balance or 0),
        }
        best = STABLE_PREFERENCE[0]
        for symbol in STABLE_PREFERENCE[1:]:
            if balances[symbol] > balances[best]:
                best = symbol
        return best

    def balance_for_token(self, state: ObservedState, token: Optional[str]) -> int:
        if not token:
            return int(state.cusd_balance or 0)
        return state.balance_of(token)
