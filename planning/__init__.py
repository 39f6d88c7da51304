"""
Planning core — rule-driven plans executed as dialogs.

Quick start:
  from planning import PlanningDialog
  from rules import EventRule
  from dialogs import TextInput

  bot = PlanningDialog(storage=MemoryStorage())
  bot.add_rule(EventRule("beginDialog", [TextInput("user.name", "Name?")],
                         change_type=PlanChangeType.NEW_PLAN))
  result = await bot.run({"text": "hi", "from": {"id": "u1"}, "conversation": {"id": "c1"}})
"""
from planning.models import (
    PlanningEventNames, PlanChangeType, PlanStatus,
    PlanStep, Plan, PlanningState, PlanChangeList,
)
from planning.context import PlanningContext, DEFAULT_PLAN_HISTORY_LIMIT
from planning.evaluator import RuleEvaluator
from planning.state import (
    PlanningError, ConfigurationError,
    get_storage_keys, load_bot_state, save_bot_state, apply_expiry,
)
from planning.dialog import PlanningDialog, BotTurnResult

__all__ = [
    # Models
    "PlanningEventNames", "PlanChangeType", "PlanStatus",
    "PlanStep", "Plan", "PlanningState", "PlanChangeList",
    # Context & evaluation
    "PlanningContext", "DEFAULT_PLAN_HISTORY_LIMIT", "RuleEvaluator",
    # State
    "PlanningError", "ConfigurationError",
    "get_storage_keys", "load_bot_state", "save_bot_state", "apply_expiry",
    # Executor
    "PlanningDialog", "BotTurnResult",
]
