"""Planning rules: units that turn dialog events into plan change-lists."""
from rules.base import PlanningRule
from rules.library import EventRule, IntentRule, FallbackRule, WelcomeRule

__all__ = ["PlanningRule", "EventRule", "IntentRule", "FallbackRule", "WelcomeRule"]
