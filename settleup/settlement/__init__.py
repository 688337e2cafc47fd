"""Settlement planning and commit package."""

from settleup.settlement.commit import commit_plan
from settleup.settlement.planner import apply_plan, plan_settlements

__all__ = ["apply_plan", "commit_plan", "plan_settlements"]
