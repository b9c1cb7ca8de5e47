"""Execution boundary for confirmed action plans.

No UI-automation engine ships with the agent. ``UnavailableExecutor``
stands in for one: it records the request and reports that nothing was
run. A real engine only needs to satisfy ``PlanExecutor``.
"""

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from desktop_agent.planning.models import ActionPlan

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Outcome reported by an executor for one plan."""

    executed: bool
    detail: str = ""


@runtime_checkable
class PlanExecutor(Protocol):
    """Protocol that automation engines must satisfy."""

    async def execute(self, plan: ActionPlan) -> ExecutionResult:
        """Carry out a confirmed plan."""
        ...


class UnavailableExecutor:
    """Executor used when no automation engine is installed."""

    async def execute(self, plan: ActionPlan) -> ExecutionResult:
        logger.info(
            "Execution requested for %r (%d steps); no engine installed",
            plan.task,
            len(plan.steps),
        )
        return ExecutionResult(executed=False, detail="No automation engine is installed.")
