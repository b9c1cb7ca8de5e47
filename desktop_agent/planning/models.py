"""Data models for generated action plans."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ActionPlanStep(BaseModel):
    """One step of a proposed multi-step task."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    step: int
    description: str = ""
    application: str | None = None
    action_type: str | None = Field(default=None, alias="actionType")
    target: str | None = None


class ActionPlan(BaseModel):
    """A structured plan awaiting user approval.

    An empty ``task`` and an empty ``steps`` list always go together:
    a plan with no steps is "not a task" whatever its title says.
    """

    model_config = ConfigDict(frozen=True)

    task: str = ""
    steps: tuple[ActionPlanStep, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _normalize_empty(cls, data: Any) -> Any:
        if isinstance(data, dict):
            task = data.get("task") or ""
            if not str(task).strip() or not data.get("steps"):
                return {"task": "", "steps": ()}
        return data

    @classmethod
    def empty(cls) -> "ActionPlan":
        return cls()

    @property
    def is_actionable(self) -> bool:
        return bool(self.steps)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used in the prompt contract."""
        return {
            "task": self.task,
            "steps": [s.model_dump(by_alias=True) for s in self.steps],
        }
