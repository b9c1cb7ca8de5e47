"""Extract an action plan from a free-form model reply.

The model is asked to answer with a single ```json fenced block. Only
two failures are reported to the caller: no fenced block at all, or a
block that is not valid JSON. Any other odd shape is coerced toward the
nearest valid plan so the conversation keeps moving.
"""

import json
import logging
import re
from typing import Any

from desktop_agent.planning.models import ActionPlan

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL)

_OPTIONAL_FIELDS = {
    "application": "application",
    "actionType": "action_type",
    "action_type": "action_type",
    "target": "target",
}


class PlanParseError(Exception):
    """The model reply could not be turned into an action plan."""


class NoBlockFoundError(PlanParseError):
    """The reply contains no ```json fenced block."""


class InvalidJsonError(PlanParseError):
    """The fenced block is not valid JSON."""


def find_json_block(reply: str) -> str | None:
    """Return the body of the first ```json fenced block, if any."""
    match = _JSON_BLOCK.search(reply)
    return match.group(1) if match else None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _step_number(value: Any, position: int) -> int:
    if isinstance(value, bool):
        return position
    if isinstance(value, int):
        return value if value > 0 else position
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        try:
            number = int(value)
        except ValueError:
            return position
        return number if number > 0 else position
    return position


def _coerce_step(raw: dict[str, Any], position: int) -> dict[str, Any]:
    step: dict[str, Any] = {
        "step": _step_number(raw.get("step"), position),
        "description": _text(raw.get("description")) or "",
    }
    for key, field_name in _OPTIONAL_FIELDS.items():
        if key in raw and field_name not in step:
            step[field_name] = _text(raw[key])
    return step


def coerce_plan(data: Any) -> ActionPlan:
    """Build an ActionPlan from decoded JSON of any shape."""
    if not isinstance(data, dict):
        return ActionPlan.empty()

    task = data.get("task")
    task = task if isinstance(task, str) else (_text(task) or "")

    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list):
        raw_steps = []

    steps = [
        _coerce_step(raw, position)
        for position, raw in enumerate(raw_steps, start=1)
        if isinstance(raw, dict)
    ]
    return ActionPlan.model_validate({"task": task, "steps": steps})


def extract_plan(reply: str) -> ActionPlan:
    """Parse ``reply`` into an ActionPlan.

    Raises:
        NoBlockFoundError: no ```json fenced block in the reply.
        InvalidJsonError: the block's contents are not valid JSON.
    """
    block = find_json_block(reply)
    if block is None:
        raise NoBlockFoundError("No valid JSON found in response")

    try:
        data = json.loads(block)
    except (ValueError, RecursionError) as exc:
        raise InvalidJsonError(f"Invalid plan JSON: {exc}") from exc

    plan = coerce_plan(data)
    logger.debug("Extracted plan %r with %d step(s)", plan.task, len(plan.steps))
    return plan
