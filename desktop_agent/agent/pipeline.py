"""Turn handling: route user input to indexing or plan generation.

Each handler takes the session explicitly and returns a ``TurnResult``
describing what the turn added to the conversation. Failures on the
indexing path fall back locally; failures on the plan path become a
single agent message. Either way the session is left ready for the next
input.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from desktop_agent.agent.session import (
    CANCELLATION,
    CLEAR_INDEX,
    CONFIRMATION,
    ERROR,
    INDEXING,
    INFO,
    PLAN,
    Message,
    Session,
)
from desktop_agent.config import settings
from desktop_agent.credentials import CredentialProvider, get_credential_provider
from desktop_agent.execution import ExecutionResult, PlanExecutor, UnavailableExecutor
from desktop_agent.knowledge.analyzer import ContentAnalyzer, fallback_analysis
from desktop_agent.llm.client import ModelClient, ModelError, plan_params
from desktop_agent.llm.prompt import build_task_messages
from desktop_agent.planning.extractor import PlanParseError, extract_plan
from desktop_agent.planning.models import ActionPlan

logger = logging.getLogger(__name__)

_INDEX_COMMAND = re.compile(r"^\s*(index this:|analyze this:)", re.IGNORECASE)

PENDING_NOTICE = "Please confirm or cancel the pending action plan first."
BUSY_NOTICE = "Still working on your previous request. Please wait."
CREDENTIAL_NOTICE = "An API key is required before I can plan tasks. Send it with /apikey <key>."
PARSE_ERROR_TEXT = (
    "Error parsing the action plan. Please try rephrasing your command or "
    'simplifying it (e.g., "Post a tweet about AI").'
)
MODEL_ERROR_TEXT = (
    "Error communicating with the AI system. Please check your API key or try again."
)
UNEXPECTED_ERROR_TEXT = "Something went wrong while planning that task. Please try again."
NOT_A_TASK_TEXT = (
    "This query does not appear to be a task requiring automation. "
    "Please provide a specific task or ask for information."
)
CANCEL_TEXT = "Action plan cancelled. Please provide a new command or modify the previous one."
CLEAR_TEXT = (
    "Document index cleared. All indexed content has been removed from the knowledge base."
)

ClientFactory = Callable[[str, str], ModelClient]


@dataclass
class TurnResult:
    """What one user action added to the conversation."""

    accepted: bool = True
    messages: list[Message] = field(default_factory=list)
    notice: str = ""
    execution: ExecutionResult | None = None

    @property
    def replies(self) -> list[Message]:
        """Agent messages produced by the turn."""
        return [m for m in self.messages if not m.is_user]


def is_index_command(text: str) -> bool:
    """True when ``text`` starts with ``index this:`` or ``analyze this:``."""
    return _INDEX_COMMAND.match(text) is not None


def strip_index_command(text: str) -> str:
    return _INDEX_COMMAND.sub("", text, count=1).strip()


def format_plan(plan: ActionPlan) -> str:
    """Render a plan for display alongside the confirm/cancel prompt."""
    lines = ["Generated Action Plan:", f"Task: {plan.task}", "Steps:"]
    lines.extend(f"- Step {s.step}: {s.description}" for s in plan.steps)
    lines.append("")
    lines.append("Please confirm to proceed with this plan.")
    return "\n".join(lines)


class Agent:
    """Handles user actions against an explicit session."""

    def __init__(
        self,
        credentials: CredentialProvider | None = None,
        executor: PlanExecutor | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.credentials = credentials or get_credential_provider()
        self.executor = executor or UnavailableExecutor()
        self._client_factory = client_factory or ModelClient
        self._clients: dict[tuple[str, str], ModelClient] = {}

    def _client(self, model: str) -> ModelClient | None:
        """Return a model client for the current credential, or None if absent."""
        api_key = self.credentials.get_credential()
        if not api_key:
            return None
        key = (api_key, model)
        if key not in self._clients:
            self._clients[key] = self._client_factory(api_key, model)
        return self._clients[key]

    # -- Input ---------------------------------------------------------------

    async def handle_input(self, session: Session, text: str) -> TurnResult:
        """Handle one line of user input."""
        if not text.strip():
            return TurnResult(accepted=False)
        if session.input_blocked:
            notice = PENDING_NOTICE if session.gate.is_pending else BUSY_NOTICE
            return TurnResult(accepted=False, notice=notice)

        index_command = is_index_command(text)
        client = None
        if not index_command:
            client = self._client(settings.chat_model)
            if client is None:
                logger.info("No API key configured; task input blocked")
                return TurnResult(accepted=False, notice=CREDENTIAL_NOTICE)

        session.busy = True
        try:
            user_message = session.post(text, origin="user")
            if index_command:
                replies = await self._index(session, text)
            else:
                try:
                    replies = await self._plan(session, text, client)
                except Exception:
                    logger.exception("Error generating action plan")
                    replies = [session.post(UNEXPECTED_ERROR_TEXT, category=ERROR)]
        finally:
            session.busy = False
        return TurnResult(messages=[user_message, *replies])

    async def _index(self, session: Session, text: str) -> list[Message]:
        content = strip_index_command(text)
        if not content:
            return []

        analyzer = ContentAnalyzer(self._client(settings.analysis_model))
        try:
            analysis = await analyzer.analyze(content)
        except Exception:
            logger.exception("Content analysis failed (non-fatal)")
            analysis = fallback_analysis(content)

        entry = session.index.add(content, analysis.all_keywords())
        logger.info("Indexed %s (%d entries total)", entry.id, len(session.index))
        summary = analysis.summary or "Content processed and indexed."
        message = session.post(
            f"Content indexed successfully! Added {len(entry.keywords)} keywords and "
            f"concepts to the knowledge base. Summary: {summary}",
            category=INDEXING,
        )
        return [message]

    async def _plan(
        self, session: Session, text: str, client: ModelClient
    ) -> list[Message]:
        messages = build_task_messages(text, session.index)
        try:
            reply = await client.complete(messages, plan_params())
        except ModelError:
            logger.exception("Model call failed")
            return [session.post(MODEL_ERROR_TEXT, category=ERROR)]

        try:
            plan = extract_plan(reply)
        except PlanParseError as exc:
            logger.warning("Failed to parse action plan: %s", exc)
            logger.debug("Unparseable response: %s", reply)
            return [session.post(PARSE_ERROR_TEXT, category=ERROR)]

        if not plan.is_actionable:
            return [session.post(NOT_A_TASK_TEXT, category=INFO)]

        message = session.post(format_plan(plan), category=PLAN, plan=plan)
        session.gate.open(message.id)
        return [message]

    # -- Decisions -----------------------------------------------------------

    async def confirm(self, session: Session, message_id: int) -> TurnResult:
        """Confirm the pending plan on ``message_id`` and hand it to the executor."""
        message = session.find(message_id)
        if message is None or message.plan is None:
            return TurnResult(accepted=False)
        if not session.gate.confirm(message_id):
            return TurnResult(accepted=False)

        plan = message.plan
        replies = [
            session.post(
                f"Action plan confirmed! Preparing to execute task: {plan.task}",
                category=CONFIRMATION,
            )
        ]
        session.busy = True
        try:
            execution = await self.executor.execute(plan)
        except Exception as exc:
            logger.exception("Plan execution failed")
            execution = ExecutionResult(executed=False, detail=f"Execution failed: {exc}")
        finally:
            session.busy = False

        if execution.detail:
            replies.append(session.post(execution.detail, category=INFO))
        return TurnResult(messages=replies, execution=execution)

    async def cancel(self, session: Session, message_id: int) -> TurnResult:
        """Cancel the pending plan on ``message_id``."""
        if not session.gate.cancel(message_id):
            return TurnResult(accepted=False)
        message = session.post(CANCEL_TEXT, category=CANCELLATION)
        return TurnResult(messages=[message])

    # -- Index ---------------------------------------------------------------

    def clear_index(self, session: Session) -> TurnResult:
        """Remove every entry from the session's knowledge index."""
        session.index.clear()
        message = session.post(CLEAR_TEXT, category=CLEAR_INDEX)
        return TurnResult(messages=[message])
