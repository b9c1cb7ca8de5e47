"""Tests for the agent turn pipeline."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import StaticCredentials

from desktop_agent.agent.pipeline import (
    BUSY_NOTICE,
    CANCEL_TEXT,
    CLEAR_TEXT,
    CREDENTIAL_NOTICE,
    MODEL_ERROR_TEXT,
    NOT_A_TASK_TEXT,
    PARSE_ERROR_TEXT,
    PENDING_NOTICE,
    UNEXPECTED_ERROR_TEXT,
    Agent,
    format_plan,
    is_index_command,
    strip_index_command,
)
from desktop_agent.agent.session import Session
from desktop_agent.execution import ExecutionResult
from desktop_agent.llm.client import ModelError
from desktop_agent.planning.confirmation import GateState
from desktop_agent.planning.models import ActionPlan, ActionPlanStep

NOTEPAD_REPLY = (
    "```json\n"
    + json.dumps(
        {
            "task": "Open Notepad",
            "steps": [{"step": 1, "description": "Open Notepad", "application": "Notepad"}],
        }
    )
    + "\n```"
)


async def _pending_plan(agent: Agent, session: Session, fake_client: MagicMock) -> int:
    fake_client.complete.return_value = NOTEPAD_REPLY
    await agent.handle_input(session, "Open Notepad")
    assert session.gate.pending_id is not None
    return session.gate.pending_id


# -- command routing ---------------------------------------------------------


@pytest.mark.parametrize(
    "text",
    ["index this: hello", "Index This: hello", "  ANALYZE THIS:hello", "analyze this:"],
)
def test_index_commands(text: str) -> None:
    assert is_index_command(text)


@pytest.mark.parametrize("text", ["open notepad", "please index this: x", "index that: x"])
def test_task_commands(text: str) -> None:
    assert not is_index_command(text)


def test_strip_index_command() -> None:
    assert strip_index_command("Index this:  Paris is nice ") == "Paris is nice"
    assert strip_index_command("analyze this:") == ""


def test_format_plan() -> None:
    plan = ActionPlan(
        task="Open Notepad",
        steps=[
            ActionPlanStep(step=1, description="Press Start"),
            ActionPlanStep(step=2, description="Type notepad"),
        ],
    )
    assert format_plan(plan) == (
        "Generated Action Plan:\n"
        "Task: Open Notepad\n"
        "Steps:\n"
        "- Step 1: Press Start\n"
        "- Step 2: Type notepad\n"
        "\n"
        "Please confirm to proceed with this plan."
    )


# -- indexing path -----------------------------------------------------------


async def test_index_with_model_analysis(agent, session, fake_client) -> None:
    fake_client.complete.return_value = json.dumps(
        {
            "keywords": ["paris", "capital"],
            "themes": ["geography"],
            "entities": ["France"],
            "summary": "Paris is the capital of France.",
        }
    )

    result = await agent.handle_input(session, "index this: Paris is the capital of France")

    assert result.accepted
    assert len(session.index) == 1
    entry = session.index.entries[0]
    assert entry.content == "Paris is the capital of France"
    assert entry.keywords == ["paris", "capital", "geography", "France"]
    reply = result.replies[0]
    assert reply.category == "indexing"
    assert "Added 4 keywords" in reply.text
    assert "Summary: Paris is the capital of France." in reply.text
    assert session.gate.state is GateState.NONE


async def test_index_falls_back_when_analyzer_unavailable(agent, session, fake_client) -> None:
    fake_client.complete.side_effect = ModelError("down")
    before = len(session.index)

    result = await agent.handle_input(session, "index this: Paris is the capital of France")

    assert len(session.index) == before + 1
    assert session.index.entries[-1].keywords == ["paris", "capital", "france"]
    assert "Content processed and indexed." in result.replies[0].text


async def test_index_falls_back_on_malformed_analysis(agent, session, fake_client) -> None:
    fake_client.complete.return_value = "I think the keywords are Paris and France."

    await agent.handle_input(session, "analyze this: Paris is the capital of France")

    assert session.index.entries[-1].keywords == ["paris", "capital", "france"]


async def test_index_without_credential_uses_fallback(executor) -> None:
    agent = Agent(credentials=StaticCredentials(None), executor=executor)
    session = Session()

    result = await agent.handle_input(session, "index this: Paris is the capital of France")

    assert result.accepted
    assert session.index.entries[0].keywords == ["paris", "capital", "france"]


async def test_index_survives_unexpected_analyzer_error(agent, session, fake_client) -> None:
    fake_client.complete.side_effect = RuntimeError("boom")

    result = await agent.handle_input(session, "index this: Paris is the capital of France")

    assert result.accepted
    assert len(session.index) == 1
    assert not session.busy


async def test_empty_index_command_adds_nothing(agent, session, fake_client) -> None:
    result = await agent.handle_input(session, "index this:   ")

    assert result.accepted
    assert result.replies == []
    assert len(session.index) == 0
    fake_client.complete.assert_not_called()


# -- task path ---------------------------------------------------------------


async def test_plan_opens_gate(agent, session, fake_client) -> None:
    fake_client.complete.return_value = NOTEPAD_REPLY

    result = await agent.handle_input(session, "Open Notepad")

    assert result.accepted
    user_msg, plan_msg = result.messages
    assert user_msg.is_user and user_msg.text == "Open Notepad"
    assert plan_msg.category == "plan"
    assert plan_msg.plan is not None
    assert plan_msg.plan.task == "Open Notepad"
    assert "- Step 1: Open Notepad" in plan_msg.text
    assert session.gate.state is GateState.PENDING
    assert session.gate.pending_id == plan_msg.id
    assert not session.busy


async def test_plan_request_uses_prompt_and_params(agent, session, fake_client) -> None:
    session.index.add("Notepad is a text editor", ["notepad", "editor"])
    fake_client.complete.return_value = NOTEPAD_REPLY

    await agent.handle_input(session, "open notepad")

    messages, params = fake_client.complete.call_args.args
    assert messages[0]["role"] == "system"
    assert "# Relevant Indexed Content" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "open notepad"}
    assert params.temperature == 0.3
    assert params.max_tokens == 1024
    assert params.stream is False


async def test_no_block_asks_to_rephrase(agent, session, fake_client) -> None:
    fake_client.complete.return_value = "no json here"

    result = await agent.handle_input(session, "do something")

    assert result.replies[0].text == PARSE_ERROR_TEXT
    assert result.replies[0].category == "error"
    assert result.replies[0].plan is None
    assert session.gate.state is GateState.NONE


async def test_invalid_json_asks_to_rephrase(agent, session, fake_client) -> None:
    fake_client.complete.return_value = '```json\n{"task": \n```'

    result = await agent.handle_input(session, "do something")

    assert result.replies[0].text == PARSE_ERROR_TEXT
    assert session.gate.state is GateState.NONE


async def test_model_error_reports_communication_failure(agent, session, fake_client) -> None:
    fake_client.complete.side_effect = ModelError("401")

    result = await agent.handle_input(session, "Open Notepad")

    assert result.replies[0].text == MODEL_ERROR_TEXT
    assert session.gate.state is GateState.NONE
    assert not session.busy



async def test_deeply_nested_plan_asks_to_rephrase(agent, session, fake_client) -> None:
    fake_client.complete.return_value = "```json\n" + "[" * 5000 + "]" * 5000 + "\n```"

    result = await agent.handle_input(session, "open notepad")

    assert result.replies[0].text == PARSE_ERROR_TEXT
    assert session.messages[-1].category == "error"
    assert session.gate.state is GateState.NONE
    assert not session.busy


async def test_unexpected_error_reported_and_session_reusable(agent, session, fake_client) -> None:
    fake_client.complete.side_effect = RuntimeError("boom")

    result = await agent.handle_input(session, "Open Notepad")

    assert result.accepted
    assert result.replies[0].text == UNEXPECTED_ERROR_TEXT
    assert result.replies[0].category == "error"
    assert session.gate.state is GateState.NONE
    assert not session.busy

    fake_client.complete.side_effect = None
    fake_client.complete.return_value = NOTEPAD_REPLY
    retry = await agent.handle_input(session, "Open Notepad")
    assert retry.accepted
    assert session.gate.pending_id == retry.messages[-1].id

async def test_non_task_reply_is_info(agent, session, fake_client) -> None:
    fake_client.complete.return_value = '```json\n{"task": "", "steps": []}\n```'

    result = await agent.handle_input(session, "What is the capital of France?")

    assert result.replies[0].text == NOT_A_TASK_TEXT
    assert result.replies[0].category == "info"
    assert session.gate.state is GateState.NONE


async def test_missing_credential_blocks_task(executor) -> None:
    client_factory = MagicMock()
    agent = Agent(credentials=StaticCredentials(None), executor=executor, client_factory=client_factory)
    session = Session()
    log_size = len(session.messages)

    result = await agent.handle_input(session, "Open Notepad")

    assert not result.accepted
    assert result.notice == CREDENTIAL_NOTICE
    assert len(session.messages) == log_size
    client_factory.assert_not_called()


async def test_blank_input_ignored(agent, session, fake_client) -> None:
    result = await agent.handle_input(session, "   ")
    assert not result.accepted
    assert result.notice == ""
    fake_client.complete.assert_not_called()


# -- reentrancy --------------------------------------------------------------


async def test_input_rejected_while_plan_pending(agent, session, fake_client) -> None:
    pending = await _pending_plan(agent, session, fake_client)
    log_size = len(session.messages)
    fake_client.complete.reset_mock()

    result = await agent.handle_input(session, "Open Calculator")

    assert not result.accepted
    assert result.notice == PENDING_NOTICE
    assert session.gate.pending_id == pending
    assert len(session.messages) == log_size
    fake_client.complete.assert_not_called()


async def test_index_command_rejected_while_plan_pending(agent, session, fake_client) -> None:
    await _pending_plan(agent, session, fake_client)

    result = await agent.handle_input(session, "index this: something")

    assert not result.accepted
    assert len(session.index) == 0


async def test_overlapping_send_rejected_while_busy(agent, session, fake_client) -> None:
    release = asyncio.Event()

    async def slow_complete(messages, params):
        await release.wait()
        return NOTEPAD_REPLY

    fake_client.complete = AsyncMock(side_effect=slow_complete)

    first = asyncio.create_task(agent.handle_input(session, "Open Notepad"))
    await asyncio.sleep(0)
    assert session.busy

    second = await agent.handle_input(session, "Open Calculator")
    assert not second.accepted
    assert second.notice == BUSY_NOTICE

    release.set()
    result = await first
    assert result.accepted
    assert not session.busy
    assert fake_client.complete.await_count == 1


# -- confirm / cancel --------------------------------------------------------


async def test_confirm_hands_plan_to_executor(agent, session, fake_client, executor) -> None:
    pending = await _pending_plan(agent, session, fake_client)

    result = await agent.confirm(session, pending)

    assert result.accepted
    assert session.gate.state is GateState.NONE
    assert result.replies[0].category == "confirmation"
    assert "Open Notepad" in result.replies[0].text
    executor.execute.assert_awaited_once()
    assert executor.execute.call_args.args[0].task == "Open Notepad"
    assert result.execution == ExecutionResult(executed=True)


async def test_confirm_twice_executes_once(agent, session, fake_client, executor) -> None:
    pending = await _pending_plan(agent, session, fake_client)

    await agent.confirm(session, pending)
    second = await agent.confirm(session, pending)

    assert not second.accepted
    executor.execute.assert_awaited_once()


async def test_confirm_unknown_id_is_noop(agent, session, fake_client, executor) -> None:
    pending = await _pending_plan(agent, session, fake_client)
    log_size = len(session.messages)

    result = await agent.confirm(session, 9999)

    assert not result.accepted
    assert session.gate.pending_id == pending
    assert len(session.messages) == log_size
    executor.execute.assert_not_called()


async def test_confirm_message_without_plan_is_noop(agent, session, fake_client, executor) -> None:
    await _pending_plan(agent, session, fake_client)
    welcome_id = session.messages[0].id

    result = await agent.confirm(session, welcome_id)

    assert not result.accepted
    assert session.gate.is_pending
    executor.execute.assert_not_called()


async def test_confirm_reports_executor_detail(agent, session, fake_client, executor) -> None:
    executor.execute.return_value = ExecutionResult(executed=False, detail="No engine.")
    pending = await _pending_plan(agent, session, fake_client)

    result = await agent.confirm(session, pending)

    assert [m.text for m in result.replies][-1] == "No engine."


async def test_confirm_survives_executor_crash(agent, session, fake_client, executor) -> None:
    executor.execute.side_effect = RuntimeError("crashed")
    pending = await _pending_plan(agent, session, fake_client)

    result = await agent.confirm(session, pending)

    assert result.accepted
    assert result.execution.executed is False
    assert "crashed" in result.execution.detail
    assert session.gate.state is GateState.NONE


async def test_cancel_discards_plan(agent, session, fake_client, executor) -> None:
    pending = await _pending_plan(agent, session, fake_client)

    result = await agent.cancel(session, pending)

    assert result.accepted
    assert result.replies[0].text == CANCEL_TEXT
    assert result.replies[0].category == "cancellation"
    assert session.gate.state is GateState.NONE
    assert session.find(pending).plan is not None
    executor.execute.assert_not_called()

    # Confirming the cancelled plan does nothing
    assert not (await agent.confirm(session, pending)).accepted


async def test_cancel_stale_id_is_noop(agent, session, fake_client) -> None:
    pending = await _pending_plan(agent, session, fake_client)
    assert not (await agent.cancel(session, pending + 1)).accepted
    assert session.gate.pending_id == pending


async def test_input_accepted_again_after_decision(agent, session, fake_client) -> None:
    pending = await _pending_plan(agent, session, fake_client)
    await agent.cancel(session, pending)

    result = await agent.handle_input(session, "Open Notepad")

    assert result.accepted
    assert session.gate.pending_id == result.messages[-1].id


# -- clear index -------------------------------------------------------------


async def test_clear_index(agent, session) -> None:
    session.index.add("a", ["alpha"])
    session.index.add("b", ["beta"])

    result = agent.clear_index(session)

    assert len(session.index) == 0
    assert result.replies[0].text == CLEAR_TEXT
    assert result.replies[0].category == "clear_index"


# -- clients -----------------------------------------------------------------


async def test_clients_cached_per_key_and_model(executor) -> None:
    factory = MagicMock(side_effect=lambda key, model: MagicMock(name=f"{key}/{model}"))
    agent = Agent(credentials=StaticCredentials("k1"), executor=executor, client_factory=factory)

    assert agent._client("m") is agent._client("m")
    assert agent._client("m") is not agent._client("other")
    assert factory.call_count == 2
