"""Telegram handlers: chat input, plan confirmation buttons, index commands."""

import contextlib
import logging

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from desktop_agent.agent.pipeline import Agent, TurnResult
from desktop_agent.agent.session import WELCOME_TEXT, Message, Session, get_session
from desktop_agent.config import settings
from desktop_agent.credentials import StoredCredentialProvider

logger = logging.getLogger(__name__)

_agent: Agent | None = None


def get_agent() -> Agent:
    """Lazily build the shared Agent."""
    global _agent  # noqa: PLW0603
    if _agent is None:
        _agent = Agent()
    return _agent


def is_allowed(update: Update) -> bool:
    """Only users listed in ALLOWED_USER_IDS may talk to the agent."""
    user = update.effective_user
    if user is None:
        return False
    allowed = settings.get_allowed_user_ids()
    if not allowed:
        logger.warning("ALLOWED_USER_IDS is empty — rejecting all messages")
        return False
    return user.id in allowed


def plan_keyboard(message_id: int) -> InlineKeyboardMarkup:
    """Confirm / Cancel buttons for a plan message."""
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("Confirm", callback_data=f"plan:{message_id}:y"),
            InlineKeyboardButton("Cancel", callback_data=f"plan:{message_id}:n"),
        ]
    ])


def parse_plan_callback(data: str) -> tuple[int, bool] | None:
    """Parse ``plan:<message_id>:y|n`` into (message_id, approved)."""
    parts = data.split(":")
    if len(parts) != 3 or parts[0] != "plan" or parts[2] not in ("y", "n"):
        return None
    try:
        message_id = int(parts[1])
    except ValueError:
        return None
    return message_id, parts[2] == "y"


async def _send_replies(target, session: Session, result: TurnResult) -> None:
    """Send each agent message of a turn, attaching buttons to the pending plan."""
    for message in result.replies:
        await target.reply_text(message.text, reply_markup=_markup_for(session, message))


def _markup_for(session: Session, message: Message) -> InlineKeyboardMarkup | None:
    if message.plan is not None and session.gate.pending_id == message.id:
        return plan_keyboard(message.id)
    return None


async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — greet the user."""
    if not is_allowed(update):
        return

    await update.message.reply_text(WELCOME_TEXT)


async def handle_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status — index size, pending plan, credential state."""
    if not is_allowed(update):
        return

    session = get_session(update.effective_chat.id)
    agent = get_agent()
    pending = session.gate.pending_id
    lines = [
        "**Agent Status**",
        f"Indexed entries: {len(session.index)}",
        f"Pending plan: {'message ' + str(pending) if pending is not None else 'none'}",
        f"API key: {'configured' if agent.credentials.get_credential() else 'missing'}",
        f"Model: {settings.chat_model}",
    ]
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


async def handle_clear_index(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clearindex — drop all indexed content."""
    if not is_allowed(update):
        return

    session = get_session(update.effective_chat.id)
    result = get_agent().clear_index(session)
    await _send_replies(update.message, session, result)


async def handle_apikey(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /apikey <key> — store the model API key."""
    if not is_allowed(update):
        return

    credentials = get_agent().credentials
    if not isinstance(credentials, StoredCredentialProvider):
        await update.message.reply_text(
            f"API keys are read from {settings.credential_env_file}. "
            "Set CREDENTIAL_SOURCE=store to enter one here."
        )
        return

    args = context.args or []
    if len(args) != 1 or not args[0].strip():
        await update.message.reply_text("Usage: /apikey <key>")
        return

    credentials.save_credential(args[0])
    # Don't leave the key sitting in the chat history
    with contextlib.suppress(Exception):
        await update.message.delete()
    await update.effective_chat.send_message("API key saved.")


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle incoming text: index commands or task requests."""
    if not is_allowed(update):
        return

    user_message = update.message.text
    logger.info("Message from %s: %s", update.effective_chat.id, user_message[:80])

    session = get_session(update.effective_chat.id)
    try:
        result = await get_agent().handle_input(session, user_message)
    except Exception:
        logger.exception("Error handling message")
        await update.message.reply_text("Something went wrong. Check the logs.")
        return

    if not result.accepted:
        if result.notice:
            await update.message.reply_text(result.notice)
        return

    await _send_replies(update.message, session, result)


async def handle_callback_query(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle Confirm / Cancel taps on plan messages."""
    query = update.callback_query
    if not is_allowed(update):
        await query.answer()
        return

    parsed = parse_plan_callback(query.data or "")
    if parsed is None:
        await query.answer("Invalid callback data.")
        return

    message_id, approved = parsed
    session = get_session(update.effective_chat.id)
    agent = get_agent()
    if approved:
        result = await agent.confirm(session, message_id)
    else:
        result = await agent.cancel(session, message_id)

    if not result.accepted:
        await query.answer("This plan is no longer pending.")
        with contextlib.suppress(Exception):
            await query.edit_message_reply_markup(reply_markup=None)
        return

    status = "Confirmed" if approved else "Cancelled"
    with contextlib.suppress(Exception):
        await query.edit_message_text(text=query.message.text + f"\n\n→ {status}")
    await query.answer(status)
    await _send_replies(query.message, session, result)
