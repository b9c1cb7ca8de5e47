"""Telegram application factory."""

import logging

from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from desktop_agent.bot.handlers import (
    handle_apikey,
    handle_callback_query,
    handle_clear_index,
    handle_message,
    handle_start,
    handle_status,
)
from desktop_agent.config import settings

logger = logging.getLogger(__name__)


def create_app() -> Application:
    """Build and configure the Telegram application.

    Updates are processed one at a time so a session never sees two
    overlapping turns.
    """
    app = Application.builder().token(settings.telegram_bot_token).build()

    app.add_handler(CommandHandler("start", handle_start))
    app.add_handler(CommandHandler("status", handle_status))
    app.add_handler(CommandHandler("clearindex", handle_clear_index))
    app.add_handler(CommandHandler("apikey", handle_apikey))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    app.add_handler(CallbackQueryHandler(handle_callback_query, pattern=r"^plan:"))

    logger.info("Telegram handlers registered")
    return app
