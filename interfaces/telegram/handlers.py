from __future__ import annotations

import logging

import telebot

from application.commands import build_commands, dispatch
from application.core import LedgerCore
from interfaces.telegram.command_text import parse_command


logger = logging.getLogger(__name__)

PROVIDER = "telegram"


def user_key_for(telegram_user_id: int) -> str:
    return f"{PROVIDER}:{telegram_user_id}"


def create_telegram_bot(bot_token: str, core: LedgerCore) -> telebot.TeleBot:
    """
    Configure and return a TeleBot instance wired to the ledger core.

    This module contains only Telegram-specific concerns: parsing Telegram
    messages and mapping them to/from the shared command registry.
    """

    bot = telebot.TeleBot(bot_token)
    registry = build_commands(prefix="/")

    @bot.message_handler(commands=["start"])
    def handle_start(message):
        bot.send_message(
            message.chat.id,
            "Welcome to the provably fair dice table!\n"
            "Use /deposit to fund your account and /dice to play.\n"
            "Type /help to see available commands.",
        )

    @bot.message_handler(commands=list(registry))
    def handle_command(message):
        parsed = parse_command(message.text or "")
        if parsed is None:
            return

        name, args = parsed
        result = dispatch(core, registry, name, user_key_for(message.from_user.id), args)

        # Private replies go to the user's own chat, not to a group.
        chat_id = message.from_user.id if result.private else message.chat.id
        bot.send_message(chat_id, result.text)

    return bot
