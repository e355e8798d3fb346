from __future__ import annotations

import asyncio
import logging
from typing import Mapping

import discord
from discord.ext import commands

from application.commands import Command, CommandResult, build_commands, dispatch
from application.core import LedgerCore


logger = logging.getLogger(__name__)

PROVIDER = "discord"


def user_key_for(user: discord.abc.User) -> str:
    """Ledger key for a Discord user."""

    return f"{PROVIDER}:{user.id}"


async def _reply(ctx: commands.Context, result: CommandResult) -> None:
    if result.private:
        try:
            await ctx.author.send(result.text)
        except discord.Forbidden:
            await ctx.send("I could not DM you. Please enable direct messages and try again.")
            return
        if ctx.guild is not None:
            await ctx.send("📬 Check your direct messages.")
        return
    await ctx.send(result.text)


def _make_callback(core: LedgerCore, registry: Mapping[str, Command], name: str):
    async def callback(ctx: commands.Context, *args: str):
        # Runs in a worker thread: a cancelled interaction cannot stop a bet
        # halfway, the thread always reaches settlement or the refund.
        result = await asyncio.to_thread(
            dispatch,
            core,
            registry,
            name,
            user_key_for(ctx.author),
            list(args),
        )
        await _reply(ctx, result)

    return callback


def create_discord_bot(core: LedgerCore, prefix: str = "!") -> commands.Bot:
    """
    Configure and return a Discord bot wired to the ledger core.

    This module contains only Discord-specific concerns: turning messages
    into command names and arguments and sending replies back.
    """

    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix=prefix, intents=intents, help_command=None)
    registry = build_commands(prefix)

    for name, command in registry.items():
        bot.add_command(
            commands.Command(
                _make_callback(core, registry, name),
                name=name,
                help=command.description,
            )
        )

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            await ctx.send(f"Unknown command. Type {prefix}help to see available commands.")
            return
        logger.error("Discord command error", exc_info=error)
        await ctx.send("❌ An error occurred while executing this command.")

    return bot
