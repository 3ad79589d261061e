"""Discord bot that answers in-game verification requests."""
from __future__ import annotations

import logging

import discord
from discord.ext import commands

from bastion.services.discord_link import DiscordVerifier, describe_discord_result

logger = logging.getLogger(__name__)


def create_discord_bot(verifier: DiscordVerifier, prefix: str = "!") -> commands.Bot:
    """Configure and return a bot exposing the ``verify <code>`` command."""

    intents = discord.Intents.default()
    intents.message_content = True

    bot = commands.Bot(command_prefix=prefix, intents=intents, help_command=None)

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(f"{prefix}verify <code> - link your Discord account with the code shown in game")

    @bot.command(name="verify")
    async def verify_cmd(ctx: commands.Context, code: int):
        result = await verifier.submit(ctx.author.id, code)
        await ctx.reply(describe_discord_result(result))

    @verify_cmd.error
    async def verify_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, (commands.MissingRequiredArgument, commands.BadArgument)):
            await ctx.reply(f"Usage: {prefix}verify <code>")
            return
        logger.error("Verification command failed: %s", error)
        await ctx.reply("Something went wrong, please try again later.")

    return bot
