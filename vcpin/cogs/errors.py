import logging

import discord
from discord.ext import commands

log = logging.getLogger(__name__)


class ErrorHandlerCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: Exception):
        if isinstance(error, commands.CommandNotFound):
            return

        # errors raised inside a command arrive wrapped
        error = getattr(error, "original", error)

        if isinstance(error, commands.MissingRequiredArgument):
            return await ctx.reply(
                f"Missing argument: `{error.param.name}`\n"
                f"Try: `{ctx.clean_prefix}{ctx.command} {ctx.command.signature}`"
            )

        if isinstance(error, commands.BadArgument):
            return await ctx.reply("Bad argument. Mention a valid member or pass a number.")

        if isinstance(error, commands.MissingPermissions):
            return await ctx.reply("You don’t have permission to use that command.")

        if isinstance(error, commands.NoPrivateMessage):
            return await ctx.reply("That command only works inside a server.")

        if isinstance(error, discord.Forbidden):
            return await ctx.reply("I’m missing permissions (Send Messages / Attach Files) in this channel.")

        log.error("command %s failed", ctx.command, exc_info=error)
        await ctx.reply(f"Command error: `{type(error).__name__}`")
