# vcpin/main.py
import asyncio
import logging
import signal

import discord
from discord.ext import commands

from vcpin.config import load_settings
from vcpin.core.presence import PresenceTracker
from vcpin.loader import load_all
from vcpin.services.db import Database
from vcpin.services.ledger import SessionLedger
from vcpin.services.supervisor import ConnectionSupervisor
from vcpin.services.transport import DiscordVoiceTransport, voice_dependency_report
from vcpin.web.health import build_app, start_health_server

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger("vcpin")


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    # log and keep running
    exc = context.get("exception")
    log.error("Unhandled: %s", context.get("message", "unhandled exception"), exc_info=exc)


async def run():
    settings = load_settings()
    logging.getLogger().setLevel(settings.log_level)
    log.info("[VCPin] guild=%s channel=%s db=%s", settings.guild_id, settings.voice_channel_id, settings.db_path)
    log.info("[Voice Deps]\n%s", voice_dependency_report())

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_log_loop_exception)

    intents = discord.Intents.default()
    intents.message_content = True
    intents.voice_states = True
    intents.members = True

    bot = commands.Bot(command_prefix=settings.command_prefix, intents=intents)

    database = Database(settings.db_path)
    ledger = SessionLedger(database)

    transport = DiscordVoiceTransport(bot, connect_timeout=settings.ready_timeout_seconds)
    supervisor = ConnectionSupervisor(
        transport,
        settings.guild_id,
        settings.voice_channel_id,
        ready_timeout=settings.ready_timeout_seconds,
        quick_reconnect_timeout=settings.quick_reconnect_timeout_seconds,
        rebuild_delay=settings.rebuild_delay_seconds,
    )
    tracker = PresenceTracker(
        ledger,
        supervisor,
        target_channel_id=settings.voice_channel_id,
        rejoin_delay=settings.displaced_rejoin_delay_seconds,
    )

    @bot.event
    async def setup_hook():
        await database.connect()
        await load_all(bot, settings, ledger=ledger, supervisor=supervisor, tracker=tracker)
        log.info("[VCPin] setup_hook: cogs loaded ✅")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return
        await bot.process_commands(message)

    async def _shutdown() -> None:
        # voice first, so the closing gateway can't trigger a rebuild
        await supervisor.close()
        await bot.close()

    def _request_shutdown() -> None:
        log.info("Shutting down...")
        loop.create_task(_shutdown())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still cancels run()
            pass

    runner = await start_health_server(build_app(supervisor), settings.port)
    try:
        await bot.start(settings.token)
    finally:
        await supervisor.close()
        if not bot.is_closed():
            await bot.close()
        await runner.cleanup()
        await database.close()
        log.info("[VCPin] bye")


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
