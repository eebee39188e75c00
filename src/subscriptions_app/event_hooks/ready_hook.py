import asyncio
import logging

from discord.ext import commands

from subscriptions_app.patreon.errors import ExpiredCredentialFatal

logger = logging.getLogger(__name__)


def _on_sync_done(bot: commands.Bot, task: asyncio.Task) -> None:
    """Escalate a fatal sync failure into a bot shutdown."""
    if task.cancelled():
        return

    exc = task.exception()
    if exc is None:
        return

    if isinstance(exc, ExpiredCredentialFatal):
        logger.critical("Patreon sync stopped, operator intervention required: %s", exc)
    else:
        logger.error("Patreon sync loop crashed: %s", exc, exc_info=exc)

    bot.fatal = exc
    bot.shutdown_task = asyncio.create_task(bot.close())


async def handle(bot: commands.Bot) -> None:
    """Start the Patreon sync loop once the bot is connected."""
    logger.info(f"Logged in as {bot.user.name} (ID: {bot.user.id})")

    scheduler = getattr(bot, "scheduler", None)
    if scheduler is None:
        logger.warning("No sync scheduler attached; lookups will never have data")
        return

    # on_ready fires again after every reconnect
    if scheduler.running:
        return

    task = scheduler.start()
    task.add_done_callback(lambda t: _on_sync_done(bot, t))
