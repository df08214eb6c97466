import asyncio
import logging
import os
import signal
from pathlib import Path

import aiohttp
import discord
from dotenv import load_dotenv
from telegram.error import InvalidToken, NetworkError

from core.assistant import Assistant
from core.config import ConfigError, Settings
from transports.discord_bot import run_discord_bot
from transports.telegram_bot import TelegramTransport

log = logging.getLogger("songcast")


def _diagnose(name: str, exc: BaseException) -> str:
    if isinstance(exc, (InvalidToken, discord.LoginFailure)):
        return f"{name} rejected the bot token. Check the {name.upper()}_TOKEN value."
    if isinstance(exc, (NetworkError, aiohttp.ClientConnectionError, OSError)):
        return (
            f"{name} connection failed. This could be due to network connectivity issues, "
            f"the service being temporarily unavailable, or a firewall/proxy blocking the connection. "
            f"Original error: {exc}"
        )
    return f"{name} transport stopped: {exc}"


async def main():
    # .env.local wins over .env
    load_dotenv(Path.cwd() / ".env.local")
    load_dotenv(Path.cwd() / ".env")
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")

    try:
        settings = Settings.from_env(os.environ)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}")

    log.info("Using backend %s", settings.base_url)
    if settings.is_local_backend:
        log.warning("Using localhost backend; set SONGCAST_BASE_URL to your deployed URL for production.")
    log.info(
        "Relay %s, forum cross-posting %s",
        "enabled" if settings.relay_enabled else "disabled",
        "enabled" if settings.forum_enabled else "disabled",
    )

    assistant = Assistant(settings)
    log.info("Payment wallet %s", assistant.signer.address)

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    tasks = {}
    telegram_transport = None
    if settings.telegram_token:
        telegram_transport = TelegramTransport(assistant, settings.telegram_token)
        tasks["telegram"] = asyncio.create_task(telegram_transport.start())
    if settings.discord_token:
        tasks["discord"] = asyncio.create_task(
            run_discord_bot(assistant, settings.discord_token, settings.discord_guild_id)
        )
    for task in tasks.values():
        task.add_done_callback(lambda _: stop_event.set())

    await stop_event.wait()

    failed = False
    for name, task in tasks.items():
        if task.done() and not task.cancelled() and task.exception():
            failed = True
            log.error(_diagnose(name, task.exception()))

    if telegram_transport:
        await telegram_transport.stop()
    for name, task in tasks.items():
        if name == "telegram" or task.done():
            continue
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    telegram_task = tasks.get("telegram")
    if telegram_task and not telegram_task.done():
        await telegram_task
    await assistant.close()
    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    asyncio.run(main())
