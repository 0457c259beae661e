"""
Entrypoint for the DeskHelp bot.

Run with `deskhelp` (console script) or `python -m deskhelp`.
Exits 0 on a clean shutdown and 1 when startup fails.
"""

import asyncio
import logging
import os
import sys

import discord
from dotenv import load_dotenv

from deskhelp.config.loader import get_config
from deskhelp.config.models import Config
from deskhelp.discord.client import create_client
from deskhelp.llm.openai_service import CompletionService


def setup_logging() -> None:
    if os.environ.get("DEBUG"):
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s: %(message)s")
        logging.getLogger("httpx").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")
        logging.getLogger("httpx").setLevel(logging.WARNING)


async def run_bot(config: Config) -> None:
    service = CompletionService.from_config(config)
    client = create_client(config, service)
    try:
        async with client:
            await client.start(config.discord_token)
    finally:
        await service.close()


def main() -> None:
    # .env may set DEBUG, so it has to be read before logging is configured.
    load_dotenv()
    setup_logging()
    config = get_config()
    logging.info(f"🚀 DeskHelp starting | {config!r}")
    try:
        asyncio.run(run_bot(config))
    except discord.LoginFailure as e:
        logging.error("Discord login failed: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
