from __future__ import annotations

import logging

import discord

from deskhelp.config.models import Config
from deskhelp.llm.openai_service import CompletionService
from .errors import notify_admin_error
from .relay import process_message, should_respond


def create_client(config: Config, service: CompletionService) -> discord.Client:
    intents = discord.Intents.default()
    intents.message_content = True
    intents.dm_messages = True
    activity = discord.CustomActivity(name=config.status_message[:128]) if config.status_message else None
    client = discord.Client(intents=intents, activity=activity)

    async def notify(error: Exception, context: str) -> None:
        await notify_admin_error(client, config, error, context)

    @client.event
    async def on_ready() -> None:
        logging.info(f"Logged in as {client.user} (id:{client.user.id}) | model: {config.ai_model}")
        if config.autorespond_channels:
            logging.info(f"Auto-responding in channels: {sorted(config.autorespond_channels)}")

    @client.event
    async def on_message(new_msg: discord.Message) -> None:
        if client.user is None or not should_respond(new_msg, client.user, config):
            return
        await process_message(new_msg, client.user, config, service, notify)

    return client
