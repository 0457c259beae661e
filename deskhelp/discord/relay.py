"""
The relay: one Discord message in, one completion request out, one reply back.

Each message is handled independently; nothing is remembered between calls.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable, Optional

import discord

from deskhelp.config.models import Config
from deskhelp.config.personas import format_system_prompt
from deskhelp.llm.errors import LLMEmptyResponseError, LLMError, format_user_friendly_error, parse_error_message
from deskhelp.llm.openai_service import CompletionService
from .errors import describe_channel

IGNORE_PREFIX = "~"
PLACEHOLDER_TEXT = "Generating response..."
STREAMING_INDICATOR = " ⚪"
EDIT_DELAY_SECONDS = 1
MAX_MESSAGE_LENGTH = 2000
DISCLAIMER_URL = "https://lib.guides.umd.edu/c.php?g=1340355&p=9880574"

Notifier = Callable[[Exception, str], Awaitable[None]]


def strip_thinking(text: str) -> str:
    return re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()


def _mention_pattern(user_id: int) -> re.Pattern:
    return re.compile(rf"<@!?{user_id}>")


def should_respond(message: discord.Message, bot_user: discord.abc.User, config: Config) -> bool:
    if message.author.bot or message.author.id == bot_user.id:
        return False

    content = (message.content or "").strip()
    if not content or content.startswith(IGNORE_PREFIX):
        return False

    if message.channel.type == discord.ChannelType.private:
        return config.allow_dms

    if not config.autorespond_channels:
        return True

    channel_ids = {message.channel.id, getattr(message.channel, "parent_id", None)}
    mentioned = any(user.id == bot_user.id for user in message.mentions)
    return mentioned or bool(channel_ids & config.autorespond_channels)


def clean_content(message: discord.Message, bot_user: discord.abc.User) -> str:
    return _mention_pattern(bot_user.id).sub("", message.content or "").strip()


def build_messages(message: discord.Message, text: str, system_prompt: str = "") -> list[dict[str, Any]]:
    name = getattr(message.author, "display_name", None) or message.author.name
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": format_system_prompt(system_prompt)})
    messages.append({"role": "user", "content": f"{name} ({message.author.id}): {text}"})
    return messages


def format_footer(generation_seconds: float, prep_seconds: float) -> str:
    return (
        f"\n-# Generated response in {generation_seconds:.3f}s ({prep_seconds:.3f}s prep). "
        f"There may be [inaccuracies in AI output](<{DISCLAIMER_URL}>). Check important info."
    )


def fit_message(body: str, suffix: str = "") -> str:
    """Truncate `body` so that body + suffix fits in a single Discord message."""
    room = MAX_MESSAGE_LENGTH - len(suffix)
    if len(body) > room:
        logging.debug("Truncating response from %d to %d chars to fit Discord's limit", len(body), room)
        body = body[: room - 1].rstrip() + "…"
    return body + suffix


async def _safe_edit(reply: discord.Message, content: str) -> None:
    try:
        await reply.edit(content=content, suppress=True)
    except discord.HTTPException as e:
        logging.warning("Failed to edit message %s: %s", reply.id, e)


async def process_message(
    new_msg: discord.Message,
    bot_user: discord.abc.User,
    config: Config,
    service: CompletionService,
    notify: Optional[Notifier] = None,
) -> None:
    text = clean_content(new_msg, bot_user)
    if not text:
        return

    start_time = time.monotonic()
    messages = build_messages(new_msg, text, config.system_prompt)
    logging.info(f"Message (uid:{new_msg.author.id}, channel:{new_msg.channel.id}, len:{len(text)}): {text[:200]}")

    async with new_msg.channel.typing():
        try:
            reply = await new_msg.reply(PLACEHOLDER_TEXT, mention_author=False)
        except discord.HTTPException:
            logging.exception("Could not send placeholder reply")
            return

        prep_time = time.monotonic() - start_time
        last_edit_time = time.monotonic()
        response = ""

        async def _stream() -> None:
            nonlocal response, last_edit_time
            async for delta in service.stream_chat(messages):
                response += delta
                if time.monotonic() - last_edit_time >= EDIT_DELAY_SECONDS:
                    last_edit_time = time.monotonic()
                    await _safe_edit(reply, fit_message(response, STREAMING_INDICATOR))

        try:
            if config.stream_responses:
                await asyncio.wait_for(_stream(), timeout=config.response_timeout)
            else:
                response = await asyncio.wait_for(service.complete(messages), timeout=config.response_timeout)
            response = strip_thinking(response)
            if not response:
                raise LLMEmptyResponseError(f"Model '{config.ai_model}' returned no content")
        except (LLMError, asyncio.TimeoutError) as e:
            logging.warning(f"Completion for message {new_msg.id} failed: {parse_error_message(e)}")
            await _safe_edit(reply, format_user_friendly_error(e))
            if notify:
                await notify(e, f"Relay failed in {describe_channel(new_msg.channel)}")
            return
        except Exception as e:
            logging.exception(f"Unexpected error while relaying message {new_msg.id}")
            await _safe_edit(reply, format_user_friendly_error(e))
            if notify:
                await notify(e, f"Unexpected relay error in {describe_channel(new_msg.channel)}")
            return

    footer = ""
    if config.show_footer:
        elapsed = time.monotonic() - start_time
        footer = format_footer(elapsed - prep_time, prep_time)
    await _safe_edit(reply, fit_message(response, footer))
    logging.info(f"Replied to message {new_msg.id} ({len(response)} chars)")
