from __future__ import annotations

from datetime import datetime
import logging

import discord

from deskhelp.config.models import Config
from deskhelp.llm.errors import parse_error_message


async def notify_admin_error(
    discord_client: discord.Client,
    config: Config,
    error: Exception,
    context: str = "",
) -> None:
    """
    Send a concise error notification to all configured admins.
    Never raises; delivery problems are only logged.
    """
    if not config.admin_ids:
        return

    msg = (
        "🤖 **DeskHelp Error Notification**\n"
        f"⏰ Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"📝 Context: {context}\n\nError: {parse_error_message(error)}"
    )
    for admin_id in config.admin_ids:
        try:
            user = discord_client.get_user(admin_id) or await discord_client.fetch_user(admin_id)
            await user.send(msg)
        except Exception as e:  # noqa: BLE001
            logging.warning("Could not notify admin %s: %s", admin_id, e)


def describe_channel(channel: discord.abc.Messageable) -> str:
    name = getattr(channel, "name", None)
    return f"#{name}" if name else "DM"
