import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from deskhelp.config.models import Config
from deskhelp.discord import relay
from deskhelp.discord.errors import notify_admin_error
from deskhelp.llm.errors import LLMConnectionError, LLMRateLimitError

BOT_USER = SimpleNamespace(id=1, name="DeskHelp", bot=True)


def make_config(**overrides) -> Config:
    values = dict(
        discord_token="token",
        openai_api_key="sk-test",
        openai_base_url="https://api.example.com/v1",
        ai_model="test-model",
        system_prompt="",
        show_footer=False,
    )
    values.update(overrides)
    return Config(**values)


def make_author(user_id=42, bot=False):
    return SimpleNamespace(id=user_id, bot=bot, name="alice", display_name="Alice")


def make_message(content, author=None, channel_id=100, channel_type=discord.ChannelType.text, mentions=()):
    channel = MagicMock()
    channel.id = channel_id
    channel.type = channel_type
    channel.name = "help"
    channel.parent_id = None
    reply = MagicMock()
    reply.id = 999
    reply.edit = AsyncMock()
    msg = MagicMock()
    msg.id = 555
    msg.content = content
    msg.author = author or make_author()
    msg.channel = channel
    msg.mentions = list(mentions)
    msg.reply = AsyncMock(return_value=reply)
    return msg, reply


class FakeService:
    def __init__(self, deltas=(), error=None, delay=0.0):
        self.deltas = list(deltas)
        self.error = error
        self.delay = delay
        self.requests = []

    async def stream_chat(self, messages):
        self.requests.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        for delta in self.deltas:
            yield delta
        if self.error:
            raise self.error

    async def complete(self, messages):
        self.requests.append(messages)
        if self.error:
            raise self.error
        return "".join(self.deltas)


class TestShouldRespond(unittest.TestCase):
    def test_ignores_own_messages(self):
        msg, _ = make_message("hello", author=SimpleNamespace(id=BOT_USER.id, bot=True, name="DeskHelp"))
        self.assertFalse(relay.should_respond(msg, BOT_USER, make_config()))

    def test_ignores_other_bots(self):
        msg, _ = make_message("hello", author=make_author(user_id=7, bot=True))
        self.assertFalse(relay.should_respond(msg, BOT_USER, make_config()))

    def test_ignores_empty_and_prefixed_content(self):
        for content in ("", "   ", "~ not for the bot"):
            with self.subTest(content=content):
                msg, _ = make_message(content)
                self.assertFalse(relay.should_respond(msg, BOT_USER, make_config()))

    def test_answers_everything_without_autorespond_list(self):
        msg, _ = make_message("How do I reset my password?")
        self.assertTrue(relay.should_respond(msg, BOT_USER, make_config()))

    def test_autorespond_list_limits_channels(self):
        config = make_config(autorespond_channels=frozenset({100}))
        inside, _ = make_message("hi", channel_id=100)
        outside, _ = make_message("hi", channel_id=200)
        self.assertTrue(relay.should_respond(inside, BOT_USER, config))
        self.assertFalse(relay.should_respond(outside, BOT_USER, config))

    def test_mention_works_outside_autorespond_channels(self):
        config = make_config(autorespond_channels=frozenset({100}))
        msg, _ = make_message("<@1> help", channel_id=200, mentions=[SimpleNamespace(id=1)])
        self.assertTrue(relay.should_respond(msg, BOT_USER, config))

    def test_thread_inherits_parent_channel(self):
        config = make_config(autorespond_channels=frozenset({100}))
        msg, _ = make_message("hi", channel_id=300, channel_type=discord.ChannelType.public_thread)
        msg.channel.parent_id = 100
        self.assertTrue(relay.should_respond(msg, BOT_USER, config))

    def test_dms_follow_allow_dms(self):
        msg, _ = make_message("hi", channel_type=discord.ChannelType.private)
        self.assertTrue(relay.should_respond(msg, BOT_USER, make_config()))
        self.assertFalse(relay.should_respond(msg, BOT_USER, make_config(allow_dms=False)))


class TestHelpers(unittest.TestCase):
    def test_clean_content_strips_mentions(self):
        msg, _ = make_message("<@1>  what is DeskThing? <@!1>")
        self.assertEqual(relay.clean_content(msg, BOT_USER), "what is DeskThing?")

    def test_build_messages(self):
        msg, _ = make_message("hi")
        messages = relay.build_messages(msg, "How do I reset my password?", "Be helpful.")
        self.assertEqual(messages[0], {"role": "system", "content": "Be helpful."})
        self.assertEqual(messages[1], {"role": "user", "content": "Alice (42): How do I reset my password?"})

    def test_build_messages_without_system_prompt(self):
        msg, _ = make_message("hi")
        self.assertEqual([m["role"] for m in relay.build_messages(msg, "hi")], ["user"])

    def test_strip_thinking(self):
        self.assertEqual(relay.strip_thinking("<think>\nhmm\n</think>\nAnswer"), "Answer")

    def test_fit_message(self):
        footer = relay.format_footer(1.5, 0.25)
        fitted = relay.fit_message("x" * 5000, footer)
        self.assertEqual(len(fitted), relay.MAX_MESSAGE_LENGTH)
        self.assertTrue(fitted.endswith(footer))
        self.assertEqual(relay.fit_message("short", footer), "short" + footer)

    def test_fit_message_logs_truncation(self):
        with self.assertLogs(level="DEBUG") as logs:
            relay.fit_message("x" * 5000, relay.format_footer(1.5, 0.25))
        self.assertTrue(any("Truncating response from 5000" in line for line in logs.output))


class TestProcessMessage(unittest.IsolatedAsyncioTestCase):
    async def test_relays_completion_to_same_channel(self):
        msg, reply = make_message("How do I reset my password?")
        service = FakeService(["Open ", "Settings > Account ", "and click Reset."])

        await relay.process_message(msg, BOT_USER, make_config(), service)

        self.assertEqual(len(service.requests), 1)
        self.assertIn("How do I reset my password?", service.requests[0][-1]["content"])
        msg.reply.assert_awaited_once()
        final = reply.edit.await_args.kwargs
        self.assertEqual(final["content"], "Open Settings > Account and click Reset.")
        self.assertTrue(final["suppress"])

    async def test_footer_is_appended(self):
        msg, reply = make_message("hi")
        await relay.process_message(msg, BOT_USER, make_config(show_footer=True), FakeService(["Hello!"]))
        content = reply.edit.await_args.kwargs["content"]
        self.assertTrue(content.startswith("Hello!\n-# Generated response in"))

    async def test_non_streaming_mode(self):
        msg, reply = make_message("hi")
        service = FakeService(["Hello there"])
        await relay.process_message(msg, BOT_USER, make_config(stream_responses=False), service)
        self.assertEqual(len(service.requests), 1)
        self.assertEqual(reply.edit.await_args.kwargs["content"], "Hello there")

    async def test_mention_only_message_is_skipped(self):
        msg, _ = make_message("<@1>")
        service = FakeService(["unused"])
        await relay.process_message(msg, BOT_USER, make_config(), service)
        self.assertEqual(service.requests, [])
        msg.reply.assert_not_awaited()

    async def test_api_error_sends_generic_notice(self):
        msg, reply = make_message("hi")
        notify = AsyncMock()
        service = FakeService(["partial"], error=LLMRateLimitError("429 Too Many Requests"))

        await relay.process_message(msg, BOT_USER, make_config(), service, notify)

        notify.assert_awaited_once()
        content = reply.edit.await_args.kwargs["content"]
        self.assertNotIn("partial", content)
        self.assertNotIn("429", content)
        self.assertIn("try again", content)

    async def test_timeout_is_recovered(self):
        msg, reply = make_message("hi")
        service = FakeService(["late"], delay=1.0)

        with self.assertLogs(level="WARNING"):
            await relay.process_message(msg, BOT_USER, make_config(response_timeout=0.01), service)

        self.assertIn("couldn't reach", reply.edit.await_args.kwargs["content"])

    async def test_empty_response_is_a_failure(self):
        msg, reply = make_message("hi")
        await relay.process_message(msg, BOT_USER, make_config(), FakeService(["<think>only thoughts</think>"]))
        self.assertIn("something went wrong", reply.edit.await_args.kwargs["content"])

    async def test_unexpected_error_does_not_propagate(self):
        msg, reply = make_message("hi")
        with self.assertLogs(level="ERROR"):
            await relay.process_message(msg, BOT_USER, make_config(), FakeService(error=KeyError("choices")))
        self.assertIn("something went wrong", reply.edit.await_args.kwargs["content"])

    async def test_failed_placeholder_skips_completion(self):
        msg, _ = make_message("hi")
        msg.reply.side_effect = discord.HTTPException(MagicMock(status=500, reason="err"), "boom")
        service = FakeService(["unused"])
        with self.assertLogs(level="ERROR"):
            await relay.process_message(msg, BOT_USER, make_config(), service)
        self.assertEqual(service.requests, [])

    async def test_failed_final_edit_is_logged(self):
        msg, reply = make_message("hi")
        reply.edit.side_effect = discord.HTTPException(MagicMock(status=500, reason="err"), "boom")
        with self.assertLogs(level="WARNING") as logs:
            await relay.process_message(msg, BOT_USER, make_config(), FakeService(["ok"]))
        self.assertTrue(any("Failed to edit" in line for line in logs.output))

    async def test_connection_error_notice(self):
        msg, reply = make_message("hi")
        await relay.process_message(msg, BOT_USER, make_config(), FakeService(error=LLMConnectionError("refused")))
        self.assertIn("couldn't reach", reply.edit.await_args.kwargs["content"])

    async def test_user_notice_sent_before_admin_notification(self):
        msg, reply = make_message("hi")
        edits_seen = []
        notify = AsyncMock(side_effect=lambda *args: edits_seen.append(reply.edit.await_count))
        await relay.process_message(msg, BOT_USER, make_config(), FakeService(error=LLMRateLimitError("429")), notify)
        self.assertEqual(edits_seen, [1])

    async def test_unreachable_admin_does_not_block_user_notice(self):
        msg, reply = make_message("hi")
        client = MagicMock()
        client.get_user.return_value = None
        client.fetch_user = AsyncMock(side_effect=OSError("connection reset"))
        config = make_config(admin_ids=(7,))

        async def notify(error, context):
            await notify_admin_error(client, config, error, context)

        with self.assertLogs(level="WARNING") as logs:
            await relay.process_message(msg, BOT_USER, config, FakeService(error=LLMRateLimitError("429")), notify)

        reply.edit.assert_awaited_once()
        self.assertIn("try again", reply.edit.await_args.kwargs["content"])
        self.assertTrue(any("Could not notify admin 7" in line for line in logs.output))


class TestNotifyAdminError(unittest.IsolatedAsyncioTestCase):
    async def test_sends_dm_to_each_admin(self):
        admin = MagicMock()
        admin.send = AsyncMock()
        client = MagicMock()
        client.get_user.return_value = admin
        await notify_admin_error(client, make_config(admin_ids=(7, 8)), LLMRateLimitError("429"), "Relay failed in #help")
        self.assertEqual(admin.send.await_count, 2)
        self.assertIn("Rate Limited", admin.send.await_args.args[0])

    async def test_no_admins_is_a_no_op(self):
        client = MagicMock()
        await notify_admin_error(client, make_config(), LLMRateLimitError("429"))
        client.get_user.assert_not_called()

    async def test_delivery_failure_is_logged(self):
        client = MagicMock()
        client.get_user.return_value = None
        client.fetch_user = AsyncMock(side_effect=discord.NotFound(MagicMock(status=404, reason="nf"), "Unknown User"))
        with self.assertLogs(level="WARNING"):
            await notify_admin_error(client, make_config(admin_ids=(7,)), LLMRateLimitError("429"))

    async def test_network_failure_is_logged_and_remaining_admins_notified(self):
        admin = MagicMock()
        admin.send = AsyncMock()
        client = MagicMock()
        client.get_user.side_effect = lambda uid: None if uid == 7 else admin
        client.fetch_user = AsyncMock(side_effect=OSError("connection reset"))
        with self.assertLogs(level="WARNING") as logs:
            await notify_admin_error(client, make_config(admin_ids=(7, 8)), LLMRateLimitError("429"))
        admin.send.assert_awaited_once()
        self.assertTrue(any("connection reset" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
