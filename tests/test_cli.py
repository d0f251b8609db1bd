import asyncio
import io
import os
import unittest
from datetime import datetime, timezone
from unittest import mock

from aiohttp.test_utils import TestServer

from broker_util import ANA, BO, CY, FakeBroker, make_config, wait_for
from splitchat import cli
from splitchat.model import Identity, Message
from splitchat.session import ChatSession


class ParserTests(unittest.TestCase):
    def test_send_arguments(self):
        args = cli.build_parser().parse_args(["--token", "t", "--user-id", "1", "send", "--peer", "2", "hello there"])

        self.assertEqual(args.command, "send")
        self.assertEqual(args.peer, 2)
        self.assertEqual(args.text, "hello there")
        self.assertEqual(args.connect_timeout, 10.0)

    def test_resolve_prefers_flags_over_environment(self):
        args = cli.build_parser().parse_args(["--token", "flag-token", "--base-url", "http://flag:1", "online"])
        env = {
            "SPLITCHAT_TOKEN": "env-token",
            "SPLITCHAT_USER_ID": "4",
            "SPLITCHAT_EMAIL": "dee@example.com",
            "SPLITCHAT_NAME": "Dee",
            "SPLITCHAT_BASE_URL": "http://env:2",
            "SPLITCHAT_PRESENCE_INTERVAL": "5",
        }

        config, identity, token = cli.resolve_session_args(args, env)

        self.assertEqual(token, "flag-token")
        self.assertEqual(identity, Identity(id=4, email="dee@example.com", display_name="Dee"))
        self.assertEqual(config.base_url, "http://flag:1")
        self.assertEqual(config.presence_interval_s, 5.0)

    def test_resolve_requires_token_and_user_id(self):
        parser = cli.build_parser()
        with self.assertRaisesRegex(ValueError, "credential"):
            cli.resolve_session_args(parser.parse_args(["--user-id", "1", "online"]), {})
        with self.assertRaisesRegex(ValueError, "user id"):
            cli.resolve_session_args(parser.parse_args(["--token", "t", "online"]), {})
        with self.assertRaisesRegex(ValueError, "SPLITCHAT_USER_ID"):
            cli.resolve_session_args(parser.parse_args(["--token", "t", "online"]), {"SPLITCHAT_USER_ID": "x"})

    def test_format_message(self):
        ts = datetime(2024, 1, 1, 9, 5, tzinfo=timezone.utc)
        mine = Message(sender_id=1, recipient_id=2, content="hi", timestamp=ts)
        theirs = Message(sender_id=2, recipient_id=1, content="yo", sender_name="Bo")

        self.assertEqual(cli.format_message(mine, 1, seen=True), "[09:05] me: hi (seen)")
        self.assertEqual(cli.format_message(theirs, 1), "[--:--] Bo: yo")

    def test_main_reports_missing_credentials(self):
        output = io.StringIO()
        with mock.patch.dict(os.environ, {}, clear=True):
            code = cli.main(["online"], output=output)

        self.assertEqual(code, 2)
        self.assertIn("credential", output.getvalue())


class CommandTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.broker = FakeBroker()
        for user, token in ((ANA, "tok-ana"), (BO, "tok-bo"), (CY, "tok-cy")):
            self.broker.add_user(user.id, user.email, user.display_name, token)
        self.server = TestServer(self.broker.create_app())
        await self.server.start_server()
        self.config = make_config(self.server)
        self.session = ChatSession(ANA, "tok-ana", self.config)
        await self.session.start()
        self.output = io.StringIO()

    async def asyncTearDown(self) -> None:
        await self.session.close()
        await self.server.close()

    async def test_contacts_show_presence_and_unread(self):
        self.broker.seed(CY.id, ANA.id, "old")
        self.broker.seed(ANA.id, BO.id, "hey")
        self.broker.online_override = [BO.email]
        await wait_for(lambda: self.broker.is_subscribed(ANA.id))
        await self.broker.deliver(ANA.id, self.broker.seed(CY.id, ANA.id, "new"))
        await wait_for(lambda: self.session.unread.count(CY.id) == 1)

        code = await cli.run_contacts(self.session, self.output)

        self.assertEqual(code, 0)
        self.assertEqual(
            self.output.getvalue().splitlines(),
            [
                "3\tCy\tcy@example.com\toffline (1 new)",
                "2\tBo\tbo@example.com\tonline",
            ],
        )

    async def test_online_lists_sorted_emails(self):
        self.broker.online_override = ["cy@example.com", "bo@example.com"]

        code = await cli.run_online(self.session, self.output)

        self.assertEqual(code, 0)
        self.assertEqual(self.output.getvalue(), "bo@example.com\ncy@example.com\n")

    async def test_send_delivers_through_broker(self):
        code = await cli.run_send(self.session, BO.id, "from the cli", self.output, connect_timeout=2.0)

        self.assertEqual(code, 0)
        await wait_for(lambda: any(m["content"] == "from the cli" for m in self.broker.messages))
        self.assertEqual(self.output.getvalue(), "")

    async def test_send_reports_missing_connection(self):
        await self.session.transport.disconnect()

        code = await cli.run_send(self.session, BO.id, "lost", self.output, connect_timeout=0.05)

        self.assertEqual(code, 1)
        self.assertIn("not connected", self.output.getvalue())

    async def test_tail_prints_history_and_live_messages(self):
        self.broker.seed(BO.id, ANA.id, "before")
        await wait_for(lambda: self.broker.is_subscribed(ANA.id))

        tail = asyncio.create_task(cli.run_tail(self.session, BO.id, self.output, duration=0.5))
        await wait_for(lambda: "before" in self.output.getvalue())
        await self.broker.deliver(ANA.id, self.broker.seed(BO.id, ANA.id, "live one"))
        code = await tail

        lines = self.output.getvalue().splitlines()
        self.assertEqual(code, 0)
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].endswith("Bo: before"))
        self.assertTrue(lines[1].endswith("Bo: live one"))

    async def test_tail_reports_history_failure(self):
        self.broker.history_status = 500

        code = await cli.run_tail(self.session, BO.id, self.output, duration=0.01)

        self.assertEqual(code, 0)
        self.assertIn("history unavailable", self.output.getvalue())


if __name__ == "__main__":
    unittest.main()
