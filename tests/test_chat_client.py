#!/usr/bin/env python3
"""
Tests for the headless chat client in chat_relay.client.

Covers:
- Roster bookkeeping from USERS snapshots and join/leave notices
- Typing indicators aging out locally (the server never sends "off")
- End-to-end chat, whisper and typing through a running relay
"""

import unittest
from unittest.mock import patch

from relay_test_support import RelayTestCase, wait_for_condition

from chat_relay.client.chat.chat_client import ChatClient
from chat_relay.client.chat.presence import PresenceTracker, TypingTracker
from chat_relay.client.utils.config import ClientConfig


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestPresenceTracker(unittest.TestCase):
    """Test cases for PresenceTracker."""

    def test_add_is_case_insensitive(self):
        roster = PresenceTracker()
        self.assertTrue(roster.add("Alice"))
        self.assertFalse(roster.add("alice"))
        self.assertEqual(roster.names(), ["Alice"])

    def test_replace_reports_changes(self):
        roster = PresenceTracker()
        self.assertTrue(roster.replace(["Alice", "Bob"]))
        self.assertFalse(roster.replace(["Alice", "Bob"]))
        self.assertEqual(len(roster), 2)

    def test_remove(self):
        roster = PresenceTracker()
        roster.replace(["Alice", "Bob"])
        self.assertTrue(roster.remove("BOB"))
        self.assertFalse(roster.remove("Bob"))
        self.assertNotIn("Bob", roster)


class TestTypingTracker(unittest.TestCase):
    """Test cases for TypingTracker."""

    def test_typing_ages_out(self):
        clock = FakeClock()
        typing = TypingTracker(ttl=5.0, clock=clock)
        typing.mark("Alice")
        self.assertTrue(typing.is_typing("alice"))
        self.assertEqual(typing.active(), ["Alice"])

        clock.now += 5.0
        self.assertFalse(typing.is_typing("Alice"))
        self.assertEqual(typing.active(), [])

    def test_repeated_notice_extends_indicator(self):
        clock = FakeClock()
        typing = TypingTracker(ttl=5.0, clock=clock)
        typing.mark("Alice")
        clock.now += 4.0
        typing.mark("Alice")
        clock.now += 4.0
        self.assertTrue(typing.is_typing("Alice"))

    def test_clear(self):
        typing = TypingTracker(ttl=5.0, clock=FakeClock())
        typing.mark("Alice")
        typing.clear("ALICE")
        self.assertEqual(typing.active(), [])


class TestClientLineHandling(unittest.IsolatedAsyncioTestCase):
    """ChatClient.handle_line without a connection."""

    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.client = ChatClient(username="Bob", clock=self.clock)
        self.presence = self.client.presence_stream.subscribe()

    def presence_updates(self):
        return [self.presence.get_nowait() for _ in range(self.presence.pending())]

    async def test_users_snapshot_replaces_roster(self):
        self.client.handle_line("[SYS] USERS Alice,Bob")
        self.assertEqual(self.client.roster.names(), ["Alice", "Bob"])
        self.assertEqual(self.presence_updates(), [["Alice", "Bob"]])

    async def test_join_and_leave_notices_update_roster(self):
        self.client.handle_line("[SYS] USERS Bob")
        self.client.handle_line("[10:00:00] [SYS] Carol has joined")
        self.client.handle_line("[10:00:05] [SYS] Bob has joined")  # already known
        self.assertEqual(self.client.roster.names(), ["Bob", "Carol"])

        self.client.handle_line("[10:01:00] [SYS] Carol has left")
        self.assertEqual(self.client.roster.names(), ["Bob"])
        self.assertEqual(self.presence_updates(), [["Bob"], ["Bob", "Carol"], ["Bob"]])

    async def test_chat_sender_is_added_to_roster(self):
        parsed = self.client.handle_line("[10:00:00] [Dave] hello")
        self.assertEqual(parsed.tag, "Dave")
        self.assertIn("Dave", self.client.roster)

    async def test_typing_notice_ages_out_and_chat_clears_it(self):
        self.client.handle_line("[10:00:00] [SYS] TYPING Alice on")
        self.assertEqual(self.client.typing_users(), ["Alice"])

        self.clock.now += 10
        self.assertEqual(self.client.typing_users(), [])

        self.client.handle_line("[10:00:20] [SYS] TYPING Alice on")
        self.client.handle_line("[10:00:21] [Alice] sent it")
        self.assertEqual(self.client.typing_users(), [])

    async def test_own_typing_notice_is_ignored(self):
        self.client.handle_line("[10:00:00] [SYS] TYPING bob on")
        self.assertEqual(self.client.typing_users(), [])

    async def test_every_line_goes_to_log_stream(self):
        log = self.client.log_stream.subscribe()
        self.client.handle_line("[SYS] User 'Zed' not found")
        self.client.handle_line("garbage")
        self.assertEqual([log.get_nowait(), log.get_nowait()], ["[SYS] User 'Zed' not found", "garbage"])

    async def test_send_without_connection_fails(self):
        self.assertFalse(await self.client.send_chat("hello"))
        self.assertFalse(await self.client.set_typing(True))


class TestClientAgainstServer(RelayTestCase, unittest.IsolatedAsyncioTestCase):
    """ChatClient talking to a running relay."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.chat_clients = []

    async def asyncTearDown(self):
        for client in self.chat_clients:
            await client.disconnect()
        await super().asyncTearDown()

    async def join(self, name, **kwargs):
        client = ChatClient('127.0.0.1', self.server.port, name, **kwargs)
        self.chat_clients.append(client)
        log = client.log_stream.subscribe()
        self.assertTrue(await client.connect(retry_count=1))
        return client, log

    async def next_matching(self, log, predicate):
        while True:
            line = await log.get()
            if predicate(line):
                return line

    async def test_rosters_converge(self):
        alice, _ = await self.join("Alice")
        bob, _ = await self.join("Bob")

        await wait_for_condition(lambda: alice.roster.names() == ["Alice", "Bob"])
        await wait_for_condition(lambda: bob.roster.names() == ["Alice", "Bob"])

        await bob.disconnect()
        await wait_for_condition(lambda: alice.roster.names() == ["Alice"])

    async def test_chat_and_whisper(self):
        alice, _ = await self.join("Alice")
        bob, bob_log = await self.join("Bob")
        await wait_for_condition(lambda: "Bob" in alice.roster)

        self.assertTrue(await alice.send_chat("hi there"))
        line = await self.next_matching(bob_log, lambda l: "[Alice]" in l)
        self.assertRegex(line, r"^\[\d{2}:\d{2}:\d{2}\] \[Alice\] hi there$")

        self.assertTrue(await alice.send_whisper("Bob", "secret"))
        line = await self.next_matching(bob_log, lambda l: "WHISPER" in l)
        self.assertEqual(line, "[SYS] WHISPER Alice -> Bob: secret")

    async def test_typing_indicator(self):
        clock = FakeClock()
        alice, _ = await self.join("Alice")
        bob, bob_log = await self.join("Bob", clock=clock)
        await wait_for_condition(lambda: "Bob" in alice.roster)

        await alice.set_typing(True)
        await self.next_matching(bob_log, lambda l: "TYPING Alice on" in l)
        self.assertEqual(bob.typing_users(), ["Alice"])

        await alice.set_typing(False)
        clock.now += bob.config.typing_ttl
        self.assertEqual(bob.typing_users(), [])

    async def test_connect_uses_config_connection_info(self):
        config = ClientConfig('192.0.2.1', 1, "Cfg")
        connection = {'host': '127.0.0.1', 'port': self.server.port, 'username': "Cfg"}
        with patch.object(config, 'get_connection_info', return_value=connection):
            client = ChatClient(config=config)
            self.chat_clients.append(client)
            self.assertTrue(await client.connect(retry_count=1))

        await wait_for_condition(lambda: "Cfg" in client.roster)

    async def test_connect_failure(self):
        await self.server.stop()
        client = ChatClient('127.0.0.1', self.server.port, "Late")
        self.assertFalse(await client.connect(retry_count=2, base_delay=0.01))


if __name__ == '__main__':
    unittest.main()
