#!/usr/bin/env python3
"""
Unit tests for chat_relay.server.registry.

Tests the session registry and the per-session single writer:
- Insertion never overwrites a live id
- Idempotent removal
- Roster snapshots and case-insensitive lookup
- Presence stream notifications
- Ordered writes, slow-consumer eviction and quiet close
"""

import asyncio
import unittest
from unittest.mock import Mock, AsyncMock, call

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chat_relay.common.events import EventStream
from chat_relay.server.registry import Session, SessionRegistry


def make_writer():
    """A StreamWriter stand-in."""
    writer = Mock()
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    return writer


def make_session(session_id, name, **kwargs):
    return Session(session_id, name, make_writer(), **kwargs)


class TestSessionRegistry(unittest.IsolatedAsyncioTestCase):
    """Test cases for SessionRegistry."""
    
    async def asyncSetUp(self):
        self.presence = EventStream('presence', replay_latest=True)
        self.registry = SessionRegistry(self.presence)
    
    async def test_try_add_registers_session(self):
        alice = make_session("ecilA-0001", "Alice")
        self.assertTrue(await self.registry.try_add(alice.id, alice))
        self.assertIn(alice.id, self.registry)
        self.assertEqual(len(self.registry), 1)
        self.assertIs(await self.registry.get(alice.id), alice)
    
    async def test_try_add_never_overwrites(self):
        first = make_session("same-id", "Alice")
        second = make_session("same-id", "Bob")
        self.assertTrue(await self.registry.try_add("same-id", first))
        self.assertFalse(await self.registry.try_add("same-id", second))
        self.assertIs(await self.registry.get("same-id"), first)
    
    async def test_remove_is_idempotent(self):
        alice = make_session("a-1", "Alice")
        await self.registry.try_add(alice.id, alice)
        self.assertIs(await self.registry.remove(alice.id), alice)
        self.assertIsNone(await self.registry.remove(alice.id))
        self.assertIsNone(await self.registry.remove("never-added"))
    
    async def test_snapshot_lists_display_names_in_join_order(self):
        for session_id, name in [("a-1", "Alice"), ("b-1", "Bob"), ("a-2", "Alice")]:
            await self.registry.try_add(session_id, make_session(session_id, name))
        self.assertEqual(await self.registry.snapshot(), ["Alice", "Bob", "Alice"])
        
        await self.registry.remove("b-1")
        self.assertEqual(await self.registry.snapshot(), ["Alice", "Alice"])
    
    async def test_find_by_name_is_case_insensitive_first_match(self):
        first = make_session("a-1", "Alice")
        second = make_session("a-2", "ALICE")
        await self.registry.try_add(first.id, first)
        await self.registry.try_add(second.id, second)
        self.assertIs(await self.registry.find_by_name("alice"), first)
        self.assertIsNone(await self.registry.find_by_name("bob"))
    
    async def test_clear_returns_all_sessions(self):
        sessions = [make_session(f"s-{i}", f"User{i}") for i in range(3)]
        for session in sessions:
            await self.registry.try_add(session.id, session)
        cleared = await self.registry.clear()
        self.assertEqual(cleared, sessions)
        self.assertEqual(len(self.registry), 0)
        self.assertEqual(await self.registry.snapshot(), [])
    
    async def test_changes_are_published_to_presence_stream(self):
        subscription = self.presence.subscribe()
        alice = make_session("a-1", "Alice")
        bob = make_session("b-1", "Bob")
        
        await self.registry.try_add(alice.id, alice)
        await self.registry.try_add(bob.id, bob)
        await self.registry.try_add(bob.id, make_session("b-1", "Imposter"))  # rejected, no event
        await self.registry.remove(alice.id)
        await self.registry.remove(alice.id)  # already gone, no event
        await self.registry.clear()
        
        events = [subscription.get_nowait() for _ in range(subscription.pending())]
        self.assertEqual(events, [["Alice"], ["Alice", "Bob"], ["Bob"], []])
    
    async def test_concurrent_adds_and_removes(self):
        sessions = [make_session(f"s-{i}", "Sam") for i in range(50)]
        
        results = await asyncio.gather(*(self.registry.try_add(s.id, s) for s in sessions))
        self.assertTrue(all(results))
        self.assertEqual(len(await self.registry.snapshot()), 50)
        
        await asyncio.gather(*(self.registry.remove(s.id) for s in sessions[:25]))
        self.assertEqual(len(await self.registry.sessions()), 25)


class TestSessionWriter(unittest.IsolatedAsyncioTestCase):
    """Test cases for the per-session writer."""
    
    async def wait_until_sent(self, session):
        while not session.outbox.empty():
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.01)
    
    async def test_lines_are_written_in_order(self):
        session = make_session("a-1", "Alice")
        session.start()
        self.assertTrue(session.send("first"))
        self.assertTrue(session.send("second"))
        await self.wait_until_sent(session)
        
        session.writer.write.assert_has_calls([call(b"first\n"), call(b"second\n")])
        self.assertEqual(session.writer.drain.await_count, 2)
        await session.close()
    
    async def test_full_queue_evicts_session(self):
        session = make_session("a-1", "Alice", queue_size=1)
        # Writer task not started, so nothing drains the queue
        self.assertTrue(session.send("first"))
        self.assertFalse(session.send("second"))
        self.assertTrue(session.closed)
        session.writer.close.assert_called_once()
        self.assertFalse(session.send("third"))
    
    async def test_stalled_drain_evicts_session(self):
        async def stall():
            await asyncio.sleep(10)
        
        session = make_session("a-1", "Alice", write_timeout=0.05)
        session.writer.drain = stall
        session.start()
        session.send("hello")
        
        for _ in range(100):
            if session.closed:
                break
            await asyncio.sleep(0.01)
        
        self.assertTrue(session.closed)
        session.writer.close.assert_called_once()
        await session.close()
    
    async def test_write_error_closes_session(self):
        session = make_session("a-1", "Alice")
        session.writer.drain = AsyncMock(side_effect=ConnectionResetError("reset"))
        session.start()
        session.send("hello")
        
        for _ in range(100):
            if session.closed:
                break
            await asyncio.sleep(0.01)
        
        self.assertTrue(session.closed)
        await session.close()
    
    async def test_close_ignores_close_errors(self):
        session = make_session("a-1", "Alice")
        session.writer.close.side_effect = OSError("already closed")
        session.writer.wait_closed = AsyncMock(side_effect=ConnectionResetError("reset"))
        session.start()
        
        await session.close()
        await session.close()
        
        self.assertTrue(session.closed)
        session.writer.close.assert_called_once()


if __name__ == '__main__':
    unittest.main()
