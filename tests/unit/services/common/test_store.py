"""
Unit tests for services.common.store module.

Tests:
- First copy of an id wins
- Insertion order preserved
- Membership checks by id or event
"""

from broadcastr.services.common.store import EventStore
from tests.conftest import make_event


class TestEventStore:
    def test_insert_dedups(self) -> None:
        store = EventStore()
        event = make_event()
        assert store.insert(event) is True
        assert store.insert(event) is False
        assert len(store) == 1

    def test_first_copy_wins(self) -> None:
        store = EventStore()
        # same fields signed twice: one id, two signatures
        first = make_event(content="same", created_at=1)
        second = make_event(content="same", created_at=1)
        assert first.id == second.id
        store.insert(first)
        store.insert(second)
        assert len(store) == 1
        assert store.all()[0] is first

    def test_insertion_order(self) -> None:
        store = EventStore()
        events = [make_event(created_at=t) for t in (3, 1, 2)]
        for event in events:
            store.insert(event)
        assert list(store) == events

    def test_contains(self) -> None:
        store = EventStore()
        event = make_event()
        store.insert(event)
        assert event in store
        assert event.id in store
        assert "f" * 64 not in store

    def test_all_is_a_copy(self) -> None:
        store = EventStore()
        store.insert(make_event())
        store.all().clear()
        assert len(store) == 1
