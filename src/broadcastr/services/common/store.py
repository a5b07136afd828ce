"""Deduplicating event container for one fetch pass."""

from __future__ import annotations

from collections.abc import Iterator

from broadcastr.models.event import Event


class EventStore:
    """Events keyed by id; the first copy seen wins.

    Inserts are synchronous, so concurrent relay tasks never interleave
    inside one. There is no removal: a store lives for exactly one pass.

    Examples:
        ```python
        store = EventStore()
        store.insert(event)  # True
        store.insert(event)  # False, already present
        len(store)           # 1
        ```
    """

    __slots__ = ("_events",)

    def __init__(self) -> None:
        self._events: dict[str, Event] = {}

    def insert(self, event: Event) -> bool:
        """Add ``event`` unless its id is already stored.

        Returns:
            ``True`` if the event was newly added.
        """
        if event.id in self._events:
            return False
        self._events[event.id] = event
        return True

    def all(self) -> list[Event]:
        """Snapshot of stored events in insertion order."""
        return list(self._events.values())

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, event_id: object) -> bool:
        if isinstance(event_id, Event):
            event_id = event_id.id
        return event_id in self._events

    def __iter__(self) -> Iterator[Event]:
        return iter(self.all())
