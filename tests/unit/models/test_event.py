"""
Unit tests for models.event module.

Tests:
- Wrapping a signed nostr_sdk.Event and caching its fields
- from_dict / from_json / to_dict conversion through the SDK
- Rejection of events the SDK cannot parse
- Membership detection (kind 3 authored by the identity)
- Newest-first sort key
"""

import json

import pytest
from nostr_sdk import Event as NostrEvent

from broadcastr.models import Event
from tests.conftest import IDENTITY_PUBKEY, OTHER_PUBKEY, make_event


# ============================================================================
# Construction
# ============================================================================


class TestConstruction:
    """Field caching from the wrapped SDK event."""

    def test_fields_cached(self) -> None:
        event = make_event(
            kind=1,
            created_at=1_700_000_123,
            content="gm",
            tags=[["p", IDENTITY_PUBKEY], ["t", "nostr"]],
        )
        assert event.pubkey == OTHER_PUBKEY
        assert event.kind == 1
        assert event.created_at == 1_700_000_123
        assert event.content == "gm"
        assert len(event.id) == 64
        assert len(event.sig) == 128

    def test_tags_frozen_to_tuples(self) -> None:
        event = make_event(tags=[["p", IDENTITY_PUBKEY], ["t", "nostr"]])
        assert event.tags == (("p", IDENTITY_PUBKEY), ("t", "nostr"))
        assert isinstance(event.tags, tuple)

    def test_wraps_sdk_event(self) -> None:
        event = make_event()
        assert isinstance(event.nostr_event, NostrEvent)
        assert event.nostr_event.id().to_hex() == event.id

    def test_rejects_non_sdk_event(self) -> None:
        with pytest.raises(TypeError, match="nostr_event"):
            Event("not an event")  # type: ignore[arg-type]

    def test_immutable(self) -> None:
        event = make_event()
        with pytest.raises(AttributeError):
            event.kind = 2  # type: ignore[misc]

    def test_value_equality(self) -> None:
        event = make_event()
        copy = Event.from_json(event.to_json())
        assert copy == event
        assert len({event, copy}) == 1


# ============================================================================
# Conversion
# ============================================================================


class TestConversion:
    """Dict and JSON conversion."""

    def test_to_dict_shape(self) -> None:
        event = make_event(tags=[["t", "nostr"]])
        data = event.to_dict()
        assert set(data) == {"id", "pubkey", "created_at", "kind", "tags", "content", "sig"}
        assert data["id"] == event.id
        assert data["tags"] == [["t", "nostr"]]
        assert data["sig"] == event.sig

    def test_dict_round_trip(self) -> None:
        event = make_event(content="héllo")
        assert Event.from_dict(event.to_dict()) == event

    def test_missing_fields_listed(self) -> None:
        data = make_event().to_dict()
        del data["sig"]
        del data["kind"]
        with pytest.raises(ValueError, match="kind, sig"):
            Event.from_dict(data)

    def test_non_mapping_rejected(self) -> None:
        with pytest.raises(TypeError):
            Event.from_dict(["EVENT"])

    def test_unknown_keys_ignored(self) -> None:
        data = make_event().to_dict()
        data["seen_on"] = ["wss://nos.lol"]
        assert "seen_on" not in Event.from_dict(data).to_dict()

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("id", "a" * 63),
            ("pubkey", "z" * 64),
            ("kind", "one"),
            ("content", 42),
        ],
    )
    def test_invalid_field_rejected(self, field: str, value: object) -> None:
        data = make_event().to_dict()
        data[field] = value
        with pytest.raises(ValueError, match="invalid event"):
            Event.from_dict(data)

    def test_from_json_not_json(self) -> None:
        with pytest.raises(ValueError, match="invalid event"):
            Event.from_json("{")


# ============================================================================
# Membership and Ordering
# ============================================================================


class TestMembershipAndOrdering:
    """is_membership_of() and sort_key()."""

    def test_kind3_by_author_is_membership(self) -> None:
        assert make_event(kind=3, pubkey=OTHER_PUBKEY).is_membership_of(OTHER_PUBKEY)

    def test_kind3_by_other_author_is_not(self) -> None:
        assert not make_event(kind=3, pubkey=OTHER_PUBKEY).is_membership_of(IDENTITY_PUBKEY)

    def test_other_kind_is_not(self) -> None:
        assert not make_event(kind=1, pubkey=OTHER_PUBKEY).is_membership_of(OTHER_PUBKEY)

    def test_sort_newest_first_then_lowest_id(self) -> None:
        old = make_event(created_at=100)
        tie_a = make_event(created_at=200)
        tie_b = make_event(created_at=200)
        low, high = sorted([tie_a, tie_b], key=lambda e: e.id)
        ordered = sorted([old, high, low], key=Event.sort_key)
        assert ordered == [low, high, old]

    def test_sort_key_shape(self) -> None:
        event = make_event(created_at=42)
        assert event.sort_key() == (-42, event.id)


def test_to_json_matches_to_dict() -> None:
    event = make_event()
    assert json.loads(event.to_json()) == event.to_dict()
