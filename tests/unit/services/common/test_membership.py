"""
Unit tests for services.common.membership module.

Tests:
- find_membership(): newest wins, ties go to the lowest id
- resolve_relays(): write-only filter, URL normalization, invalid URLs
- Missing and unusable membership records
- infer_identity() for backups without an explicit identity
"""

import pytest

from broadcastr.core.exceptions import MembershipMissingError
from broadcastr.services.common.membership import (
    find_membership,
    infer_identity,
    parse_relay_map,
    resolve_relays,
)
from tests.conftest import OTHER_PUBKEY, make_event, make_membership


RW = {"read": True, "write": True}
READ_ONLY = {"read": True, "write": False}


class TestFindMembership:
    def test_newest_wins(self, identity: str) -> None:
        old = make_membership(identity, {"wss://a.example.com": RW}, created_at=100)
        new = make_membership(identity, {"wss://b.example.com": RW}, created_at=200)
        assert find_membership([old, new], identity) is new
        assert find_membership([new, old], identity) is new

    def test_tie_goes_to_lowest_id(self, identity: str) -> None:
        low, high = sorted(
            (
                make_membership(identity, {"wss://a.example.com": RW}, created_at=100),
                make_membership(identity, {"wss://b.example.com": RW}, created_at=100),
            ),
            key=lambda e: e.id,
        )
        assert find_membership([high, low], identity) is low

    def test_ignores_other_authors_and_kinds(self, identity: str) -> None:
        events = [
            make_membership(OTHER_PUBKEY, {"wss://x.example.com": RW}, created_at=999),
            make_event(pubkey=identity, kind=1),
        ]
        assert find_membership(events, identity) is None


class TestResolveRelays:
    def test_only_write_relays(self, identity: str) -> None:
        record = make_membership(
            identity,
            {
                "wss://a.example.com": RW,
                "wss://b.example.com": READ_ONLY,
                "wss://c.example.com": {"write": True},
            },
        )
        assert resolve_relays([record], identity) == frozenset(
            {"wss://a.example.com", "wss://c.example.com"}
        )

    def test_newer_record_replaces_older(self, identity: str) -> None:
        r100 = make_membership(identity, {"wss://old.example.com": RW}, created_at=100)
        r200 = make_membership(identity, {"wss://new.example.com": RW}, created_at=200)
        assert resolve_relays([r200, r100], identity) == frozenset({"wss://new.example.com"})

    def test_urls_normalized_and_deduplicated(self, identity: str) -> None:
        record = make_membership(
            identity, {"wss://nos.lol/": RW, "wss://NOS.lol:443": RW, "ws://nos.lol": RW}
        )
        assert resolve_relays([record], identity) == frozenset({"wss://nos.lol"})

    def test_invalid_urls_skipped(self, identity: str) -> None:
        record = make_membership(identity, {"not a url": RW, "wss://ok.example.com": RW})
        assert resolve_relays([record], identity) == frozenset({"wss://ok.example.com"})

    def test_non_object_flags_skipped(self, identity: str) -> None:
        event = make_event(
            pubkey=identity,
            kind=3,
            content='{"wss://a.example.com": true, "wss://b.example.com": {"write": true}}',
        )
        assert resolve_relays([event], identity) == frozenset({"wss://b.example.com"})

    def test_no_write_relays_is_empty(self, identity: str) -> None:
        record = make_membership(identity, {"wss://a.example.com": READ_ONLY})
        assert resolve_relays([record], identity) == frozenset()

    def test_missing(self, identity: str) -> None:
        with pytest.raises(MembershipMissingError) as exc_info:
            resolve_relays([make_event()], identity)
        assert exc_info.value.identity == identity

    def test_newest_record_unusable(self, identity: str) -> None:
        good = make_membership(identity, {"wss://a.example.com": RW}, created_at=100)
        bad = make_event(pubkey=identity, kind=3, created_at=200, content="")
        with pytest.raises(MembershipMissingError, match="unusable membership record"):
            resolve_relays([good, bad], identity)


class TestParseRelayMap:
    def test_array_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be an object"):
            parse_relay_map("[]")

    def test_not_json(self) -> None:
        with pytest.raises(ValueError, match="not JSON"):
            parse_relay_map("{")


class TestInferIdentity:
    def test_author_of_newest_contacts(self, identity: str) -> None:
        events = [
            make_membership(OTHER_PUBKEY, {}, created_at=100),
            make_membership(identity, {}, created_at=200),
            make_event(kind=1, created_at=300),
        ]
        assert infer_identity(events) == identity

    def test_none_without_contacts(self) -> None:
        assert infer_identity([make_event(kind=1)]) is None
