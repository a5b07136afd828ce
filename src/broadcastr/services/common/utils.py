"""Shared utility functions for Broadcastr passes.

See Also:
    [configs][broadcastr.services.common.configs]: Pass, network and filter
        configuration models.
    [batching][broadcastr.services.common.batching]: The batch skeleton the
        coordinators run on.
"""

from __future__ import annotations

from collections.abc import Iterable

from broadcastr.core.logger import Logger
from broadcastr.models.relay import Relay, parse_relays
from broadcastr.models.relay_status import RelayPhase, RelayStatusEntry


def coerce_relays(relays: Iterable[Relay | str], logger: Logger) -> list[Relay]:
    """Normalize a mix of [Relay][broadcastr.models.relay.Relay] objects and URL strings.

    Duplicates (after normalization) are dropped and invalid URLs are skipped
    with a warning, so a pass never contacts the same relay twice.
    """
    result: list[Relay] = []
    seen: set[str] = set()
    raw_urls: list[str] = []
    for item in relays:
        if isinstance(item, Relay):
            if item.url not in seen:
                seen.add(item.url)
                result.append(item)
        else:
            raw_urls.append(item)

    parsed, rejected = parse_relays(raw_urls)
    for raw, reason in rejected:
        logger.warning("relay_url_invalid", url=raw, reason=reason)
    for relay in parsed:
        if relay.url not in seen:
            seen.add(relay.url)
            result.append(relay)
    return result


def summarize_status(entries: Iterable[RelayStatusEntry]) -> dict[str, int]:
    """Aggregate a status snapshot into ``{"done": n, "error": n, "events": n, ...}``."""
    summary = {phase.value: 0 for phase in RelayPhase}
    summary["events"] = 0
    for entry in entries:
        summary[entry.phase.value] += 1
        summary["events"] += entry.count
    return summary
