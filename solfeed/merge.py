"""Cross-source deduplication of token snapshots."""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from .models import TokenSnapshot, TxnCounts
from .util import normalize_address

logger = logging.getLogger(__name__)

# Bookkeeping fields that describe the record rather than the token.
_SKIP_FIELDS = frozenset({"address", "source_id", "sources", "fetched_at"})
_MERGE_FIELDS: Tuple[str, ...] = tuple(
    f.name for f in fields(TokenSnapshot) if f.name not in _SKIP_FIELDS
)


def is_empty(value: Any) -> bool:
    """Return ``True`` when ``value`` counts as "not supplied"."""

    if value is None or value is False:
        return True
    if isinstance(value, TxnCounts):
        return value.is_empty()
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (int, float)):
        return value == 0
    return False


def _fill_missing(target: TokenSnapshot, incoming: TokenSnapshot) -> int:
    filled = 0
    for name in _MERGE_FIELDS:
        if not is_empty(getattr(target, name)):
            continue
        value = getattr(incoming, name)
        if is_empty(value):
            continue
        setattr(target, name, value)
        filled += 1
    return filled


def merge_snapshots(
    ordered_results: Iterable[Tuple[str, Sequence[TokenSnapshot]]],
) -> List[TokenSnapshot]:
    """Merge per-source snapshot lists into one list keyed by address.

    ``ordered_results`` must be in merge priority order.  The first sighting
    of an address is copied in as is; later sightings only fill fields that
    are still empty, so every populated field keeps the value of the highest
    priority source that supplied it.  Output order is first-seen order.
    """

    merged: Dict[str, TokenSnapshot] = {}
    for source_name, snapshots in ordered_results:
        for snapshot in snapshots or ():
            address = normalize_address(snapshot.address)
            if not address:
                continue
            existing = merged.get(address)
            if existing is None:
                record = snapshot.copy()
                record.address = address
                record.source_id = record.source_id or source_name
                record.sources = [source_name]
                merged[address] = record
                continue
            _fill_missing(existing, snapshot)
            if source_name not in existing.sources:
                existing.sources.append(source_name)
    logger.debug("Merged into %d unique tokens", len(merged))
    return list(merged.values())


__all__ = ["is_empty", "merge_snapshots"]
