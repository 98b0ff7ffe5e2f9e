"""Process-local TTL cache, partitioned by namespace.

Keys are ``(namespace, key)`` tuples, e.g. ``("quota", tenant_id)``. Writers
drop the affected entry (or the whole namespace) after committing.

Every invalidation also bumps a generation counter. A reader takes
``generation(key)`` before querying and passes it to ``put``; if an
invalidation happened in between, the value it read may predate the
writer's commit and is not stored.
"""

import itertools
import logging
import time
from collections import defaultdict
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60


@dataclass(frozen=True)
class _Entry:
    stored_at: float
    value: Any


_partitions: defaultdict[str, dict[Hashable, _Entry]] = defaultdict(dict)

# Monotonic across the process so a counter never repeats after clear()
_ticks = itertools.count(1)
_key_generations: dict[tuple[str, Hashable], int] = {}
_namespace_generations: dict[str, int] = {}
_epoch = 0


def generation(key: tuple[str, Hashable]) -> tuple[int, int, int]:
    namespace, _item = key
    return _epoch, _namespace_generations.get(namespace, 0), _key_generations.get(key, 0)


def get(key: tuple[str, Hashable], ttl: float = DEFAULT_TTL) -> Any | None:
    namespace, item = key
    partition = _partitions.get(namespace)
    entry = partition.get(item) if partition else None
    if entry is None:
        return None
    if time.monotonic() - entry.stored_at > ttl:
        partition.pop(item, None)
        return None
    return entry.value


def put(
    key: tuple[str, Hashable], value: Any, observed: tuple[int, int, int] | None = None,
) -> bool:
    """Store ``value``; with ``observed``, only if nothing invalidated ``key`` since."""
    if observed is not None and observed != generation(key):
        logger.debug("Skipped caching %s: invalidated while loading", key)
        return False
    namespace, item = key
    _partitions[namespace][item] = _Entry(time.monotonic(), value)
    return True


def invalidate(key: tuple[str, Hashable]) -> None:
    namespace, item = key
    _key_generations[key] = next(_ticks)
    partition = _partitions.get(namespace)
    if partition is not None:
        partition.pop(item, None)


def invalidate_namespace(namespace: str) -> None:
    _namespace_generations[namespace] = next(_ticks)
    dropped = _partitions.pop(namespace, None)
    if dropped:
        logger.debug("Dropped %d cached %s entries", len(dropped), namespace)


def clear() -> None:
    global _epoch
    _partitions.clear()
    _epoch = next(_ticks)
