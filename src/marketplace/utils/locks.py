"""Keyed mutual exclusion for balance- and state-affecting operations.

Each key (``order:<id>``, ``provider:<id>``, ...) maps to its own lock, so
operations on different orders never contend. A key's lock exists only while
someone holds or waits for it; the last one out removes it from the registry.

These locks serialize work inside one process only. Across workers, updates
to an existing aggregate are caught by the version check Protean runs on
save (``ExpectedVersionError``), and new payouts by the unique ledger slot
on ``Payout``. Neither takes a database row lock.
"""

import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager

_registry_lock = threading.Lock()
_locks: dict[str, "_KeyedLock"] = {}


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


def _checkout(key: str) -> _KeyedLock:
    with _registry_lock:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = _KeyedLock()
        entry.users += 1
        return entry


def _checkin(key: str, entry: _KeyedLock) -> None:
    with _registry_lock:
        entry.users -= 1
        if entry.users == 0 and _locks.get(key) is entry:
            del _locks[key]


@contextmanager
def _hold(key: str) -> Iterator[None]:
    entry = _checkout(key)
    try:
        with entry.lock:
            yield
    finally:
        _checkin(key, entry)


@contextmanager
def locked(*keys: str) -> Iterator[None]:
    """Hold the locks for every key, acquired in sorted order."""
    with ExitStack() as stack:
        for key in sorted(set(keys)):
            stack.enter_context(_hold(key))
        yield


def held_keys() -> list[str]:
    with _registry_lock:
        return sorted(_locks)


def order_key(order_id: str) -> str:
    return f"order:{order_id}"


def order_keys(order_ids: Iterable[str]) -> list[str]:
    return [order_key(order_id) for order_id in order_ids]


def provider_key(provider_id: str) -> str:
    return f"provider:{provider_id}"


def customer_key(customer_id: str) -> str:
    return f"customer:{customer_id}"


def transaction_key(transaction_id: str) -> str:
    return f"transaction:{transaction_id}"


def reset_locks() -> None:
    with _registry_lock:
        _locks.clear()
