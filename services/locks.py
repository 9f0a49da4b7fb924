# services/locks.py: per-row critical sections inside one process
from __future__ import annotations
import asyncio
import weakref
from typing import Any

# Entries vanish once no coroutine holds or waits on the lock.
_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def row_lock(kind: str, key: Any) -> asyncio.Lock:
    """
    Lock for one invoice/contract row. Acquire invoice before contract; nothing
    takes them in the other order.
    """
    name = f"{kind}:{key}"
    lock = _locks.get(name)
    if lock is None:
        lock = asyncio.Lock()
        _locks[name] = lock
    return lock


def invoice_lock(invoice_id: Any) -> asyncio.Lock:
    return row_lock("invoice", invoice_id)


def contract_lock(contract_id: Any) -> asyncio.Lock:
    return row_lock("contract", contract_id)
