import asyncio
import uuid
import weakref

# Entries disappear once no coroutine holds or awaits the lock.
_owner_locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


def owner_lock(owner_id: uuid.UUID) -> asyncio.Lock:
    lock = _owner_locks.get(owner_id)
    if lock is None:
        lock = asyncio.Lock()
        _owner_locks[owner_id] = lock
    return lock
