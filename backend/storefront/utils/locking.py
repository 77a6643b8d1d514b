"""
Exclusive access to a single entity (a cart, a product's stock, a user's carts).

Two layers are combined:

* a process-wide file lock keyed by entity, which serializes writers on every
  backend including SQLite (where ``SELECT ... FOR UPDATE`` is a no-op), and
* a row lock taken with ``with_for_update()`` inside the caller's transaction,
  which serializes writers across hosts on databases that support it.

The file lock must stay held until the transaction commits, so callers nest the
transaction inside the lock::

    with entity_lock("cart", cart_id):
        with atomic(db):
            cart = lock_row(db, Cart, cart_id)
            ...
"""
import logging
import os
from contextlib import ExitStack, contextmanager
from typing import Iterable, Iterator, Optional, Tuple, Type

from filelock import FileLock
from sqlalchemy.orm import Session

from storefront.config import settings

logger = logging.getLogger(__name__)


def _lock_path(kind: str, key) -> str:
    os.makedirs(settings.LOCK_DIR, exist_ok=True)
    safe_key = str(key).replace(os.sep, "_")
    return os.path.join(settings.LOCK_DIR, f"{kind}_{safe_key}.lock")


@contextmanager
def entity_lock(kind: str, key, timeout: Optional[float] = None) -> Iterator[None]:
    """Hold the exclusive lock for entity ``kind:key`` for the duration of the block.

    Raises filelock.Timeout if the lock cannot be acquired in time.
    """
    lock = FileLock(_lock_path(kind, key))
    with lock.acquire(timeout=settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout):
        logger.debug("acquired lock %s:%s", kind, key)
        yield
    logger.debug("released lock %s:%s", kind, key)


@contextmanager
def entity_locks(keys: Iterable[Tuple[str, object]]) -> Iterator[None]:
    """Acquire several entity locks in a stable order (deadlock-free)."""
    ordered = sorted(set(keys), key=lambda k: (k[0], str(k[1])))
    with ExitStack() as stack:
        for kind, key in ordered:
            stack.enter_context(entity_lock(kind, key))
        yield


def lock_row(session: Session, model: Type, ident):
    """SELECT ... FOR UPDATE a single row by primary key, refreshing any stale copy."""
    return (
        session.query(model)
        .filter(model.id == ident)
        .populate_existing()
        .with_for_update()
        .first()
    )
