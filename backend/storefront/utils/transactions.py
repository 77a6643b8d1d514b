from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


@contextmanager
def smart_transaction(session: Session) -> Iterator:
    """
    Context manager that begins a transaction on the given Session.
    If a transaction is already active, start a nested SAVEPOINT (begin_nested).
    Otherwise start a normal transaction (begin).
    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    if session.in_transaction():
        cm = session.begin_nested()
    else:
        cm = session.begin()
    with cm:
        yield


@contextmanager
def atomic(session: Session) -> Iterator:
    """
    Run the block as one unit of work that is committed on exit.

    An implicit read-only transaction left open by earlier queries is committed
    first, so the block gets its own top-level transaction instead of a
    SAVEPOINT inside the caller's.

    If the session already holds pending changes (new, dirty or deleted
    objects), the block runs as a nested SAVEPOINT (smart_transaction) and
    nothing is committed on exit: the caller's own commit makes the work
    durable. An entity lock around such a block is released before that
    commit, so it no longer serializes the write. Commit or roll back pending
    changes before entering a locked section.
    """
    if session.in_transaction() and not (session.new or session.dirty or session.deleted):
        session.commit()
    with smart_transaction(session):
        yield
