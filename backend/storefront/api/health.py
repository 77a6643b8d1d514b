from fastapi import APIRouter
from sqlalchemy import text

from storefront.db import engine
from storefront.utils.locking import entity_lock

router = APIRouter()


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    locks_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        db_ok = False
    try:
        with entity_lock("health", "probe", timeout=1):
            locks_ok = True
    except Exception:
        locks_ok = False

    return {
        "status": "ok" if db_ok and locks_ok else "degraded",
        "db": db_ok,
        "locks": locks_ok,
    }
