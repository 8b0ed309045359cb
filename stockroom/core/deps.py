from collections.abc import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from stockroom.db.session import SessionLocal

SYSTEM_ACTOR = "system"


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_actor_id(x_actor_id: str | None = Header(default=None, max_length=36)) -> str:
    """Actor identity forwarded by the upstream auth layer."""
    if x_actor_id is None:
        return SYSTEM_ACTOR
    cleaned = x_actor_id.strip()
    return cleaned or SYSTEM_ACTOR
