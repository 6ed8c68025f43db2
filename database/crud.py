import json
from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session
from typing import Optional

from .models import WebSession


# ==================== WEB SESSION CRUD ====================

def get_web_session(db: Session, session_id: str) -> Optional[WebSession]:
    result = db.execute(
        select(WebSession).where(WebSession.session_id == session_id)
    )
    return result.scalar_one_or_none()


def create_web_session(db: Session, session_id: str, data: dict, expires_at: float) -> WebSession:
    """Insert a new record. Raises IntegrityError if the id is already taken."""
    record = WebSession(
        session_id=session_id,
        data=json.dumps(data),
        expires_at=expires_at,
        version=1
    )
    db.add(record)
    db.commit()
    return record


def update_web_session(
    db: Session,
    session_id: str,
    data: dict,
    expires_at: float,
    seen_version: int
) -> bool:
    """
    Write data only if nobody else wrote since seen_version was read.
    Returns False on a concurrent modification.
    """
    result = db.execute(
        update(WebSession)
        .where(WebSession.session_id == session_id, WebSession.version == seen_version)
        .values(data=json.dumps(data), expires_at=expires_at, version=seen_version + 1)
    )
    db.commit()
    return result.rowcount == 1


def touch_web_session(db: Session, session_id: str, expires_at: float):
    """Push expiry forward without bumping the version."""
    db.execute(
        update(WebSession)
        .where(WebSession.session_id == session_id)
        .values(expires_at=expires_at)
    )
    db.commit()


def delete_web_session(db: Session, session_id: str) -> bool:
    result = db.execute(
        delete(WebSession).where(WebSession.session_id == session_id)
    )
    db.commit()
    return result.rowcount > 0


def delete_expired_web_sessions(db: Session, now: float) -> int:
    result = db.execute(
        delete(WebSession).where(WebSession.expires_at <= now)
    )
    db.commit()
    return result.rowcount


def load_data(record: WebSession) -> dict:
    """Decode the JSON data column, tolerating a corrupted value."""
    if not record.data:
        return {}
    try:
        data = json.loads(record.data)
    except (json.JSONDecodeError, TypeError):
        return {}
    return data if isinstance(data, dict) else {}
