import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from streambot.logging_config import get_logger
from streambot.models.session_credential import SessionCredential
from streambot.services.result import Result

logger = get_logger("session_store")


def get_value(db: Session, namespace: str, key: str) -> Optional[Any]:
    row = (
        db.query(SessionCredential)
        .filter(SessionCredential.namespace == namespace, SessionCredential.key == key)
        .first()
    )
    if row is None:
        return None
    try:
        return json.loads(row.value)
    except ValueError:
        logger.warning(f"Corrupted session value: {namespace}/{key}")
        return None


def put_value(db: Session, namespace: str, key: str, value: Any) -> Result[bool]:
    """Insert or replace one credential entry."""
    try:
        encoded = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        return Result.failure(f"Value is not JSON serializable: {e}", code="invalid_value")

    try:
        row = db.get(SessionCredential, (namespace, key))
        now = datetime.now(timezone.utc)
        if row is None:
            db.add(SessionCredential(namespace=namespace, key=key, value=encoded, updated_at=now))
        else:
            row.value = encoded
            row.updated_at = now
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to persist session value {namespace}/{key}: {e}")
        return Result.failure(str(e), code="db_error")
    return Result.success(True)


def delete_value(db: Session, namespace: str, key: str) -> Result[bool]:
    try:
        deleted = (
            db.query(SessionCredential)
            .filter(SessionCredential.namespace == namespace, SessionCredential.key == key)
            .delete()
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete session value {namespace}/{key}: {e}")
        return Result.failure(str(e), code="db_error")
    return Result.success(deleted > 0)


def clear_namespace(db: Session, namespace: str) -> int:
    """Drop every credential of a namespace (forces a new QR pairing)."""
    deleted = db.query(SessionCredential).filter(SessionCredential.namespace == namespace).delete()
    db.commit()
    logger.info(f"Session namespace cleared: {namespace}", extra={"context": {"deleted": deleted}})
    return deleted
