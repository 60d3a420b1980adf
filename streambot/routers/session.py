from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from streambot.database import get_db
from streambot.routers.webhook import require_webhook_secret
from streambot.services import session_store

router = APIRouter(prefix="/sessions", tags=["sessions"], dependencies=[Depends(require_webhook_secret)])


@router.get("/{namespace}/{key}")
def get_session_value(namespace: str, key: str, db: Session = Depends(get_db)):
    value = session_store.get_value(db, namespace, key)
    if value is None:
        raise HTTPException(status_code=404, detail="Not found")
    return {"namespace": namespace, "key": key, "value": value}


@router.put("/{namespace}/{key}")
def put_session_value(namespace: str, key: str, value: Any = Body(..., embed=True), db: Session = Depends(get_db)):
    result = session_store.put_value(db, namespace, key, value)
    if not result.ok:
        status_code = 400 if result.error_code == "invalid_value" else 500
        raise HTTPException(status_code=status_code, detail=result.error)
    return {"ok": True}


@router.delete("/{namespace}/{key}")
def delete_session_value(namespace: str, key: str, db: Session = Depends(get_db)):
    result = session_store.delete_value(db, namespace, key)
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.error)
    return {"ok": True, "deleted": result.value}


@router.delete("/{namespace}")
def clear_session_namespace(namespace: str, db: Session = Depends(get_db)):
    return {"ok": True, "deleted": session_store.clear_namespace(db, namespace)}
