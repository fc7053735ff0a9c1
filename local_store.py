"""
=============================================================================
LOCAL_STORE.PY — Almacén local del dispositivo
=============================================================================
Clave → JSON, síncrono, sobre la tabla local_blobs (SQLAlchemy).

Es lo primero que se lee al arrancar: con esto la app enseña los hábitos
al momento, sin esperar a la red. Después la sincronización completa
sobrescribe lo que haga falta.

Al cerrar sesión se borra TODO (clear_all).
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import sessionmaker

from database import SessionLocal
from models import LocalBlob

logger = logging.getLogger("habitloop.local_store")

# Claves conocidas
STORAGE_KEYS = {
    "habits": "habitloop.habits",
    "logs": "habitloop.logs",
    "gamification": "habitloop.gamification",
    "premium": "habitloop.premium",
    "sync_queue": "habitloop.sync.queue",
    "last_sync_at": "habitloop.sync.last_sync_at",
    "account": "habitloop.account",
}


class LocalStore:

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def get(self, key: str, default: Any = None) -> Any:
        db = self.session_factory()
        try:
            blob = db.query(LocalBlob).filter(LocalBlob.key == key).first()
            if blob is None or blob.value is None:
                return default
            return blob.value
        finally:
            db.close()

    def set(self, key: str, value: Any) -> None:
        db = self.session_factory()
        try:
            blob = db.query(LocalBlob).filter(LocalBlob.key == key).first()
            if blob is None:
                db.add(LocalBlob(key=key, value=value))
            else:
                blob.value = value
                blob.updated_at = datetime.utcnow()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def remove(self, key: str) -> None:
        db = self.session_factory()
        try:
            db.query(LocalBlob).filter(LocalBlob.key == key).delete()
            db.commit()
        finally:
            db.close()

    def keys(self) -> list[str]:
        db = self.session_factory()
        try:
            return [row.key for row in db.query(LocalBlob.key).order_by(LocalBlob.key).all()]
        finally:
            db.close()

    def clear_all(self) -> None:
        """Borra todo el estado de la cuenta (cierre de sesión / cambio de cuenta)"""
        db = self.session_factory()
        try:
            count = db.query(LocalBlob).delete()
            db.commit()
        finally:
            db.close()
        logger.info(f"🧹 Almacén local vaciado ({count} claves)")
