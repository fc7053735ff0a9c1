"""
=============================================================================
MODELS.PY — Tablas de la Base de Datos
=============================================================================
Solo hay dos tablas. Todo lo demás (hábitos, registros, gamificación) viaja
como JSON: en el dispositivo como "blobs" por clave, y en el servicio remoto
como documentos por ruta.

  LOCAL_BLOBS
  └── key → value (JSON)            ← local_store.py

  REMOTE_DOCUMENTS
  └── (account_id, path) → data     ← main.py
      path = "habits/abc", "logs/abc-2026-10-14", "gamification/data"...
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from database import Base


# =============================================================================
# ===================== TABLA 1: LOCAL_BLOBS ==================================
# =============================================================================
# Almacén clave → JSON del dispositivo. Se usa para rehidratar el estado al
# arrancar en frío, antes de que termine el pull remoto.

class LocalBlob(Base):
    __tablename__ = "local_blobs"

    key = Column(String(200), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# ===================== TABLA 2: REMOTE_DOCUMENTS =============================
# =============================================================================
# Un documento por ruta y por cuenta. La última escritura gana.

class RemoteDocument(Base):
    __tablename__ = "remote_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(128), nullable=False, index=True)

    collection = Column(String(50), nullable=False)
    # collection → "habits", "logs", "gamification", "badges"
    doc_id = Column(String(200), nullable=False)
    data = Column(JSON, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # ── Restricción única: un documento por ruta ──
    __table_args__ = (
        UniqueConstraint("account_id", "collection", "doc_id", name="uq_account_path"),
    )
