"""
=============================================================================
MAIN.PY — Servicio de documentos de HabitLoop
=============================================================================
El almacén remoto de referencia: guarda los documentos JSON de cada cuenta
y es contra quien habla remote.HttpDocumentStore.

Organización por secciones:
  1. HEALTH       → ¿está vivo?
  2. DOCUMENTS    → leer, escribir, mezclar y borrar un documento
  3. COLLECTIONS  → todos los documentos de una colección (para el pull)
  4. BATCH        → varias escrituras en una sola transacción
  5. EXPORT       → todo lo de una cuenta de golpe

Rutas de documento (relativas a la cuenta): "{colección}/{id}"
  habits/{id}, logs/{id}, badges/{id}, gamification/data

La última escritura gana. PATCH mezcla los campos de primer nivel.
"""

import logging
import traceback
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Depends, HTTPException, status, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db, init_db
from models import RemoteDocument
from schemas import BatchRequest, DocumentResponse, DocumentWrite

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("habitloop.api")

COLLECTIONS = {"habits", "logs", "badges", "gamification"}


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Al arrancar: crear tablas si no existen"""
    logger.info("🚀 Arrancando servicio de documentos...")
    init_db()
    logger.info("✅ Base de datos inicializada")

    yield  # ← La aplicación está corriendo

    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="HabitLoop Document Service",
    description="Almacén remoto de documentos para la sincronización offline-first",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# GLOBAL ERROR HANDLER
# ─────────────────────────────────────────────────────────────────────────────
# Cualquier error no manejado → JSON con el error real en vez de un genérico
# "Internal Server Error"

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_msg = str(exc)
    error_trace = traceback.format_exc()
    logger.error(f"❌ Error no manejado en {request.url}: {error_msg}\n{error_trace}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": error_msg,
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


# ─────────────────────────────────────────────────────────────────────────────
# AYUDANTES
# ─────────────────────────────────────────────────────────────────────────────

def parse_path(path: str) -> tuple[str, str]:
    """'habits/abc' → ('habits', 'abc'). Solo dos niveles y colecciones conocidas."""
    parts = path.strip("/").split("/")
    if len(parts) != 2 or not all(parts):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Ruta inválida: {path}")
    collection, doc_id = parts
    if collection not in COLLECTIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Colección desconocida: {collection}")
    return collection, doc_id


def find_document(db: Session, account_id: str, collection: str, doc_id: str):
    return db.query(RemoteDocument).filter(
        RemoteDocument.account_id == account_id,
        RemoteDocument.collection == collection,
        RemoteDocument.doc_id == doc_id,
    ).first()


def to_response(doc: RemoteDocument) -> DocumentResponse:
    return DocumentResponse(
        path=f"{doc.collection}/{doc.doc_id}",
        data=doc.data,
        updated_at=doc.updated_at,
    )


def write_document(db: Session, account_id: str, path: str, data: dict, merge: bool = False):
    """set (merge=False) o update (merge=True). Sin commit: lo hace quien llama."""
    collection, doc_id = parse_path(path)
    doc = find_document(db, account_id, collection, doc_id)
    if doc is None:
        doc = RemoteDocument(account_id=account_id, collection=collection,
                             doc_id=doc_id, data=dict(data))
        db.add(doc)
    else:
        # Diccionario NUEVO: así SQLAlchemy detecta el cambio en la columna JSON
        doc.data = {**doc.data, **data} if merge else dict(data)
        doc.updated_at = datetime.utcnow()
    return doc


def delete_document(db: Session, account_id: str, path: str) -> bool:
    collection, doc_id = parse_path(path)
    doc = find_document(db, account_id, collection, doc_id)
    if doc is None:
        return False
    db.delete(doc)
    return True


# =============================================================================
# ===================== SECCIÓN 1: HEALTH =====================================
# =============================================================================

@app.get("/", tags=["Health"])
def health():
    return {"status": "ok", "service": "habitloop-documents"}


# =============================================================================
# ===================== SECCIÓN 2: DOCUMENTS ==================================
# =============================================================================

@app.get("/accounts/{account_id}/documents/{path:path}", response_model=DocumentResponse, tags=["Documents"])
def get_document(account_id: str, path: str, db: Session = Depends(get_db)):
    collection, doc_id = parse_path(path)
    doc = find_document(db, account_id, collection, doc_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Documento no encontrado")
    return to_response(doc)


@app.put("/accounts/{account_id}/documents/{path:path}", response_model=DocumentResponse, tags=["Documents"])
def set_document(account_id: str, path: str, payload: DocumentWrite, db: Session = Depends(get_db)):
    doc = write_document(db, account_id, path, payload.data)
    db.commit()
    db.refresh(doc)
    return to_response(doc)


@app.patch("/accounts/{account_id}/documents/{path:path}", response_model=DocumentResponse, tags=["Documents"])
def update_document(account_id: str, path: str, payload: DocumentWrite, db: Session = Depends(get_db)):
    doc = write_document(db, account_id, path, payload.data, merge=True)
    db.commit()
    db.refresh(doc)
    return to_response(doc)


@app.delete("/accounts/{account_id}/documents/{path:path}", tags=["Documents"])
def remove_document(account_id: str, path: str, db: Session = Depends(get_db)):
    deleted = delete_document(db, account_id, path)
    db.commit()
    return {"deleted": deleted}


# =============================================================================
# ===================== SECCIÓN 3: COLLECTIONS ================================
# =============================================================================

@app.get("/accounts/{account_id}/collections/{collection}", tags=["Collections"])
def list_collection(account_id: str, collection: str, db: Session = Depends(get_db)):
    if collection not in COLLECTIONS:
        raise HTTPException(status_code=400, detail=f"Colección desconocida: {collection}")
    docs = db.query(RemoteDocument).filter(
        RemoteDocument.account_id == account_id,
        RemoteDocument.collection == collection,
    ).order_by(RemoteDocument.doc_id).all()
    return [
        {"id": d.doc_id, "data": d.data, "updated_at": d.updated_at.isoformat()}
        for d in docs
    ]


# =============================================================================
# ===================== SECCIÓN 4: BATCH ======================================
# =============================================================================

@app.post("/accounts/{account_id}/batch", tags=["Batch"])
def batch_write(account_id: str, payload: BatchRequest, db: Session = Depends(get_db)):
    """Todo o nada: si una operación falla, no se aplica ninguna"""
    try:
        for op in payload.operations:
            if op.op == "delete":
                delete_document(db, account_id, op.path)
            else:
                if op.data is None:
                    raise HTTPException(status_code=422, detail=f"Falta data en {op.op} {op.path}")
                write_document(db, account_id, op.path, op.data, merge=(op.op == "update"))
            # Las siguientes operaciones deben ver esta
            db.flush()
        db.commit()
    except HTTPException:
        db.rollback()
        raise

    logger.info(f"📦 Batch de {len(payload.operations)} operaciones → {account_id}")
    return {"applied": len(payload.operations)}


# =============================================================================
# ===================== SECCIÓN 5: EXPORT =====================================
# =============================================================================

@app.get("/accounts/{account_id}/export", tags=["Export"])
def export_account(account_id: str, db: Session = Depends(get_db)):
    """Exporta TODOS los documentos de la cuenta, agrupados por colección"""
    docs = db.query(RemoteDocument).filter(
        RemoteDocument.account_id == account_id
    ).order_by(RemoteDocument.collection, RemoteDocument.doc_id).all()

    grouped = {name: {} for name in sorted(COLLECTIONS)}
    for d in docs:
        grouped[d.collection][d.doc_id] = d.data
    return {
        "export_date": datetime.utcnow().isoformat(),
        "account_id": account_id,
        "documents": grouped,
    }
