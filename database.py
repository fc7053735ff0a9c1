"""
=============================================================================
DATABASE.PY — Configuración de la Base de Datos
=============================================================================
Este archivo configura la conexión a la base de datos que usan dos piezas:

  - El almacén local (local_store.py): la "caché" del dispositivo, donde se
    guarda el estado de la cuenta para poder arrancar sin red.
  - El servicio de documentos (main.py): la referencia del almacén remoto.

En DESARROLLO: usa SQLite (un archivo .db)
En PRODUCCIÓN: usa PostgreSQL si existe la variable DATABASE_URL.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./habitloop.db")

# SQLAlchemy necesita "postgresql+psycopg://" (driver psycopg v3)
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)


def make_engine(url: str = DATABASE_URL):
    """
    Crea un engine para la URL dada.

    check_same_thread=False → solo para SQLite, que por defecto no permite
    usar la conexión desde otro hilo (el servidor ASGI sí lo hace).
    Para "sqlite://" (en memoria) usamos StaticPool, así todas las sesiones
    ven la misma base de datos en vez de una vacía cada vez.
    """
    engine_args = {}
    if url.startswith("sqlite"):
        engine_args["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            from sqlalchemy.pool import StaticPool
            engine_args["poolclass"] = StaticPool
    return create_engine(url, echo=False, **engine_args)


# ─────────────────────────────────────────────────────────────────────────────
# ENGINE Y SESIONES POR DEFECTO
# ─────────────────────────────────────────────────────────────────────────────

engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Todos los modelos (LocalBlob, RemoteDocument) heredan de esta clase.
Base = declarative_base()


def get_db():
    """
    Dependencia de FastAPI: abre una sesión y la cierra al terminar.

      @app.get("/algo")
      def mi_endpoint(db: Session = Depends(get_db)):
          ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Crea todas las tablas si no existen.
    Importa models para que las tablas queden registradas en Base.metadata.
    """
    import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
