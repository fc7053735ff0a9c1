"""
=============================================================================
REMOTE.PY — Frontera con el almacén remoto de documentos
=============================================================================
El almacén remoto guarda documentos JSON en rutas tipo:

    accounts/{cuenta}/habits/{id}
    accounts/{cuenta}/logs/{id}
    accounts/{cuenta}/gamification/data
    accounts/{cuenta}/badges/{id}

DocumentStore es el contrato (async). HttpDocumentStore lo implementa con
httpx contra el servicio de documentos de main.py.

Errores:
  RemoteStoreError
    ├── TransientRemoteError  → caído, timeout, 5xx, 429   (se reintenta)
    └── PermanentRemoteError  → validación, permisos, 4xx  (no se reintenta)
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal, Optional

import httpx

logger = logging.getLogger("habitloop.remote")

DOCSTORE_URL = os.getenv("DOCSTORE_URL", "http://localhost:8000")
DOCSTORE_TIMEOUT = float(os.getenv("DOCSTORE_TIMEOUT", "10"))


# =============================================================================
# ===================== ERRORES ===============================================
# =============================================================================

class RemoteStoreError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientRemoteError(RemoteStoreError):
    """Servicio no disponible o plazo agotado: puede funcionar si se reintenta"""


class PermanentRemoteError(RemoteStoreError):
    """Validación, permisos, ruta inválida: reintentar no lo arregla"""


def error_for_status(status_code: int, message: str) -> RemoteStoreError:
    if status_code == 429 or status_code >= 500:
        return TransientRemoteError(message, status_code)
    return PermanentRemoteError(message, status_code)


# =============================================================================
# ===================== OPERACIONES ===========================================
# =============================================================================

@dataclass
class WriteOp:
    """
    Una escritura pendiente contra el almacén remoto.

    kind="batch" agrupa varias escrituras (en `ops`) que se aplican juntas o
    ninguna; `path` es entonces la ruta por la que se encola.
    """
    kind: Literal["set", "update", "delete", "batch"]
    path: str
    data: Optional[dict] = field(default=None)
    ops: list = field(default_factory=list)

    def parts(self) -> list["WriteOp"]:
        """Las escrituras sueltas que contiene"""
        return list(self.ops) if self.kind == "batch" else [self]


def split_path(path: str) -> tuple[str, str]:
    """'accounts/A/habits/x' → ('A', 'habits/x');  'accounts/A/habits' → ('A', 'habits')"""
    parts = path.strip("/").split("/")
    if len(parts) < 3 or parts[0] != "accounts" or not parts[1]:
        raise PermanentRemoteError(f"Ruta inválida: {path!r}")
    return parts[1], "/".join(parts[2:])


# =============================================================================
# ===================== CONTRATO ==============================================
# =============================================================================

class DocumentStore(ABC):

    @abstractmethod
    async def get(self, path: str) -> Optional[dict]:
        """El documento, o None si no existe"""

    @abstractmethod
    async def set(self, path: str, doc: dict) -> None:
        """Crea o reemplaza el documento entero"""

    @abstractmethod
    async def update(self, path: str, partial: dict) -> None:
        """Mezcla los campos de primer nivel (crea el documento si no existe)"""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Borra el documento (no falla si no existía)"""

    @abstractmethod
    async def batch(self, ops: list[WriteOp]) -> None:
        """Aplica varias escrituras de una vez: todas o ninguna"""

    @abstractmethod
    async def list(self, collection: str) -> dict[str, dict]:
        """Todos los documentos de una colección: {id: datos}"""

    async def apply(self, op: WriteOp) -> None:
        if op.kind == "set":
            await self.set(op.path, op.data or {})
        elif op.kind == "update":
            await self.update(op.path, op.data or {})
        elif op.kind == "delete":
            await self.delete(op.path)
        elif op.kind == "batch":
            await self.batch(op.ops)
        else:
            raise PermanentRemoteError(f"Operación desconocida: {op.kind!r}")

    async def close(self) -> None:
        pass


# =============================================================================
# ===================== CLIENTE HTTP ==========================================
# =============================================================================

class HttpDocumentStore(DocumentStore):
    """
    Cliente del servicio de documentos (main.py):

      GET/PUT/PATCH/DELETE  /accounts/{cuenta}/documents/{ruta}
      GET                   /accounts/{cuenta}/collections/{colección}
      POST                  /accounts/{cuenta}/batch
    """

    def __init__(self, base_url: str = DOCSTORE_URL, timeout: float = DOCSTORE_TIMEOUT,
                 client: httpx.AsyncClient = None):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientRemoteError(f"Timeout en {method} {url}: {e}") from e
        except httpx.TransportError as e:
            raise TransientRemoteError(f"Servicio no disponible ({method} {url}): {e}") from e

        if response.is_success:
            return response

        detail = response.text
        try:
            detail = response.json().get("detail", detail)
        except ValueError:
            pass
        raise error_for_status(response.status_code, f"{method} {url} → {response.status_code}: {detail}")

    async def get(self, path):
        account, rest = split_path(path)
        try:
            response = await self._request("GET", f"/accounts/{account}/documents/{rest}")
        except PermanentRemoteError as e:
            if e.status_code == 404:
                return None
            raise
        return response.json()["data"]

    async def set(self, path, doc):
        account, rest = split_path(path)
        await self._request("PUT", f"/accounts/{account}/documents/{rest}", json={"data": doc})

    async def update(self, path, partial):
        account, rest = split_path(path)
        await self._request("PATCH", f"/accounts/{account}/documents/{rest}", json={"data": partial})

    async def delete(self, path):
        account, rest = split_path(path)
        await self._request("DELETE", f"/accounts/{account}/documents/{rest}")

    async def batch(self, ops):
        by_account: dict[str, list] = {}
        for op in ops:
            account, rest = split_path(op.path)
            by_account.setdefault(account, []).append(
                {"op": op.kind, "path": rest, "data": op.data}
            )
        for account, operations in by_account.items():
            await self._request("POST", f"/accounts/{account}/batch", json={"operations": operations})

    async def list(self, collection):
        account, name = split_path(collection)
        response = await self._request("GET", f"/accounts/{account}/collections/{name}")
        return {item["id"]: item["data"] for item in response.json()}

    async def close(self):
        await self.client.aclose()
