"""Document-collection service abstractions with in-memory and SQLite implementations.

Paths are hierarchical strings such as ``users/<uid>/closet``. Every write to a
path pushes the full, materialised contents of that path to each open
:class:`Subscription` on it. Consumers iterate a subscription to receive those
snapshots; nothing is diffed.
"""
from __future__ import annotations

import asyncio
import copy
import json
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple


class DocumentServiceError(RuntimeError):
    """Raised when the document service cannot complete a read or write."""


class DocumentNotFoundError(DocumentServiceError, LookupError):
    """Raised when updating or deleting a document id that does not exist."""


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()
_CLOSED = object()


def _validate_path(path: str) -> str:
    segments = str(path).split("/")
    if not path or any(not segment for segment in segments):
        raise ValueError(f"Invalid collection path: {path!r}")
    return path


def _order(documents: List[Dict[str, Any]], order_by: str | None, descending: bool) -> List[Dict[str, Any]]:
    if not order_by:
        return documents
    present = [doc for doc in documents if doc.get(order_by) is not None]
    missing = [doc for doc in documents if doc.get(order_by) is None]
    present.sort(key=lambda doc: doc[order_by], reverse=descending)
    return present + missing


class Subscription:
    """Live watch over one collection path.

    The current contents are queued on creation. ``close`` is synchronous and
    idempotent; after it returns no further snapshot is yielded.
    """

    def __init__(
        self,
        path: str,
        order_by: str | None = None,
        descending: bool = False,
        on_close: Callable[["Subscription"], None] | None = None,
    ) -> None:
        self.path = path
        self.order_by = order_by
        self.descending = descending
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> bool:
        return not self._queue.empty()

    def push(self, documents: List[Dict[str, Any]]) -> None:
        if not self._closed:
            self._queue.put_nowait(documents)

    def fail(self, exc: BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(exc)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._on_close:
            self._on_close(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> List[Dict[str, Any]]:
        item = await self._queue.get()
        if self._closed or item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self.close()
            raise item
        return item


class DocumentService:
    """Persistence interface for document collections with live subscriptions.

    Subclasses provide the four storage primitives; writes, server timestamps
    and change notification are shared.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def _read_all(self, path: str) -> List[Tuple[str, Dict[str, Any]]]:
        raise NotImplementedError

    def _read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def _write(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _remove(self, path: str, doc_id: str) -> bool:
        raise NotImplementedError

    def _resolve(self, value: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return self.clock()
        if isinstance(value, dict):
            return {key: self._resolve(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._resolve(item) for item in value]
        return value

    def _prepare(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = {key: value for key, value in fields.items() if key != "id"}
        return self._resolve(data)

    async def add(self, path: str, fields: Dict[str, Any]) -> str:
        _validate_path(path)
        doc_id = uuid.uuid4().hex[:20]
        self._write(path, doc_id, self._prepare(fields))
        self._notify(path)
        return doc_id

    async def set(self, path: str, doc_id: str, fields: Dict[str, Any], merge: bool = False) -> None:
        _validate_path(path)
        data = self._prepare(fields)
        if merge:
            data = {**(self._read(path, doc_id) or {}), **data}
        self._write(path, doc_id, data)
        self._notify(path)

    async def update(self, path: str, doc_id: str, fields: Dict[str, Any]) -> None:
        _validate_path(path)
        existing = self._read(path, doc_id)
        if existing is None:
            raise DocumentNotFoundError(f"No document {doc_id} in {path}")
        self._write(path, doc_id, {**existing, **self._prepare(fields)})
        self._notify(path)

    async def delete(self, path: str, doc_id: str) -> None:
        _validate_path(path)
        if not self._remove(path, doc_id):
            raise DocumentNotFoundError(f"No document {doc_id} in {path}")
        self._notify(path)

    async def get(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        _validate_path(path)
        data = self._read(path, doc_id)
        return {**copy.deepcopy(data), "id": doc_id} if data is not None else None

    async def list_documents(
        self, path: str, order_by: str | None = None, descending: bool = False
    ) -> List[Dict[str, Any]]:
        _validate_path(path)
        return self._snapshot(path, order_by, descending)

    def subscribe(self, path: str, order_by: str | None = None, descending: bool = False) -> Subscription:
        """Open a live watch; the first snapshot is queued immediately."""

        _validate_path(path)
        subscription = Subscription(path, order_by=order_by, descending=descending, on_close=self._release)
        self._subscriptions.setdefault(path, []).append(subscription)
        subscription.push(self._snapshot(path, order_by, descending))
        return subscription

    def subscriber_count(self, path: str | None = None) -> int:
        if path is not None:
            return len(self._subscriptions.get(path, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    def fail_subscriptions(self, path: str, exc: BaseException) -> None:
        """Deliver ``exc`` through the error channel of every watch on ``path``."""

        for subscription in list(self._subscriptions.get(path, [])):
            subscription.fail(exc)

    def _release(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.path, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.path, None)

    def _notify(self, path: str) -> None:
        for subscription in list(self._subscriptions.get(path, [])):
            subscription.push(self._snapshot(path, subscription.order_by, subscription.descending))

    def _snapshot(self, path: str, order_by: str | None, descending: bool) -> List[Dict[str, Any]]:
        documents = [{**copy.deepcopy(data), "id": doc_id} for doc_id, data in self._read_all(path)]
        return _order(documents, order_by, descending)


class InMemoryDocumentService(DocumentService):
    """Process-local document store, used for tests and the local demo."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        super().__init__(clock=clock)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _read_all(self, path: str) -> List[Tuple[str, Dict[str, Any]]]:
        return list(self._collections.get(path, {}).items())

    def _read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self._collections.get(path, {}).get(doc_id)

    def _write(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._collections.setdefault(path, {})[doc_id] = copy.deepcopy(data)

    def _remove(self, path: str, doc_id: str) -> bool:
        return self._collections.get(path, {}).pop(doc_id, None) is not None

    def seed(self, path: str, documents: Iterable[Dict[str, Any]]) -> None:
        """Insert documents keyed by their ``id`` without notifying watchers."""

        for document in documents:
            doc_id = str(document["id"])
            self._write(path, doc_id, self._prepare(document))


class SQLiteDocumentService(DocumentService):
    """SQLite-backed document store; documents are JSON payloads keyed by path and id."""

    def __init__(self, database_path: str | Path = "data/documents.db", clock: Callable[[], float] = time.time) -> None:
        super().__init__(clock=clock)
        self.database_path = Path(database_path)
        if self.database_path.parent and not self.database_path.parent.exists():
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    UNIQUE (path, doc_id)
                );
                """
            )

    def _read_all(self, path: str) -> List[Tuple[str, Dict[str, Any]]]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT doc_id, data FROM documents WHERE path = ? ORDER BY seq", (path,)
                ).fetchall()
        except sqlite3.Error as exc:
            raise DocumentServiceError(f"Failed to read {path}: {exc}") from exc
        return [(row["doc_id"], json.loads(row["data"])) for row in rows]

    def _read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT data FROM documents WHERE path = ? AND doc_id = ?", (path, doc_id)
                ).fetchone()
        except sqlite3.Error as exc:
            raise DocumentServiceError(f"Failed to read {path}/{doc_id}: {exc}") from exc
        return json.loads(row["data"]) if row else None

    def _write(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO documents(path, doc_id, data) VALUES (?, ?, ?)\n"
                    "ON CONFLICT(path, doc_id) DO UPDATE SET data=excluded.data",
                    (path, doc_id, json.dumps(data)),
                )
        except sqlite3.Error as exc:
            raise DocumentServiceError(f"Failed to write {path}/{doc_id}: {exc}") from exc

    def _remove(self, path: str, doc_id: str) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM documents WHERE path = ? AND doc_id = ?", (path, doc_id)
                )
                return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise DocumentServiceError(f"Failed to delete {path}/{doc_id}: {exc}") from exc


__all__ = [
    "DocumentNotFoundError",
    "DocumentService",
    "DocumentServiceError",
    "InMemoryDocumentService",
    "SERVER_TIMESTAMP",
    "SQLiteDocumentService",
    "Subscription",
]
