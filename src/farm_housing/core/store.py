"""
Document store client used by the lifecycle engine.

The engine needs only point reads/writes by key, atomic multi-document batch
writes, field queries, a full scan for network-wide repair, and change-feed
subscriptions. Documents are plain dicts; that is the interchange format.
"""

import copy
import dataclasses
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from farm_housing.core.errors import StoreUnavailableError, TransientStoreError
from farm_housing.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]
SnapshotHandler = Callable[[List[Document]], None]
Unsubscribe = Callable[[], None]

PUT = "put"
DELETE = "delete"


@dataclass(frozen=True)
class WriteOp:
    """One document write inside a batch."""

    collection: str
    id: str
    doc: Optional[Document] = None
    op: str = PUT

    def __post_init__(self) -> None:
        if self.op not in (PUT, DELETE):
            raise ValueError(f"Unknown write op '{self.op}'")
        if self.op == PUT and self.doc is None:
            raise ValueError(f"Put of {self.collection}/{self.id} without a document")


class DocumentStore(ABC):
    """Abstract document store client."""

    @abstractmethod
    def get(self, collection: str, id: str) -> Optional[Document]:
        """Read one document, or None if absent."""

    @abstractmethod
    def put(self, collection: str, id: str, doc: Document) -> None:
        """Create or replace one document."""

    @abstractmethod
    def delete(self, collection: str, id: str) -> None:
        """Delete one document (no-op if absent)."""

    @abstractmethod
    def batch_write(self, ops: List[WriteOp]) -> None:
        """Apply every op atomically: all or none."""

    @abstractmethod
    def query_by_field(self, collection: str, field: str, value: Any) -> List[Document]:
        """All documents whose field equals value."""

    @abstractmethod
    def scan(self, collection: str) -> List[Document]:
        """All documents in a collection."""

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        predicate: Optional[Predicate],
        handler: SnapshotHandler,
    ) -> Unsubscribe:
        """
        Receive a snapshot of matching documents after every write to collection.

        Returns:
            Callable that cancels the subscription
        """


class InMemoryDocumentStore(DocumentStore):
    """
    In-process document store.

    Documents are deep-copied on the way in and out so callers never share
    state with the store. Subscribers are notified after each commit, outside
    the store lock.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._subscriptions: List[tuple[str, Optional[Predicate], SnapshotHandler]] = []
        self._lock = threading.RLock()

    def get(self, collection: str, id: str) -> Optional[Document]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(id)
            return copy.deepcopy(doc) if doc is not None else None

    def put(self, collection: str, id: str, doc: Document) -> None:
        self.batch_write([WriteOp(collection, id, doc)])

    def delete(self, collection: str, id: str) -> None:
        self.batch_write([WriteOp(collection, id, op=DELETE)])

    def batch_write(self, ops: List[WriteOp]) -> None:
        if not ops:
            return

        with self._lock:
            for op in ops:
                docs = self._collections.setdefault(op.collection, {})
                if op.op == DELETE:
                    docs.pop(op.id, None)
                else:
                    docs[op.id] = copy.deepcopy(op.doc)

        logger.debug(f"Committed batch of {len(ops)} write(s)")
        self._notify({op.collection for op in ops})

    def query_by_field(self, collection: str, field: str, value: Any) -> List[Document]:
        with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._collections.get(collection, {}).values()
                if doc.get(field) == value
            ]

    def scan(self, collection: str) -> List[Document]:
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._collections.get(collection, {}).values()]

    def subscribe(
        self,
        collection: str,
        predicate: Optional[Predicate],
        handler: SnapshotHandler,
    ) -> Unsubscribe:
        entry = (collection, predicate, handler)
        with self._lock:
            self._subscriptions.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscriptions:
                    self._subscriptions.remove(entry)

        return unsubscribe

    def _notify(self, collections: set[str]) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s[0] in collections]

        for collection, predicate, handler in targets:
            snapshot = [d for d in self.scan(collection) if predicate is None or predicate(d)]
            try:
                handler(snapshot)
            except Exception as e:
                logger.error(
                    f"Error in subscription handler for '{collection}': {e}", exc_info=True
                )


class RetryingDocumentStore(DocumentStore):
    """
    Wraps a store so every call goes through one retry policy.

    Only TransientStoreError is retried. Once attempts are exhausted the call
    fails with StoreUnavailableError.
    """

    def __init__(self, inner: DocumentStore, policy: Optional[RetryPolicy] = None) -> None:
        self._inner = inner
        self._policy = dataclasses.replace(
            policy or RetryPolicy(), retry_on=(TransientStoreError,)
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _call(self, description: str, fn: Callable[[], Any]) -> Any:
        try:
            return self._policy.call(fn, description)
        except TransientStoreError as e:
            raise StoreUnavailableError(f"{description} failed: {e}") from e

    def get(self, collection: str, id: str) -> Optional[Document]:
        return self._call(f"get {collection}/{id}", lambda: self._inner.get(collection, id))

    def put(self, collection: str, id: str, doc: Document) -> None:
        self._call(f"put {collection}/{id}", lambda: self._inner.put(collection, id, doc))

    def delete(self, collection: str, id: str) -> None:
        self._call(f"delete {collection}/{id}", lambda: self._inner.delete(collection, id))

    def batch_write(self, ops: List[WriteOp]) -> None:
        self._call(f"batch of {len(ops)} write(s)", lambda: self._inner.batch_write(ops))

    def query_by_field(self, collection: str, field: str, value: Any) -> List[Document]:
        return self._call(
            f"query {collection}.{field}",
            lambda: self._inner.query_by_field(collection, field, value),
        )

    def scan(self, collection: str) -> List[Document]:
        return self._call(f"scan {collection}", lambda: self._inner.scan(collection))

    def subscribe(
        self,
        collection: str,
        predicate: Optional[Predicate],
        handler: SnapshotHandler,
    ) -> Unsubscribe:
        return self._inner.subscribe(collection, predicate, handler)
