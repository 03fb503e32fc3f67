"""
Document store abstraction (persistence primitives).

The lifecycle and version-control services talk to persistence only through the
`DocumentStore` protocol defined here:

- get(collection, id) -> document | None
- update(collection, id, fields, expected_version=None) -> updated document
- query(collection, filters) -> list of documents (equality filters)
- create(collection, fields, document_id=None) -> created document
- batch() -> DocumentBatch with update/set and an all-or-nothing commit()

Documents are plain dicts carrying their `id` and an integer `version`. Every
write increments `version`. Passing `expected_version` turns a write into a
compare-and-swap: a mismatch raises ConflictError and nothing is written. For
`DocumentBatch.set`, an expected version of 0 means "document must not exist".

`InMemoryDocumentStore` is the reference implementation used by tests and local
runs; `repositories.supabase_store.SupabaseDocumentStore` is the production one.
"""

from __future__ import annotations

import copy
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol
from uuid import uuid4

from domain.errors import ConflictError, NotFoundError, StoreError

Document = Dict[str, Any]

# Keys owned by the store; callers never write them directly.
RESERVED_KEYS = frozenset({"id", "version"})


@dataclass(frozen=True, slots=True)
class BatchOperation:
    """One queued write inside a batch."""

    op: str  # "update" (document must exist) or "set" (upsert)
    collection: str
    document_id: str
    fields: Mapping[str, Any]
    expected_version: Optional[int] = None


class DocumentBatch(Protocol):
    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> "DocumentBatch": ...

    def set(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> "DocumentBatch": ...

    def commit(self) -> None: ...


class DocumentStore(Protocol):
    def get(self, collection: str, document_id: str) -> Optional[Document]: ...

    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Document: ...

    def query(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> List[Document]: ...

    def create(
        self,
        collection: str,
        fields: Mapping[str, Any],
        document_id: Optional[str] = None,
    ) -> Document: ...

    def batch(self) -> DocumentBatch: ...


def check_writable_fields(fields: Mapping[str, Any]) -> None:
    reserved = RESERVED_KEYS.intersection(fields)
    if reserved:
        raise ValueError(f"Reserved document keys cannot be written: {sorted(reserved)}")


@dataclass
class BufferedBatch:
    """
    Collects operations and hands them to a commit callback in one call.

    Shared by the in-memory and Supabase stores; the callback decides how the
    operations are applied atomically.
    """

    _commit: Any
    operations: List[BatchOperation] = field(default_factory=list)
    committed: bool = False

    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> "BufferedBatch":
        return self._add("update", collection, document_id, fields, expected_version)

    def set(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> "BufferedBatch":
        return self._add("set", collection, document_id, fields, expected_version)

    def _add(
        self,
        op: str,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int],
    ) -> "BufferedBatch":
        if self.committed:
            raise StoreError("Batch has already been committed")
        check_writable_fields(fields)
        self.operations.append(
            BatchOperation(
                op=op,
                collection=collection,
                document_id=document_id,
                fields=copy.deepcopy(dict(fields)),
                expected_version=expected_version,
            )
        )
        return self

    def commit(self) -> None:
        if self.committed:
            raise StoreError("Batch has already been committed")
        self.committed = True
        if self.operations:
            self._commit(list(self.operations))


class InMemoryDocumentStore:
    """
    Thread-safe in-process document store.

    All primitives run under one lock and copy documents in and out, so callers
    never share mutable state with the store. `call_counts` tallies each
    primitive for tests that assert how often the store was hit.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.Lock()
        self.call_counts: Counter[str] = Counter()

    def _documents(self, collection: str) -> Dict[str, Document]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        with self._lock:
            self.call_counts["get"] += 1
            doc = self._documents(collection).get(document_id)
            return copy.deepcopy(doc) if doc is not None else None

    def query(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> List[Document]:
        filters = dict(filters or {})
        with self._lock:
            self.call_counts["query"] += 1
            return [
                copy.deepcopy(doc)
                for doc in self._documents(collection).values()
                if all(doc.get(key) == value for key, value in filters.items())
            ]

    def create(
        self,
        collection: str,
        fields: Mapping[str, Any],
        document_id: Optional[str] = None,
    ) -> Document:
        check_writable_fields(fields)
        document_id = document_id or str(uuid4())
        with self._lock:
            self.call_counts["create"] += 1
            docs = self._documents(collection)
            if document_id in docs:
                raise ConflictError(f"Document already exists: {collection}/{document_id}")
            doc = {**copy.deepcopy(dict(fields)), "id": document_id, "version": 1}
            docs[document_id] = doc
            return copy.deepcopy(doc)

    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Document:
        check_writable_fields(fields)
        operation = BatchOperation(
            op="update",
            collection=collection,
            document_id=document_id,
            fields=copy.deepcopy(dict(fields)),
            expected_version=expected_version,
        )
        with self._lock:
            self.call_counts["update"] += 1
            self._validate(operation)
            return copy.deepcopy(self._apply(operation))

    def batch(self) -> BufferedBatch:
        return BufferedBatch(_commit=self._commit_batch)

    def _commit_batch(self, operations: List[BatchOperation]) -> None:
        with self._lock:
            self.call_counts["commit"] += 1
            # Validate every precondition before touching anything: all-or-nothing.
            for operation in operations:
                self._validate(operation)
            for operation in operations:
                self._apply(operation)

    def _validate(self, operation: BatchOperation) -> None:
        existing = self._documents(operation.collection).get(operation.document_id)
        if operation.op == "update" and existing is None:
            raise NotFoundError("Document", f"{operation.collection}/{operation.document_id}")
        if operation.expected_version is None:
            return
        current_version = existing["version"] if existing is not None else 0
        if current_version != operation.expected_version:
            raise ConflictError(
                f"Version conflict on {operation.collection}/{operation.document_id}: "
                f"expected {operation.expected_version}, found {current_version}"
            )

    def _apply(self, operation: BatchOperation) -> Document:
        docs = self._documents(operation.collection)
        existing = docs.get(operation.document_id)
        if existing is None:
            doc = {**operation.fields, "id": operation.document_id, "version": 1}
        else:
            doc = {**existing, **operation.fields, "version": existing["version"] + 1}
        docs[operation.document_id] = doc
        return doc


__all__ = [
    "Document",
    "BatchOperation",
    "DocumentBatch",
    "DocumentStore",
    "BufferedBatch",
    "InMemoryDocumentStore",
]
