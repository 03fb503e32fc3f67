"""
Supabase-backed document store.

Each collection is a table shaped `(id text primary key, version integer, data jsonb)`
(see repositories/sql/document_store.sql). Documents are the `data` object plus
`id` and `version`.

- Single-document updates are conditional on the version read
  (`update ... where id = ? and version = ?`), so a concurrent writer produces a
  ConflictError instead of a lost update.
- Batches are applied by the `commit_document_batch` PostgreSQL function, which
  checks every version precondition and applies every write inside one
  database transaction (all-or-nothing).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from postgrest.exceptions import APIError

from domain.errors import ConflictError, NotFoundError, StoreError
from repositories.client import Settings
from repositories.document_store import BatchOperation, BufferedBatch, Document, check_writable_fields

logger = logging.getLogger(__name__)

# SQLSTATEs raised by commit_document_batch.
_CONFLICT_SQLSTATE = "40001"
_NOT_FOUND_SQLSTATE = "P0002"
_UNIQUE_VIOLATION_SQLSTATE = "23505"


def _filter_value(value: Any) -> str:
    """Render a filter value the way PostgREST renders `data->>field` (jsonb as text)."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value"):  # str-valued enums
        return str(value.value)
    return str(value)


def _row_to_document(row: Mapping[str, Any]) -> Document:
    data = dict(row.get("data") or {})
    data["id"] = str(row["id"])
    data["version"] = int(row["version"])
    return data


def _document_data(doc: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in doc.items() if key not in ("id", "version")}


class SupabaseDocumentStore:
    def __init__(self, client: Any, tables: Optional[Mapping[str, str]] = None) -> None:
        self._client = client
        self._tables = dict(tables or {})

    @classmethod
    def from_settings(cls, client: Any, settings: Settings) -> "SupabaseDocumentStore":
        return cls(
            client,
            tables={
                "leads": settings.leads_table,
                "configurations": settings.configurations_table,
                "configuration_state": settings.configuration_state_table,
            },
        )

    def _table(self, collection: str) -> str:
        return self._tables.get(collection, collection)

    def _execute(self, query: Any, action: str) -> List[Mapping[str, Any]]:
        try:
            response = query.execute()
        except APIError as e:
            raise StoreError(f"Failed to {action}: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise StoreError(f"Failed to {action}: {error}")
        return getattr(response, "data", None) or []

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        rows = self._execute(
            self._client.table(self._table(collection))
            .select("*")
            .eq("id", document_id)
            .limit(1),
            f"fetch {collection}/{document_id}",
        )
        if not rows:
            return None
        return _row_to_document(rows[0])

    def query(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> List[Document]:
        query = self._client.table(self._table(collection)).select("*")
        for key, value in (filters or {}).items():
            query = query.eq(f"data->>{key}", _filter_value(value))
        rows = self._execute(query, f"query {collection}")
        return [_row_to_document(row) for row in rows]

    def create(
        self,
        collection: str,
        fields: Mapping[str, Any],
        document_id: Optional[str] = None,
    ) -> Document:
        check_writable_fields(fields)
        payload = {"id": document_id or str(uuid4()), "version": 1, "data": dict(fields)}
        try:
            rows = self._execute(
                self._client.table(self._table(collection)).insert(payload),
                f"create {collection} document",
            )
        except StoreError as e:
            if _UNIQUE_VIOLATION_SQLSTATE in str(e):
                raise ConflictError(f"Document already exists: {collection}/{payload['id']}") from e
            raise
        return _row_to_document(rows[0]) if rows else _row_to_document(payload)

    def update(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Document:
        """
        Conditional read-modify-write of one row.

        `data` is replaced wholesale, so the current row is read first and the
        write is made conditional on its version.
        """

        check_writable_fields(fields)
        current = self.get(collection, document_id)
        if current is None:
            raise NotFoundError("Document", f"{collection}/{document_id}")

        current_version = current["version"]
        if expected_version is not None and expected_version != current_version:
            raise ConflictError(
                f"Version conflict on {collection}/{document_id}: "
                f"expected {expected_version}, found {current_version}"
            )

        merged = {**_document_data(current), **fields}
        rows = self._execute(
            self._client.table(self._table(collection))
            .update({"data": merged, "version": current_version + 1})
            .eq("id", document_id)
            .eq("version", current_version),
            f"update {collection}/{document_id}",
        )
        if not rows:
            # Row changed between our read and the conditional write.
            raise ConflictError(f"Concurrent update detected on {collection}/{document_id}")
        return _row_to_document(rows[0])

    def batch(self) -> BufferedBatch:
        return BufferedBatch(_commit=self._commit_batch)

    def _commit_batch(self, operations: List[BatchOperation]) -> None:
        payload = [
            {
                "table": self._table(operation.collection),
                "id": operation.document_id,
                "op": operation.op,
                "fields": dict(operation.fields),
                "expected_version": operation.expected_version,
            }
            for operation in operations
        ]

        try:
            response = self._client.rpc("commit_document_batch", {"p_operations": payload}).execute()
        except APIError as e:
            code = str(getattr(e, "code", "") or "")
            if code == _CONFLICT_SQLSTATE:
                raise ConflictError(f"Batch rejected: {e.message}") from e
            if code == _NOT_FOUND_SQLSTATE:
                raise NotFoundError("Document", str(e.message)) from e
            raise StoreError(f"Failed to commit batch: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise StoreError(f"Failed to commit batch: {error}")

        logger.debug("Committed document batch", extra={"operation_count": len(payload)})


__all__ = ["SupabaseDocumentStore"]
