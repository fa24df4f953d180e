from dataclasses import replace
from typing import Any

import psycopg
from psycopg.rows import dict_row

from recordvault.database.base import BaseMetadataStore
from recordvault.database.connection import get_connection
from recordvault.database.exceptions import (
    DescriptorNotFoundError,
    DuplicateCidError,
    MetadataStoreError,
)
from recordvault.pipeline.models import RecordClassification, RecordDescriptor, RecordStatus

_SELECT_COLUMNS = """
    SELECT id, subject_id, subject_identity, submitter_identity, classification,
           description, file_name, file_size, mime_type, cid, ledger_receipt,
           encryption_key, encryption_algorithm, plaintext_sha256, status, created_at
    FROM medical_records
"""


class RecordRepository(BaseMetadataStore):
    """Database operations for the medical_records table.

    Rows are insert-only; the pipeline never updates or deletes a descriptor.
    """

    def save(self, descriptor: RecordDescriptor) -> RecordDescriptor:
        """Insert a descriptor and return it with its database id.

        Raises:
            DuplicateCidError: if the CID already has a descriptor.
            MetadataStoreError: on any other database error.
        """
        try:
            with get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO medical_records
                        (subject_id, subject_identity, submitter_identity, classification,
                         description, file_name, file_size, mime_type, cid, ledger_receipt,
                         encryption_key, encryption_algorithm, plaintext_sha256, status,
                         created_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING id
                        """,
                        (
                            descriptor.subject_id,
                            descriptor.subject_identity,
                            descriptor.submitter_identity,
                            descriptor.classification.value,
                            descriptor.description,
                            descriptor.file_name,
                            descriptor.file_size,
                            descriptor.mime_type,
                            descriptor.cid,
                            descriptor.ledger_receipt,
                            descriptor.encryption_key,
                            descriptor.encryption_algorithm,
                            descriptor.plaintext_sha256,
                            descriptor.status.value,
                            descriptor.created_at,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as exc:
            raise DuplicateCidError(f"CID {descriptor.cid} already recorded") from exc
        except psycopg.Error as exc:
            raise MetadataStoreError(f"Failed to save record {descriptor.cid}: {exc}") from exc

        if row is None:
            raise MetadataStoreError(f"Insert of record {descriptor.cid} returned no id")
        return replace(descriptor, id=row[0])

    def find_by_id(self, record_id: int) -> RecordDescriptor:
        row = self._fetch_one(f"{_SELECT_COLUMNS} WHERE id = %s", (record_id,))
        if row is None:
            raise DescriptorNotFoundError(f"Record {record_id} not found")
        return self._row_to_descriptor(row)

    def find_by_cid(self, cid: str) -> RecordDescriptor:
        row = self._fetch_one(f"{_SELECT_COLUMNS} WHERE cid = %s", (cid,))
        if row is None:
            raise DescriptorNotFoundError(f"Record with CID {cid} not found")
        return self._row_to_descriptor(row)

    def list_by_subject(self, subject_identity: str) -> list[RecordDescriptor]:
        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"{_SELECT_COLUMNS} WHERE subject_identity = %s "
                        "ORDER BY created_at DESC",
                        (subject_identity.lower(),),
                    )
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise MetadataStoreError(f"Failed to list records: {exc}") from exc
        return [self._row_to_descriptor(row) for row in rows]

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(sql, params)
                    return cur.fetchone()
        except psycopg.Error as exc:
            raise MetadataStoreError(f"Failed to load record: {exc}") from exc

    @staticmethod
    def _row_to_descriptor(row: dict[str, Any]) -> RecordDescriptor:
        return RecordDescriptor(
            id=row["id"],
            subject_id=row["subject_id"],
            subject_identity=row["subject_identity"],
            submitter_identity=row["submitter_identity"],
            classification=RecordClassification(row["classification"]),
            description=row["description"] or "",
            file_name=row["file_name"],
            file_size=row["file_size"],
            mime_type=row["mime_type"],
            cid=row["cid"],
            ledger_receipt=row["ledger_receipt"],
            encryption_key=row["encryption_key"],
            encryption_algorithm=row["encryption_algorithm"],
            plaintext_sha256=row["plaintext_sha256"] or "",
            status=RecordStatus(row["status"]),
            created_at=row["created_at"],
        )
