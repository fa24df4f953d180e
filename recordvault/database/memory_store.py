"""In-memory metadata store and identity provider for development and tests."""

import threading
from dataclasses import replace

from recordvault.database.base import BaseIdentityProvider, BaseMetadataStore
from recordvault.database.exceptions import (
    DescriptorNotFoundError,
    DuplicateCidError,
    SubjectNotFoundError,
)
from recordvault.pipeline.models import RecordDescriptor, SubjectIdentity


class InMemoryMetadataStore(BaseMetadataStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[int, RecordDescriptor] = {}

    def save(self, descriptor: RecordDescriptor) -> RecordDescriptor:
        with self._lock:
            if any(row.cid == descriptor.cid for row in self._rows.values()):
                raise DuplicateCidError(f"CID {descriptor.cid} already recorded")
            saved = replace(descriptor, id=len(self._rows) + 1)
            self._rows[saved.id] = saved  # type: ignore[index]
            return saved

    def find_by_id(self, record_id: int) -> RecordDescriptor:
        try:
            return self._rows[record_id]
        except KeyError:
            raise DescriptorNotFoundError(f"Record {record_id} not found") from None

    def find_by_cid(self, cid: str) -> RecordDescriptor:
        for row in self._rows.values():
            if row.cid == cid:
                return row
        raise DescriptorNotFoundError(f"Record with CID {cid} not found")

    def list_by_subject(self, subject_identity: str) -> list[RecordDescriptor]:
        subject = subject_identity.lower()
        rows = [r for r in self._rows.values() if r.subject_identity == subject]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)


class InMemoryIdentityProvider(BaseIdentityProvider):
    def __init__(self, subjects: list[SubjectIdentity] | None = None) -> None:
        self._subjects = list(subjects or [])

    def add(self, subject: SubjectIdentity) -> None:
        self._subjects.append(subject)

    def resolve_subject(self, identifier: str) -> SubjectIdentity:
        key = identifier.strip().lower()
        for subject in self._subjects:
            if subject.email == key or str(subject.subject_id) == key:
                return subject
        raise SubjectNotFoundError(f"Patient '{identifier}' not found")
