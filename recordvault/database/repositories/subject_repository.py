from typing import Any

import psycopg
from psycopg.rows import dict_row

from recordvault.database.base import BaseIdentityProvider
from recordvault.database.connection import get_connection
from recordvault.database.exceptions import MetadataStoreError, SubjectNotFoundError
from recordvault.pipeline.models import SubjectIdentity


def normalize_address(address: str | None) -> str | None:
    """Wallet addresses may be stored upper-cased ("0XABC..."); use 0x + lowercase hex."""
    if not address:
        return None
    value = address.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    return f"0x{value.lower()}" if value else None


class SubjectRepository(BaseIdentityProvider):
    """Resolves patients from the users table."""

    def resolve_subject(self, identifier: str) -> SubjectIdentity:
        """Look a patient up by numeric id or by email.

        Raises:
            SubjectNotFoundError: if no patient matches.
            MetadataStoreError: on database errors.
        """
        key = identifier.strip()
        if key.isdigit():
            where, param = "id = %s", int(key)
        else:
            where, param = "email = %s", key.lower()

        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"""
                        SELECT id, email, wallet_address
                        FROM users
                        WHERE {where} AND role = 'patient'
                        """,
                        (param,),
                    )
                    row: dict[str, Any] | None = cur.fetchone()
        except psycopg.Error as exc:
            raise MetadataStoreError(f"Failed to resolve patient: {exc}") from exc

        if row is None:
            raise SubjectNotFoundError(f"Patient '{identifier}' not found")

        return SubjectIdentity(
            subject_id=row["id"],
            email=row["email"],
            subject_identity=normalize_address(row["wallet_address"]),
        )
