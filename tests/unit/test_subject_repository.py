from unittest.mock import MagicMock, patch

import psycopg
import pytest

from recordvault.database.exceptions import MetadataStoreError, SubjectNotFoundError
from recordvault.database.repositories.subject_repository import (
    SubjectRepository,
    normalize_address,
)


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


class TestNormalizeAddress:
    def test_lowercases_upper_prefixed_address(self) -> None:
        assert normalize_address("0X" + "AB" * 20) == "0x" + "ab" * 20

    def test_adds_missing_prefix(self) -> None:
        assert normalize_address("ab" * 20) == "0x" + "ab" * 20

    @pytest.mark.parametrize("value", [None, "", "0x"])
    def test_empty_values_mean_no_address(self, value) -> None:
        assert normalize_address(value) is None


class TestResolveSubject:
    @patch("recordvault.database.repositories.subject_repository.get_connection")
    def test_resolves_by_email(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {
            "id": 3,
            "email": "jane@example.com",
            "wallet_address": "0X" + "AB" * 20,
        }

        subject = SubjectRepository().resolve_subject("Jane@Example.com")

        assert subject.subject_id == 3
        assert subject.subject_identity == "0x" + "ab" * 20
        assert subject.has_consented
        sql, params = mock_cursor.execute.call_args.args
        assert "email = %s" in sql
        assert "role = 'patient'" in sql
        assert params == ("jane@example.com",)

    @patch("recordvault.database.repositories.subject_repository.get_connection")
    def test_resolves_by_numeric_id(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {
            "id": 3,
            "email": "jane@example.com",
            "wallet_address": None,
        }

        subject = SubjectRepository().resolve_subject("3")

        assert not subject.has_consented
        sql, params = mock_cursor.execute.call_args.args
        assert "id = %s" in sql
        assert params == (3,)

    @patch("recordvault.database.repositories.subject_repository.get_connection")
    def test_unknown_patient_raises(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        with pytest.raises(SubjectNotFoundError, match="ghost@example.com"):
            SubjectRepository().resolve_subject("ghost@example.com")

    @patch("recordvault.database.repositories.subject_repository.get_connection")
    def test_database_error_raises_metadata_store_error(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.execute.side_effect = psycopg.OperationalError("connection refused")

        with pytest.raises(MetadataStoreError):
            SubjectRepository().resolve_subject("jane@example.com")
