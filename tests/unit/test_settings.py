import pytest
from pydantic import ValidationError

from recordvault.config.settings import Settings


class TestSettingsDefaults:
    def test_default_app_env(self) -> None:
        s = Settings()
        assert s.app_env == "dev"

    def test_default_db_port(self) -> None:
        s = Settings()
        assert s.db_port == 5432

    def test_default_cipher_algorithm(self) -> None:
        s = Settings()
        assert s.cipher_algorithm == "aes-256-cbc"

    def test_default_providers(self) -> None:
        s = Settings()
        assert s.content_store_provider == "pinata"
        assert s.ledger_provider == "web3"

    def test_default_retry_policy(self) -> None:
        s = Settings()
        assert s.retry_max_attempts == 3
        assert s.retry_backoff_base_seconds == 0.5
        assert s.retry_backoff_cap_seconds == 8.0

    def test_default_upload_limit_is_ten_mebibytes(self) -> None:
        s = Settings()
        assert s.max_upload_bytes == 10 * 1024 * 1024

    def test_default_compensation_and_log_scan_bounds(self) -> None:
        s = Settings()
        assert s.compensation_timeout_seconds == 10.0
        assert s.ledger_log_chunk_blocks == 5000


class TestSettingsFromEnv:
    def test_loads_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        s = Settings()
        assert s.log_level == "DEBUG"

    def test_loads_db_host(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_HOST", "db.example.com")
        s = Settings()
        assert s.db_host == "db.example.com"

    def test_loads_cipher_algorithm(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CIPHER_ALGORITHM", "aes-256-gcm")
        s = Settings()
        assert s.cipher_algorithm == "aes-256-gcm"

    def test_loads_pinata_jwt(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PINATA_JWT", "token")
        s = Settings()
        assert s.pinata_jwt == "token"

    def test_loads_pipeline_timeout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PIPELINE_TIMEOUT_SECONDS", "30.5")
        s = Settings()
        assert s.pipeline_timeout_seconds == 30.5


class TestSettingsValidation:
    def test_invalid_db_port_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_PORT", "not_a_number")
        with pytest.raises(ValidationError):
            Settings()

    def test_invalid_retry_attempts_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "abc")
        with pytest.raises(ValidationError):
            Settings()
