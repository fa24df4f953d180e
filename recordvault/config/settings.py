from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "recordvault"
    db_username: str = "recordvault"
    db_password: str = "secret"

    cipher_algorithm: str = "aes-256-cbc"

    content_store_provider: str = "pinata"
    content_store_timeout_seconds: int = 30
    pinata_api_url: str = "https://api.pinata.cloud"
    pinata_gateway_url: str = "https://gateway.pinata.cloud"
    pinata_jwt: str = ""
    pinata_api_key: str = ""
    pinata_secret_key: str = ""
    kubo_api_url: str = "http://127.0.0.1:5001"

    ledger_provider: str = "web3"
    ledger_rpc_url: str = "https://rpc.awakening.bdagscan.com/"
    ledger_contract_address: str = ""
    ledger_private_key: str = ""
    ledger_timeout_seconds: int = 30
    ledger_receipt_timeout_seconds: int = 120
    ledger_from_block: int = 0
    ledger_log_chunk_blocks: int = 5000

    retry_max_attempts: int = 3
    retry_backoff_base_seconds: float = 0.5
    retry_backoff_cap_seconds: float = 8.0
    pipeline_timeout_seconds: float = 120.0
    compensation_timeout_seconds: float = 10.0

    max_upload_bytes: int = 10 * 1024 * 1024
    max_workers: int = 4
