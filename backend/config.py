import os
from dataclasses import dataclass, field


def _join_address(server: str, port: str) -> str:
    server = server.rstrip("/")
    if not port:
        return server
    return f"{server}:{port}"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    return int(raw) if raw.strip() else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    return float(raw) if raw.strip() else default


@dataclass(frozen=True)
class Settings:
    algod_address: str = "https://testnet-api.algonode.cloud:443"
    algod_token: str = ""
    indexer_address: str = "https://testnet-idx.algonode.cloud:443"
    indexer_token: str = ""
    network_name: str = "Algorand TestNet"
    request_timeout: float = 10.0
    request_workers: int = 16
    confirmation_rounds: int = 4

    rate_limit_max: int = 10
    rate_limit_window_seconds: float = 60.0

    database_url: str = ""
    mirror_backend: str = "memory"
    db_pool_min: int = 1
    db_pool_max: int = 10
    db_sslmode: str = "require"

    qr_ttl_seconds: int = 60
    frontend_url: str = "http://localhost:8080"
    explorer_tx_url: str = "https://testnet.explorer.perawallet.app/tx/"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:8080"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        algod_token = os.getenv("ALGO_TOKEN", "")
        database_url = os.getenv("DATABASE_URL", "")
        frontend_url = os.getenv("FRONTEND_URL", "http://localhost:8080")
        cors_raw = os.getenv("CORS_ORIGINS", frontend_url)
        return cls(
            algod_address=_join_address(
                os.getenv("ALGO_SERVER", "https://testnet-api.algonode.cloud"),
                os.getenv("ALGO_PORT", "443"),
            ),
            algod_token=algod_token,
            indexer_address=_join_address(
                os.getenv("ALGO_INDEXER_SERVER", "https://testnet-idx.algonode.cloud"),
                os.getenv("ALGO_INDEXER_PORT", "443"),
            ),
            indexer_token=os.getenv("ALGO_INDEXER_TOKEN", algod_token),
            network_name=os.getenv("ALGO_NETWORK_NAME", "Algorand TestNet"),
            request_timeout=_env_float("ALGO_REQUEST_TIMEOUT", 10.0),
            request_workers=_env_int("ALGO_REQUEST_WORKERS", 16),
            confirmation_rounds=_env_int("ALGO_CONFIRMATION_ROUNDS", 4),
            rate_limit_max=_env_int("TX_RATE_LIMIT_MAX", 10),
            rate_limit_window_seconds=_env_float("TX_RATE_LIMIT_WINDOW_SECONDS", 60.0),
            database_url=database_url,
            mirror_backend=os.getenv("MIRROR_BACKEND", "postgres" if database_url else "memory"),
            db_pool_min=_env_int("DB_POOL_MIN", 1),
            db_pool_max=_env_int("DB_POOL_MAX", 10),
            db_sslmode=os.getenv("DB_SSLMODE", "require"),
            qr_ttl_seconds=_env_int("QR_TTL_SECONDS", 60),
            frontend_url=frontend_url,
            explorer_tx_url=os.getenv("EXPLORER_TX_URL", "https://testnet.explorer.perawallet.app/tx/"),
            cors_origins=[o.strip() for o in cors_raw.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
