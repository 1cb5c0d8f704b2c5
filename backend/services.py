import sys
from dataclasses import dataclass

from loguru import logger

import db
from algorand_client import AlgorandChainClient
from config import Settings
from pg_repositories import ensure_schema, postgres_mirror
from rate_limiter import RateLimiter
from repositories import Mirror
from submission import SubmissionPipeline
from tx_builder import TransactionBuilder
from verification import VerificationEngine


@dataclass
class Services:
    settings: Settings
    chain: AlgorandChainClient
    limiter: RateLimiter
    builder: TransactionBuilder
    pipeline: SubmissionPipeline
    verifier: VerificationEngine
    mirror: Mirror


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def build_mirror(settings: Settings) -> Mirror:
    if settings.mirror_backend == "memory":
        logger.warning("Using in-memory mirror; records are lost on restart")
        return Mirror.in_memory()
    if settings.mirror_backend != "postgres":
        raise RuntimeError(f"Unknown MIRROR_BACKEND {settings.mirror_backend!r}")

    db.init_pool(settings.database_url, settings.db_pool_min, settings.db_pool_max, settings.db_sslmode)
    ensure_schema()
    return postgres_mirror()


def build_services(
    settings: Settings,
    chain: AlgorandChainClient | None = None,
    mirror: Mirror | None = None,
) -> Services:
    chain = chain or AlgorandChainClient.from_settings(settings)
    limiter = RateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)
    return Services(
        settings=settings,
        chain=chain,
        limiter=limiter,
        builder=TransactionBuilder(chain, limiter),
        pipeline=SubmissionPipeline(chain, settings.confirmation_rounds),
        verifier=VerificationEngine(chain),
        mirror=mirror if mirror is not None else build_mirror(settings),
    )
