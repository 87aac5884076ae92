"""Runtime wiring for hosting applications.

Lifecycle:
    1. Startup: Initialize logging, the document store and the lock provider
       selected in settings, and build the engine.
    2. Running: The caller invokes engine operations directly.
    3. Shutdown: Close database and Redis connections gracefully.

Usage:
    async with escrow_runtime() as engine:
        transaction = await engine.create_transaction(...)
"""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING

from brewmaster_escrow.config import Settings, get_settings
from brewmaster_escrow.logging_config import get_logger, setup_logging
from brewmaster_escrow.services.escrow_service import EscrowEngine, EscrowPolicy
from brewmaster_escrow.services.payment_gateway import SimulatedPaymentGateway

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from brewmaster_escrow.domain.protocols import DocumentStore, LockProvider, PaymentGateway


@asynccontextmanager
async def escrow_runtime(
    settings: Settings | None = None,
    gateway: PaymentGateway | None = None,
) -> AsyncGenerator[EscrowEngine, None]:
    """Build an EscrowEngine from settings and tear its backends down on exit.

    Each backend registers its shutdown as soon as it is up, so a failure
    later in startup still releases what was already opened.
    """
    settings = settings or get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=settings.app_json_logs,
    )
    logger = get_logger(__name__)
    logger.info(
        "runtime.starting",
        env=settings.app_env,
        store=settings.store_backend,
        locks=settings.lock_backend,
    )

    async with AsyncExitStack() as backends:
        # 2. Document store
        store: DocumentStore
        if settings.store_backend == "sql":
            from brewmaster_escrow.infrastructure.database.document_store import (
                SqlAlchemyDocumentStore,
            )
            from brewmaster_escrow.infrastructure.database.engine import (
                create_engine_for_url,
                create_session_factory,
                create_tables,
            )

            db_engine = create_engine_for_url(
                settings.database_url, echo=settings.db_echo_sql, settings=settings
            )
            backends.push_async_callback(db_engine.dispose)
            if settings.is_development:
                await create_tables(db_engine)
            store = SqlAlchemyDocumentStore(create_session_factory(db_engine))
        else:
            from brewmaster_escrow.infrastructure.memory_store import InMemoryDocumentStore

            store = InMemoryDocumentStore()

        # 3. Lock provider
        locks: LockProvider
        if settings.lock_backend == "redis":
            from brewmaster_escrow.infrastructure import redis_client
            from brewmaster_escrow.infrastructure.locks import RedisLockProvider

            backends.push_async_callback(redis_client.close_redis)
            redis = await redis_client.init_redis(settings.redis_url)
            locks = RedisLockProvider(redis, timeout=settings.redis_lock_timeout_seconds)
        else:
            from brewmaster_escrow.infrastructure.locks import InProcessLockProvider

            locks = InProcessLockProvider()

        # 4. Engine
        engine = EscrowEngine(
            store,
            gateway
            or SimulatedPaymentGateway(
                collect_success_rate=settings.simulated_payment_success_rate,
                release_success_rate=settings.simulated_release_success_rate,
            ),
            policy=EscrowPolicy.from_settings(settings),
            locks=locks,
        )
        logger.info("runtime.started")

        try:
            yield engine
        finally:
            logger.info("runtime.shutting_down")

    logger.info("runtime.stopped")
