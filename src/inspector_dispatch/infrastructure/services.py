"""Dependency injection and service factory."""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncContextManager, AsyncGenerator, Callable, Optional

from src.inspector_dispatch.application.ports.cache import SearchCache
from src.inspector_dispatch.application.ports.clock import Clock
from src.inspector_dispatch.application.ports.repositories import InspectorRepository, UnitOfWork
from src.inspector_dispatch.application.services.directory_service import InspectorDirectoryService
from src.inspector_dispatch.application.services.inspector_service import InspectorService
from src.inspector_dispatch.application.services.mobilization_service import MobilizationService
from src.inspector_dispatch.domain.services.eligibility import EligibilityEvaluator
from src.inspector_dispatch.infrastructure.cache.codec import PageCodec
from src.inspector_dispatch.infrastructure.cache.memory_cache import InMemorySearchCache, NullSearchCache
from src.inspector_dispatch.infrastructure.cache.redis_cache import RedisSearchCache, create_redis_client
from src.inspector_dispatch.infrastructure.clock import SystemClock
from src.inspector_dispatch.infrastructure.database.connection import DatabaseManager
from src.inspector_dispatch.infrastructure.logging import get_logger
from src.inspector_dispatch.infrastructure.repositories.memory_repositories import (
    InMemoryInspectorRepository,
    InMemoryInspectorStore,
    InMemoryUnitOfWork
)
from src.inspector_dispatch.infrastructure.repositories.sql_repositories import (
    SQLAlchemyInspectorRepository,
    SQLAlchemyUnitOfWork
)
from src.inspector_dispatch.presentation.api.config import Settings, get_settings

logger = get_logger(__name__)


def build_search_cache(settings: Settings) -> SearchCache:
    """Create the search cache selected by configuration."""
    codec = PageCodec(compression_threshold=settings.cache_compression_threshold_bytes)
    if settings.cache_backend == "redis":
        return RedisSearchCache(
            create_redis_client(settings.redis_url),
            sliding_expiration_seconds=settings.cache_sliding_expiration_seconds,
            absolute_expiration_seconds=settings.cache_absolute_expiration_seconds,
            codec=codec
        )
    if settings.cache_backend == "none":
        return NullSearchCache()
    return InMemorySearchCache(
        sliding_expiration_seconds=settings.cache_sliding_expiration_seconds,
        absolute_expiration_seconds=settings.cache_absolute_expiration_seconds,
        max_entries=settings.cache_max_entries,
        codec=codec
    )


def build_eligibility_evaluator(settings: Settings) -> EligibilityEvaluator:
    """Create the eligibility evaluator with configured windows."""
    return EligibilityEvaluator(
        compliance_window=timedelta(days=settings.compliance_window_days),
        backdate_tolerance=timedelta(days=settings.mobilization_backdate_days),
        scheduling_horizon=timedelta(days=settings.mobilization_horizon_days)
    )


class ServiceFactory(ABC):
    """Factory for creating application services with proper dependencies.

    Subclasses decide where inspectors live by providing a read repository
    scope and a unit-of-work factory.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Optional[Clock] = None,
        search_cache: Optional[SearchCache] = None
    ):
        self.settings = settings
        self.clock = clock or SystemClock()
        self.search_cache = search_cache if search_cache is not None else build_search_cache(settings)
        self.eligibility_evaluator = build_eligibility_evaluator(settings)

    async def initialize(self) -> None:
        """Initialize the service factory."""

    async def shutdown(self) -> None:
        """Shutdown the service factory."""
        if isinstance(self.search_cache, RedisSearchCache):
            await self.search_cache.close()

    @abstractmethod
    def repository_scope(self) -> AsyncContextManager[InspectorRepository]:
        """Yield a read repository valid for the duration of the block."""
        raise NotImplementedError

    @abstractmethod
    def unit_of_work_factory(self) -> Callable[[], UnitOfWork]:
        """Get a callable creating fresh units of work."""
        raise NotImplementedError

    @asynccontextmanager
    async def get_directory_service(self) -> AsyncGenerator[InspectorDirectoryService, None]:
        """Get inspector directory service."""
        async with self.repository_scope() as inspector_repo:
            yield InspectorDirectoryService(
                inspector_repository=inspector_repo,
                search_cache=self.search_cache,
                search_timeout_seconds=self.settings.search_timeout_seconds
            )

    @asynccontextmanager
    async def get_mobilization_service(self) -> AsyncGenerator[MobilizationService, None]:
        """Get mobilization service."""
        async with self.repository_scope() as inspector_repo:
            yield MobilizationService(
                inspector_repository=inspector_repo,
                unit_of_work_factory=self.unit_of_work_factory(),
                clock=self.clock,
                eligibility_evaluator=self.eligibility_evaluator,
                search_cache=self.search_cache
            )

    @asynccontextmanager
    async def get_inspector_service(self) -> AsyncGenerator[InspectorService, None]:
        """Get inspector administration service."""
        async with self.repository_scope() as inspector_repo:
            yield InspectorService(
                inspector_repository=inspector_repo,
                unit_of_work_factory=self.unit_of_work_factory(),
                clock=self.clock,
                search_cache=self.search_cache
            )


class DatabaseServiceFactory(ServiceFactory):
    """Service factory backed by PostgreSQL."""

    def __init__(self, settings: Settings, clock: Optional[Clock] = None, search_cache: Optional[SearchCache] = None):
        super().__init__(settings, clock=clock, search_cache=search_cache)
        self.database_manager = DatabaseManager(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow
        )
        self._connected = False

    async def initialize(self) -> None:
        """Connect to the database."""
        if not self._connected:
            await self.database_manager.connect()
            self._connected = True

    async def shutdown(self) -> None:
        """Disconnect from the database."""
        if self._connected:
            await self.database_manager.disconnect()
            self._connected = False
        await super().shutdown()

    @asynccontextmanager
    async def repository_scope(self) -> AsyncGenerator[InspectorRepository, None]:
        async with self.database_manager.get_session() as session:
            yield SQLAlchemyInspectorRepository(session)

    def unit_of_work_factory(self) -> Callable[[], UnitOfWork]:
        session_factory = self.database_manager.session_factory
        return lambda: SQLAlchemyUnitOfWork(session_factory)


class InMemoryServiceFactory(ServiceFactory):
    """Service factory keeping inspectors in process memory."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        search_cache: Optional[SearchCache] = None,
        store: Optional[InMemoryInspectorStore] = None
    ):
        super().__init__(settings or get_settings(), clock=clock, search_cache=search_cache)
        self.store = store or InMemoryInspectorStore()

    @asynccontextmanager
    async def repository_scope(self) -> AsyncGenerator[InspectorRepository, None]:
        yield InMemoryInspectorRepository(self.store)

    def unit_of_work_factory(self) -> Callable[[], UnitOfWork]:
        return lambda: InMemoryUnitOfWork(self.store)


# Global service factory instance
_service_factory: ServiceFactory | None = None


def get_service_factory() -> ServiceFactory:
    """Get the global service factory instance."""
    global _service_factory

    if _service_factory is None:
        settings = get_settings()
        if settings.storage_backend == "memory":
            _service_factory = InMemoryServiceFactory(settings)
        else:
            _service_factory = DatabaseServiceFactory(settings)
        logger.info(
            "Service factory created",
            extra={"storage_backend": settings.storage_backend, "cache_backend": settings.cache_backend}
        )

    return _service_factory


async def initialize_services():
    """Initialize application services."""
    factory = get_service_factory()
    await factory.initialize()


async def shutdown_services():
    """Shutdown application services."""
    factory = get_service_factory()
    await factory.shutdown()
