"""Unit tests for application port interfaces."""

import inspect
from abc import ABC
from datetime import datetime, timedelta, timezone

import pytest

from src.inspector_dispatch.application.ports.cache import SearchCache
from src.inspector_dispatch.application.ports.clock import Clock, as_utc
from src.inspector_dispatch.application.ports.repositories import AuditSink, InspectorRepository, UnitOfWork


class TestInspectorRepositoryInterface:
    """Test cases for the InspectorRepository interface."""

    def test_is_abstract(self):
        """Test that InspectorRepository is properly abstract."""
        assert issubclass(InspectorRepository, ABC)
        assert inspect.isabstract(InspectorRepository)

        with pytest.raises(TypeError):
            InspectorRepository()

    def test_abstract_methods(self):
        """Test that all expected abstract methods are defined."""
        assert InspectorRepository.__abstractmethods__ == {
            'save', 'find_by_id', 'find_by_badge_number', 'find_in_radius', 'test_kit_exists'
        }

    def test_find_by_id_signature(self):
        """Test find_by_id accepts a for_update flag defaulting to False."""
        sig = inspect.signature(InspectorRepository.find_by_id)

        assert list(sig.parameters) == ['self', 'inspector_id', 'for_update']
        assert sig.parameters['for_update'].default is False

    def test_methods_are_coroutines(self):
        """Test every port method is async."""
        for name in InspectorRepository.__abstractmethods__:
            assert inspect.iscoroutinefunction(getattr(InspectorRepository, name))


class TestAuditSinkInterface:
    """Test cases for the AuditSink interface."""

    def test_append_signature(self):
        """Test append takes the full audit record fields."""
        sig = inspect.signature(AuditSink.append)

        assert list(sig.parameters) == [
            'self', 'entity_type', 'entity_id', 'action', 'changes', 'actor', 'timestamp'
        ]
        assert inspect.isabstract(AuditSink)


class TestUnitOfWorkInterface:
    """Test cases for the UnitOfWork interface."""

    def test_abstract_methods(self):
        """Test the transaction boundary methods are abstract."""
        assert {'begin', 'commit', 'rollback', 'close', 'committed'} == UnitOfWork.__abstractmethods__

    def test_is_async_context_manager(self):
        """Test UnitOfWork can be used with async with."""
        assert inspect.iscoroutinefunction(UnitOfWork.__aenter__)
        assert inspect.iscoroutinefunction(UnitOfWork.__aexit__)


class TestSearchCacheInterface:
    """Test cases for the SearchCache interface."""

    def test_abstract_methods(self):
        """Test get, set and invalidate_all are abstract."""
        assert SearchCache.__abstractmethods__ == {'get', 'set', 'invalidate_all'}


class TestClock:
    """Test cases for the Clock port and UTC normalization."""

    def test_clock_is_abstract(self):
        """Test Clock cannot be instantiated."""
        with pytest.raises(TypeError):
            Clock()

    def test_as_utc_treats_naive_as_utc(self):
        """Test naive timestamps are tagged as UTC."""
        assert as_utc(datetime(2025, 6, 1, 12)) == datetime(2025, 6, 1, 12, tzinfo=timezone.utc)

    def test_as_utc_converts_offsets(self):
        """Test aware timestamps are converted to UTC."""
        central = timezone(timedelta(hours=-5))
        converted = as_utc(datetime(2025, 6, 1, 7, tzinfo=central))

        assert converted == datetime(2025, 6, 1, 12, tzinfo=timezone.utc)
        assert converted.tzinfo == timezone.utc
