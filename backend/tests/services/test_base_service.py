"""Tests for the shared service plumbing: transactions, timing metrics, clock."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from courtbook.core.exceptions import NotFoundException, ServiceException
from courtbook.services.base import BaseService

pytestmark = pytest.mark.unit


class CourtCounter(BaseService):
    @BaseService.measure_operation("count_courts")
    def count_courts(self, fail=False):
        if fail:
            raise NotFoundException("Venue not found")
        return 4


@pytest.fixture
def service():
    BaseService._class_metrics.pop("CourtCounter", None)
    yield CourtCounter(MagicMock())
    BaseService._class_metrics.pop("CourtCounter", None)


class TestTransaction:
    def test_commits_on_success(self, service):
        with service.transaction():
            pass

        service.db.commit.assert_called_once()
        service.db.rollback.assert_not_called()

    def test_database_errors_become_service_exceptions(self, service):
        with pytest.raises(ServiceException, match="Database operation failed"):
            with service.transaction():
                raise SQLAlchemyError("locked")

        service.db.rollback.assert_called_once()
        service.db.commit.assert_not_called()

    def test_domain_errors_propagate_unchanged(self, service):
        with pytest.raises(NotFoundException):
            with service.transaction():
                raise NotFoundException("Booking not found")

        service.db.rollback.assert_called_once()


class TestMetrics:
    def test_counts_successes_and_failures(self, service):
        service.count_courts()
        service.count_courts()
        with pytest.raises(NotFoundException):
            service.count_courts(fail=True)

        metrics = service.get_metrics()["count_courts"]
        assert metrics["count"] == 3
        assert metrics["failure_count"] == 1
        assert metrics["success_rate"] == pytest.approx(2 / 3)
        assert metrics["min_time"] <= metrics["avg_time"] <= metrics["max_time"]

    def test_no_metrics_before_first_call(self, service):
        assert service.get_metrics() == {}

    def test_concurrent_calls_are_all_counted(self, service):
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: service.count_courts(), range(400)))

        assert results == [4] * 400
        metrics = service.get_metrics()["count_courts"]
        assert metrics["count"] == 400
        assert metrics["failure_count"] == 0

    def test_wrapper_keeps_function_metadata(self):
        assert CourtCounter.count_courts.__name__ == "count_courts"


def test_injected_clock():
    pinned = datetime(2025, 6, 2, 17, 0, tzinfo=timezone.utc)

    assert CourtCounter(MagicMock(), now_provider=lambda: pinned).now() == pinned
    assert CourtCounter(MagicMock()).now().tzinfo is not None
