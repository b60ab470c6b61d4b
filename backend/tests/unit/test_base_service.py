"""Tests for BaseService transaction handling and operation metrics."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from mentorlink.core.exceptions import RepositoryException, ServiceException, ValidationException
from mentorlink.monitoring.prometheus_metrics import prometheus_metrics
from mentorlink.services.base import BaseService


class _SampleService(BaseService):
    @BaseService.measure_operation("do_work")
    def do_work(self, value):
        if value is None:
            raise ValidationException("value required")
        return value * 2


class TestTransaction:
    def test_commits_on_success(self):
        db = MagicMock()
        service = _SampleService(db)

        with service.transaction():
            pass

        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    @pytest.mark.parametrize(
        "error",
        [
            RepositoryException("insert failed"),
            OperationalError("UPDATE x", {}, Exception("database is locked")),
        ],
    )
    def test_storage_errors_roll_back_and_become_service_exceptions(self, error):
        db = MagicMock()
        service = _SampleService(db)

        with pytest.raises(ServiceException):
            with service.transaction():
                raise error

        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_domain_errors_roll_back_and_propagate_unchanged(self):
        db = MagicMock()
        service = _SampleService(db)

        with pytest.raises(ValidationException):
            with service.transaction():
                raise ValidationException("bad input")

        db.rollback.assert_called_once()

    def test_service_exception_hides_details_from_clients(self):
        http_exc = ServiceException("Database operation failed: secret").to_http_exception()
        assert http_exc.status_code == 500
        assert "secret" not in str(http_exc.detail)


class TestMeasureOperation:
    def test_records_success_and_failure(self):
        service = _SampleService(MagicMock())

        assert service.do_work(2) == 4
        with pytest.raises(ValidationException):
            service.do_work(None)

        stats = service.get_stats()["do_work"]
        assert stats.count >= 2
        assert stats.failures >= 1
        assert stats.failures < stats.count
        assert stats.avg_time <= stats.max_time

    def test_keeps_wrapped_function_metadata(self):
        assert _SampleService.do_work.__name__ == "do_work"

    def test_prometheus_exposition_includes_operation(self):
        service = _SampleService(MagicMock())
        service.do_work(3)

        payload = prometheus_metrics.get_metrics().decode("utf-8")
        assert "mentorlink_service_operations_total" in payload
        assert 'operation="do_work"' in payload
