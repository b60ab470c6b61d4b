# backend/mentorlink/services/base.py
"""
Base service for MentorLink.

Services own transaction boundaries and time their public operations.
Routes call them from worker threads, so everything here is synchronous.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


@dataclass
class OperationStats:
    count: int = 0
    failures: int = 0
    total_time: float = 0.0
    max_time: float = 0.0

    @property
    def avg_time(self) -> float:
        return self.total_time / self.count if self.count else 0.0

    def record(self, elapsed: float, success: bool) -> None:
        self.count += 1
        self.total_time += elapsed
        self.max_time = max(self.max_time, elapsed)
        if not success:
            self.failures += 1


class BaseService:
    """
    Base class for service layer components.

    Subclasses get ``self.db``, a class-named ``self.logger`` and
    per-operation timing through :meth:`measure_operation`.
    """

    # service class name -> operation -> stats
    _stats: Dict[str, Dict[str, OperationStats]] = {}

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit everything done inside the block, or roll it all back.

        Storage failures become ServiceException (500, no driver details);
        domain exceptions propagate unchanged after the rollback.
        """
        try:
            yield self.db
            self.db.commit()
        except (SQLAlchemyError, RepositoryException) as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Time a service method into the in-process stats and Prometheus.

        Usage:
            @BaseService.measure_operation("send_message")
            def send_message(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                error_type: Optional[str] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    self._record_operation(
                        operation_name, time.perf_counter() - start, error_type
                    )

            return cast(F, wrapper)

        return decorator

    def _record_operation(
        self, operation: str, elapsed: float, error_type: Optional[str]
    ) -> None:
        service = self.__class__.__name__
        stats = BaseService._stats.setdefault(service, {})
        stats.setdefault(operation, OperationStats()).record(elapsed, error_type is None)

        if elapsed > SLOW_OPERATION_SECONDS:
            self.logger.warning(f"Slow operation detected: {operation} took {elapsed:.2f}s")

        try:
            prometheus_metrics.record_service_operation(
                service=service,
                operation=operation,
                duration=elapsed,
                status="success" if error_type is None else "error",
                error_type=error_type,
            )
        except Exception:
            # Metrics must never fail the operation
            logger.debug("Failed to record metrics for %s", operation, exc_info=True)

    def get_stats(self) -> Dict[str, OperationStats]:
        """Timing stats recorded for this service class."""
        return dict(BaseService._stats.get(self.__class__.__name__, {}))
