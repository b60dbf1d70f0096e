from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace.status import Status, StatusCode
from sqlalchemy.exc import SQLAlchemyError

from tasktrack_api.domain.errors import AppError, database_error
from tasktrack_api.observability import metrics

_tracer = trace.get_tracer("tasktrack_api")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def observe_db_operation(
    operation: str,
    table: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> AsyncIterator[None]:
    """Time a storage call and translate driver failures into ``DATABASE_ERROR``.

    ``AppError`` raised inside the block (e.g. a not-found or conflict decided by
    the caller) passes through unchanged.
    """
    start = time.perf_counter()
    status = "success"
    with _tracer.start_as_current_span(f"db.{operation.lower()} {table}") as span:
        span.set_attribute("db.operation", operation)
        span.set_attribute("db.sql.table", table)
        if attributes:
            for key, value in attributes.items():
                if value is None:
                    continue
                span.set_attribute(key, value)
        try:
            yield
        except AppError as exc:
            span.set_attribute("app.error_code", str(exc.code))
            raise
        except SQLAlchemyError as exc:
            status = "error"
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            logger.error(
                "Database operation failed",
                extra={"operation": operation, "table": table, "error": repr(exc)},
            )
            raise database_error().with_cause(exc) from exc
        except Exception as exc:  # noqa: BLE001
            status = "error"
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            raise
        finally:
            duration = time.perf_counter() - start
            metrics.database_operations_total.labels(
                operation=operation, table=table, status=status
            ).inc()
            metrics.database_operation_duration_seconds.labels(
                operation=operation, table=table
            ).observe(duration)
            if status == "success":
                logger.debug(
                    "Database operation completed",
                    extra={"operation": operation, "table": table, "duration": duration},
                )
