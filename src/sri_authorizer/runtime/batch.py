"""
Partial-batch processing.

Items of a batch are processed sequentially and independently: a failing
item is reported by identifier and never aborts the rest of the batch, so
only the failed items are redelivered.
"""

import time
from collections.abc import Callable, Iterable
from typing import TypeVar

from sri_authorizer.core.errors import DROPPABLE_ERRORS, is_retriable
from sri_authorizer.core.models import BatchItemFailure, BatchResult
from sri_authorizer.observability import metrics
from sri_authorizer.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def process_batch(
    items: Iterable[T],
    handler: Callable[[T], object],
    identify: Callable[[T], str],
    handler_name: str = "batch",
) -> BatchResult:
    """
    Run handler over every item and collect per-item failures.

    Droppable errors (malformed keys, missing required fields) are logged and
    count as processed; every other exception becomes a BatchItemFailure
    carrying its retriable flag.

    Args:
        items: Batch items
        handler: Callable processing one item
        identify: Returns the identifier reported for a failed item
        handler_name: Metric/log label

    Returns:
        BatchResult listing failed item identifiers
    """
    result = BatchResult()
    start_time = time.time()

    for item in items:
        result.total += 1
        item_id = identify(item)

        try:
            handler(item)
        except DROPPABLE_ERRORS as e:
            result.dropped += 1
            metrics.increment_counter(metrics.batch_items_total, handler=handler_name, status="dropped")
            logger.warning(
                f"Dropping item {item_id}: {e}",
                extra={"handler": handler_name, "item_id": item_id, "error_type": type(e).__name__},
            )
            continue
        except Exception as e:
            retriable = is_retriable(e)
            result.batch_item_failures.append(
                BatchItemFailure(
                    item_identifier=item_id,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    retriable=retriable,
                )
            )
            metrics.increment_counter(metrics.batch_items_total, handler=handler_name, status="failure")
            metrics.record_error(e, component=handler_name)
            logger.error(
                f"Failed to process item {item_id}: {e}",
                extra={
                    "handler": handler_name,
                    "item_id": item_id,
                    "error_type": type(e).__name__,
                    "retriable": retriable,
                },
                exc_info=retriable,
            )
            continue

        metrics.increment_counter(metrics.batch_items_total, handler=handler_name, status="success")

    duration = time.time() - start_time
    metrics.batch_duration_seconds.labels(handler=handler_name).observe(duration)

    if result.total:
        logger.info(
            f"Batch processed: {result.succeeded}/{result.total} succeeded",
            extra={
                "handler": handler_name,
                "total": result.total,
                "dropped": result.dropped,
                "failed": len(result.batch_item_failures),
                "duration_seconds": round(duration, 3),
            },
        )
    return result
