"""
Change dispatcher: the status state machine router.

Consumes voucher change events, decides which downstream action a status
transition triggers, and sends the corresponding message:

    MODIFY (x -> RECEIVED|PROCESSING, x != new)   -> AUTHORIZE_VOUCHER on the work queue
    MODIFY (RECEIVED|PROCESSING -> AUTHORIZED)    -> STATUS_CHANGE on the notification topic
    anything else                                 -> no action

Queue/topic failures propagate so the whole change event is redelivered;
consumers are idempotent on the access key.
"""

from sri_authorizer.core.errors import DownstreamPublishError, MissingRequiredFieldError
from sri_authorizer.core.interfaces import WorkQueue
from sri_authorizer.core.models import (
    ChangeEvent,
    ChangeEventName,
    DispatchAction,
    DispatchEventType,
    DispatchMessage,
    VoucherStatus,
)
from sri_authorizer.notifications.publisher import NotificationPublisher
from sri_authorizer.observability import metrics
from sri_authorizer.observability.logger import get_logger

from .transitions import REQUIRED_FIELDS, parse_status, route_transition

logger = get_logger(__name__)


class ChangeDispatcher:
    """
    Routes voucher status transitions to the authorization queue or the
    notification topic.
    """

    def __init__(self, authorization_queue: WorkQueue, publisher: NotificationPublisher):
        """
        Initialize the dispatcher.

        Args:
            authorization_queue: Queue consumed by the authorization worker
            publisher: Publisher for terminal-state notifications
        """
        self.authorization_queue = authorization_queue
        self.publisher = publisher

    def handle(self, event: ChangeEvent) -> DispatchAction:
        """
        Dispatch a single change event.

        Args:
            event: Change event from the voucher change feed

        Returns:
            The action taken

        Raises:
            DownstreamPublishError: If sending to the queue or topic fails
        """
        action = self._dispatch(event)
        metrics.increment_counter(
            metrics.change_events_total,
            event_name=event.event_name.value,
            action=action.value,
        )
        return action

    def _dispatch(self, event: ChangeEvent) -> DispatchAction:
        context = {"event_id": event.event_id, "table_name": event.table_name}

        if event.event_name != ChangeEventName.MODIFY:
            logger.debug(f"Skipping non-MODIFY event: {event.event_name.value}", extra=context)
            return DispatchAction.NONE

        if not event.old_image or not event.new_image:
            logger.warning("Dropping MODIFY event with missing old or new image", extra=context)
            return DispatchAction.DROPPED

        old_status = parse_status(event.old_image.get("status"))
        new_status = parse_status(event.new_image.get("status"))
        action = route_transition(old_status, new_status)

        logger.debug(
            "Status change observed",
            extra={
                **context,
                "old_status": event.old_image.get("status"),
                "new_status": event.new_image.get("status"),
                "action": action.value,
            },
        )

        if action == DispatchAction.NONE:
            return action

        try:
            self._require_fields(action, event)
        except MissingRequiredFieldError as e:
            logger.warning(
                f"Dropping {action.value} dispatch: {e.message}",
                extra={
                    **context,
                    "missing_field": e.field_name,
                    "has_access_key": bool(event.new_image.get("access_key")),
                    "has_status": bool(event.new_image.get("status")),
                },
            )
            return DispatchAction.DROPPED

        access_key = event.new_image["access_key"]
        if action == DispatchAction.AUTHORIZE:
            self._enqueue_authorization(access_key, event.table_name, new_status)
        else:
            self.publisher.publish(new_status, access_key)
        return action

    def _require_fields(self, action: DispatchAction, event: ChangeEvent) -> None:
        for field_name in REQUIRED_FIELDS[action]:
            if not event.new_image.get(field_name):
                raise MissingRequiredFieldError(
                    field_name, event_id=event.event_id, table_name=event.table_name
                )

    def _enqueue_authorization(self, access_key: str, table_name: str, new_status: VoucherStatus) -> None:
        message = DispatchMessage(
            access_key=access_key,
            source_table=table_name,
            event_type=DispatchEventType.AUTHORIZE_VOUCHER,
        )
        try:
            message_id = self.authorization_queue.send(
                message.to_json(),
                {"eventType": DispatchEventType.AUTHORIZE_VOUCHER.value},
            )
        except Exception as e:
            metrics.increment_counter(
                metrics.dispatched_messages_total,
                event_type=DispatchEventType.AUTHORIZE_VOUCHER.value,
                status="failure",
            )
            raise DownstreamPublishError(
                f"Failed to enqueue authorization: {e}", access_key=access_key
            ) from e

        metrics.increment_counter(
            metrics.dispatched_messages_total,
            event_type=DispatchEventType.AUTHORIZE_VOUCHER.value,
            status="success",
        )
        logger.info(
            f"Status changed to {new_status.value}, authorization enqueued",
            extra={"access_key": access_key, "message_id": message_id, "table_name": table_name},
        )

