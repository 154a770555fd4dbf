"""
Terminal-state notifications.

Publishes STATUS_CHANGE events on the notification topic. Delivery is
at-least-once; subscribers dedupe on (accessKey, status) if they need to.
"""

from sri_authorizer.core.errors import DownstreamPublishError
from sri_authorizer.core.interfaces import Topic
from sri_authorizer.core.models import DispatchEventType, StatusChangeNotification, VoucherStatus
from sri_authorizer.observability import metrics
from sri_authorizer.observability.logger import get_logger

logger = get_logger(__name__)


class NotificationPublisher:
    """
    Publishes voucher status changes to a topic.
    """

    def __init__(self, topic: Topic):
        """
        Initialize the publisher.

        Args:
            topic: Notification topic
        """
        self.topic = topic

    def publish(self, status: VoucherStatus, access_key: str) -> str:
        """
        Publish a STATUS_CHANGE notification.

        Args:
            status: New voucher status
            access_key: Access key of the voucher

        Returns:
            Id of the published message

        Raises:
            DownstreamPublishError: If the topic rejects the message
        """
        notification = StatusChangeNotification(status=status, access_key=access_key)

        try:
            message_id = self.topic.publish(notification.to_json(), notification.attributes())
        except Exception as e:
            metrics.increment_counter(
                metrics.dispatched_messages_total,
                event_type=DispatchEventType.STATUS_CHANGE.value,
                status="failure",
            )
            raise DownstreamPublishError(
                f"Failed to publish {status.value} notification: {e}",
                access_key=access_key,
            ) from e

        metrics.increment_counter(
            metrics.dispatched_messages_total,
            event_type=DispatchEventType.STATUS_CHANGE.value,
            status="success",
        )
        logger.info(
            "Notification published",
            extra={"access_key": access_key, "status": status.value, "message_id": message_id},
        )
        return message_id
