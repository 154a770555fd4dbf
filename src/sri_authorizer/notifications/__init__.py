"""
Notification topic publishing.
"""

from .publisher import NotificationPublisher

__all__ = ["NotificationPublisher"]
