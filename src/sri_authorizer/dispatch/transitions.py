"""
Status transition routing.

Routing is keyed off the (old, new) status pair of a MODIFY event, never off
the new status alone, so rewriting a voucher with the same status does not
fire again.
"""

from sri_authorizer.core.models import DispatchAction, VoucherStatus

AUTHORIZATION_TRIGGER_STATUSES = frozenset({VoucherStatus.RECEIVED, VoucherStatus.PROCESSING})
NOTIFICATION_SOURCE_STATUSES = frozenset({VoucherStatus.RECEIVED, VoucherStatus.PROCESSING})
NOTIFICATION_TARGET_STATUS = VoucherStatus.AUTHORIZED

# Fields the new image must carry for each action
REQUIRED_FIELDS: dict[DispatchAction, tuple[str, ...]] = {
    DispatchAction.AUTHORIZE: ("access_key",),
    DispatchAction.NOTIFY: ("access_key", "status"),
}


def parse_status(value: object) -> VoucherStatus | None:
    """Return the VoucherStatus for a raw image value, None when absent or unknown."""
    if value is None:
        return None
    try:
        return VoucherStatus(value)
    except ValueError:
        return None


def route_transition(old_status: VoucherStatus | None, new_status: VoucherStatus | None) -> DispatchAction:
    """
    Decide which action a status transition triggers.

    Args:
        old_status: Status before the write (None if missing)
        new_status: Status after the write (None if missing)

    Returns:
        DispatchAction.AUTHORIZE, DispatchAction.NOTIFY or DispatchAction.NONE
    """
    if new_status is None or old_status == new_status:
        return DispatchAction.NONE

    if new_status in AUTHORIZATION_TRIGGER_STATUSES:
        return DispatchAction.AUTHORIZE

    if old_status in NOTIFICATION_SOURCE_STATUSES and new_status == NOTIFICATION_TARGET_STATUS:
        return DispatchAction.NOTIFY

    return DispatchAction.NONE
