"""
Unit tests for status transition routing
"""
import itertools

import pytest

from sri_authorizer.core.models import DispatchAction, VoucherStatus
from sri_authorizer.dispatch.transitions import parse_status, route_transition

ALL_STATUSES = list(VoucherStatus)
TRIGGERS = {VoucherStatus.RECEIVED, VoucherStatus.PROCESSING}


def expected_action(old, new):
    if new is None or old == new:
        return DispatchAction.NONE
    if new in TRIGGERS:
        return DispatchAction.AUTHORIZE
    if old in TRIGGERS and new == VoucherStatus.AUTHORIZED:
        return DispatchAction.NOTIFY
    return DispatchAction.NONE


@pytest.mark.unit
@pytest.mark.parametrize("old,new", list(itertools.product(ALL_STATUSES + [None], ALL_STATUSES + [None])))
def test_full_transition_matrix(old, new):
    """Test every (old, new) pair routes as the state machine prescribes"""
    assert route_transition(old, new) == expected_action(old, new)


@pytest.mark.unit
class TestRouteTransition:
    """Spot checks of the routing table"""

    def test_signed_to_received_authorizes(self):
        assert route_transition(VoucherStatus.SIGNED, VoucherStatus.RECEIVED) == DispatchAction.AUTHORIZE

    def test_received_to_processing_authorizes_again(self):
        """Test moving into PROCESSING also enqueues (the worker is idempotent)"""
        assert route_transition(VoucherStatus.RECEIVED, VoucherStatus.PROCESSING) == DispatchAction.AUTHORIZE

    def test_processing_to_authorized_notifies(self):
        assert route_transition(VoucherStatus.PROCESSING, VoucherStatus.AUTHORIZED) == DispatchAction.NOTIFY

    def test_same_status_is_noop(self):
        """Test rewriting the same status never fires again"""
        assert route_transition(VoucherStatus.RECEIVED, VoucherStatus.RECEIVED) == DispatchAction.NONE
        assert route_transition(VoucherStatus.AUTHORIZED, VoucherStatus.AUTHORIZED) == DispatchAction.NONE

    def test_signed_to_authorized_is_noop(self):
        """Test a notification requires a RECEIVED/PROCESSING origin"""
        assert route_transition(VoucherStatus.SIGNED, VoucherStatus.AUTHORIZED) == DispatchAction.NONE

    def test_not_authorized_is_silent(self):
        """Test NOT_AUTHORIZED emits nothing"""
        assert route_transition(VoucherStatus.PROCESSING, VoucherStatus.NOT_AUTHORIZED) == DispatchAction.NONE

    def test_missing_old_status_to_received(self):
        assert route_transition(None, VoucherStatus.RECEIVED) == DispatchAction.AUTHORIZE


@pytest.mark.unit
class TestParseStatus:
    """Tests for parse_status()"""

    def test_known_status(self):
        assert parse_status("AUTHORIZED") == VoucherStatus.AUTHORIZED

    def test_missing_status(self):
        assert parse_status(None) is None

    def test_unknown_status(self):
        assert parse_status("ARCHIVED") is None
