from types import SimpleNamespace

import pytest

from bloodconnect.errors import StateConflict
from bloodconnect.services import lifecycle
from bloodconnect.services.lifecycle import (
    DONATION_MACHINE, DONATION_ORDER, REQUEST_MACHINE, VOLUNTARY_MACHINE, check_transition
)


def test_request_transitions():
    assert REQUEST_MACHINE.can('pending', 'approved')
    assert REQUEST_MACHINE.can('pending', 'rejected')
    assert REQUEST_MACHINE.can('approved', 'in_progress')
    assert REQUEST_MACHINE.can('in_progress', 'completed')
    assert REQUEST_MACHINE.can('in_progress', 'approved')
    assert not REQUEST_MACHINE.can('approved', 'approved')
    assert not REQUEST_MACHINE.can('rejected', 'approved')
    assert not REQUEST_MACHINE.can('completed', 'in_progress')


def test_donation_only_moves_forward():
    for i, current in enumerate(DONATION_ORDER):
        for j, target in enumerate(DONATION_ORDER):
            assert DONATION_MACHINE.can(current, target) == (j > i)


def test_donation_forward_skips_allowed():
    assert DONATION_MACHINE.can('accepted', 'reached')
    assert DONATION_MACHINE.can('accepted', 'completed')


def test_only_live_donations_can_be_cancelled():
    assert DONATION_MACHINE.can('reached', 'cancelled')
    assert not DONATION_MACHINE.can('completed', 'cancelled')
    assert not DONATION_MACHINE.can('cancelled', 'accepted')


def test_voluntary_transitions():
    assert VOLUNTARY_MACHINE.can('pending', 'approved')
    assert VOLUNTARY_MACHINE.can('approved', 'scheduled')
    assert VOLUNTARY_MACHINE.can('scheduled', 'completed')
    assert not VOLUNTARY_MACHINE.can('approved', 'completed')
    assert not VOLUNTARY_MACHINE.can('pending', 'scheduled')


def test_check_transition_reports_current_status():
    with pytest.raises(StateConflict) as excinfo:
        check_transition(REQUEST_MACHINE, 'approved', 'rejected')
    assert excinfo.value.code == 400
    assert 'Current status: approved' in excinfo.value.description


def test_apply_leaves_status_unchanged_on_illegal_move():
    donation = SimpleNamespace(status='completed')
    with pytest.raises(StateConflict) as excinfo:
        DONATION_MACHINE.apply(donation, 'cancelled')
    assert 'Current status: completed' in excinfo.value.description
    assert donation.status == 'completed'


def test_apply_goes_through_check_transition(monkeypatch):
    calls = []
    real = lifecycle.check_transition

    def recording(machine, current, target, message=None):
        calls.append((machine.name, current, target))
        return real(machine, current, target, message)

    monkeypatch.setattr(lifecycle, 'check_transition', recording)
    record = SimpleNamespace(status='pending')
    REQUEST_MACHINE.apply(record, 'approved')
    assert record.status == 'approved'
    assert calls == [('Request', 'pending', 'approved')]
