"""
Blood request and donation lifecycle.

Status fields only change through ``StateMachine.apply``; the transition
tables below are the single place that says which moves are legal.
"""
import logging
from datetime import date, datetime

from werkzeug.exceptions import BadRequest, NotFound

from bloodconnect.errors import StateConflict
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.enums import (
    DonationStatus, RequestStatus, Urgency, VoluntaryStatus
)
from bloodconnect.services import certificates, notifications
from bloodconnect.services.compatibility import is_compatible, is_valid_blood_type
from bloodconnect.services.eligibility import (
    LIVE_DONATION_STATUSES, ensure_eligible, find_live_donation, next_eligible_date
)

logger = logging.getLogger(__name__)


class StateMachine:
    def __init__(self, name, transitions):
        self.name = name
        self.transitions = transitions

    def can(self, current, target):
        return target in self.transitions.get(current, ())

    def apply(self, record, target, message=None):
        check_transition(self, record.status, target, message)
        record.status = target.value if hasattr(target, 'value') else target
        return record


REQUEST_MACHINE = StateMachine('Request', {
    RequestStatus.PENDING: {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED},
    RequestStatus.APPROVED: {RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED},
    # back to approved when the accepted donation is cancelled
    RequestStatus.IN_PROGRESS: {RequestStatus.COMPLETED, RequestStatus.APPROVED, RequestStatus.CANCELLED},
})

DONATION_ORDER = [
    DonationStatus.ACCEPTED,
    DonationStatus.ON_THE_WAY,
    DonationStatus.REACHED,
    DonationStatus.COMPLETED,
]

DONATION_MACHINE = StateMachine('Donation', {
    status: set(DONATION_ORDER[index + 1:]) | {DonationStatus.CANCELLED}
    for index, status in enumerate(DONATION_ORDER[:-1])
})

VOLUNTARY_MACHINE = StateMachine('Voluntary donation', {
    VoluntaryStatus.PENDING: {VoluntaryStatus.APPROVED, VoluntaryStatus.REJECTED, VoluntaryStatus.CANCELLED},
    VoluntaryStatus.APPROVED: {VoluntaryStatus.SCHEDULED, VoluntaryStatus.CANCELLED},
    VoluntaryStatus.SCHEDULED: {VoluntaryStatus.COMPLETED, VoluntaryStatus.CANCELLED},
})


def check_transition(machine, current, target, message=None):
    """Raise StateConflict unless ``machine`` allows ``current`` to move to ``target``."""
    if not machine.can(current, target):
        raise StateConflict(
            message or f'{machine.name} cannot move from {current} to {target}. Current status: {current}'
        )

EMERGENCY_FIRST = db.case((BloodRequest.urgency == Urgency.EMERGENCY.value, 0), else_=1)

DONATION_TIMESTAMPS = {
    DonationStatus.ON_THE_WAY: 'started_at',
    DonationStatus.REACHED: 'reached_at',
    DonationStatus.COMPLETED: 'completed_at',
}


def create_request(requester, requester_type, data, hospital=None):
    """Insert a pending blood request; ``data`` is already validated form input."""
    if not is_valid_blood_type(data['blood_type']):
        raise BadRequest(f"Invalid blood type: {data['blood_type']}")

    blood_request = BloodRequest(
        blood_type=data['blood_type'],
        quantity=data['quantity'],
        urgency=Urgency.EMERGENCY.value if data.get('emergency') else Urgency.NORMAL.value,
        status=RequestStatus.PENDING.value,
        requester_id=requester.id,
        requester_type=requester_type.value,
        hospital_id=hospital.id if hospital else None,
        hospital_name=hospital.name if hospital else data.get('hospital_name'),
        patient_name=data['patient_name'],
        patient_age=data.get('patient_age'),
        contact_phone=data['contact_phone'],
        contact_email=data.get('contact_email'),
        city=data['city'],
        required_date=data['required_date'],
        medical_reason=data.get('medical_reason')
    )
    db.session.add(blood_request)
    db.session.flush()
    blood_request.request_code = f'REQ{blood_request.id:05d}'

    notifications.request_submitted(blood_request)
    notifications.admins_new_request(blood_request, requester.name)
    return blood_request


def approve_request(blood_request, admin):
    REQUEST_MACHINE.apply(blood_request, RequestStatus.APPROVED,
                          f'Request is not pending. Current status: {blood_request.status}')
    blood_request.admin_id = admin.id
    blood_request.approved_at = datetime.utcnow()

    notifications.request_reviewed(blood_request, approved=True)
    notified = notifications.notify_matching_donors(blood_request)
    logger.info('Request %s approved, %d donors notified', blood_request.request_code, notified)
    return blood_request


def reject_request(blood_request, admin, reason=None):
    REQUEST_MACHINE.apply(blood_request, RequestStatus.REJECTED,
                          f'Request is not pending. Current status: {blood_request.status}')
    blood_request.admin_id = admin.id
    blood_request.rejected_at = datetime.utcnow()
    blood_request.rejection_reason = reason

    notifications.request_reviewed(blood_request, approved=False, reason=reason)
    return blood_request


def accept_request(donor, request_id, today=None):
    """Create an accepted donation for an approved request and mark it in progress.

    The request row is locked for the rest of the transaction so two donors
    cannot both take it.
    """
    blood_request = BloodRequest.query.filter_by(id=request_id).with_for_update().first()
    if not blood_request:
        raise NotFound('Request not found')

    if blood_request.status != RequestStatus.APPROVED:
        if blood_request.status == RequestStatus.PENDING:
            reason = 'Request is still pending admin approval'
        elif blood_request.status == RequestStatus.IN_PROGRESS:
            reason = 'Request has already been accepted by another donor'
        else:
            reason = 'Request is not available'
        raise StateConflict(f'{reason}. Status: {blood_request.status}')

    if find_live_donation(donor):
        raise StateConflict('You already have an active donation. Complete or cancel it first.')

    if Donation.query.filter_by(donor_id=donor.id, request_id=blood_request.id).first():
        raise StateConflict('You have already responded to this request')

    if not is_compatible(donor.blood_type, blood_request.blood_type):
        raise BadRequest(f'Your blood type ({donor.blood_type}) cannot be given to {blood_request.blood_type}')

    ensure_eligible(donor, today)

    donation = Donation(
        request_id=blood_request.id,
        donor_id=donor.id,
        status=DonationStatus.ACCEPTED.value,
        quantity=blood_request.quantity,
        accepted_at=datetime.utcnow()
    )
    db.session.add(donation)
    REQUEST_MACHINE.apply(blood_request, RequestStatus.IN_PROGRESS)
    db.session.flush()

    notifications.donor_accepted(donor, donation, blood_request)
    notifications.requester_donor_found(blood_request, donation, donor.name)
    return donation


def advance_donation(donor, donation, new_status, today=None):
    """Move a donation forward; completing it closes the request and issues the certificate."""
    progress = [s.value for s in DONATION_ORDER[1:]]
    if new_status not in progress:
        raise BadRequest('Invalid status. Must be: on_the_way, reached, or completed')
    target = DonationStatus(new_status)

    if donation.status in (DonationStatus.COMPLETED, DonationStatus.CANCELLED):
        raise StateConflict(f'Donation is already {donation.status}')
    DONATION_MACHINE.apply(donation, target, f'Invalid status transition. Current: {donation.status}')

    now = datetime.utcnow()
    setattr(donation, DONATION_TIMESTAMPS[target], now)

    blood_request = donation.request
    if target == DonationStatus.COMPLETED:
        REQUEST_MACHINE.apply(blood_request, RequestStatus.COMPLETED)
        record_completed_donation(donor, donation, blood_request.hospital_name, today or date.today())

    notifications.requester_donation_progress(blood_request, donation, donor.name)
    return donation


def cancel_donation(donor, donation, reason=None):
    """Cancel a live donation and hand its request back to other donors."""
    if donation.status == DonationStatus.COMPLETED:
        raise StateConflict('Cannot cancel a completed donation')
    if donation.status == DonationStatus.CANCELLED:
        raise StateConflict('Donation is already cancelled')

    DONATION_MACHINE.apply(donation, DonationStatus.CANCELLED)
    donation.cancelled_at = datetime.utcnow()
    donation.cancel_reason = reason

    blood_request = donation.request
    if blood_request.status == RequestStatus.IN_PROGRESS:
        REQUEST_MACHINE.apply(blood_request, RequestStatus.APPROVED)

    notifications.requester_donor_cancelled(blood_request, donation, donor.name, reason)
    notifications.admins_donation_cancelled(donation, donor.name, blood_request.request_code)
    return donation


def record_completed_donation(donor, donation, hospital_name, completed_on):
    """Update donor counters and cooldown, then issue the donation certificate."""
    donor.total_donations = (donor.total_donations or 0) + 1
    donor.last_donation_date = completed_on
    donor.next_eligible_date = next_eligible_date(completed_on)
    db.session.flush()

    certificate = certificates.issue_certificate(donation, donor, hospital_name, completed_on)
    notifications.donor_donation_completed(donor, donation, hospital_name)
    tier = certificates.tier_reached(donor.total_donations)
    if tier:
        notifications.donor_achievement_unlocked(donor, tier, donor.total_donations)
    return certificate


def expire_request(blood_request):
    """Cancel a request whose required date has passed, along with its live donation."""
    donation = blood_request.active_donation
    if donation is not None and donation.status in LIVE_DONATION_STATUSES:
        DONATION_MACHINE.apply(donation, DonationStatus.CANCELLED)
        donation.cancelled_at = datetime.utcnow()
        donation.cancel_reason = 'Request expired'
    REQUEST_MACHINE.apply(blood_request, RequestStatus.CANCELLED)
    blood_request.rejection_reason = 'Request expired - required date passed'
    return blood_request


def guest_status(blood_request):
    """Guest-facing lifecycle label combining request and donation status."""
    status_map = {
        'pending': ('pending', 'Under Review', 'Request is being reviewed by admin.'),
        'approved': ('approved', 'Searching for Donor', 'Request approved. Looking for compatible donors.'),
        'rejected': ('rejected', 'Request Rejected', 'Request was rejected. Contact support for details.'),
        'in_progress': ('in_progress', 'Donor Assigned', 'A donor has been assigned to this request.'),
        'completed': ('completed', 'Completed', 'Donation completed successfully.'),
        'cancelled': ('cancelled', 'Cancelled', 'Request was cancelled.'),
    }
    donation_map = {
        'accepted': ('donor_assigned', 'Donor Assigned', 'A donor has accepted the request.'),
        'on_the_way': ('on_the_way', 'Donor On the Way', 'Donor is on their way to the hospital.'),
        'reached': ('reached', 'Donor Arrived', 'Donor has arrived. Donation in progress.'),
        'completed': ('completed', 'Completed', 'Donation completed successfully.'),
    }
    entry = status_map.get(blood_request.status, ('unknown', 'Unknown', 'Status unknown.'))
    donation = blood_request.active_donation
    if blood_request.status == RequestStatus.IN_PROGRESS and donation is not None:
        entry = donation_map.get(donation.status, entry)
    status, label, message = entry
    return {'status': status, 'label': label, 'message': message}


__all__ = [
    'REQUEST_MACHINE', 'DONATION_MACHINE', 'VOLUNTARY_MACHINE', 'StateMachine', 'check_transition',
    'accept_request', 'advance_donation', 'approve_request', 'cancel_donation', 'create_request',
    'expire_request', 'find_live_donation', 'guest_status', 'record_completed_donation', 'reject_request',
]
