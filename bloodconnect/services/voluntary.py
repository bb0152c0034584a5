"""
Voluntary donation workflow: a donor offers to give blood at a hospital,
an admin reviews the offer, and the hospital schedules and completes it.
"""
import logging
from datetime import date, datetime, time

from werkzeug.exceptions import BadRequest, NotFound

from bloodconnect.errors import StateConflict
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.enums import (
    AccountStatus, DonationStatus, PreferredTime, RequesterType, RequestStatus, Urgency, VoluntaryStatus, values
)
from bloodconnect.models.hospital_model import Hospital
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation
from bloodconnect.services import notifications
from bloodconnect.services.eligibility import ensure_eligible
from bloodconnect.services.lifecycle import VOLUNTARY_MACHINE, check_transition, record_completed_donation

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [VoluntaryStatus.PENDING.value, VoluntaryStatus.APPROVED.value, VoluntaryStatus.SCHEDULED.value]

DEFAULT_TIMES = {
    PreferredTime.MORNING: time(9, 0),
    PreferredTime.AFTERNOON: time(14, 0),
    PreferredTime.EVENING: time(18, 0),
    PreferredTime.ANY: time(10, 0),
}

HOSPITAL_ACTIONS = ('confirmed', 'completed', 'cancelled')


def find_active_submission(donor):
    return VoluntaryDonation.query.filter(
        VoluntaryDonation.donor_id == donor.id,
        VoluntaryDonation.status.in_(ACTIVE_STATUSES)
    ).first()


def submit(donor, hospital_id, availability_date, preferred_time=None, notes=None, today=None):
    today = today or date.today()
    preferred_time = preferred_time or PreferredTime.ANY.value
    if preferred_time not in values(PreferredTime):
        raise BadRequest('Invalid preferred time. Must be: morning, afternoon, evening, or any')
    if availability_date < today:
        raise BadRequest('Availability date cannot be in the past')

    hospital = db.session.get(Hospital, hospital_id)
    if hospital is None or hospital.user.status != AccountStatus.APPROVED:
        raise BadRequest('Selected hospital is not available')

    if find_active_submission(donor):
        raise StateConflict('You already have an active voluntary donation request')

    ensure_eligible(donor, today)

    voluntary = VoluntaryDonation(
        donor_id=donor.id,
        blood_type=donor.blood_type,
        hospital_id=hospital.id,
        city=donor.city or hospital.city,
        availability_date=availability_date,
        preferred_time=preferred_time,
        notes=notes,
        status=VoluntaryStatus.PENDING.value
    )
    db.session.add(voluntary)
    db.session.flush()

    notifications.admins_voluntary_submitted(voluntary)
    return voluntary


def approve(voluntary, admin):
    VOLUNTARY_MACHINE.apply(voluntary, VoluntaryStatus.APPROVED,
                            f'Only pending requests can be approved. Current status: {voluntary.status}')
    voluntary.approved_by_admin_id = admin.id
    voluntary.approved_at = datetime.utcnow()
    notifications.voluntary_reviewed(voluntary, approved=True)
    return voluntary


def reject(voluntary, admin, reason=None):
    VOLUNTARY_MACHINE.apply(voluntary, VoluntaryStatus.REJECTED,
                            f'Only pending requests can be rejected. Current status: {voluntary.status}')
    voluntary.approved_by_admin_id = admin.id
    voluntary.rejected_at = datetime.utcnow()
    voluntary.rejection_reason = reason
    notifications.voluntary_reviewed(voluntary, approved=False, reason=reason)
    return voluntary


def cancel_by_donor(voluntary):
    if voluntary.status not in (VoluntaryStatus.PENDING, VoluntaryStatus.APPROVED):
        raise StateConflict(f'Only pending or approved requests can be cancelled. Current status: {voluntary.status}')
    VOLUNTARY_MACHINE.apply(voluntary, VoluntaryStatus.CANCELLED)
    return voluntary


def _claim(voluntary, hospital):
    if voluntary.hospital_id not in (None, hospital.id):
        raise StateConflict('This donation is already assigned to another hospital')
    voluntary.hospital_id = hospital.id


def schedule(voluntary, hospital, scheduled_date, scheduled_time=None, notes=None, today=None):
    today = today or date.today()
    if scheduled_date < today:
        raise BadRequest('Scheduled date cannot be in the past')
    check_transition(VOLUNTARY_MACHINE, voluntary.status, VoluntaryStatus.SCHEDULED,
                     f'Only approved requests can be scheduled. Current status: {voluntary.status}')
    _claim(voluntary, hospital)

    voluntary.scheduled_date = scheduled_date
    voluntary.scheduled_time = scheduled_time or DEFAULT_TIMES[PreferredTime(voluntary.preferred_time or 'any')]
    if notes:
        voluntary.notes = notes
    VOLUNTARY_MACHINE.apply(voluntary, VoluntaryStatus.SCHEDULED)

    notifications.voluntary_scheduled(voluntary, hospital.name)
    return voluntary


def update_status(voluntary, hospital, action, notes=None, today=None):
    """Hospital-side outcome: ``confirmed``, ``completed`` or ``cancelled``."""
    if action not in HOSPITAL_ACTIONS:
        raise BadRequest('Invalid status. Must be: confirmed, completed, or cancelled')
    if voluntary.hospital_id != hospital.id:
        raise NotFound('Voluntary donation not found or does not belong to your hospital')

    if action == 'confirmed':
        confirm(voluntary, today)
    elif action == 'completed':
        complete(voluntary, hospital, today)
    else:
        VOLUNTARY_MACHINE.apply(voluntary, VoluntaryStatus.CANCELLED,
                                f'Cannot cancel a donation that is {voluntary.status}')

    if action != 'completed':
        # completion sends its own thank-you with the certificate
        notifications.voluntary_status_changed(voluntary, action, hospital.name, notes)
    return voluntary


def confirm(voluntary, today=None):
    """Mark the appointment confirmed; an approved record is scheduled on its availability date first."""
    if voluntary.status == VoluntaryStatus.APPROVED:
        scheduled_date = max(voluntary.availability_date, today or date.today())
        voluntary.scheduled_date = scheduled_date
        voluntary.scheduled_time = DEFAULT_TIMES[PreferredTime(voluntary.preferred_time or 'any')]
        VOLUNTARY_MACHINE.apply(voluntary, VoluntaryStatus.SCHEDULED)
    elif voluntary.status != VoluntaryStatus.SCHEDULED:
        raise StateConflict(f'Only approved or scheduled donations can be confirmed. Current status: {voluntary.status}')
    voluntary.confirmed_at = datetime.utcnow()
    return voluntary


def complete(voluntary, hospital, today=None):
    """Record the donation: synthetic completed request, completed donation, certificate, donor stats."""
    check_transition(VOLUNTARY_MACHINE, voluntary.status, VoluntaryStatus.COMPLETED,
                     f'Only scheduled donations can be completed. Current status: {voluntary.status}')
    donor = voluntary.donor
    ensure_eligible(donor, today)

    now = datetime.utcnow()
    completed_on = today or date.today()
    blood_request = BloodRequest(
        blood_type=voluntary.blood_type,
        quantity=1,
        urgency=Urgency.NORMAL.value,
        status=RequestStatus.COMPLETED.value,
        requester_type=RequesterType.SYSTEM.value,
        hospital_id=hospital.id,
        hospital_name=hospital.name,
        patient_name='Voluntary Donation',
        contact_phone=hospital.user.phone,
        city=hospital.city or voluntary.city,
        required_date=completed_on,
        medical_reason=f'Voluntary donation #{voluntary.id}',
        approved_at=now
    )
    db.session.add(blood_request)
    db.session.flush()
    blood_request.request_code = f'REQ{blood_request.id:05d}'

    donation = Donation(
        request_id=blood_request.id,
        donor_id=donor.id,
        status=DonationStatus.COMPLETED.value,
        quantity=1,
        accepted_at=now,
        reached_at=now,
        completed_at=now
    )
    db.session.add(donation)
    db.session.flush()

    VOLUNTARY_MACHINE.apply(voluntary, VoluntaryStatus.COMPLETED)
    voluntary.completed_at = now
    voluntary.donation_id = donation.id

    record_completed_donation(donor, donation, hospital.name, completed_on)
    logger.info('Voluntary donation %s completed as donation %s', voluntary.id, donation.id)
    return donation
