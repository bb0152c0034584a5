"""
Time-based notifications, run once a day from ``flask send-reminders`` or
the scheduler. Every pass is safe to repeat: each notification is checked
against what was already sent for the day being run.
"""
import logging
from datetime import date, timedelta

from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.enums import AccountStatus, RequestStatus, VoluntaryStatus
from bloodconnect.models.user_model import User
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation
from bloodconnect.services import announcements, notifications
from bloodconnect.services.eligibility import evaluate_donor
from bloodconnect.services.lifecycle import expire_request

logger = logging.getLogger(__name__)

OPEN_REQUEST_STATUSES = [RequestStatus.PENDING.value, RequestStatus.APPROVED.value, RequestStatus.IN_PROGRESS.value]


def send_appointment_reminders(today):
    tomorrow = today + timedelta(days=1)
    appointments = VoluntaryDonation.query.filter(
        VoluntaryDonation.status == VoluntaryStatus.SCHEDULED.value,
        VoluntaryDonation.scheduled_date == tomorrow
    ).all()

    sent = 0
    for voluntary in appointments:
        if notifications.already_sent(voluntary.donor.user_id, 'Appointment Reminder', 'voluntary', voluntary.id,
                                      on_day=today):
            continue
        notifications.appointment_reminder(voluntary)
        notifications.hospital_donor_ready(voluntary)
        sent += 1
    return sent


def send_eligibility_restored(today):
    donors = Donor.query.join(User, Donor.user_id == User.id).filter(
        User.status == AccountStatus.APPROVED.value,
        Donor.next_eligible_date == today
    ).all()

    sent = 0
    for donor in donors:
        # next_eligible_date only covers the cooldown
        if not evaluate_donor(donor, today).eligible:
            continue
        if notifications.already_sent(donor.user_id, 'You Can Donate Again', 'donor', donor.id, on_day=today):
            continue
        notifications.eligibility_restored(donor)
        sent += 1
    return sent


def expire_overdue_requests(today):
    overdue = BloodRequest.query.filter(
        BloodRequest.status.in_(OPEN_REQUEST_STATUSES),
        BloodRequest.required_date < today
    ).all()
    for blood_request in overdue:
        expire_request(blood_request)
        notifications.request_expired(blood_request)
    return len(overdue)


def send_scheduled_notifications(today=None):
    """Run every daily pass in one transaction and return per-pass counts."""
    today = today or date.today()
    try:
        summary = {
            'appointment_reminders': send_appointment_reminders(today),
            'eligibility_restored': send_eligibility_restored(today),
            'expired_requests': expire_overdue_requests(today),
            'announcements_published': announcements.publish_due(),
        }
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception('Scheduled notifications failed for %s', today)
        raise
    logger.info('Scheduled notifications for %s: %s', today, summary)
    return summary
