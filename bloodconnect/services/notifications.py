"""
Notification dispatcher.

Every helper adds ``Notification`` rows to the current session and never
commits; the rows land in the same transaction as the business change that
caused them. When ``MAIL_ENABLED`` is set an e-mail copy is queued and sent
through Flask-Mail after the transaction commits.
"""
import logging
from datetime import date, datetime

from flask import current_app
from flask_mail import Message
from sqlalchemy import event
from sqlalchemy.orm import Session

from bloodconnect.extensions import db, mail
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.enums import (
    AccountStatus, Audience, NotificationType, RequesterType, Role, Urgency
)
from bloodconnect.models.notification_model import Notification
from bloodconnect.models.user_model import User
from bloodconnect.services.compatibility import get_compatible_donors
from bloodconnect.services.eligibility import can_donate_now

logger = logging.getLogger(__name__)

_PENDING_MAIL = 'pending_mail'


def notify(user_id, title, message, type=NotificationType.INFO, related_type=None, related_id=None):
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type.value if hasattr(type, 'value') else type,
        related_type=related_type,
        related_id=related_id
    )
    db.session.add(notification)
    if current_app.config.get('MAIL_ENABLED'):
        _queue_mail(user_id, title, message)
    return notification


def notify_many(user_ids, title, message, type=NotificationType.INFO, related_type=None, related_id=None):
    count = 0
    for user_id in user_ids:
        notify(user_id, title, message, type, related_type, related_id)
        count += 1
    return count


def notify_admins(title, message, type=NotificationType.INFO, related_type=None, related_id=None):
    admins = User.query.filter_by(role=Role.ADMIN.value).all()
    return notify_many([a.id for a in admins], title, message, type, related_type, related_id)


def already_sent(user_id, title, related_type, related_id, on_day=None):
    """True if the same notification was already created for this user.

    ``on_day`` is the day the caller is running for. A row created on that
    day, or on the current UTC day, counts as sent, so a repeated run for a
    back-dated day does not send twice.
    """
    days = {datetime.utcnow().date()}
    if on_day is not None:
        days.add(on_day)
    return db.session.query(Notification.id).filter(
        Notification.user_id == user_id,
        Notification.title == title,
        Notification.related_type == related_type,
        Notification.related_id == related_id,
        db.func.date(Notification.created_at, type_=db.Date).in_(sorted(days))
    ).first() is not None


# Mail copies

def _queue_mail(user_id, title, message):
    user = db.session.get(User, user_id)
    if user is None or not user.email:
        return
    db.session.info.setdefault(_PENDING_MAIL, []).append((user.email, title, message))


@event.listens_for(Session, 'after_commit')
def _send_queued_mail(session):
    queued = session.info.pop(_PENDING_MAIL, None)
    if not queued:
        return
    for recipient, title, message in queued:
        try:
            mail.send(Message(subject=f'BloodConnect: {title}', recipients=[recipient], body=message))
        except Exception:
            logger.exception('Failed to send notification e-mail to %s', recipient)


@event.listens_for(Session, 'after_rollback')
def _drop_queued_mail(session):
    session.info.pop(_PENDING_MAIL, None)


# Accounts

def admins_new_registration(user):
    return notify_admins(
        f'New {user.role.capitalize()} Registration',
        f'{user.name} has registered as a {user.role} and is waiting for approval.',
        NotificationType.INFO, 'user', user.id
    )


def account_reviewed(user, approved, reason=None):
    if approved:
        return notify(user.id, 'Account Approved',
                      'Your account has been approved. You now have full access to BloodConnect.',
                      NotificationType.SUCCESS, 'user', user.id)
    message = 'Your account registration was rejected.'
    if reason:
        message += f' Reason: {reason}'
    return notify(user.id, 'Account Rejected', message, NotificationType.ERROR, 'user', user.id)


# Blood requests

def _requester_id(blood_request):
    if blood_request.requester_type == RequesterType.SYSTEM:
        return None
    return blood_request.requester_id


def request_submitted(blood_request):
    if _requester_id(blood_request) is None:
        return None
    return notify(
        blood_request.requester_id, 'Request Submitted',
        f'Your blood request {blood_request.request_code} for {blood_request.blood_type} has been '
        'submitted and is waiting for admin review.',
        NotificationType.REQUEST, 'request', blood_request.id
    )


def admins_new_request(blood_request, requester_name):
    prefix = 'Emergency ' if blood_request.urgency == Urgency.EMERGENCY else ''
    return notify_admins(
        f'New {prefix}Blood Request',
        f'{requester_name} requested {blood_request.quantity} unit(s) of {blood_request.blood_type} '
        f'({blood_request.request_code}).',
        NotificationType.REQUEST, 'request', blood_request.id
    )


def request_reviewed(blood_request, approved, reason=None):
    if _requester_id(blood_request) is None:
        return None
    if approved:
        return notify(
            blood_request.requester_id, 'Request Approved',
            f'Your blood request {blood_request.request_code} has been approved. '
            'Compatible donors are being notified.',
            NotificationType.SUCCESS, 'request', blood_request.id
        )
    message = f'Your blood request {blood_request.request_code} was rejected.'
    if reason:
        message += f' Reason: {reason}'
    return notify(blood_request.requester_id, 'Request Rejected', message,
                  NotificationType.ERROR, 'request', blood_request.id)


def notify_matching_donors(blood_request, today=None):
    """Tell approved, available, eligible donors in the request city that they can help.

    Donors who fail any eligibility gate, or who already hold a live
    donation, are skipped. Returns the number of donors notified.
    """
    today = today or date.today()
    query = Donor.query.join(User, Donor.user_id == User.id).filter(
        User.status == AccountStatus.APPROVED.value,
        Donor.is_available.is_(True),
        Donor.blood_type.in_(get_compatible_donors(blood_request.blood_type))
    )
    if blood_request.city:
        query = query.filter(Donor.city == blood_request.city)

    if blood_request.urgency == Urgency.EMERGENCY:
        title = 'Emergency Blood Request'
        message = (f'URGENT: {blood_request.blood_type} blood is needed in {blood_request.city} '
                   f'({blood_request.request_code}). Your blood type is compatible.')
    else:
        title = 'New Blood Request'
        message = (f'{blood_request.blood_type} blood is needed in {blood_request.city} '
                   f'({blood_request.request_code}). Your blood type is compatible.')

    donors = [d for d in query.all() if can_donate_now(d, today)]
    return notify_many([d.user_id for d in donors], title, message,
                       NotificationType.REQUEST, 'request', blood_request.id)


def requester_donor_found(blood_request, donation, donor_name):
    if _requester_id(blood_request) is None:
        return None
    return notify(
        blood_request.requester_id, 'Donor Found',
        f'{donor_name} has accepted your blood request {blood_request.request_code}.',
        NotificationType.DONATION, 'donation', donation.id
    )


PROGRESS_MESSAGES = {
    'on_the_way': ('Donor On the Way', '{donor} is on the way for request {code}.'),
    'reached': ('Donor Arrived', '{donor} has arrived for request {code}.'),
    'completed': ('Donation Completed', 'The donation for request {code} by {donor} is complete.'),
}


def requester_donation_progress(blood_request, donation, donor_name):
    if _requester_id(blood_request) is None or donation.status not in PROGRESS_MESSAGES:
        return None
    title, template = PROGRESS_MESSAGES[donation.status]
    kind = NotificationType.SUCCESS if donation.status == 'completed' else NotificationType.DONATION
    return notify(blood_request.requester_id, title,
                  template.format(donor=donor_name, code=blood_request.request_code),
                  kind, 'donation', donation.id)


def requester_donor_cancelled(blood_request, donation, donor_name, reason=None):
    if _requester_id(blood_request) is None:
        return None
    message = (f'{donor_name} cancelled the donation for request {blood_request.request_code}. '
               'Your request is open for other donors again.')
    if reason:
        message += f' Reason: {reason}'
    return notify(blood_request.requester_id, 'Donor Cancelled', message,
                  NotificationType.WARNING, 'request', blood_request.id)


def admins_donation_cancelled(donation, donor_name, request_code):
    return notify_admins(
        'Donation Cancelled',
        f'{donor_name} cancelled their donation for request {request_code}.',
        NotificationType.WARNING, 'donation', donation.id
    )


def request_expired(blood_request):
    if _requester_id(blood_request) is None:
        return None
    return notify(
        blood_request.requester_id, 'Request Expired',
        f'Your blood request {blood_request.request_code} expired because its required date '
        f'({blood_request.required_date.isoformat()}) has passed.',
        NotificationType.WARNING, 'request', blood_request.id
    )


# Donors

def donor_accepted(donor, donation, blood_request):
    return notify(
        donor.user_id, 'Donation Accepted',
        f'You accepted request {blood_request.request_code}. Please contact '
        f'{blood_request.contact_phone or "the requester"} and update your status as you go.',
        NotificationType.DONATION, 'donation', donation.id
    )


def donor_donation_completed(donor, donation, hospital_name):
    where = f' at {hospital_name}' if hospital_name else ''
    return notify(
        donor.user_id, 'Thank You for Donating',
        f'Your donation{where} is complete. Your certificate is ready and you can donate again '
        f'after {donor.next_eligible_date.isoformat()}.',
        NotificationType.SUCCESS, 'donation', donation.id
    )


def donor_achievement_unlocked(donor, tier, total):
    return notify(
        donor.user_id, f'{tier} Donor Achievement',
        f'You have completed {total} donation(s) and unlocked the {tier} achievement certificate.',
        NotificationType.SUCCESS, 'achievement', donor.id
    )


def eligibility_restored(donor):
    return notify(
        donor.user_id, 'You Can Donate Again',
        'Your cooldown period is over and you are eligible to donate blood again.',
        NotificationType.INFO, 'donor', donor.id
    )


# Voluntary donations

def admins_voluntary_submitted(voluntary):
    return notify_admins(
        'New Voluntary Donation',
        f'{voluntary.donor.name} ({voluntary.blood_type}) offered to donate on '
        f'{voluntary.availability_date.isoformat()}.',
        NotificationType.DONATION, 'voluntary', voluntary.id
    )


def voluntary_reviewed(voluntary, approved, reason=None):
    if approved:
        return notify(
            voluntary.donor.user_id, 'Voluntary Donation Approved',
            'Your voluntary donation was approved. The hospital will schedule your appointment.',
            NotificationType.SUCCESS, 'voluntary', voluntary.id
        )
    message = 'Your voluntary donation request was rejected.'
    if reason:
        message += f' Reason: {reason}'
    return notify(voluntary.donor.user_id, 'Voluntary Donation Rejected', message,
                  NotificationType.ERROR, 'voluntary', voluntary.id)


def voluntary_scheduled(voluntary, hospital_name):
    when = voluntary.scheduled_date.isoformat()
    if voluntary.scheduled_time:
        when += f' at {voluntary.scheduled_time.strftime("%H:%M")}'
    return notify(
        voluntary.donor.user_id, 'Donation Scheduled',
        f'{hospital_name} scheduled your donation for {when}.',
        NotificationType.DONATION, 'voluntary', voluntary.id
    )


VOLUNTARY_STATUS_MESSAGES = {
    'confirmed': ('Appointment Confirmed', '{hospital} confirmed your donation appointment.', NotificationType.SUCCESS),
    'cancelled': ('Appointment Cancelled', '{hospital} cancelled your donation appointment.', NotificationType.WARNING),
}


def voluntary_status_changed(voluntary, action, hospital_name, notes=None):
    title, template, kind = VOLUNTARY_STATUS_MESSAGES[action]
    message = template.format(hospital=hospital_name)
    if notes:
        message += f' Note: {notes}'
    return notify(voluntary.donor.user_id, title, message, kind, 'voluntary', voluntary.id)


def appointment_reminder(voluntary):
    hospital_name = voluntary.hospital.name if voluntary.hospital else 'the hospital'
    time_text = f' at {voluntary.scheduled_time.strftime("%H:%M")}' if voluntary.scheduled_time else ''
    return notify(
        voluntary.donor.user_id, 'Appointment Reminder',
        f'Reminder: your blood donation at {hospital_name} is tomorrow{time_text}.',
        NotificationType.INFO, 'voluntary', voluntary.id
    )


def hospital_donor_ready(voluntary):
    if voluntary.hospital is None:
        return None
    return notify(
        voluntary.hospital.user_id, 'Donor Arriving Tomorrow',
        f'{voluntary.donor.name} ({voluntary.blood_type}) is scheduled to donate tomorrow.',
        NotificationType.INFO, 'voluntary', voluntary.id
    )


# Announcements

def announcement_published(announcement):
    query = User.query.filter(User.status == AccountStatus.APPROVED.value, User.role != Role.ADMIN.value)
    if announcement.target_audience != Audience.ALL:
        query = query.filter(User.role == announcement.target_audience)
    kind = NotificationType.WARNING if announcement.priority == 'urgent' else NotificationType.ANNOUNCEMENT
    return notify_many([u.id for u in query.all()], announcement.title, announcement.message,
                       kind, 'announcement', announcement.id)
