from collections import OrderedDict
from datetime import date, datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest, NotFound

from bloodconnect.auth import login_required
from bloodconnect.controllers.helpers import (
    get_json, parse_date, parse_datetime, reason_from_body, require_fields, require_str
)
from bloodconnect.extensions import db
from bloodconnect.models.announcement_model import Announcement
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.enums import (
    AccountStatus, BloodType, DonationStatus, RequestStatus, Role, Urgency, VoluntaryStatus, values
)
from bloodconnect.models.hospital_model import Hospital
from bloodconnect.models.seeker_model import Seeker
from bloodconnect.models.user_model import User
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation
from bloodconnect.services import announcements, lifecycle, notifications, voluntary as voluntary_service
from bloodconnect.services.eligibility import evaluate_donor

admin_bp = Blueprint('admin_bp', __name__)

ACTIVE_REQUEST_STATUSES = [RequestStatus.PENDING.value, RequestStatus.APPROVED.value, RequestStatus.IN_PROGRESS.value]


def _db_error(action):
    db.session.rollback()
    current_app.logger.exception('Admin %s failed', action)
    return jsonify({'success': False, 'message': f'Failed to {action}'}), 500


def _pending_accounts(role):
    return User.query.filter_by(role=role, status=AccountStatus.PENDING.value).count()


def _month_start(today=None):
    today = today or date.today()
    return datetime(today.year, today.month, 1)


# GET /stats
@admin_bp.route('/stats', methods=['GET'])
@login_required(Role.ADMIN)
def get_stats():
    month_start = _month_start()

    blood_groups = dict(
        db.session.query(Donor.blood_type, func.count(Donor.id))
        .join(User, Donor.user_id == User.id)
        .filter(User.status == AccountStatus.APPROVED.value)
        .group_by(Donor.blood_type).all()
    )
    stats = {
        'total_donors': Donor.query.count(),
        'total_hospitals': Hospital.query.count(),
        'total_seekers': Seeker.query.count(),
        'pending_requests': BloodRequest.query.filter_by(status=RequestStatus.PENDING.value).count(),
        'pending_donors': _pending_accounts(Role.DONOR.value),
        'pending_hospitals': _pending_accounts(Role.HOSPITAL.value),
        'pending_voluntary': VoluntaryDonation.query.filter_by(status=VoluntaryStatus.PENDING.value).count(),
        'emergency_requests': BloodRequest.query.filter(
            BloodRequest.urgency == Urgency.EMERGENCY.value,
            BloodRequest.status.in_(ACTIVE_REQUEST_STATUSES)
        ).count(),
        'requests_this_month': BloodRequest.query.filter(BloodRequest.created_at >= month_start).count(),
        'completed_this_month': Donation.query.filter(
            Donation.status == DonationStatus.COMPLETED.value,
            Donation.completed_at >= month_start
        ).count(),
        'blood_groups': [{'blood_type': bt, 'count': blood_groups.get(bt, 0)} for bt in values(BloodType)],
    }
    stats['pending_approvals'] = stats['pending_donors'] + stats['pending_hospitals']
    return jsonify({'success': True, 'stats': stats}), 200


# Account review

def _account_list(role):
    query = User.query.filter_by(role=role)
    status = request.args.get('status')
    if status:
        if status not in values(AccountStatus):
            raise BadRequest('Invalid status filter')
        query = query.filter_by(status=status)
    users = query.order_by(User.created_at.desc()).all()

    results = []
    for user in users:
        entry = user.to_dict()
        profile = user.donor if role == Role.DONOR else user.hospital
        if profile is not None:
            entry['profile'] = profile.to_dict()
        results.append(entry)
    return results


def _review_account(user_id, role, approve):
    user = User.query.filter_by(id=user_id, role=role).first()
    if not user:
        raise NotFound(f'{role.capitalize()} not found')

    reason = reason_from_body()
    try:
        user.status = AccountStatus.APPROVED.value if approve else AccountStatus.REJECTED.value
        notifications.account_reviewed(user, approve, reason)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error(f'update {role} status')

    verb = 'approved' if approve else 'rejected'
    current_app.logger.info('Admin %s %s %s account %s', g.user.id, verb, role, user.id)
    return jsonify({'success': True, 'message': f'{role.capitalize()} {verb} successfully', 'user': user.to_dict()}), 200


@admin_bp.route('/donors', methods=['GET'])
@login_required(Role.ADMIN)
def list_donors():
    return jsonify({'success': True, 'donors': _account_list(Role.DONOR.value)}), 200


@admin_bp.route('/donors/<int:user_id>/approve', methods=['POST'])
@login_required(Role.ADMIN)
def approve_donor(user_id):
    return _review_account(user_id, Role.DONOR.value, True)


@admin_bp.route('/donors/<int:user_id>/reject', methods=['POST'])
@login_required(Role.ADMIN)
def reject_donor(user_id):
    return _review_account(user_id, Role.DONOR.value, False)


@admin_bp.route('/hospitals', methods=['GET'])
@login_required(Role.ADMIN)
def list_hospitals():
    return jsonify({'success': True, 'hospitals': _account_list(Role.HOSPITAL.value)}), 200


@admin_bp.route('/hospitals/<int:user_id>/approve', methods=['POST'])
@login_required(Role.ADMIN)
def approve_hospital(user_id):
    return _review_account(user_id, Role.HOSPITAL.value, True)


@admin_bp.route('/hospitals/<int:user_id>/reject', methods=['POST'])
@login_required(Role.ADMIN)
def reject_hospital(user_id):
    return _review_account(user_id, Role.HOSPITAL.value, False)


# Blood requests

@admin_bp.route('/requests', methods=['GET'])
@login_required(Role.ADMIN)
def list_requests():
    query = BloodRequest.query
    status = request.args.get('status')
    if status and status != 'all':
        if status not in values(RequestStatus):
            raise BadRequest('Invalid status filter')
        query = query.filter_by(status=status)
    blood_requests = query.order_by(lifecycle.EMERGENCY_FIRST, BloodRequest.created_at.desc()).all()

    results = []
    for blood_request in blood_requests:
        entry = blood_request.to_dict()
        donation = blood_request.active_donation
        entry['donation'] = donation.to_dict() if donation else None
        entry['donor_name'] = donation.donor.name if donation else None
        results.append(entry)
    return jsonify({'success': True, 'requests': results, 'total': len(results)}), 200


def _get_request(request_id):
    blood_request = db.session.get(BloodRequest, request_id)
    if not blood_request:
        raise NotFound('Request not found')
    return blood_request


@admin_bp.route('/requests/<int:request_id>/approve', methods=['POST'])
@login_required(Role.ADMIN)
def approve_request(request_id):
    blood_request = _get_request(request_id)
    try:
        lifecycle.approve_request(blood_request, g.user)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('approve request')
    return jsonify({'success': True, 'message': 'Request approved successfully', 'request': blood_request.to_dict()}), 200


@admin_bp.route('/requests/<int:request_id>/reject', methods=['POST'])
@login_required(Role.ADMIN)
def reject_request(request_id):
    blood_request = _get_request(request_id)
    reason = reason_from_body()
    try:
        lifecycle.reject_request(blood_request, g.user, reason)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('reject request')
    return jsonify({'success': True, 'message': 'Request rejected', 'request': blood_request.to_dict()}), 200


# Voluntary donations

@admin_bp.route('/voluntary', methods=['GET'])
@login_required(Role.ADMIN)
def list_voluntary():
    query = VoluntaryDonation.query
    for field in ('status', 'blood_type', 'city'):
        value = request.args.get(field)
        if value and value != 'all':
            query = query.filter(getattr(VoluntaryDonation, field) == value)
    records = query.order_by(VoluntaryDonation.created_at.desc()).all()
    counts = dict(
        db.session.query(VoluntaryDonation.status, func.count(VoluntaryDonation.id))
        .group_by(VoluntaryDonation.status).all()
    )
    return jsonify({
        'success': True,
        'voluntary_donations': [r.to_dict() for r in records],
        'stats': {status: counts.get(status, 0) for status in values(VoluntaryStatus)}
    }), 200


def _get_voluntary(voluntary_id):
    record = db.session.get(VoluntaryDonation, voluntary_id)
    if not record:
        raise NotFound('Voluntary donation not found')
    return record


@admin_bp.route('/voluntary/<int:voluntary_id>/approve', methods=['POST'])
@login_required(Role.ADMIN)
def approve_voluntary(voluntary_id):
    record = _get_voluntary(voluntary_id)
    try:
        voluntary_service.approve(record, g.user)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('approve voluntary donation')
    return jsonify({'success': True, 'message': 'Voluntary donation approved', 'voluntary': record.to_dict()}), 200


@admin_bp.route('/voluntary/<int:voluntary_id>/reject', methods=['POST'])
@login_required(Role.ADMIN)
def reject_voluntary(voluntary_id):
    record = _get_voluntary(voluntary_id)
    reason = reason_from_body()
    try:
        voluntary_service.reject(record, g.user, reason)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('reject voluntary donation')
    return jsonify({'success': True, 'message': 'Voluntary donation rejected', 'voluntary': record.to_dict()}), 200


# GET /blood-groups
@admin_bp.route('/blood-groups', methods=['GET'])
@login_required(Role.ADMIN)
def blood_groups():
    query = Donor.query.join(User, Donor.user_id == User.id).filter(User.status == AccountStatus.APPROVED.value)
    blood_type = request.args.get('blood_type')
    if blood_type and blood_type != 'all':
        query = query.filter(Donor.blood_type == blood_type)
    donors = query.order_by(User.name).all()

    busy_ids = {
        donor_id for (donor_id,) in db.session.query(Donation.donor_id)
        .filter(Donation.status.in_(lifecycle.LIVE_DONATION_STATUSES)).distinct()
    }
    counts = {bt: 0 for bt in values(BloodType)}
    results = []
    for donor in donors:
        counts[donor.blood_type] = counts.get(donor.blood_type, 0) + 1
        eligibility = evaluate_donor(donor)
        if donor.id in busy_ids:
            availability = 'Busy'
        elif not eligibility.eligible or not donor.is_available:
            availability = 'Not Eligible'
        else:
            availability = 'Available'
        entry = donor.to_dict()
        entry['availability'] = availability
        entry['next_eligible_date'] = eligibility.to_dict()['next_eligible_date']
        results.append(entry)

    return jsonify({
        'success': True,
        'blood_groups': [{'blood_type': bt, 'count': count} for bt, count in counts.items()],
        'donors': results
    }), 200


# Announcements

@admin_bp.route('/announcements', methods=['GET'])
@login_required(Role.ADMIN)
def list_announcements():
    announcements.publish_due()
    db.session.commit()
    records = Announcement.query.order_by(Announcement.created_at.desc()).all()
    return jsonify({'success': True, 'announcements': [a.to_dict() for a in records]}), 200


@admin_bp.route('/announcements', methods=['POST'])
@login_required(Role.ADMIN)
def create_announcement():
    data = get_json()
    require_fields(data, ['title', 'message'])
    scheduled_at = parse_datetime(data.get('scheduled_at'), 'scheduled_at')
    try:
        announcement = announcements.create(
            g.user,
            require_str(data, 'title'),
            require_str(data, 'message'),
            target_audience=data.get('target_audience'),
            priority=data.get('priority'),
            scheduled_at=scheduled_at
        )
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('create announcement')
    return jsonify({'success': True, 'message': 'Announcement created', 'announcement': announcement.to_dict()}), 201


@admin_bp.route('/announcements/<int:announcement_id>', methods=['DELETE'])
@login_required(Role.ADMIN)
def delete_announcement(announcement_id):
    announcement = db.session.get(Announcement, announcement_id)
    if not announcement:
        raise NotFound('Announcement not found')
    try:
        db.session.delete(announcement)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('delete announcement')
    return jsonify({'success': True, 'message': 'Announcement deleted'}), 200


# GET /reports
@admin_bp.route('/reports', methods=['GET'])
@login_required(Role.ADMIN)
def reports():
    end_date = parse_date(request.args['end_date'], 'end_date') if request.args.get('end_date') else date.today()
    start_date = (parse_date(request.args['start_date'], 'start_date') if request.args.get('start_date')
                  else end_date - timedelta(days=180))
    if start_date > end_date:
        raise BadRequest('start_date must be before end_date')
    start = datetime.combine(start_date, datetime.min.time())
    end = datetime.combine(end_date, datetime.max.time())

    blood_requests = BloodRequest.query.filter(BloodRequest.created_at.between(start, end)).all()
    donations = Donation.query.filter(Donation.accepted_at.between(start, end)).all()

    months = OrderedDict()
    cursor = date(start_date.year, start_date.month, 1)
    while cursor <= end_date:
        months[cursor.strftime('%Y-%m')] = {'month': cursor.strftime('%Y-%m'), 'month_label': cursor.strftime('%b %Y'),
                                            'requests': 0, 'donations': 0}
        cursor = date(cursor.year + cursor.month // 12, cursor.month % 12 + 1, 1)

    requests_by_status = {status: 0 for status in values(RequestStatus)}
    requests_by_blood_type = {bt: 0 for bt in values(BloodType)}
    for blood_request in blood_requests:
        requests_by_status[blood_request.status] += 1
        requests_by_blood_type[blood_request.blood_type] += 1
        key = blood_request.created_at.strftime('%Y-%m')
        if key in months:
            months[key]['requests'] += 1

    donations_by_status = {status: 0 for status in values(DonationStatus)}
    for donation in donations:
        donations_by_status[donation.status] += 1
        if donation.status == DonationStatus.COMPLETED and donation.completed_at:
            key = donation.completed_at.strftime('%Y-%m')
            if key in months:
                months[key]['donations'] += 1

    return jsonify({
        'success': True,
        'period': {'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()},
        'summary': {
            'total_requests': len(blood_requests),
            'fulfilled_requests': requests_by_status[RequestStatus.COMPLETED.value],
            'total_donations': len(donations),
            'completed_donations': donations_by_status[DonationStatus.COMPLETED.value],
            'active_donors': User.query.filter_by(role=Role.DONOR.value, status=AccountStatus.APPROVED.value).count(),
        },
        'requests_by_status': requests_by_status,
        'requests_by_blood_type': requests_by_blood_type,
        'donations_by_status': donations_by_status,
        'monthly_trends': list(months.values())
    }), 200
