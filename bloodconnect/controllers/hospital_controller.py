from datetime import date

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import NotFound

from bloodconnect.auth import approved_required
from bloodconnect.controllers.helpers import (
    get_json, optional_str, parse_bool, parse_date, parse_time, pick, request_form, require_fields
)
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.enums import AccountStatus, DonationStatus, RequesterType, RequestStatus, Role, VoluntaryStatus
from bloodconnect.models.user_model import User
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation
from bloodconnect.services import lifecycle, voluntary as voluntary_service
from bloodconnect.services.eligibility import evaluate_donor

hospital_bp = Blueprint('hospital_bp', __name__)


def _db_error(action):
    db.session.rollback()
    current_app.logger.exception('Hospital %s failed', action)
    return jsonify({'success': False, 'message': f'Failed to {action}'}), 500


def _current_hospital():
    hospital = g.user.hospital
    if hospital is None:
        raise NotFound('Hospital profile not found')
    return hospital


def _get_voluntary(voluntary_id):
    record = db.session.get(VoluntaryDonation, voluntary_id)
    if not record:
        raise NotFound('Voluntary donation not found')
    return record


# Profile

@hospital_bp.route('/profile', methods=['GET'])
@approved_required(Role.HOSPITAL)
def get_profile():
    return jsonify({'success': True, 'profile': _current_hospital().to_dict(), 'user': g.user.to_dict()}), 200


@hospital_bp.route('/profile', methods=['PUT'])
@approved_required(Role.HOSPITAL)
def update_profile():
    hospital = _current_hospital()
    data = get_json()
    try:
        if 'name' in data:
            g.user.name = optional_str(data, 'name') or g.user.name
        if 'phone' in data:
            g.user.phone = pick(data, 'phone')
        for field in ('registration_number', 'address', 'city', 'website', 'contact_person',
                      'hospital_type', 'operating_hours'):
            if field in data:
                setattr(hospital, field, pick(data, field))
        if 'has_blood_bank' in data:
            hospital.has_blood_bank = parse_bool(data['has_blood_bank'])
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('update profile')
    return jsonify({'success': True, 'message': 'Profile updated successfully', 'profile': hospital.to_dict()}), 200


# Blood requests

@hospital_bp.route('/requests', methods=['POST'])
@approved_required(Role.HOSPITAL)
def create_request():
    hospital = _current_hospital()
    form = request_form(get_json())
    try:
        blood_request = lifecycle.create_request(g.user, RequesterType.HOSPITAL, form, hospital=hospital)
        hospital.total_requests = (hospital.total_requests or 0) + 1
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('create request')
    return jsonify({'success': True, 'message': 'Blood request submitted. Waiting for admin approval.',
                    'request': blood_request.to_dict()}), 201


@hospital_bp.route('/requests', methods=['GET'])
@approved_required(Role.HOSPITAL)
def list_requests():
    hospital = _current_hospital()
    query = BloodRequest.query.filter(
        BloodRequest.requester_type == RequesterType.HOSPITAL.value,
        BloodRequest.hospital_id == hospital.id
    )
    status = request.args.get('status')
    if status and status != 'all':
        query = query.filter(BloodRequest.status == status)
    blood_requests = query.order_by(BloodRequest.created_at.desc()).all()

    results = []
    stats = {s.value: 0 for s in RequestStatus}
    for blood_request in blood_requests:
        stats[blood_request.status] += 1
        entry = blood_request.to_dict()
        donation = blood_request.active_donation
        entry['donation'] = donation.to_dict() if donation else None
        entry['donor'] = {
            'name': donation.donor.name,
            'phone': donation.donor.user.phone,
            'blood_type': donation.donor.blood_type
        } if donation else None
        results.append(entry)
    stats['total'] = len(blood_requests)
    return jsonify({'success': True, 'requests': results, 'stats': stats}), 200


# GET /donors
@hospital_bp.route('/donors', methods=['GET'])
@approved_required(Role.HOSPITAL)
def list_donors():
    hospital = _current_hospital()
    blood_type = request.args.get('blood_type')

    def _filtered(query):
        if blood_type and blood_type != 'all':
            query = query.filter(Donor.blood_type == blood_type)
        return query

    hospital_donations = Donation.query.join(BloodRequest, Donation.request_id == BloodRequest.id).filter(
        BloodRequest.hospital_id == hospital.id
    )
    past_donor_ids = {
        d.donor_id for d in hospital_donations.filter(Donation.status == DonationStatus.COMPLETED.value)
    }
    assigned = hospital_donations.filter(Donation.status.in_(lifecycle.LIVE_DONATION_STATUSES)).all()

    past_donors = _filtered(Donor.query.filter(Donor.id.in_(past_donor_ids))).all() if past_donor_ids else []
    approved = _filtered(
        Donor.query.join(User, Donor.user_id == User.id).filter(User.status == AccountStatus.APPROVED.value)
    ).order_by(User.name).all()

    busy_ids = {d.donor_id for d in Donation.query.filter(Donation.status.in_(lifecycle.LIVE_DONATION_STATUSES))}
    available = []
    for donor in approved:
        entry = donor.to_dict()
        eligible = evaluate_donor(donor).eligible
        entry['eligible'] = eligible
        entry['availability'] = ('Busy' if donor.id in busy_ids
                                 else 'Available' if eligible and donor.is_available else 'Not Eligible')
        available.append(entry)

    return jsonify({
        'success': True,
        'past_donors': [d.to_dict() for d in past_donors],
        'assigned_donors': [
            dict(d.donor.to_dict(), donation_status=d.status, request_code=d.request.request_code)
            for d in assigned if not blood_type or blood_type == 'all' or d.donor.blood_type == blood_type
        ],
        'donors': available
    }), 200


# Voluntary donations

@hospital_bp.route('/voluntary', methods=['GET'])
@approved_required(Role.HOSPITAL)
def list_voluntary():
    hospital = _current_hospital()
    records = VoluntaryDonation.query.filter(
        VoluntaryDonation.status.in_([VoluntaryStatus.APPROVED.value, VoluntaryStatus.SCHEDULED.value]),
        db.or_(VoluntaryDonation.hospital_id == hospital.id, VoluntaryDonation.hospital_id.is_(None)),
        db.or_(VoluntaryDonation.availability_date >= date.today(), VoluntaryDonation.scheduled_date >= date.today())
    ).order_by(VoluntaryDonation.availability_date).all()

    results = []
    for record in records:
        entry = record.to_dict()
        donor = record.donor
        entry['donor'] = {
            'name': donor.name,
            'phone': donor.user.phone,
            'age': donor.age,
            'weight': donor.weight,
            'total_donations': donor.total_donations
        }
        results.append(entry)
    return jsonify({'success': True, 'voluntary_donations': results}), 200


@hospital_bp.route('/voluntary/<int:voluntary_id>/schedule', methods=['POST'])
@approved_required(Role.HOSPITAL)
def schedule_voluntary(voluntary_id):
    hospital = _current_hospital()
    data = get_json()
    require_fields(data, ['scheduled_date'])
    record = _get_voluntary(voluntary_id)
    scheduled_date = parse_date(data['scheduled_date'], 'scheduled_date')
    scheduled_time = parse_time(data.get('scheduled_time'), 'scheduled_time')
    try:
        voluntary_service.schedule(record, hospital, scheduled_date, scheduled_time, pick(data, 'notes'))
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('schedule voluntary donation')
    return jsonify({'success': True, 'message': 'Donation scheduled successfully', 'voluntary': record.to_dict()}), 200


@hospital_bp.route('/voluntary/<int:voluntary_id>/status', methods=['POST'])
@approved_required(Role.HOSPITAL)
def update_voluntary_status(voluntary_id):
    hospital = _current_hospital()
    data = get_json()
    require_fields(data, ['status'])
    record = _get_voluntary(voluntary_id)
    try:
        voluntary_service.update_status(record, hospital, data['status'], pick(data, 'notes'))
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('update voluntary donation')

    current_app.logger.info('Hospital %s marked voluntary donation %s %s', hospital.id, record.id, data['status'])
    response = {'success': True, 'message': f'Voluntary donation {data["status"]}', 'voluntary': record.to_dict()}
    if record.status == VoluntaryStatus.COMPLETED and record.donation_id:
        donation = db.session.get(Donation, record.donation_id)
        response['certificate'] = donation.certificate.to_dict() if donation.certificate else None
    return jsonify(response), 200
