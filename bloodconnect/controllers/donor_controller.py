from flask import Blueprint, Response, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest, NotFound

from bloodconnect.auth import approved_required
from bloodconnect.controllers.helpers import (
    get_json, optional_str, parse_date, parse_float, parse_int, parse_bool, pick, reason_from_body,
    require_fields
)
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.certificate_model import Certificate
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.donor_health_model import (
    ALCOHOL_CHOICES, CONDITION_FLAGS, EXERCISE_CHOICES, SMOKING_CHOICES, DonorHealth
)
from bloodconnect.models.enums import AccountStatus, DonationStatus, RequestStatus, Role, Urgency
from bloodconnect.models.hospital_model import Hospital
from bloodconnect.models.user_model import User
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation
from bloodconnect.services import certificates, lifecycle, voluntary as voluntary_service
from bloodconnect.services.compatibility import get_compatible_recipients
from bloodconnect.services.eligibility import evaluate_donor

donor_bp = Blueprint('donor_bp', __name__)


def _db_error(action):
    db.session.rollback()
    current_app.logger.exception('Donor %s failed', action)
    return jsonify({'success': False, 'message': f'Failed to {action}'}), 500


def _current_donor():
    donor = g.user.donor
    if donor is None:
        raise NotFound('Donor profile not found')
    return donor


def _own_donation(donor, donation_id):
    donation = Donation.query.filter_by(id=donation_id, donor_id=donor.id).first()
    if not donation:
        raise NotFound('Donation not found')
    return donation


def _own_voluntary(donor, voluntary_id):
    record = VoluntaryDonation.query.filter_by(id=voluntary_id, donor_id=donor.id).first()
    if not record:
        raise NotFound('Voluntary donation not found')
    return record


# Profile

@donor_bp.route('/profile', methods=['GET'])
@approved_required(Role.DONOR)
def get_profile():
    donor = _current_donor()
    profile = donor.to_dict()
    profile['achievements'] = certificates.achievement_progress(donor.total_donations or 0)
    return jsonify({'success': True, 'profile': profile}), 200


@donor_bp.route('/profile', methods=['PUT'])
@approved_required(Role.DONOR)
def update_profile():
    donor = _current_donor()
    data = get_json()
    try:
        if 'name' in data:
            g.user.name = optional_str(data, 'name') or g.user.name
        if 'phone' in data:
            g.user.phone = pick(data, 'phone')
        if 'age' in data:
            donor.age = parse_int(data['age'], 'age') if data['age'] not in (None, '') else None
        if 'weight' in data:
            donor.weight = parse_float(data['weight'], 'weight') if data['weight'] not in (None, '') else None
        for field in ('gender', 'city', 'address'):
            if field in data:
                setattr(donor, field, pick(data, field))
        if 'is_available' in data:
            donor.is_available = parse_bool(data['is_available'])
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('update profile')
    return jsonify({'success': True, 'message': 'Profile updated successfully', 'profile': donor.to_dict()}), 200


# Eligibility and health

@donor_bp.route('/eligibility', methods=['GET'])
@approved_required(Role.DONOR)
def get_eligibility():
    donor = _current_donor()
    result = evaluate_donor(donor).to_dict()
    result['has_active_voluntary'] = voluntary_service.find_active_submission(donor) is not None
    result['has_active_donation'] = lifecycle.find_live_donation(donor) is not None
    result['total_completed_donations'] = Donation.query.filter_by(
        donor_id=donor.id, status=DonationStatus.COMPLETED.value
    ).count()
    return jsonify({'success': True, 'eligibility': result}), 200


def _health_payload(donor):
    health = donor.health.to_dict() if donor.health else None
    return {
        'success': True,
        'health': health,
        'donor': {'age': donor.age, 'weight': donor.weight, 'blood_type': donor.blood_type},
        'eligibility': evaluate_donor(donor).to_dict()
    }


@donor_bp.route('/health', methods=['GET'])
@approved_required(Role.DONOR)
def get_health():
    return jsonify(_health_payload(_current_donor())), 200


@donor_bp.route('/health', methods=['PUT'])
@approved_required(Role.DONOR)
def update_health():
    donor = _current_donor()
    data = get_json()

    choices = {
        'smoking_status': SMOKING_CHOICES,
        'alcohol_consumption': ALCOHOL_CHOICES,
        'exercise_frequency': EXERCISE_CHOICES,
    }
    for field, allowed in choices.items():
        if field in data and data[field] not in allowed:
            raise BadRequest(f'Invalid {field}. Must be one of: {", ".join(allowed)}')

    try:
        health = donor.health
        if health is None:
            health = DonorHealth(donor_id=donor.id)
            db.session.add(health)

        # omitted fields keep their stored value
        if 'age' in data:
            donor.age = parse_int(data['age'], 'age') if data['age'] not in (None, '') else None
        if 'weight' in data:
            donor.weight = parse_float(data['weight'], 'weight') if data['weight'] not in (None, '') else None
        for field in ('height', 'hemoglobin'):
            if field in data:
                setattr(health, field, parse_float(data[field], field) if data[field] not in (None, '') else None)
        for field in ('blood_pressure_systolic', 'blood_pressure_diastolic'):
            if field in data:
                setattr(health, field, parse_int(data[field], field) if data[field] not in (None, '') else None)
        for flag in CONDITION_FLAGS:
            if flag in data:
                setattr(health, flag, parse_bool(data[flag]))
        for field in choices:
            if field in data:
                setattr(health, field, data[field])
        for field in ('medications', 'allergies_details', 'additional_notes'):
            if field in data:
                setattr(health, field, optional_str(data, field))
        if 'last_medical_checkup' in data:
            value = data['last_medical_checkup']
            health.last_medical_checkup = parse_date(value, 'last_medical_checkup') if value else None
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('update health information')

    payload = _health_payload(donor)
    payload['message'] = 'Health information updated successfully'
    return jsonify(payload), 200


# Blood requests

@donor_bp.route('/requests', methods=['GET'])
@approved_required(Role.DONOR)
def list_requests():
    donor = _current_donor()
    query = BloodRequest.query.filter(
        BloodRequest.status == RequestStatus.APPROVED.value,
        BloodRequest.blood_type.in_(get_compatible_recipients(donor.blood_type))
    )
    urgency = request.args.get('urgency')
    if urgency and urgency != 'all':
        query = query.filter(BloodRequest.urgency == urgency)
    blood_requests = query.order_by(lifecycle.EMERGENCY_FIRST, BloodRequest.required_date).all()

    responded = {
        request_id for (request_id,) in db.session.query(Donation.request_id).filter(Donation.donor_id == donor.id)
    }
    emergency, normal = [], []
    for blood_request in blood_requests:
        if blood_request.id in responded:
            continue
        entry = blood_request.to_dict()
        (emergency if blood_request.urgency == Urgency.EMERGENCY else normal).append(entry)

    live = lifecycle.find_live_donation(donor)
    return jsonify({
        'success': True,
        'emergency_requests': emergency,
        'normal_requests': normal,
        'total': len(emergency) + len(normal),
        'active_donation': live.to_dict() if live else None,
        'eligibility': evaluate_donor(donor).to_dict()
    }), 200


@donor_bp.route('/requests/<int:request_id>/accept', methods=['POST'])
@approved_required(Role.DONOR)
def accept_request(request_id):
    donor = _current_donor()
    try:
        donation = lifecycle.accept_request(donor, request_id)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('accept request')
    current_app.logger.info('Donor %s accepted request %s', donor.id, request_id)
    return jsonify({
        'success': True,
        'message': 'Request accepted successfully. Please contact the requester.',
        'donation': donation.to_dict(),
        'request': donation.request.to_dict()
    }), 200


# Donations

@donor_bp.route('/donations', methods=['GET'])
@approved_required(Role.DONOR)
def list_donations():
    donor = _current_donor()
    donations = Donation.query.filter_by(donor_id=donor.id).order_by(Donation.accepted_at.desc()).all()

    history = []
    for donation in donations:
        entry = donation.to_dict()
        entry['request'] = donation.request.to_dict()
        entry['certificate_code'] = donation.certificate.certificate_code if donation.certificate else None
        history.append(entry)

    completed = [d for d in donations if d.status == DonationStatus.COMPLETED]
    return jsonify({
        'success': True,
        'donations': history,
        'stats': {
            'total': len(donations),
            'completed': len(completed),
            'cancelled': len([d for d in donations if d.status == DonationStatus.CANCELLED]),
            'active': len([d for d in donations if d.status in lifecycle.LIVE_DONATION_STATUSES]),
            'units_donated': sum(d.quantity or 1 for d in completed),
        }
    }), 200


@donor_bp.route('/donations/<int:donation_id>/status', methods=['POST'])
@approved_required(Role.DONOR)
def update_donation_status(donation_id):
    donor = _current_donor()
    data = get_json()
    require_fields(data, ['status'])
    donation = _own_donation(donor, donation_id)
    try:
        lifecycle.advance_donation(donor, donation, data['status'])
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('update donation status')

    response = {'success': True, 'message': f'Donation status updated to {donation.status}', 'donation': donation.to_dict()}
    if donation.status == DonationStatus.COMPLETED:
        response['certificate'] = donation.certificate.to_dict() if donation.certificate else None
        response['next_eligible_date'] = donor.next_eligible_date.isoformat()
    return jsonify(response), 200


@donor_bp.route('/donations/<int:donation_id>/cancel', methods=['POST'])
@approved_required(Role.DONOR)
def cancel_donation(donation_id):
    donor = _current_donor()
    donation = _own_donation(donor, donation_id)
    reason = reason_from_body()
    try:
        lifecycle.cancel_donation(donor, donation, reason)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('cancel donation')
    return jsonify({'success': True, 'message': 'Donation cancelled. The request is open for other donors again.',
                    'donation': donation.to_dict()}), 200


# GET /hospitals
@donor_bp.route('/hospitals', methods=['GET'])
@approved_required(Role.DONOR)
def list_hospitals():
    query = Hospital.query.join(User, Hospital.user_id == User.id).filter(User.status == AccountStatus.APPROVED.value)
    city = request.args.get('city')
    if city:
        query = query.filter(Hospital.city == city)
    search = request.args.get('search')
    if search:
        pattern = f'%{search}%'
        query = query.filter(db.or_(User.name.ilike(pattern), Hospital.city.ilike(pattern),
                                    Hospital.address.ilike(pattern)))
    hospitals = query.order_by(User.name).all()
    return jsonify({'success': True, 'hospitals': [h.to_dict() for h in hospitals]}), 200


# Voluntary donations

@donor_bp.route('/voluntary', methods=['POST'])
@approved_required(Role.DONOR)
def submit_voluntary():
    donor = _current_donor()
    data = get_json()
    require_fields(data, ['hospital_id', 'availability_date'])
    availability_date = parse_date(data['availability_date'], 'availability_date')
    try:
        record = voluntary_service.submit(
            donor,
            parse_int(data['hospital_id'], 'hospital_id'),
            availability_date,
            preferred_time=data.get('preferred_time'),
            notes=pick(data, 'notes')
        )
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('submit voluntary donation')
    return jsonify({'success': True, 'message': 'Voluntary donation submitted. Waiting for admin approval.',
                    'voluntary': record.to_dict()}), 201


@donor_bp.route('/voluntary', methods=['GET'])
@approved_required(Role.DONOR)
def list_voluntary():
    donor = _current_donor()
    query = VoluntaryDonation.query.filter_by(donor_id=donor.id)
    status = request.args.get('status')
    if status and status != 'all':
        query = query.filter_by(status=status)
    records = query.order_by(VoluntaryDonation.created_at.desc()).all()
    return jsonify({'success': True, 'voluntary_donations': [r.to_dict() for r in records]}), 200


@donor_bp.route('/voluntary/<int:voluntary_id>', methods=['GET'])
@approved_required(Role.DONOR)
def get_voluntary(voluntary_id):
    record = _own_voluntary(_current_donor(), voluntary_id)
    entry = record.to_dict()
    if record.hospital:
        entry['hospital'] = record.hospital.to_dict()
    return jsonify({'success': True, 'voluntary': entry}), 200


@donor_bp.route('/voluntary/<int:voluntary_id>/cancel', methods=['POST'])
@approved_required(Role.DONOR)
def cancel_voluntary(voluntary_id):
    record = _own_voluntary(_current_donor(), voluntary_id)
    try:
        voluntary_service.cancel_by_donor(record)
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('cancel voluntary donation')
    return jsonify({'success': True, 'message': 'Voluntary donation cancelled', 'voluntary': record.to_dict()}), 200


# Certificates

@donor_bp.route('/certificates', methods=['GET'])
@approved_required(Role.DONOR)
def list_certificates():
    donor = _current_donor()
    records = Certificate.query.filter_by(donor_id=donor.id).order_by(Certificate.donation_date.desc()).all()
    return jsonify({
        'success': True,
        'certificates': [c.to_dict() for c in records],
        'achievements': certificates.achievement_progress(donor.total_donations or 0)
    }), 200


@donor_bp.route('/certificates/<int:donation_id>/download', methods=['GET'])
@approved_required(Role.DONOR)
def download_certificate(donation_id):
    donor = _current_donor()
    donation = _own_donation(donor, donation_id)
    if donation.status != DonationStatus.COMPLETED or donation.certificate is None:
        raise BadRequest('Certificates are only available for completed donations')

    certificate = donation.certificate
    html = certificates.render_donation_certificate(certificate)
    try:
        db.session.commit()
    except SQLAlchemyError:
        return _db_error('download certificate')
    return Response(html, mimetype='text/html', headers={
        'Content-Disposition': f'attachment; filename="{certificate.certificate_code}.html"'
    })


@donor_bp.route('/certificates/achievement/<tier>', methods=['GET'])
@approved_required(Role.DONOR)
def download_achievement(tier):
    donor = _current_donor()
    tier = tier.capitalize()
    if tier not in certificates.ACHIEVEMENT_TIERS:
        raise NotFound('Unknown achievement tier')
    if (donor.total_donations or 0) < certificates.ACHIEVEMENT_TIERS[tier]:
        raise BadRequest(f'{tier} requires {certificates.ACHIEVEMENT_TIERS[tier]} completed donations')

    html = certificates.render_achievement_certificate(donor, tier, donor.last_donation_date)
    return Response(html, mimetype='text/html', headers={
        'Content-Disposition': f'attachment; filename="{tier.lower()}-achievement.html"'
    })
