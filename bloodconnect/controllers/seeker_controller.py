from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import NotFound

from bloodconnect.auth import login_required
from bloodconnect.controllers.helpers import get_json, request_form
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.enums import RequesterType, Role
from bloodconnect.services import lifecycle

seeker_bp = Blueprint('seeker_bp', __name__)


def _with_progress(blood_request):
    entry = blood_request.to_dict()
    donation = blood_request.active_donation
    entry['lifecycle'] = lifecycle.guest_status(blood_request)
    entry['donation'] = donation.to_dict() if donation else None
    entry['donor'] = {
        'name': donation.donor.name,
        'phone': donation.donor.user.phone,
        'blood_type': donation.donor.blood_type
    } if donation else None
    return entry


@seeker_bp.route('/requests', methods=['POST'])
@login_required(Role.SEEKER)
def create_request():
    form = request_form(get_json())
    try:
        blood_request = lifecycle.create_request(g.user, RequesterType.SEEKER, form)
        seeker = g.user.seeker
        if seeker is not None:
            seeker.total_requests = (seeker.total_requests or 0) + 1
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('Seeker request creation failed')
        return jsonify({'success': False, 'message': 'Failed to create request'}), 500
    return jsonify({
        'success': True,
        'message': 'Blood request submitted. Waiting for admin approval.',
        'request': blood_request.to_dict(),
        'request_code': blood_request.request_code
    }), 201


@seeker_bp.route('/requests', methods=['GET'])
@login_required(Role.SEEKER)
def list_requests():
    query = BloodRequest.query.filter_by(requester_id=g.user.id, requester_type=RequesterType.SEEKER.value)
    status = request.args.get('status')
    if status and status != 'all':
        query = query.filter_by(status=status)
    blood_requests = query.order_by(BloodRequest.created_at.desc()).all()
    return jsonify({'success': True, 'requests': [_with_progress(r) for r in blood_requests]}), 200


@seeker_bp.route('/requests/<request_ref>', methods=['GET'])
@login_required(Role.SEEKER)
def get_request(request_ref):
    """Look a request up by numeric id or by its REQ code."""
    query = BloodRequest.query.filter_by(requester_id=g.user.id)
    if request_ref.isdigit():
        blood_request = query.filter_by(id=int(request_ref)).first()
    else:
        blood_request = query.filter_by(request_code=request_ref.upper()).first()
    if not blood_request:
        raise NotFound('Request not found')
    return jsonify({'success': True, 'request': _with_progress(blood_request)}), 200
