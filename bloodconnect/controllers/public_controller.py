from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest, NotFound

from bloodconnect.auth import current_user
from bloodconnect.controllers.helpers import mask_name
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.enums import RequesterType
from bloodconnect.services import announcements, lifecycle

public_bp = Blueprint('public_bp', __name__)

TRACK_LIMIT = 10


def _guest_view(blood_request):
    """Limited request details for people who are not logged in."""
    progress = lifecycle.guest_status(blood_request)
    return {
        'request_code': blood_request.request_code,
        'patient_name': mask_name(blood_request.patient_name),
        'blood_type': blood_request.blood_type,
        'quantity': blood_request.quantity,
        'hospital_name': blood_request.hospital_name,
        'urgency': blood_request.urgency,
        'status': progress['status'],
        'status_label': progress['label'],
        'status_message': progress['message'],
        'created_at': blood_request.created_at.isoformat() if blood_request.created_at else None
    }


# GET /track?code=REQ00001 or ?phone=...
@public_bp.route('/track', methods=['GET'])
def track():
    code = (request.args.get('code') or '').strip()
    phone = (request.args.get('phone') or '').strip()
    if not code and not phone:
        raise BadRequest('Please provide request code or phone number')

    query = BloodRequest.query.filter(BloodRequest.requester_type != RequesterType.SYSTEM.value)
    if code:
        blood_requests = query.filter(BloodRequest.request_code == code.upper()).limit(1).all()
    else:
        blood_requests = query.filter(BloodRequest.contact_phone == phone) \
            .order_by(BloodRequest.created_at.desc()).limit(TRACK_LIMIT).all()

    if not blood_requests:
        raise NotFound('No requests found')
    results = [_guest_view(r) for r in blood_requests]
    return jsonify({'success': True, 'requests': results, 'total': len(results)}), 200


# GET /announcements
@public_bp.route('/announcements', methods=['GET'])
def list_announcements():
    try:
        if announcements.publish_due():
            db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('Publishing scheduled announcements failed')
        return jsonify({'success': False, 'message': 'Failed to fetch announcements'}), 500

    user = current_user()
    records = announcements.visible_to(user.role if user else None)
    return jsonify({'success': True, 'announcements': [a.to_dict() for a in records]}), 200
