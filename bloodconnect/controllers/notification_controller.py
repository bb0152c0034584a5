from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import NotFound

from bloodconnect.auth import login_required
from bloodconnect.controllers.helpers import parse_bool, parse_int
from bloodconnect.extensions import db
from bloodconnect.models.notification_model import Notification

# Define the Blueprint for the logged-in user's notifications
notification_bp = Blueprint('notification_bp', __name__)

MAX_PAGE_SIZE = 50


def _unread_count(user_id):
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


# GET notifications for the current user
@notification_bp.route('/', methods=['GET'])
@login_required()
def get_notifications():
    limit = min(parse_int(request.args.get('limit', 20), 'limit', minimum=1), MAX_PAGE_SIZE)
    offset = parse_int(request.args.get('offset', 0), 'offset', minimum=0)

    query = Notification.query.filter_by(user_id=g.user.id)
    if parse_bool(request.args.get('unread_only', False)):
        query = query.filter_by(is_read=False)
    total = query.count()
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()) \
        .limit(limit).offset(offset).all()

    return jsonify({
        'success': True,
        'notifications': [n.to_dict() for n in notifications],
        'unread_count': _unread_count(g.user.id),
        'total': total,
        'limit': limit,
        'offset': offset
    }), 200


# GET the unread badge count
@notification_bp.route('/unread-count', methods=['GET'])
@login_required()
def unread_count():
    return jsonify({'success': True, 'unread_count': _unread_count(g.user.id)}), 200


# POST to mark one notification as read
@notification_bp.route('/<int:id>/read', methods=['POST'])
@login_required()
def mark_read(id):
    notification = Notification.query.filter_by(id=id, user_id=g.user.id).first()
    if not notification:
        raise NotFound('Notification not found')
    try:
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()  # Rollback in case of DB error
        current_app.logger.exception('Failed to mark notification %s as read', id)
        return jsonify({'success': False, 'message': 'Database error occurred'}), 500
    return jsonify({'success': True, 'message': 'Notification marked as read',
                    'unread_count': _unread_count(g.user.id)}), 200


# POST to mark everything as read
@notification_bp.route('/read-all', methods=['POST'])
@login_required()
def mark_all_read():
    try:
        updated = Notification.query.filter_by(user_id=g.user.id, is_read=False).update(
            {'is_read': True, 'read_at': datetime.utcnow()}, synchronize_session=False
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('Failed to mark notifications as read for user %s', g.user.id)
        return jsonify({'success': False, 'message': 'Database error occurred'}), 500
    return jsonify({'success': True, 'message': f'{updated} notification(s) marked as read', 'updated': updated}), 200
