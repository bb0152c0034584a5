from flask import jsonify
from werkzeug.exceptions import BadRequest, Forbidden, HTTPException

from bloodconnect.extensions import db


class StateConflict(BadRequest):
    """A record is not in a status that allows the requested change."""


class NotEligible(Forbidden):
    """The donor fails the cooldown, age, weight or health gates."""

    def __init__(self, description=None, next_eligible_date=None, reasons=None):
        super().__init__(description)
        self.extra = {
            'next_eligible_date': next_eligible_date.isoformat() if next_eligible_date else None,
            'reasons': reasons or [],
        }


class AccountNotApproved(Forbidden):
    def __init__(self, status):
        if status == 'rejected':
            description = 'Your account has been rejected by the admin.'
            extra = {'status': 'rejected', 'rejected': True}
        else:
            description = 'Your account is under review. Please wait for admin approval.'
            extra = {'status': status or 'pending', 'requires_approval': True}
        super().__init__(description)
        self.extra = extra


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        # discard half-applied changes from the failed operation
        db.session.rollback()
        body = {'success': False, 'message': e.description}
        body.update(getattr(e, 'extra', None) or {})
        return jsonify(body), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        app.logger.exception('Unhandled error: %s', e)
        return jsonify({'success': False, 'message': 'An unexpected error occurred'}), 500
