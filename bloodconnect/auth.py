"""
Session-based authentication.

The server-side session (Flask-Session) holds ``user_id``, ``role``,
``name`` and ``login_time``. A session older than ``SESSION_TIMEOUT``
seconds is cleared on the next request, whatever the user did in between.
"""
import time
from functools import wraps

from flask import current_app, g, session
from werkzeug.exceptions import Forbidden, Unauthorized

from bloodconnect.errors import AccountNotApproved
from bloodconnect.extensions import db
from bloodconnect.models.enums import AccountStatus
from bloodconnect.models.user_model import User


def login_user(user):
    # new session id on login
    interface = current_app.session_interface
    if hasattr(interface, 'regenerate'):
        interface.regenerate(session)
    session.clear()
    session['user_id'] = user.id
    session['role'] = user.role
    session['name'] = user.name
    session['login_time'] = time.time()
    session.permanent = True


def logout_user():
    session.clear()


def session_expired():
    login_time = session.get('login_time')
    if login_time is None:
        return True
    return time.time() - login_time > current_app.config['SESSION_TIMEOUT']


def current_user():
    """The logged-in user, or None when there is no live session."""
    if 'user_id' not in session:
        return None
    if session_expired():
        session.clear()
        return None
    return db.session.get(User, session['user_id'])


def login_required(*roles, approved=False):
    """Require a live session, one of ``roles`` (any role when empty) and,
    with ``approved=True``, an approved donor/hospital account."""
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if 'user_id' not in session:
                raise Unauthorized('Not authenticated')
            if session_expired():
                session.clear()
                raise Unauthorized('Session expired. Please login again.')

            user = db.session.get(User, session['user_id'])
            if user is None:
                session.clear()
                raise Unauthorized('Not authenticated')
            if roles and user.role not in roles:
                raise Forbidden('Unauthorized access')
            if approved and user.needs_approval and user.status != AccountStatus.APPROVED:
                raise AccountNotApproved(user.status)

            g.user = user
            return view(*args, **kwargs)
        return wrapper
    return decorator


def approved_required(*roles):
    return login_required(*roles, approved=True)
