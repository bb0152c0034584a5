import re

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest, Conflict, Forbidden, Unauthorized

from bloodconnect.auth import current_user, login_user, logout_user
from bloodconnect.controllers.helpers import get_json, parse_float, parse_int, pick, require_fields, require_str
from bloodconnect.errors import AccountNotApproved
from bloodconnect.extensions import db
from bloodconnect.models.donor_health_model import DonorHealth
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.enums import AccountStatus, Role, values
from bloodconnect.models.hospital_model import Hospital
from bloodconnect.models.seeker_model import Seeker
from bloodconnect.models.user_model import User
from bloodconnect.services import notifications
from bloodconnect.services.compatibility import is_valid_blood_type

auth_bp = Blueprint('auth_bp', __name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 6


def _create_profile(user, data):
    if user.role == Role.DONOR:
        blood_type = pick(data, 'blood_type', 'bloodGroup')
        if not is_valid_blood_type(blood_type):
            raise BadRequest('A valid blood type is required for donors')
        age = pick(data, 'age')
        weight = pick(data, 'weight')
        donor = Donor(
            user_id=user.id,
            blood_type=blood_type,
            age=parse_int(age, 'age') if age is not None else None,
            weight=parse_float(weight, 'weight') if weight is not None else None,
            gender=pick(data, 'gender'),
            city=pick(data, 'city'),
            address=pick(data, 'address')
        )
        db.session.add(donor)
        db.session.flush()
        db.session.add(DonorHealth(donor_id=donor.id))
    elif user.role == Role.HOSPITAL:
        db.session.add(Hospital(
            user_id=user.id,
            registration_number=pick(data, 'registration_number', 'registrationNumber'),
            address=pick(data, 'address', 'hospitalAddress'),
            city=pick(data, 'city'),
            website=pick(data, 'website'),
            contact_person=pick(data, 'contact_person', 'contactPerson'),
            hospital_type=pick(data, 'hospital_type'),
            operating_hours=pick(data, 'operating_hours')
        ))
    else:
        db.session.add(Seeker(user_id=user.id, city=pick(data, 'city'), address=pick(data, 'address')))


# POST /register
@auth_bp.route('/register', methods=['POST'])
def register():
    data = get_json()
    require_fields(data, ['email', 'password', 'role'])

    email = require_str(data, 'email').lower()
    role = data['role']
    if not EMAIL_PATTERN.match(email):
        raise BadRequest('Invalid email format')
    if role not in values(Role):
        raise BadRequest('Invalid role')
    if role == Role.ADMIN:
        raise Forbidden('Admin accounts cannot be self-registered')
    password = require_str(data, 'password', strip=False)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')

    if User.query.filter_by(email=email).first():
        raise Conflict('Email is already registered')

    try:
        user = User(
            name=pick(data, 'name', default=''),
            email=email,
            phone=pick(data, 'phone'),
            role=role,
            status=AccountStatus.PENDING.value if role in (Role.DONOR, Role.HOSPITAL) else AccountStatus.APPROVED.value
        )
        user.set_password(password)
        db.session.add(user)
        db.session.flush()

        _create_profile(user, data)
        if user.needs_approval:
            notifications.admins_new_registration(user)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('Registration failed for %s', email)
        return jsonify({'success': False, 'message': 'Registration failed. Please try again.'}), 500

    login_user(user)
    message = 'Registration successful'
    if user.status == AccountStatus.PENDING:
        message += '. Awaiting admin approval.'
    return jsonify({'success': True, 'message': message, 'user': user.to_dict()}), 201


# POST /login
@auth_bp.route('/login', methods=['POST'])
def login():
    data = get_json()
    require_fields(data, ['email', 'password'])

    user = User.query.filter_by(email=require_str(data, 'email').lower()).first()
    if not user or not user.check_password(require_str(data, 'password', strip=False)):
        raise Unauthorized('Invalid email or password')

    if data.get('role') and data['role'] != user.role:
        raise Forbidden(f'This account is not registered as {data["role"]}')
    if user.status == AccountStatus.REJECTED:
        raise AccountNotApproved(user.status)

    login_user(user)
    current_app.logger.info('User %s logged in as %s', user.id, user.role)
    return jsonify({
        'success': True,
        'message': 'Login successful',
        'user': user.to_dict(),
        'requires_approval': user.needs_approval and user.status == AccountStatus.PENDING
    }), 200


# POST /logout
@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return jsonify({'success': True, 'message': 'Logged out successfully'}), 200


# GET /check
@auth_bp.route('/check', methods=['GET'])
def check():
    user = current_user()
    if user is None:
        return jsonify({'success': True, 'logged_in': False}), 200
    return jsonify({'success': True, 'logged_in': True, 'user': user.to_dict()}), 200
