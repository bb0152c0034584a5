from datetime import date, datetime

from flask import request
from werkzeug.exceptions import BadRequest


def get_json():
    data = request.get_json(silent=True)
    if data is None:
        raise BadRequest('No input data provided')
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object')
    return data


def reason_from_body():
    """Optional ``reason`` text from a body that may be absent."""
    data = request.get_json(silent=True)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object')
    return optional_str(data, 'reason')


def require_fields(data, fields):
    for field in fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise BadRequest(f'Missing required field: {field}')


def require_str(data, field, strip=True):
    """Non-empty text value of ``field``; anything else is a 400."""
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise BadRequest(f'{field} must be a non-empty string')
    return value.strip() if strip else value


def optional_str(data, field):
    value = data.get(field)
    if value in (None, ''):
        return None
    if not isinstance(value, str):
        raise BadRequest(f'{field} must be a string')
    return value.strip() or None


def pick(data, *keys, default=None):
    """First non-empty value among ``keys``; accepts camelCase aliases from older clients."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, (list, dict)):
            raise BadRequest(f'{key} must be a single value')
        if value not in (None, ''):
            return value.strip() if isinstance(value, str) else value
    return default


def parse_date(value, field):
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise BadRequest(f'Invalid {field}. Use YYYY-MM-DD')


def parse_time(value, field):
    if value in (None, ''):
        return None
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(str(value), fmt).time()
        except ValueError:
            continue
    raise BadRequest(f'Invalid {field}. Use HH:MM')


def parse_datetime(value, field):
    if value in (None, ''):
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        raise BadRequest(f'Invalid {field}. Use an ISO 8601 date and time')


def parse_int(value, field, minimum=None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise BadRequest(f'{field} must be a number')
    if minimum is not None and number < minimum:
        raise BadRequest(f'{field} must be at least {minimum}')
    return number


def parse_float(value, field):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise BadRequest(f'{field} must be a number')


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def request_form(data):
    """Validated blood request fields shared by seeker and hospital submissions."""
    require_fields(data, ['blood_type', 'quantity', 'patient_name', 'contact_phone', 'city', 'required_date'])
    required_date = parse_date(data['required_date'], 'required_date')
    if required_date < date.today():
        raise BadRequest('Required date cannot be in the past')
    patient_age = data.get('patient_age')
    return {
        'blood_type': require_str(data, 'blood_type'),
        'quantity': parse_int(data['quantity'], 'quantity', minimum=1),
        'emergency': parse_bool(data.get('emergency', False)) or data.get('urgency') == 'emergency',
        'patient_name': require_str(data, 'patient_name'),
        'patient_age': parse_int(patient_age, 'patient_age', minimum=0) if patient_age not in (None, '') else None,
        'contact_phone': require_str(data, 'contact_phone'),
        'contact_email': optional_str(data, 'contact_email'),
        'city': require_str(data, 'city'),
        'required_date': required_date,
        'hospital_name': optional_str(data, 'hospital_name'),
        'medical_reason': optional_str(data, 'medical_reason'),
    }


def mask_name(name):
    """'John Doe' -> 'J*** D**'."""
    if not name:
        return None
    return ' '.join(part[0] + '*' * (len(part) - 1) for part in name.split())
