"""
Blood type compatibility.

Maps each donor blood type to the recipient types it can be given to.
"""

COMPATIBILITY = {
    'O-': ['O-', 'O+', 'A-', 'A+', 'B-', 'B+', 'AB-', 'AB+'],  # Universal donor
    'O+': ['O+', 'A+', 'B+', 'AB+'],
    'A-': ['A-', 'A+', 'AB-', 'AB+'],
    'A+': ['A+', 'AB+'],
    'B-': ['B-', 'B+', 'AB-', 'AB+'],
    'B+': ['B+', 'AB+'],
    'AB-': ['AB-', 'AB+'],
    'AB+': ['AB+'],  # Universal recipient
}

BLOOD_TYPES = list(COMPATIBILITY)


def is_valid_blood_type(blood_type):
    return isinstance(blood_type, str) and blood_type in COMPATIBILITY


def get_compatible_recipients(donor_blood_type):
    """Return the recipient blood types a donor of the given type can give to"""
    return list(COMPATIBILITY.get(donor_blood_type, []))


def get_compatible_donors(recipient_blood_type):
    """Return the donor blood types that can give to the given recipient type"""
    return [donor for donor, recipients in COMPATIBILITY.items() if recipient_blood_type in recipients]


def is_compatible(donor_blood_type, recipient_blood_type):
    return recipient_blood_type in COMPATIBILITY.get(donor_blood_type, [])
