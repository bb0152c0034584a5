"""
Donor eligibility rules.

Every place that needs to know whether a donor may give blood (the
eligibility endpoint, request acceptance, voluntary submissions, the health
page, hospital donor lists) goes through ``check_eligibility`` or
``evaluate_donor`` so the cooldown and the physical gates are applied the
same way everywhere.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import func

from bloodconnect.errors import NotEligible
from bloodconnect.extensions import db
from bloodconnect.models.certificate_model import Certificate
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.enums import DonationStatus

COOLDOWN_DAYS = 90
MIN_WEIGHT_KG = 50
MIN_AGE = 18
MAX_AGE = 65

DISQUALIFYING_CONDITIONS = {
    'has_heart_disease': 'Heart disease detected',
    'has_infectious_disease': 'Infectious disease detected',
    'has_blood_disorders': 'Blood disorder detected',
}

LIVE_DONATION_STATUSES = [
    DonationStatus.ACCEPTED.value,
    DonationStatus.ON_THE_WAY.value,
    DonationStatus.REACHED.value,
]


@dataclass
class EligibilityResult:
    eligible: bool
    reason: Optional[str] = None
    message: str = 'You are eligible to donate blood.'
    reasons: List[str] = field(default_factory=list)
    last_donation_date: Optional[date] = None
    next_eligible_date: Optional[date] = None
    days_until_eligible: int = 0

    def to_dict(self):
        return {
            'eligible': self.eligible,
            'reason': self.reason,
            'message': self.message,
            'reasons': list(self.reasons),
            'cooldown_days': COOLDOWN_DAYS,
            'last_donation_date': self.last_donation_date.isoformat() if self.last_donation_date else None,
            'next_eligible_date': self.next_eligible_date.isoformat() if self.next_eligible_date else None,
            'days_until_eligible': self.days_until_eligible,
        }


def next_eligible_date(last_donation_date):
    return last_donation_date + timedelta(days=COOLDOWN_DAYS)


def check_eligibility(last_donation_date, age=None, weight=None, conditions=None, today=None):
    """Apply the cooldown window and the age, weight and health gates.

    ``last_donation_date`` is the date of the donor's latest completed
    donation, or None when there is none. Unknown age or weight skip that
    gate. ``conditions`` maps health flag names to booleans.
    """
    today = today or date.today()
    result = EligibilityResult(eligible=True, last_donation_date=last_donation_date)
    codes = []

    if last_donation_date is not None:
        next_date = next_eligible_date(last_donation_date)
        result.next_eligible_date = next_date
        if today < next_date:
            result.days_until_eligible = (next_date - today).days
            codes.append('cooldown_period')
            result.reasons.append(
                f'You can donate again after {next_date.strftime("%B %d, %Y")} '
                f'({result.days_until_eligible} days remaining).'
            )

    if weight is not None and weight < MIN_WEIGHT_KG:
        codes.append('underweight')
        result.reasons.append(f'Minimum weight requirement is {MIN_WEIGHT_KG} kg')

    if age is not None:
        if age < MIN_AGE:
            codes.append('underage')
            result.reasons.append(f'Must be at least {MIN_AGE} years old')
        elif age > MAX_AGE:
            codes.append('overage')
            result.reasons.append(f'Age limit is {MAX_AGE} years')

    for flag, label in DISQUALIFYING_CONDITIONS.items():
        if conditions and conditions.get(flag):
            codes.append('health_condition')
            result.reasons.append(label)

    if codes:
        result.eligible = False
        result.reason = codes[0]
        result.message = result.reasons[0]
    return result


def last_completed_donation_date(donor):
    """Latest completed donation date from the donor profile and the issued certificates.

    Both hold the local calendar day the donation was recorded on.
    ``Donation.completed_at`` is a UTC timestamp and is not read here.
    """
    latest = db.session.query(func.max(Certificate.donation_date)).filter(
        Certificate.donor_id == donor.id
    ).scalar()
    candidates = [d for d in (latest, donor.last_donation_date) if d]
    return max(candidates) if candidates else None


def evaluate_donor(donor, today=None):
    conditions = None
    if donor.health is not None:
        conditions = {flag: getattr(donor.health, flag) for flag in DISQUALIFYING_CONDITIONS}
    return check_eligibility(
        last_completed_donation_date(donor),
        age=donor.age,
        weight=donor.weight,
        conditions=conditions,
        today=today,
    )


def ensure_eligible(donor, today=None):
    """Raise NotEligible unless the donor may donate today."""
    result = evaluate_donor(donor, today)
    if not result.eligible:
        if result.reason == 'cooldown_period':
            description = ('You are not eligible to donate yet. Next eligible date: '
                           f'{result.next_eligible_date.isoformat()}')
        else:
            description = f'You are not eligible to donate: {result.message}'
        raise NotEligible(description, next_eligible_date=result.next_eligible_date, reasons=result.reasons)
    return result


def find_live_donation(donor):
    return Donation.query.filter(
        Donation.donor_id == donor.id,
        Donation.status.in_(LIVE_DONATION_STATUSES)
    ).first()


def can_donate_now(donor, today=None):
    """Eligible under every gate and not already committed to another donation."""
    return evaluate_donor(donor, today).eligible and find_live_donation(donor) is None
