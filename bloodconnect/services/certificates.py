"""Donation and achievement certificates, rendered as downloadable HTML."""
from datetime import date, datetime

from flask import render_template

from bloodconnect.extensions import db
from bloodconnect.models.certificate_model import Certificate

ACHIEVEMENT_TIERS = {
    'Bronze': 1,
    'Silver': 3,
    'Gold': 5,
    'Platinum': 10,
    'Diamond': 25,
}


def certificate_code(donation_id, year):
    return f'CERT-{year}-DON{donation_id:05d}'


def issue_certificate(donation, donor, hospital_name, donation_date):
    """Create the certificate for a completed donation; returns the existing one if present."""
    certificate = Certificate.query.filter_by(donation_id=donation.id).first()
    if certificate:
        return certificate

    certificate = Certificate(
        certificate_code=certificate_code(donation.id, donation_date.year),
        donation_id=donation.id,
        donor_id=donor.id,
        donor_name=donor.name,
        blood_type=donor.blood_type,
        hospital_name=hospital_name,
        quantity=donation.quantity or 1,
        donation_date=donation_date
    )
    db.session.add(certificate)
    return certificate


def tier_reached(total_donations):
    """Name of the tier whose threshold equals ``total_donations``, if any."""
    for tier, threshold in ACHIEVEMENT_TIERS.items():
        if threshold == total_donations:
            return tier
    return None


def achievement_progress(total_donations):
    unlocked = [tier for tier, threshold in ACHIEVEMENT_TIERS.items() if total_donations >= threshold]
    upcoming = [(tier, threshold) for tier, threshold in ACHIEVEMENT_TIERS.items() if total_donations < threshold]
    next_tier = upcoming[0] if upcoming else None
    return {
        'total_donations': total_donations,
        'unlocked': unlocked,
        'current_tier': unlocked[-1] if unlocked else None,
        'next_tier': next_tier[0] if next_tier else None,
        'donations_to_next_tier': next_tier[1] - total_donations if next_tier else 0,
    }


def render_donation_certificate(certificate):
    certificate.downloaded_at = datetime.utcnow()
    return render_template('certificates/donation.html', certificate=certificate)


def render_achievement_certificate(donor, tier, achieved_on=None):
    achieved_on = achieved_on or date.today()
    code = f'ACH-{tier.upper()}-{donor.id:05d}'
    return render_template(
        'certificates/achievement.html',
        donor=donor,
        tier=tier,
        threshold=ACHIEVEMENT_TIERS[tier],
        code=code,
        achieved_on=achieved_on
    )
