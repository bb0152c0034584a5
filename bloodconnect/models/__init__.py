from bloodconnect.models.user_model import User
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.donor_health_model import DonorHealth
from bloodconnect.models.hospital_model import Hospital
from bloodconnect.models.seeker_model import Seeker
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation
from bloodconnect.models.certificate_model import Certificate
from bloodconnect.models.notification_model import Notification
from bloodconnect.models.announcement_model import Announcement

__all__ = [
    'User', 'Donor', 'DonorHealth', 'Hospital', 'Seeker', 'BloodRequest', 'Donation',
    'VoluntaryDonation', 'Certificate', 'Notification', 'Announcement',
]
