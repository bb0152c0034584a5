from datetime import datetime
from bloodconnect.extensions import db
from bloodconnect.models.enums import (
    BloodType, DonationStatus, RequesterType, RequestStatus, Urgency, values
)


class BloodRequest(db.Model):
    __tablename__ = 'blood_request'

    id = db.Column(db.Integer, primary_key=True)
    request_code = db.Column(db.String(20), unique=True)
    blood_type = db.Column(db.Enum(*values(BloodType), name='blood_type'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    urgency = db.Column(db.Enum(*values(Urgency), name='urgency'), nullable=False, default=Urgency.NORMAL.value)
    status = db.Column(db.Enum(*values(RequestStatus), name='request_status'), nullable=False,
                       default=RequestStatus.PENDING.value)

    # Polymorphic requester: a seeker or hospital user, or the system for voluntary donations
    requester_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    requester_type = db.Column(db.Enum(*values(RequesterType), name='requester_type'), nullable=False)
    hospital_id = db.Column(db.Integer, db.ForeignKey('hospital.id'))
    hospital_name = db.Column(db.String(150))

    patient_name = db.Column(db.String(100), nullable=False)
    patient_age = db.Column(db.Integer)
    contact_phone = db.Column(db.String(20))
    contact_email = db.Column(db.String(120))
    city = db.Column(db.String(50))
    required_date = db.Column(db.Date)
    medical_reason = db.Column(db.Text)

    admin_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    approved_at = db.Column(db.DateTime)
    rejected_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    requester = db.relationship('User', foreign_keys=[requester_id])
    hospital = db.relationship('Hospital', backref='blood_requests')
    donations = db.relationship('Donation', backref='request', lazy=True, order_by='Donation.id')

    @property
    def active_donation(self):
        """The one donation that has not been cancelled, if any."""
        for donation in self.donations:
            if donation.status != DonationStatus.CANCELLED:
                return donation
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'request_code': self.request_code,
            'blood_type': self.blood_type,
            'quantity': self.quantity,
            'urgency': self.urgency,
            'status': self.status,
            'requester_type': self.requester_type,
            'requester_name': self.requester.name if self.requester else None,
            'hospital_name': self.hospital_name,
            'patient_name': self.patient_name,
            'patient_age': self.patient_age,
            'contact_phone': self.contact_phone,
            'contact_email': self.contact_email,
            'city': self.city,
            'required_date': self.required_date.isoformat() if self.required_date else None,
            'medical_reason': self.medical_reason,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'rejected_at': self.rejected_at.isoformat() if self.rejected_at else None,
            'rejection_reason': self.rejection_reason,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<BloodRequest {self.request_code}>'
