from datetime import datetime
from bloodconnect.extensions import db
from bloodconnect.models.enums import BloodType, PreferredTime, VoluntaryStatus, values


class VoluntaryDonation(db.Model):
    __tablename__ = 'voluntary_donation'

    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('donor.id'), nullable=False)
    blood_type = db.Column(db.Enum(*values(BloodType), name='blood_type'), nullable=False)
    hospital_id = db.Column(db.Integer, db.ForeignKey('hospital.id'))
    city = db.Column(db.String(50))
    availability_date = db.Column(db.Date, nullable=False)
    preferred_time = db.Column(db.Enum(*values(PreferredTime), name='preferred_time'),
                               default=PreferredTime.ANY.value)
    notes = db.Column(db.Text)
    status = db.Column(db.Enum(*values(VoluntaryStatus), name='voluntary_status'), nullable=False,
                       default=VoluntaryStatus.PENDING.value)

    approved_by_admin_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    approved_at = db.Column(db.DateTime)
    rejected_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)
    scheduled_date = db.Column(db.Date)
    scheduled_time = db.Column(db.Time)
    confirmed_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    donation_id = db.Column(db.Integer, db.ForeignKey('donation.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    donor = db.relationship('Donor', backref='voluntary_donations')
    hospital = db.relationship('Hospital', backref='voluntary_donations')
    approved_by = db.relationship('User', foreign_keys=[approved_by_admin_id])

    def to_dict(self):
        return {
            'id': self.id,
            'donor_id': self.donor_id,
            'donor_name': self.donor.name if self.donor else None,
            'blood_type': self.blood_type,
            'hospital_id': self.hospital_id,
            'hospital_name': self.hospital.name if self.hospital else None,
            'city': self.city,
            'availability_date': self.availability_date.isoformat() if self.availability_date else None,
            'preferred_time': self.preferred_time,
            'notes': self.notes,
            'status': self.status,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'approved_by_name': self.approved_by.name if self.approved_by else None,
            'rejected_at': self.rejected_at.isoformat() if self.rejected_at else None,
            'rejection_reason': self.rejection_reason,
            'scheduled_date': self.scheduled_date.isoformat() if self.scheduled_date else None,
            'scheduled_time': self.scheduled_time.strftime('%H:%M') if self.scheduled_time else None,
            'confirmed': self.confirmed_at is not None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'donation_id': self.donation_id,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<VoluntaryDonation {self.id} {self.status}>'
