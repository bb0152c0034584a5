from datetime import datetime
from bloodconnect.extensions import db
from bloodconnect.models.enums import DonationStatus, values


class Donation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('blood_request.id'), nullable=False)
    donor_id = db.Column(db.Integer, db.ForeignKey('donor.id'), nullable=False)
    status = db.Column(db.Enum(*values(DonationStatus), name='donation_status'), nullable=False,
                       default=DonationStatus.ACCEPTED.value)
    quantity = db.Column(db.Integer, default=1)
    accepted_at = db.Column(db.DateTime, default=datetime.utcnow)
    started_at = db.Column(db.DateTime)
    reached_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancel_reason = db.Column(db.Text)

    certificate = db.relationship('Certificate', backref='donation', uselist=False, lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'request_id': self.request_id,
            'donor_id': self.donor_id,
            'status': self.status,
            'quantity': self.quantity,
            'accepted_at': self.accepted_at.isoformat() if self.accepted_at else None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'reached_at': self.reached_at.isoformat() if self.reached_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'cancel_reason': self.cancel_reason
        }

    def __repr__(self):
        return f'<Donation {self.id} {self.status}>'
