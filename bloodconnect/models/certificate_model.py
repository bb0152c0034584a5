from datetime import datetime
from bloodconnect.extensions import db


class Certificate(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    certificate_code = db.Column(db.String(40), unique=True, nullable=False)
    donation_id = db.Column(db.Integer, db.ForeignKey('donation.id'), nullable=False, unique=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('donor.id'), nullable=False)
    donor_name = db.Column(db.String(100), nullable=False)
    blood_type = db.Column(db.String(5), nullable=False)
    hospital_name = db.Column(db.String(150))
    quantity = db.Column(db.Integer, default=1)
    donation_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    downloaded_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'certificate_code': self.certificate_code,
            'donation_id': self.donation_id,
            'donor_name': self.donor_name,
            'blood_type': self.blood_type,
            'hospital_name': self.hospital_name,
            'quantity': self.quantity,
            'donation_date': self.donation_date.isoformat(),
            'downloaded_at': self.downloaded_at.isoformat() if self.downloaded_at else None
        }
