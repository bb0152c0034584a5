from datetime import datetime
from bloodconnect.extensions import db
from bloodconnect.models.enums import BloodType, values


class Donor(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    blood_type = db.Column(db.Enum(*values(BloodType), name='blood_type'), nullable=False)
    age = db.Column(db.Integer)
    weight = db.Column(db.Float)
    gender = db.Column(db.String(10))
    city = db.Column(db.String(50))
    address = db.Column(db.String(255))
    is_available = db.Column(db.Boolean, default=True)  # True = Available
    total_donations = db.Column(db.Integer, default=0, nullable=False)
    last_donation_date = db.Column(db.Date)
    next_eligible_date = db.Column(db.Date)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    donations = db.relationship('Donation', backref='donor', lazy=True)
    health = db.relationship('DonorHealth', backref='donor', uselist=False, lazy=True)

    @property
    def name(self):
        return self.user.name if self.user else None

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'email': self.user.email if self.user else None,
            'phone': self.user.phone if self.user else None,
            'blood_type': self.blood_type,
            'age': self.age,
            'weight': self.weight,
            'gender': self.gender,
            'city': self.city,
            'address': self.address,
            'is_available': self.is_available,
            'total_donations': self.total_donations,
            'last_donation_date': self.last_donation_date.isoformat() if self.last_donation_date else None,
            'next_eligible_date': self.next_eligible_date.isoformat() if self.next_eligible_date else None
        }

    def __repr__(self):
        return f'<Donor {self.id} {self.blood_type}>'
