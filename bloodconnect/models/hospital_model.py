from bloodconnect.extensions import db


class Hospital(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    registration_number = db.Column(db.String(50))
    address = db.Column(db.String(255))
    city = db.Column(db.String(50))
    website = db.Column(db.String(255))
    contact_person = db.Column(db.String(100))
    hospital_type = db.Column(db.String(50))
    operating_hours = db.Column(db.String(100))
    has_blood_bank = db.Column(db.Boolean, default=False)
    total_requests = db.Column(db.Integer, default=0, nullable=False)

    @property
    def name(self):
        return self.user.name if self.user else None

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'hospital_name': self.name,
            'registration_number': self.registration_number,
            'address': self.address,
            'city': self.city,
            'website': self.website,
            'contact_person': self.contact_person,
            'hospital_type': self.hospital_type,
            'operating_hours': self.operating_hours,
            'has_blood_bank': self.has_blood_bank,
            'phone': self.user.phone if self.user else None,
            'total_requests': self.total_requests
        }

    def __repr__(self):
        return f'<Hospital {self.id}>'
