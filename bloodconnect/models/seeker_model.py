from bloodconnect.extensions import db


class Seeker(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    city = db.Column(db.String(50))
    address = db.Column(db.String(255))
    total_requests = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'city': self.city,
            'address': self.address,
            'total_requests': self.total_requests
        }
