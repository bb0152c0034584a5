from datetime import datetime
from bloodconnect.extensions import db, bcrypt
from bloodconnect.models.enums import Role, AccountStatus, values


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, default='')
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(20))
    role = db.Column(db.Enum(*values(Role), name='user_role'), nullable=False)
    status = db.Column(db.Enum(*values(AccountStatus), name='account_status'), nullable=False,
                       default=AccountStatus.PENDING.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    donor = db.relationship('Donor', backref='user', uselist=False, lazy=True)
    hospital = db.relationship('Hospital', backref='user', uselist=False, lazy=True)
    seeker = db.relationship('Seeker', backref='user', uselist=False, lazy=True)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def needs_approval(self):
        """Only donor and hospital accounts go through admin review."""
        return self.role in (Role.DONOR, Role.HOSPITAL)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<User {self.email}>'
