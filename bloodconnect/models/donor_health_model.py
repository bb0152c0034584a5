from datetime import datetime
from bloodconnect.extensions import db

SMOKING_CHOICES = ('no', 'occasionally', 'regularly')
ALCOHOL_CHOICES = ('none', 'occasionally', 'regularly')
EXERCISE_CHOICES = ('rarely', 'weekly', 'daily')

CONDITION_FLAGS = (
    'has_diabetes',
    'has_hypertension',
    'has_heart_disease',
    'has_blood_disorders',
    'has_infectious_disease',
    'has_asthma',
    'has_allergies',
    'has_recent_surgery',
    'is_on_medication',
)


class DonorHealth(db.Model):
    __tablename__ = 'donor_health'

    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('donor.id'), nullable=False, unique=True)
    height = db.Column(db.Float)
    blood_pressure_systolic = db.Column(db.Integer)
    blood_pressure_diastolic = db.Column(db.Integer)
    hemoglobin = db.Column(db.Float)

    has_diabetes = db.Column(db.Boolean, default=False, nullable=False)
    has_hypertension = db.Column(db.Boolean, default=False, nullable=False)
    has_heart_disease = db.Column(db.Boolean, default=False, nullable=False)
    has_blood_disorders = db.Column(db.Boolean, default=False, nullable=False)
    has_infectious_disease = db.Column(db.Boolean, default=False, nullable=False)
    has_asthma = db.Column(db.Boolean, default=False, nullable=False)
    has_allergies = db.Column(db.Boolean, default=False, nullable=False)
    has_recent_surgery = db.Column(db.Boolean, default=False, nullable=False)
    is_on_medication = db.Column(db.Boolean, default=False, nullable=False)

    smoking_status = db.Column(db.Enum(*SMOKING_CHOICES, name='smoking_status'), default='no')
    alcohol_consumption = db.Column(db.Enum(*ALCOHOL_CHOICES, name='alcohol_consumption'), default='none')
    exercise_frequency = db.Column(db.Enum(*EXERCISE_CHOICES, name='exercise_frequency'), default='rarely')

    medications = db.Column(db.Text)
    allergies_details = db.Column(db.Text)
    last_medical_checkup = db.Column(db.Date)
    additional_notes = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        data = {
            'height': self.height,
            'blood_pressure_systolic': self.blood_pressure_systolic,
            'blood_pressure_diastolic': self.blood_pressure_diastolic,
            'hemoglobin': self.hemoglobin,
            'smoking_status': self.smoking_status,
            'alcohol_consumption': self.alcohol_consumption,
            'exercise_frequency': self.exercise_frequency,
            'medications': self.medications,
            'allergies_details': self.allergies_details,
            'last_medical_checkup': self.last_medical_checkup.isoformat() if self.last_medical_checkup else None,
            'additional_notes': self.additional_notes
        }
        for flag in CONDITION_FLAGS:
            data[flag] = bool(getattr(self, flag))
        return data
