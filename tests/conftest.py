from datetime import date, timedelta

import pytest

from bloodconnect import create_app
from bloodconnect.config import TestingConfig
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donor_health_model import DonorHealth
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.hospital_model import Hospital
from bloodconnect.models.seeker_model import Seeker
from bloodconnect.models.user_model import User

PASSWORD = 'secret123'


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    """Inserts rows directly and returns their ids."""

    def __init__(self, app):
        self.app = app

    def user(self, role, email, status='approved', name=None, **profile):
        with self.app.app_context():
            user = User(name=name or email.split('@')[0].title(), email=email, phone=profile.pop('phone', '9800000000'),
                        role=role, status=status)
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.flush()

            if role == 'donor':
                donor = Donor(
                    user_id=user.id,
                    blood_type=profile.get('blood_type', 'O-'),
                    age=profile.get('age', 30),
                    weight=profile.get('weight', 70),
                    city=profile.get('city', 'Kathmandu'),
                    last_donation_date=profile.get('last_donation_date'),
                    next_eligible_date=profile.get('next_eligible_date'),
                    total_donations=profile.get('total_donations', 0)
                )
                db.session.add(donor)
                db.session.flush()
                db.session.add(DonorHealth(donor_id=donor.id))
            elif role == 'hospital':
                db.session.add(Hospital(user_id=user.id, city=profile.get('city', 'Kathmandu'),
                                        address='Teaching Road'))
            elif role == 'seeker':
                db.session.add(Seeker(user_id=user.id, city=profile.get('city', 'Kathmandu')))
            db.session.commit()
            return user.id

    def donor_id(self, user_id):
        with self.app.app_context():
            return Donor.query.filter_by(user_id=user_id).one().id

    def hospital_id(self, user_id):
        with self.app.app_context():
            return Hospital.query.filter_by(user_id=user_id).one().id

    def blood_request(self, requester_id, status='pending', blood_type='O+', city='Kathmandu',
                      urgency='normal', requester_type='seeker', required_date=None, patient_name='John Doe',
                      contact_phone='9811111111'):
        with self.app.app_context():
            blood_request = BloodRequest(
                blood_type=blood_type,
                quantity=1,
                urgency=urgency,
                status=status,
                requester_id=requester_id,
                requester_type=requester_type,
                patient_name=patient_name,
                contact_phone=contact_phone,
                city=city,
                required_date=required_date or date.today() + timedelta(days=3)
            )
            db.session.add(blood_request)
            db.session.flush()
            blood_request.request_code = f'REQ{blood_request.id:05d}'
            db.session.commit()
            return blood_request.id


@pytest.fixture
def factory(app):
    return Factory(app)


def login(client, email, password=PASSWORD):
    return client.post('/api/v1/auth/login', json={'email': email, 'password': password})


@pytest.fixture
def admin_client(app, factory):
    factory.user('admin', 'admin@example.com')
    client = app.test_client()
    login(client, 'admin@example.com')
    return client


@pytest.fixture
def seeker_client(app, factory):
    factory.user('seeker', 'seeker@example.com')
    client = app.test_client()
    login(client, 'seeker@example.com')
    return client


@pytest.fixture
def donor_client(app, factory):
    factory.user('donor', 'donor@example.com', blood_type='O-')
    client = app.test_client()
    login(client, 'donor@example.com')
    return client


@pytest.fixture
def hospital_client(app, factory):
    factory.user('hospital', 'hospital@example.com', name='City Hospital')
    client = app.test_client()
    login(client, 'hospital@example.com')
    return client
