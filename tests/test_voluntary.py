from datetime import date, timedelta

import pytest

from bloodconnect.errors import StateConflict
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.certificate_model import Certificate
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation
from bloodconnect.services import voluntary as voluntary_service

from conftest import login

TOMORROW = date.today() + timedelta(days=1)


@pytest.fixture
def hospital_pk(factory):
    user_id = factory.user('hospital', 'hospital@example.com', name='City Hospital')
    return factory.hospital_id(user_id)


def submit(client, hospital_pk, **overrides):
    payload = {'hospital_id': hospital_pk, 'availability_date': TOMORROW.isoformat(), 'preferred_time': 'morning'}
    payload.update(overrides)
    return client.post('/api/v1/donor/voluntary', json=payload)


def set_status(app, voluntary_id, status):
    with app.app_context():
        db.session.get(VoluntaryDonation, voluntary_id).status = status
        db.session.commit()


def test_submit_voluntary_donation(app, donor_client, hospital_pk, factory):
    factory.user('admin', 'admin@example.com')
    response = submit(donor_client, hospital_pk)
    assert response.status_code == 201
    body = response.get_json()['voluntary']
    assert body['status'] == 'pending'
    assert body['blood_type'] == 'O-'
    assert body['hospital_name'] == 'City Hospital'


def test_duplicate_active_submission_rejected(donor_client, hospital_pk):
    assert submit(donor_client, hospital_pk).status_code == 201
    response = submit(donor_client, hospital_pk)
    assert response.status_code == 400
    assert 'active voluntary donation' in response.get_json()['message']


def test_submit_rejects_past_date(donor_client, hospital_pk):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    assert submit(donor_client, hospital_pk, availability_date=yesterday).status_code == 400


def test_submit_requires_approved_hospital(factory, donor_client):
    user_id = factory.user('hospital', 'pending@example.com', status='pending')
    response = submit(donor_client, factory.hospital_id(user_id))
    assert response.status_code == 400
    assert 'not available' in response.get_json()['message']


def test_submit_blocked_during_cooldown(app, factory, hospital_pk):
    factory.user('donor', 'recent@example.com', last_donation_date=date.today() - timedelta(days=30))
    client = app.test_client()
    login(client, 'recent@example.com')
    response = submit(client, hospital_pk)
    assert response.status_code == 403
    assert response.get_json()['next_eligible_date'] == (date.today() + timedelta(days=60)).isoformat()


def test_donor_cancel_only_pending_or_approved(app, donor_client, hospital_pk):
    voluntary_id = submit(donor_client, hospital_pk).get_json()['voluntary']['id']
    set_status(app, voluntary_id, 'scheduled')
    assert donor_client.post(f'/api/v1/donor/voluntary/{voluntary_id}/cancel').status_code == 400

    set_status(app, voluntary_id, 'approved')
    response = donor_client.post(f'/api/v1/donor/voluntary/{voluntary_id}/cancel')
    assert response.status_code == 200
    assert response.get_json()['voluntary']['status'] == 'cancelled'
    # a cancelled offer no longer blocks a new one
    assert submit(donor_client, hospital_pk).status_code == 201


def test_admin_review_only_from_pending(admin_client, donor_client, hospital_pk):
    voluntary_id = submit(donor_client, hospital_pk).get_json()['voluntary']['id']
    response = admin_client.post(f'/api/v1/admin/voluntary/{voluntary_id}/approve')
    assert response.status_code == 200
    assert response.get_json()['voluntary']['status'] == 'approved'
    assert admin_client.post(f'/api/v1/admin/voluntary/{voluntary_id}/reject').status_code == 400

    listing = admin_client.get('/api/v1/admin/voluntary?status=approved').get_json()
    assert [v['id'] for v in listing['voluntary_donations']] == [voluntary_id]
    assert listing['stats']['approved'] == 1


def test_full_voluntary_flow(app, factory, admin_client, donor_client):
    hospital_client = app.test_client()
    hospital_user = factory.user('hospital', 'hospital@example.com', name='City Hospital')
    login(hospital_client, 'hospital@example.com')
    hospital_pk = factory.hospital_id(hospital_user)

    voluntary_id = submit(donor_client, hospital_pk).get_json()['voluntary']['id']
    admin_client.post(f'/api/v1/admin/voluntary/{voluntary_id}/approve')

    listing = hospital_client.get('/api/v1/hospital/voluntary').get_json()
    assert [v['id'] for v in listing['voluntary_donations']] == [voluntary_id]

    # completing before scheduling is not allowed
    early = hospital_client.post(f'/api/v1/hospital/voluntary/{voluntary_id}/status', json={'status': 'completed'})
    assert early.status_code == 400

    response = hospital_client.post(f'/api/v1/hospital/voluntary/{voluntary_id}/schedule',
                                    json={'scheduled_date': TOMORROW.isoformat()})
    assert response.status_code == 200
    body = response.get_json()['voluntary']
    assert body['status'] == 'scheduled'
    assert body['scheduled_time'] == '09:00'

    response = hospital_client.post(f'/api/v1/hospital/voluntary/{voluntary_id}/status', json={'status': 'confirmed'})
    assert response.status_code == 200
    assert response.get_json()['voluntary']['confirmed'] is True

    response = hospital_client.post(f'/api/v1/hospital/voluntary/{voluntary_id}/status', json={'status': 'completed'})
    assert response.status_code == 200
    assert response.get_json()['certificate']['certificate_code'].startswith(f'CERT-{date.today().year}-DON')

    with app.app_context():
        record = db.session.get(VoluntaryDonation, voluntary_id)
        assert record.status == 'completed'
        donation = db.session.get(Donation, record.donation_id)
        assert donation.status == 'completed'
        synthetic = BloodRequest.query.filter_by(requester_type='system').one()
        assert synthetic.status == 'completed'
        assert synthetic.hospital_id == hospital_pk
        assert Certificate.query.count() == 1
        donor = Donor.query.filter_by(blood_type='O-').one()
        assert donor.total_donations == 1
        assert donor.next_eligible_date == date.today() + timedelta(days=90)

    # cooldown now applies to new offers
    assert submit(donor_client, hospital_pk).status_code == 403


def test_other_hospital_cannot_update(app, factory, admin_client, donor_client, hospital_pk):
    voluntary_id = submit(donor_client, hospital_pk).get_json()['voluntary']['id']
    admin_client.post(f'/api/v1/admin/voluntary/{voluntary_id}/approve')

    factory.user('hospital', 'other@example.com')
    other = app.test_client()
    login(other, 'other@example.com')
    response = other.post(f'/api/v1/hospital/voluntary/{voluntary_id}/status', json={'status': 'cancelled'})
    assert response.status_code == 404
    response = other.post(f'/api/v1/hospital/voluntary/{voluntary_id}/schedule',
                          json={'scheduled_date': TOMORROW.isoformat()})
    assert response.status_code == 400


def test_confirm_from_approved_uses_preferred_time(app, factory, hospital_pk):
    donor_user = factory.user('donor', 'donor@example.com')
    with app.app_context():
        donor = Donor.query.filter_by(user_id=donor_user).one()
        record = VoluntaryDonation(donor_id=donor.id, blood_type=donor.blood_type, hospital_id=hospital_pk,
                                   availability_date=TOMORROW, preferred_time='evening', status='approved')
        db.session.add(record)
        db.session.commit()

        voluntary_service.update_status(record, record.hospital, 'confirmed')
        assert record.status == 'scheduled'
        assert record.scheduled_date == TOMORROW
        assert record.scheduled_time.strftime('%H:%M') == '18:00'
        assert record.confirmed_at is not None


def test_cancelled_record_cannot_be_scheduled(app, factory, hospital_pk):
    donor_user = factory.user('donor', 'donor@example.com')
    with app.app_context():
        donor = Donor.query.filter_by(user_id=donor_user).one()
        record = VoluntaryDonation(donor_id=donor.id, blood_type=donor.blood_type, hospital_id=hospital_pk,
                                   availability_date=TOMORROW, status='cancelled')
        db.session.add(record)
        db.session.commit()
        with pytest.raises(StateConflict):
            voluntary_service.schedule(record, record.hospital, TOMORROW)
