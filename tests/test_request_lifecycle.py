import re
from datetime import date, timedelta

from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.notification_model import Notification

from conftest import login


def request_payload(**overrides):
    payload = {
        'blood_type': 'O+',
        'quantity': 2,
        'patient_name': 'Ram Bahadur',
        'contact_phone': '9811111111',
        'city': 'Kathmandu',
        'required_date': (date.today() + timedelta(days=2)).isoformat(),
        'hospital_name': 'Bir Hospital',
    }
    payload.update(overrides)
    return payload


def donor_login(app, factory, email='donor@example.com', **profile):
    factory.user('donor', email, **profile)
    client = app.test_client()
    login(client, email)
    return client


def test_seeker_creates_pending_request(seeker_client):
    response = seeker_client.post('/api/v1/seeker/requests', json=request_payload())
    assert response.status_code == 201
    body = response.get_json()
    assert re.fullmatch(r'REQ\d{5}', body['request_code'])
    assert body['request']['status'] == 'pending'


def test_create_request_validates_input(seeker_client):
    assert seeker_client.post('/api/v1/seeker/requests', json=request_payload(blood_type='Z+')).status_code == 400
    assert seeker_client.post('/api/v1/seeker/requests', json=request_payload(quantity=0)).status_code == 400
    past = (date.today() - timedelta(days=1)).isoformat()
    assert seeker_client.post('/api/v1/seeker/requests', json=request_payload(required_date=past)).status_code == 400


def test_admin_approves_pending_request_once(app, admin_client, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    donor_user = factory.user('donor', 'match@example.com', blood_type='O-')
    far_donor = factory.user('donor', 'far@example.com', blood_type='O-', city='Pokhara')
    request_id = factory.blood_request(seeker_id, urgency='emergency')

    response = admin_client.post(f'/api/v1/admin/requests/{request_id}/approve')
    assert response.status_code == 200
    assert response.get_json()['request']['status'] == 'approved'

    again = admin_client.post(f'/api/v1/admin/requests/{request_id}/approve')
    assert again.status_code == 400
    assert 'Current status: approved' in again.get_json()['message']

    with app.app_context():
        assert Notification.query.filter_by(user_id=seeker_id, title='Request Approved').count() == 1
        assert Notification.query.filter_by(user_id=donor_user, title='Emergency Blood Request').count() == 1
        assert Notification.query.filter_by(user_id=far_donor).count() == 0


def test_approval_notifies_only_donors_who_can_donate(app, admin_client, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    ready = factory.user('donor', 'ready@example.com')
    too_old = factory.user('donor', 'old@example.com', age=70)
    too_light = factory.user('donor', 'light@example.com', weight=40)
    unwell = factory.user('donor', 'unwell@example.com')
    busy = factory.user('donor', 'busy@example.com')
    other_request = factory.blood_request(seeker_id, status='in_progress')
    request_id = factory.blood_request(seeker_id, urgency='emergency')
    busy_donor_id = factory.donor_id(busy)
    with app.app_context():
        Donor.query.filter_by(user_id=unwell).one().health.has_heart_disease = True
        db.session.add(Donation(request_id=other_request, donor_id=busy_donor_id, status='accepted'))
        db.session.commit()

    assert admin_client.post(f'/api/v1/admin/requests/{request_id}/approve').status_code == 200

    with app.app_context():
        notified = {n.user_id for n in Notification.query.filter_by(title='Emergency Blood Request')}
        assert notified == {ready}
        for user_id in (too_old, too_light, unwell, busy):
            assert user_id not in notified


def test_request_fields_must_be_text(seeker_client):
    response = seeker_client.post('/api/v1/seeker/requests', json=request_payload(blood_type=['O+']))
    assert response.status_code == 400
    assert response.get_json()['success'] is False
    assert seeker_client.post('/api/v1/seeker/requests', json=request_payload(patient_name=42)).status_code == 400
    assert seeker_client.post('/api/v1/seeker/requests', json=request_payload(city={'name': 'x'})).status_code == 400
    assert seeker_client.post('/api/v1/seeker/requests', json=[request_payload()]).status_code == 400


def test_reject_stores_reason(app, admin_client, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id)
    response = admin_client.post(f'/api/v1/admin/requests/{request_id}/reject', json={'reason': 'Duplicate'})
    assert response.status_code == 200
    with app.app_context():
        blood_request = db.session.get(BloodRequest, request_id)
        assert blood_request.status == 'rejected'
        assert blood_request.rejection_reason == 'Duplicate'
    assert admin_client.post(f'/api/v1/admin/requests/{request_id}/approve').status_code == 400


def test_donor_sees_only_compatible_approved_requests(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    compatible = factory.blood_request(seeker_id, status='approved', blood_type='AB+', urgency='emergency')
    factory.blood_request(seeker_id, status='approved', blood_type='O-')
    factory.blood_request(seeker_id, status='pending', blood_type='AB+')
    client = donor_login(app, factory, blood_type='A+')

    body = client.get('/api/v1/donor/requests').get_json()
    assert [r['id'] for r in body['emergency_requests']] == [compatible]
    assert body['normal_requests'] == []


def test_accept_then_complete_donation(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id, status='approved', blood_type='O+')
    client = donor_login(app, factory, blood_type='O-')

    response = client.post(f'/api/v1/donor/requests/{request_id}/accept')
    assert response.status_code == 200
    donation_id = response.get_json()['donation']['id']
    assert response.get_json()['request']['status'] == 'in_progress'

    for status in ('on_the_way', 'reached'):
        assert client.post(f'/api/v1/donor/donations/{donation_id}/status', json={'status': status}).status_code == 200

    backwards = client.post(f'/api/v1/donor/donations/{donation_id}/status', json={'status': 'on_the_way'})
    assert backwards.status_code == 400

    response = client.post(f'/api/v1/donor/donations/{donation_id}/status', json={'status': 'completed'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['certificate']['certificate_code'] == f'CERT-{date.today().year}-DON{donation_id:05d}'
    assert body['next_eligible_date'] == (date.today() + timedelta(days=90)).isoformat()

    with app.app_context():
        assert db.session.get(BloodRequest, request_id).status == 'completed'
        donor = Donor.query.filter_by(user_id=db.session.get(Donation, donation_id).donor.user_id).one()
        assert donor.total_donations == 1
        assert donor.last_donation_date == date.today()
        assert Notification.query.filter_by(user_id=seeker_id, title='Donation Completed').count() == 1
        assert Notification.query.filter_by(user_id=donor.user_id, title='Bronze Donor Achievement').count() == 1

    done = client.post(f'/api/v1/donor/donations/{donation_id}/status', json={'status': 'completed'})
    assert done.status_code == 400


def test_request_has_single_active_donation(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id, status='approved')
    first = donor_login(app, factory, 'first@example.com')
    second = donor_login(app, factory, 'second@example.com')

    assert first.post(f'/api/v1/donor/requests/{request_id}/accept').status_code == 200
    response = second.post(f'/api/v1/donor/requests/{request_id}/accept')
    assert response.status_code == 400
    assert 'already been accepted' in response.get_json()['message']


def test_donor_holds_one_live_donation(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    first_request = factory.blood_request(seeker_id, status='approved')
    second_request = factory.blood_request(seeker_id, status='approved')
    client = donor_login(app, factory)

    assert client.post(f'/api/v1/donor/requests/{first_request}/accept').status_code == 200
    response = client.post(f'/api/v1/donor/requests/{second_request}/accept')
    assert response.status_code == 400
    assert 'active donation' in response.get_json()['message']


def test_pending_request_cannot_be_accepted(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id, status='pending')
    client = donor_login(app, factory)
    response = client.post(f'/api/v1/donor/requests/{request_id}/accept')
    assert response.status_code == 400
    assert 'pending admin approval' in response.get_json()['message']


def test_incompatible_donor_cannot_accept(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id, status='approved', blood_type='O-')
    client = donor_login(app, factory, blood_type='AB+')
    assert client.post(f'/api/v1/donor/requests/{request_id}/accept').status_code == 400


def test_cooling_down_donor_cannot_accept(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id, status='approved')
    client = donor_login(app, factory, last_donation_date=date.today() - timedelta(days=89))

    response = client.post(f'/api/v1/donor/requests/{request_id}/accept')
    assert response.status_code == 403
    assert response.get_json()['next_eligible_date'] == (date.today() + timedelta(days=1)).isoformat()
    with app.app_context():
        assert db.session.get(BloodRequest, request_id).status == 'approved'
        assert Donation.query.count() == 0


def test_cancel_returns_request_to_approved(app, factory):
    factory.user('admin', 'admin@example.com')
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id, status='approved')
    client = donor_login(app, factory)
    donation_id = client.post(f'/api/v1/donor/requests/{request_id}/accept').get_json()['donation']['id']

    response = client.post(f'/api/v1/donor/donations/{donation_id}/cancel', json={'reason': 'Feeling unwell'})
    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(BloodRequest, request_id).status == 'approved'
        donation = db.session.get(Donation, donation_id)
        assert donation.status == 'cancelled'
        assert donation.cancel_reason == 'Feeling unwell'
        assert Notification.query.filter_by(user_id=seeker_id, title='Donor Cancelled').count() == 1
        assert Notification.query.filter_by(title='Donation Cancelled').count() == 1

    assert client.post(f'/api/v1/donor/donations/{donation_id}/cancel').status_code == 400
    # the same donor cannot take the request again, another donor can
    assert client.post(f'/api/v1/donor/requests/{request_id}/accept').status_code == 400
    other = donor_login(app, factory, 'other@example.com')
    assert other.post(f'/api/v1/donor/requests/{request_id}/accept').status_code == 200


def test_other_donors_donation_is_not_found(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    request_id = factory.blood_request(seeker_id, status='approved')
    owner = donor_login(app, factory, 'owner@example.com')
    donation_id = owner.post(f'/api/v1/donor/requests/{request_id}/accept').get_json()['donation']['id']

    intruder = donor_login(app, factory, 'intruder@example.com')
    response = intruder.post(f'/api/v1/donor/donations/{donation_id}/status', json={'status': 'completed'})
    assert response.status_code == 404


def test_seeker_sees_lifecycle_label(app, seeker_client, factory):
    response = seeker_client.post('/api/v1/seeker/requests', json=request_payload())
    code = response.get_json()['request_code']

    body = seeker_client.get(f'/api/v1/seeker/requests/{code}').get_json()
    assert body['request']['lifecycle']['label'] == 'Under Review'
    listing = seeker_client.get('/api/v1/seeker/requests').get_json()
    assert len(listing['requests']) == 1


def test_hospital_request_requires_approval(app, factory):
    factory.user('hospital', 'pending-hospital@example.com', status='pending')
    client = app.test_client()
    login(client, 'pending-hospital@example.com')
    assert client.post('/api/v1/hospital/requests', json=request_payload()).status_code == 403


def test_hospital_creates_and_lists_requests(hospital_client):
    response = hospital_client.post('/api/v1/hospital/requests', json=request_payload(emergency=True))
    assert response.status_code == 201
    assert response.get_json()['request']['urgency'] == 'emergency'
    assert response.get_json()['request']['hospital_name'] == 'City Hospital'

    body = hospital_client.get('/api/v1/hospital/requests').get_json()
    assert body['stats']['pending'] == 1
    assert body['stats']['total'] == 1
