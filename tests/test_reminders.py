from datetime import date, time, timedelta

from bloodconnect import run_reminders
from bloodconnect.extensions import db
from bloodconnect.models.blood_request_model import BloodRequest
from bloodconnect.models.donation_model import Donation
from bloodconnect.models.donor_model import Donor
from bloodconnect.models.notification_model import Notification
from bloodconnect.models.voluntary_donation_model import VoluntaryDonation

TODAY = date.today()


def scheduled_voluntary(app, factory, scheduled_date):
    donor_user = factory.user('donor', 'donor@example.com')
    hospital_user = factory.user('hospital', 'hospital@example.com', name='City Hospital')
    with app.app_context():
        donor = Donor.query.filter_by(user_id=donor_user).one()
        record = VoluntaryDonation(donor_id=donor.id, blood_type=donor.blood_type,
                                   hospital_id=factory.hospital_id(hospital_user),
                                   availability_date=scheduled_date, scheduled_date=scheduled_date,
                                   scheduled_time=time(9, 0), status='scheduled')
        db.session.add(record)
        db.session.commit()
    return donor_user, hospital_user


def test_appointment_reminder_sent_once(app, factory):
    donor_user, hospital_user = scheduled_voluntary(app, factory, TODAY + timedelta(days=1))

    summary = run_reminders(app, TODAY)
    assert summary['appointment_reminders'] == 1
    assert run_reminders(app, TODAY)['appointment_reminders'] == 0

    with app.app_context():
        reminder = Notification.query.filter_by(user_id=donor_user, title='Appointment Reminder').one()
        assert 'City Hospital' in reminder.message
        assert '09:00' in reminder.message
        assert Notification.query.filter_by(user_id=hospital_user, title='Donor Arriving Tomorrow').count() == 1


def test_no_reminder_for_later_appointments(app, factory):
    scheduled_voluntary(app, factory, TODAY + timedelta(days=3))
    assert run_reminders(app, TODAY)['appointment_reminders'] == 0


def test_eligibility_restored_notice(app, factory):
    ready = factory.user('donor', 'ready@example.com', next_eligible_date=TODAY)
    factory.user('donor', 'waiting@example.com', next_eligible_date=TODAY + timedelta(days=5))
    factory.user('donor', 'pending@example.com', status='pending', next_eligible_date=TODAY)

    assert run_reminders(app, TODAY)['eligibility_restored'] == 1
    assert run_reminders(app, TODAY)['eligibility_restored'] == 0
    with app.app_context():
        notice = Notification.query.filter_by(title='You Can Donate Again').one()
        assert notice.user_id == ready


def test_eligibility_restored_skips_donors_failing_other_gates(app, factory):
    factory.user('donor', 'old@example.com', age=70, next_eligible_date=TODAY)
    unwell = factory.user('donor', 'unwell@example.com', next_eligible_date=TODAY)
    with app.app_context():
        Donor.query.filter_by(user_id=unwell).one().health.has_infectious_disease = True
        db.session.commit()

    assert run_reminders(app, TODAY)['eligibility_restored'] == 0
    with app.app_context():
        assert Notification.query.filter_by(title='You Can Donate Again').count() == 0


def test_backdated_run_is_safe_to_repeat(app, factory):
    run_day = date(2025, 1, 9)
    donor_user, _ = scheduled_voluntary(app, factory, run_day + timedelta(days=1))
    restored = factory.user('donor', 'restored@example.com', next_eligible_date=run_day)

    first = run_reminders(app, run_day)
    assert first['appointment_reminders'] == 1
    assert first['eligibility_restored'] == 1
    second = run_reminders(app, run_day)
    assert second['appointment_reminders'] == 0
    assert second['eligibility_restored'] == 0

    with app.app_context():
        assert Notification.query.filter_by(user_id=donor_user, title='Appointment Reminder').count() == 1
        assert Notification.query.filter_by(user_id=restored, title='You Can Donate Again').count() == 1


def test_overdue_requests_expire(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    overdue = factory.blood_request(seeker_id, status='approved', required_date=TODAY - timedelta(days=1))
    current = factory.blood_request(seeker_id, status='approved', required_date=TODAY)
    finished = factory.blood_request(seeker_id, status='completed', required_date=TODAY - timedelta(days=5))

    assert run_reminders(app, TODAY)['expired_requests'] == 1
    with app.app_context():
        expired = db.session.get(BloodRequest, overdue)
        assert expired.status == 'cancelled'
        assert 'expired' in expired.rejection_reason.lower()
        assert db.session.get(BloodRequest, current).status == 'approved'
        assert db.session.get(BloodRequest, finished).status == 'completed'
        assert Notification.query.filter_by(user_id=seeker_id, title='Request Expired').count() == 1


def test_expiry_cancels_live_donation(app, factory):
    seeker_id = factory.user('seeker', 'seeker@example.com')
    donor_user = factory.user('donor', 'donor@example.com')
    request_id = factory.blood_request(seeker_id, status='in_progress', required_date=TODAY - timedelta(days=1))
    with app.app_context():
        donation = Donation(request_id=request_id, donor_id=Donor.query.filter_by(user_id=donor_user).one().id,
                            status='on_the_way')
        db.session.add(donation)
        db.session.commit()
        donation_id = donation.id

    run_reminders(app, TODAY)
    with app.app_context():
        donation = db.session.get(Donation, donation_id)
        assert donation.status == 'cancelled'
        assert donation.cancel_reason == 'Request expired'


def test_cli_command_prints_summary(app):
    result = app.test_cli_runner().invoke(args=['send-reminders', '--date', TODAY.isoformat()])
    assert result.exit_code == 0
    assert 'appointment_reminders: 0' in result.output
    assert 'expired_requests: 0' in result.output


def test_cli_rerun_for_past_date_sends_nothing_new(app, factory):
    run_day = date(2025, 1, 9)
    scheduled_voluntary(app, factory, run_day + timedelta(days=1))
    runner = app.test_cli_runner()
    first = runner.invoke(args=['send-reminders', '--date', run_day.isoformat()])
    assert 'appointment_reminders: 1' in first.output
    again = runner.invoke(args=['send-reminders', '--date', run_day.isoformat()])
    assert again.exit_code == 0
    assert 'appointment_reminders: 0' in again.output


def test_seed_admin_command(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['seed-admin', 'root@example.com', 'secret123'])
    assert result.exit_code == 0
    again = runner.invoke(args=['seed-admin', 'root@example.com', 'secret123'])
    assert again.exit_code != 0
    assert 'already registered' in again.output
