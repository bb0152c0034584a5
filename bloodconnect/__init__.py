import logging
from datetime import date, datetime

import click
from cachelib import FileSystemCache
from flask import Flask

from bloodconnect.config import Config
from bloodconnect.errors import register_error_handlers
from bloodconnect.extensions import bcrypt, cors, db, mail, migrate, scheduler, server_session
from bloodconnect import models  # noqa: F401  (registers every table with SQLAlchemy)

# Import controllers (blueprints) for each audience
from bloodconnect.controllers.admin_controller import admin_bp
from bloodconnect.controllers.auth_controller import auth_bp
from bloodconnect.controllers.donor_controller import donor_bp
from bloodconnect.controllers.hospital_controller import hospital_bp
from bloodconnect.controllers.notification_controller import notification_bp
from bloodconnect.controllers.public_controller import public_bp
from bloodconnect.controllers.seeker_controller import seeker_bp

REMINDER_JOB_ID = 'send-reminders'


def create_app(config_object=None):
    """Flask application factory"""
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app.logger.setLevel(app.config['LOG_LEVEL'])
    logging.getLogger('bloodconnect').setLevel(app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)
    mail.init_app(app)
    if app.config.get('SESSION_CACHELIB') is None:
        app.config['SESSION_CACHELIB'] = FileSystemCache(app.config['SESSION_FILE_DIR'], threshold=500)
    server_session.init_app(app)
    cors.init_app(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)

    # Register Blueprints with appropriate URL prefixes
    app.register_blueprint(auth_bp, url_prefix='/api/v1/auth')
    app.register_blueprint(admin_bp, url_prefix='/api/v1/admin')
    app.register_blueprint(donor_bp, url_prefix='/api/v1/donor')
    app.register_blueprint(hospital_bp, url_prefix='/api/v1/hospital')
    app.register_blueprint(seeker_bp, url_prefix='/api/v1/seeker')
    app.register_blueprint(notification_bp, url_prefix='/api/v1/notifications')
    app.register_blueprint(public_bp, url_prefix='/api/v1/public')

    register_error_handlers(app)
    register_commands(app)

    if app.config.get('SCHEDULER_ENABLED'):
        start_scheduler(app)

    return app


def run_reminders(app, today=None):
    from bloodconnect.services.reminders import send_scheduled_notifications

    with app.app_context():
        return send_scheduled_notifications(today)


def start_scheduler(app):
    scheduler.init_app(app)
    if scheduler.get_job(REMINDER_JOB_ID) is None:
        scheduler.add_job(
            id=REMINDER_JOB_ID,
            func=run_reminders,
            args=[app],
            trigger='cron',
            hour=app.config['REMINDER_HOUR'],
            replace_existing=True
        )
    if not scheduler.running:
        scheduler.start()
    app.logger.info('Reminder job scheduled daily at %02d:00', app.config['REMINDER_HOUR'])


def register_commands(app):
    @app.cli.command('send-reminders')
    @click.option('--date', 'run_date', default=None, help='Run as if today were YYYY-MM-DD.')
    def send_reminders_command(run_date):
        """Send appointment reminders, eligibility notices and expire overdue requests."""
        today = datetime.strptime(run_date, '%Y-%m-%d').date() if run_date else date.today()
        summary = run_reminders(app, today)
        for key, count in summary.items():
            click.echo(f'{key}: {count}')

    @app.cli.command('seed-admin')
    @click.argument('email')
    @click.argument('password')
    @click.option('--name', default='Administrator')
    def seed_admin_command(email, password, name):
        """Create an approved admin account."""
        from bloodconnect.models.enums import AccountStatus, Role
        from bloodconnect.models.user_model import User

        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f'{email} is already registered')
        admin = User(name=name, email=email, role=Role.ADMIN.value, status=AccountStatus.APPROVED.value)
        admin.set_password(password)
        db.session.add(admin)
        db.session.commit()
        click.echo(f'Admin {email} created')
