from datetime import datetime

from werkzeug.exceptions import BadRequest

from bloodconnect.extensions import db
from bloodconnect.models.announcement_model import Announcement
from bloodconnect.models.enums import AnnouncementPriority, AnnouncementStatus, Audience, Role, values
from bloodconnect.services import notifications


def create(admin, title, message, target_audience=None, priority=None, scheduled_at=None, now=None):
    """Create an announcement, published now unless ``scheduled_at`` is in the future."""
    now = now or datetime.utcnow()
    target_audience = target_audience or Audience.ALL.value
    priority = priority or AnnouncementPriority.NORMAL.value
    if target_audience not in values(Audience):
        raise BadRequest('Invalid target audience')
    if priority not in values(AnnouncementPriority):
        raise BadRequest('Invalid priority')

    announcement = Announcement(
        admin_id=admin.id,
        title=title,
        message=message,
        target_audience=target_audience,
        priority=priority,
        scheduled_at=scheduled_at,
        status=AnnouncementStatus.SCHEDULED.value if scheduled_at and scheduled_at > now
        else AnnouncementStatus.DRAFT.value
    )
    db.session.add(announcement)
    db.session.flush()
    if announcement.status == AnnouncementStatus.DRAFT:
        publish(announcement)
    return announcement


def publish(announcement):
    announcement.status = AnnouncementStatus.PUBLISHED.value
    return notifications.announcement_published(announcement)


def publish_due(now=None):
    """Publish scheduled announcements whose time has come. Returns how many were published."""
    now = now or datetime.utcnow()
    due = Announcement.query.filter(
        Announcement.status == AnnouncementStatus.SCHEDULED.value,
        Announcement.scheduled_at <= now
    ).all()
    for announcement in due:
        publish(announcement)
    return len(due)


def visible_to(role=None):
    query = Announcement.query.filter_by(status=AnnouncementStatus.PUBLISHED.value)
    if role and role != Role.ADMIN:
        query = query.filter(Announcement.target_audience.in_([Audience.ALL.value, role]))
    return query.order_by(Announcement.created_at.desc()).all()
