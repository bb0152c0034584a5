from datetime import datetime
from bloodconnect.extensions import db
from bloodconnect.models.enums import AnnouncementPriority, AnnouncementStatus, Audience, values


class Announcement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    target_audience = db.Column(db.Enum(*values(Audience), name='audience'), nullable=False,
                                default=Audience.ALL.value)
    priority = db.Column(db.Enum(*values(AnnouncementPriority), name='announcement_priority'), nullable=False,
                         default=AnnouncementPriority.NORMAL.value)
    status = db.Column(db.Enum(*values(AnnouncementStatus), name='announcement_status'), nullable=False,
                       default=AnnouncementStatus.DRAFT.value)
    scheduled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    admin = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'message': self.message,
            'target_audience': self.target_audience,
            'priority': self.priority,
            'status': self.status,
            'is_live': self.status == AnnouncementStatus.PUBLISHED,
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'admin_name': self.admin.name if self.admin else 'System',
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
