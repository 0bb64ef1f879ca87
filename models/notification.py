from models import db
from models.base import BaseModel, utcnow

NOTIFICATION_TYPES = (
    'event_reminder', 'event_registration', 'paper_submission',
    'paper_review_assigned', 'paper_status_update', 'user_registration',
    'profile_update', 'system_announcement', 'collaboration_invitation',
    'collaboration_response', 'collaboration_update', 'content_report', 'general'
)
PRIORITIES = ('low', 'medium', 'high', 'urgent')


class Notification(BaseModel):
    __tablename__ = 'notifications'

    notification_id = db.Column(db.String(20), primary_key=True)
    recipient_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False, index=True)
    sender_id = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    type = db.Column(db.String(30), nullable=False, default='general')
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(1000), nullable=False)
    data = db.Column(db.JSON, default=dict)
    entity_type = db.Column(db.String(30))
    entity_id = db.Column(db.String(20))
    priority = db.Column(db.String(10), nullable=False, default='medium')
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = utcnow()
