from models import db
from models.base import BaseModel, utcnow

REPORT_TYPES = ('user', 'research_paper', 'event')
REASONS = (
    'spam', 'harassment', 'inappropriate_content', 'copyright_violation',
    'fake_information', 'offensive_language', 'privacy_violation', 'other'
)
REPORT_STATUSES = ('pending', 'reviewed', 'resolved', 'dismissed')
PRIORITIES = ('low', 'medium', 'high', 'critical')

HIGH_PRIORITY_REASONS = ('harassment', 'offensive_language', 'privacy_violation')


def priority_for(reason):
    if reason in HIGH_PRIORITY_REASONS:
        return 'high'
    if reason == 'spam':
        return 'low'
    return 'medium'


class Report(BaseModel):
    """A user's complaint about a member, paper or event, queued for moderators."""
    __tablename__ = 'reports'
    __table_args__ = (db.UniqueConstraint('type', 'target_id', 'reported_by'),)

    report_id = db.Column(db.String(20), primary_key=True)
    type = db.Column(db.String(20), nullable=False)
    target_id = db.Column(db.String(20), nullable=False, index=True)
    reported_by = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False, index=True)
    reason = db.Column(db.String(30), nullable=False)
    description = db.Column(db.String(1000))
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    moderator_notes = db.Column(db.String(1000))
    reviewed_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    reviewed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    reporter = db.relationship('User', foreign_keys=[reported_by])
    reviewer = db.relationship('User', foreign_keys=[reviewed_by])

    def review(self, moderator_id, status, notes=None):
        self.status = status
        if notes is not None:
            self.moderator_notes = notes
        self.reviewed_by = moderator_id
        self.reviewed_at = utcnow()

    def to_dict(self):
        data = super().to_dict()
        if self.reporter is not None:
            data['reporter'] = {"user_id": self.reporter.user_id, "full_name": self.reporter.full_name,
                                "email": self.reporter.email}
        if self.reviewer is not None:
            data['reviewer'] = {"user_id": self.reviewer.user_id, "full_name": self.reviewer.full_name}
        return data
