from models import db
from models.base import BaseModel, utcnow

CATEGORIES = (
    'general-inquiry', 'collaboration', 'research-proposal', 'media-inquiry',
    'technical-support', 'partnership', 'career-opportunity', 'student-inquiry',
    'event-inquiry', 'other'
)
PRIORITIES = ('low', 'medium', 'high', 'urgent')
CONTACT_STATUSES = ('new', 'in-progress', 'resolved', 'closed')
SOURCES = ('website', 'api', 'admin')


class Contact(BaseModel):
    __tablename__ = 'contacts'

    contact_id = db.Column(db.String(20), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30))
    organization = db.Column(db.String(100))
    subject = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(2000), nullable=False)
    category = db.Column(db.String(30), nullable=False)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    status = db.Column(db.String(20), nullable=False, default='new', index=True)
    assigned_to = db.Column(db.String(20), db.ForeignKey('users.user_id'))

    response_message = db.Column(db.String(2000))
    responded_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    responded_at = db.Column(db.DateTime)

    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(500))
    source = db.Column(db.String(20), nullable=False, default='website')
    referrer = db.Column(db.String(500))

    tags = db.Column(db.JSON, default=list)
    is_spam = db.Column(db.Boolean, nullable=False, default=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def respond(self, message, admin_id):
        self.response_message = message
        self.responded_by = admin_id
        self.responded_at = utcnow()
        self.status = 'resolved'
