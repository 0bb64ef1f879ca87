from models import db
from models.base import BaseModel, utcnow
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ('admin', 'researcher', 'faculty', 'student', 'visitor', 'employee')
# Roles a visitor may pick when signing up; admins and employees are created by an admin
SELF_REGISTER_ROLES = ('researcher', 'faculty', 'student', 'visitor')
APPROVAL_STATUSES = ('pending', 'approved', 'rejected')

PROFILE_FIELDS = (
    'bio', 'title', 'department', 'institution', 'research_interests',
    'website', 'linkedin', 'orcid'
)


class User(BaseModel):
    __tablename__ = 'users'
    __hidden_fields__ = ('password_hash',)

    user_id = db.Column(db.String(20), primary_key=True)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='visitor')

    # profile
    bio = db.Column(db.String(1000))
    title = db.Column(db.String(100))
    department = db.Column(db.String(100))
    institution = db.Column(db.String(100))
    research_interests = db.Column(db.JSON, default=list)
    avatar_file_id = db.Column(db.String(20))
    website = db.Column(db.String(255))
    linkedin = db.Column(db.String(255))
    orcid = db.Column(db.String(40))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    approval_status = db.Column(db.String(20), nullable=False, default='pending')
    approved_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    approval_date = db.Column(db.DateTime)
    rejection_reason = db.Column(db.String(500))
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    employee = db.relationship('Employee', back_populates='user', uselist=False,
                               foreign_keys='Employee.user_id',
                               cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        password = kwargs.pop('password', None)
        if kwargs.get('email'):
            kwargs['email'] = kwargs['email'].strip().lower()
        super().__init__(**kwargs)
        if password is not None:
            self.set_password(password)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def approve(self, admin_id):
        self.is_approved = True
        self.approval_status = 'approved'
        self.approved_by = admin_id
        self.approval_date = utcnow()
        self.rejection_reason = None

    def reject(self, admin_id, reason=None):
        self.is_approved = False
        self.approval_status = 'rejected'
        self.approved_by = admin_id
        self.approval_date = utcnow()
        self.rejection_reason = reason

    def to_dict(self):
        data = super().to_dict()
        data['full_name'] = self.full_name
        data['research_interests'] = self.research_interests or []
        return data

    def to_public_dict(self):
        """Fields safe to show in the public directory."""
        return {
            "user_id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "role": self.role,
            "title": self.title,
            "department": self.department,
            "institution": self.institution,
            "bio": self.bio,
            "research_interests": self.research_interests or [],
            "avatar_file_id": self.avatar_file_id,
            "website": self.website,
            "linkedin": self.linkedin,
            "orcid": self.orcid,
        }

    def __repr__(self):
        return f"<User {self.user_id} {self.email}>"
