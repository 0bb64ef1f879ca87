from datetime import timedelta
from models import db
from models.base import BaseModel, utcnow

JOB_TYPES = ('full-time', 'part-time', 'contract', 'internship', 'freelance')
EXPERIENCE_LEVELS = ('entry-level', 'mid-level', 'senior-level', 'executive')
APPLICATION_STATUSES = (
    'Applied', 'Under Review', 'Shortlisted', 'Interview Scheduled', 'Rejected', 'Hired'
)
EXPERIENCE_TYPES = ('Fresher', 'Experienced')


def default_deadline():
    return utcnow() + timedelta(days=30)


class Job(BaseModel):
    __tablename__ = 'jobs'

    job_id = db.Column(db.String(20), primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    department = db.Column(db.String(100), nullable=False)
    location = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    experience = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text, nullable=False)
    requirements = db.Column(db.JSON, default=list)
    responsibilities = db.Column(db.JSON, default=list)
    skills = db.Column(db.JSON, default=list)

    salary_min = db.Column(db.Float)
    salary_max = db.Column(db.Float)
    salary_currency = db.Column(db.String(3), nullable=False, default='INR')
    salary_negotiable = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    application_deadline = db.Column(db.DateTime, nullable=False, default=default_deadline)
    posted_by = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False)
    applications_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    applications = db.relationship('JobApplication', back_populates='job',
                                   cascade='all, delete-orphan')

    @property
    def is_open(self):
        return self.is_active and self.application_deadline >= utcnow()

    def to_dict(self):
        data = super().to_dict()
        data['is_open'] = self.is_open
        return data


class JobApplication(BaseModel):
    __tablename__ = 'job_applications'
    __table_args__ = (db.UniqueConstraint('job_id', 'email', name='uq_application_job_email'),)

    application_id = db.Column(db.String(20), primary_key=True)
    job_id = db.Column(db.String(20), db.ForeignKey('jobs.job_id'), nullable=False, index=True)
    full_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30), nullable=False)
    address = db.Column(db.JSON, default=dict)

    experience_type = db.Column(db.String(20), nullable=False)
    experience_years = db.Column(db.Integer, nullable=False, default=0)
    previous_roles = db.Column(db.JSON, default=list)
    education = db.Column(db.JSON, default=list)
    skills = db.Column(db.JSON, default=list)
    languages = db.Column(db.JSON, default=list)

    resume_file_id = db.Column(db.String(20), db.ForeignKey('stored_files.file_id'))
    cover_letter = db.Column(db.String(2000))
    expected_salary = db.Column(db.Float)
    salary_currency = db.Column(db.String(3), nullable=False, default='INR')
    notice_period = db.Column(db.String(50))
    willing_to_relocate = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(30), nullable=False, default='Applied')
    review_notes = db.Column(db.JSON, default=list)
    application_date = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    job = db.relationship('Job', back_populates='applications')

    def add_note(self, note, author_id):
        self.review_notes = list(self.review_notes or []) + [{
            "note": note,
            "added_by": author_id,
            "added_at": utcnow().isoformat(),
        }]

    def to_dict(self):
        data = super().to_dict()
        if self.job is not None:
            data['job'] = {"job_id": self.job.job_id, "title": self.job.title,
                           "department": self.job.department}
        return data
