import random
import string
from models import db
from models.base import BaseModel, utcnow, serialize_value

FIELDS = {
    'computer_science': 'Computer Science',
    'engineering': 'Engineering',
    'mathematics': 'Mathematics',
    'physics': 'Physics',
    'chemistry': 'Chemistry',
    'biology': 'Biology',
    'medicine': 'Medicine',
    'social_sciences': 'Social Sciences',
    'economics': 'Economics',
    'psychology': 'Psychology',
    'education': 'Education',
    'environmental_science': 'Environmental Science',
    'other': 'Other',
}

RESEARCH_TYPES = (
    'original_research', 'review_article', 'case_study', 'technical_note',
    'survey', 'tutorial', 'position_paper', 'short_communication'
)

METHODOLOGIES = (
    'experimental', 'theoretical', 'computational', 'observational',
    'mixed_methods', 'qualitative', 'quantitative', 'systematic_review',
    'meta_analysis'
)

STATUSES = (
    'draft', 'submitted', 'under_review', 'revision_required',
    'revised_submitted', 'accepted', 'rejected', 'published', 'withdrawn'
)

# Statuses in which the author may still edit the paper
EDITABLE_STATUSES = ('draft', 'revision_required')

AUTHOR_ROLES = ('primary_author', 'co_author', 'corresponding_author', 'supervisor')
FILE_KINDS = ('manuscript', 'supplementary', 'figure')
REVIEWER_STATUSES = ('pending', 'accepted', 'declined', 'completed')

STEPS = ('basic_info', 'authors', 'manuscript', 'review', 'submit')


def generate_submission_id(now=None):
    now = now or utcnow()
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"ORII-{now.strftime('%Y%m%d')}-{suffix}"


class ResearchPaper(BaseModel):
    __tablename__ = 'research_papers'

    paper_id = db.Column(db.String(20), primary_key=True)
    submission_id = db.Column(db.String(20), unique=True, nullable=False)
    title = db.Column(db.String(300), nullable=False)
    abstract = db.Column(db.String(3000), nullable=False)
    keywords = db.Column(db.JSON, default=list)
    field = db.Column(db.String(40), nullable=False)
    subfield = db.Column(db.String(100))
    research_type = db.Column(db.String(40), nullable=False)
    methodology = db.Column(db.String(40))
    status = db.Column(db.String(30), nullable=False, default='draft', index=True)

    submitted_by = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False)
    submission_date = db.Column(db.DateTime)

    step_basic_info_at = db.Column(db.DateTime)
    step_authors_at = db.Column(db.DateTime)
    step_manuscript_at = db.Column(db.DateTime)
    step_review_at = db.Column(db.DateTime)
    step_submit_at = db.Column(db.DateTime)

    is_public = db.Column(db.Boolean, nullable=False, default=False)
    views = db.Column(db.Integer, nullable=False, default=0)
    downloads = db.Column(db.Integer, nullable=False, default=0)
    citations = db.Column(db.Integer, nullable=False, default=0)

    review_comments = db.Column(db.String(3000))
    reviewed_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    reviewed_at = db.Column(db.DateTime)

    journal = db.Column(db.String(200))
    doi = db.Column(db.String(100))
    published_date = db.Column(db.DateTime)

    is_moderated = db.Column(db.Boolean, nullable=False, default=False)
    moderated_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    moderated_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    submitter = db.relationship('User', foreign_keys=[submitted_by])
    authors = db.relationship('PaperAuthor', back_populates='paper', order_by='PaperAuthor.order',
                              cascade='all, delete-orphan')
    files = db.relationship('PaperFile', back_populates='paper', order_by='PaperFile.order',
                            cascade='all, delete-orphan')
    reviewers = db.relationship('PaperReviewer', back_populates='paper',
                                cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        kwargs.setdefault('submission_id', generate_submission_id())
        super().__init__(**kwargs)

    def mark_step(self, step):
        setattr(self, f'step_{step}_at', utcnow())

    def step_completed(self, step):
        return getattr(self, f'step_{step}_at') is not None

    @property
    def progress(self):
        return {
            step: {
                "completed": self.step_completed(step),
                "completed_at": serialize_value(getattr(self, f'step_{step}_at')),
            }
            for step in STEPS
        }

    @property
    def is_editable(self):
        return self.status in EDITABLE_STATUSES

    def files_of(self, kind):
        return [f for f in self.files if f.kind == kind]

    @property
    def current_manuscript(self):
        manuscripts = self.files_of('manuscript')
        if not manuscripts:
            return None
        return max(manuscripts, key=lambda f: f.version)

    def is_author(self, user_id):
        return any(a.user_id == user_id for a in self.authors)

    def is_reviewer(self, user_id):
        return any(r.reviewer_id == user_id for r in self.reviewers)

    def can_view(self, user):
        if self.status == 'published' and self.is_public:
            return True
        if user is None:
            return False
        return (user.role == 'admin' or self.submitted_by == user.user_id
                or self.is_author(user.user_id) or self.is_reviewer(user.user_id))

    def to_dict(self, detail=False):
        data = super().to_dict()
        for step in STEPS:
            data.pop(f'step_{step}_at', None)
        data['keywords'] = self.keywords or []
        data['field_label'] = FIELDS.get(self.field, self.field)
        data['progress'] = self.progress
        data['authors'] = [a.to_dict() for a in self.authors]
        if self.submitter is not None:
            data['submitter'] = {
                "user_id": self.submitter.user_id,
                "full_name": self.submitter.full_name,
            }
        if detail:
            data['files'] = [f.to_dict() for f in self.files]
            data['reviewers'] = [r.to_dict() for r in self.reviewers]
        return data


class PaperAuthor(BaseModel):
    __tablename__ = 'paper_authors'

    author_id = db.Column(db.String(20), primary_key=True)
    paper_id = db.Column(db.String(20), db.ForeignKey('research_papers.paper_id'), nullable=False)
    user_id = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120))
    affiliation = db.Column(db.String(200))
    role = db.Column(db.String(30), nullable=False, default='co_author')
    contribution = db.Column(db.String(500))
    is_corresponding = db.Column(db.Boolean, nullable=False, default=False)
    order = db.Column(db.Integer, nullable=False, default=1)

    paper = db.relationship('ResearchPaper', back_populates='authors')


class PaperFile(BaseModel):
    __tablename__ = 'paper_files'

    paper_file_id = db.Column(db.String(20), primary_key=True)
    paper_id = db.Column(db.String(20), db.ForeignKey('research_papers.paper_id'), nullable=False)
    file_id = db.Column(db.String(20), db.ForeignKey('stored_files.file_id'), nullable=False)
    kind = db.Column(db.String(20), nullable=False)
    original_name = db.Column(db.String(255))
    size = db.Column(db.Integer)
    description = db.Column(db.String(200))
    caption = db.Column(db.String(500))
    order = db.Column(db.Integer, nullable=False, default=1)
    version = db.Column(db.Integer, nullable=False, default=1)
    uploaded_at = db.Column(db.DateTime, default=utcnow)

    paper = db.relationship('ResearchPaper', back_populates='files')


class PaperReviewer(BaseModel):
    __tablename__ = 'paper_reviewers'
    __table_args__ = (db.UniqueConstraint('paper_id', 'reviewer_id'),)

    assignment_id = db.Column(db.String(20), primary_key=True)
    paper_id = db.Column(db.String(20), db.ForeignKey('research_papers.paper_id'), nullable=False)
    reviewer_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False)
    assigned_at = db.Column(db.DateTime, default=utcnow)
    due_date = db.Column(db.DateTime)
    status = db.Column(db.String(20), nullable=False, default='pending')

    paper = db.relationship('ResearchPaper', back_populates='reviewers')
    reviewer = db.relationship('User')
