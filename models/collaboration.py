from models import db
from models.base import BaseModel, utcnow

COLLABORATION_TYPES = (
    'research_project', 'paper_collaboration', 'grant_application',
    'conference_presentation', 'workshop_organization', 'data_sharing',
    'methodology_development', 'other'
)
COLLABORATION_STATUSES = ('active', 'completed', 'paused', 'cancelled')
VISIBILITIES = ('public', 'institute', 'private')
MEMBER_ROLES = ('lead', 'co-lead', 'researcher', 'contributor', 'advisor')
MEMBER_STATUSES = ('pending', 'accepted', 'declined', 'removed')
MILESTONE_STATUSES = ('pending', 'in_progress', 'completed', 'overdue')
UPDATE_TYPES = ('progress', 'milestone', 'issue', 'announcement', 'general')


class Collaboration(BaseModel):
    __tablename__ = 'collaborations'

    collaboration_id = db.Column(db.String(20), primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(2000), nullable=False)
    type = db.Column(db.String(40), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active', index=True)
    initiator_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False, index=True)
    visibility = db.Column(db.String(20), nullable=False, default='institute')

    research_areas = db.Column(db.JSON, default=list)
    keywords = db.Column(db.JSON, default=list)
    tags = db.Column(db.JSON, default=list)

    start_date = db.Column(db.Date)
    expected_end_date = db.Column(db.Date)

    funding_required = db.Column(db.Boolean, nullable=False, default=False)
    funding_amount = db.Column(db.Float)
    funding_currency = db.Column(db.String(3), nullable=False, default='INR')
    funding_source = db.Column(db.String(200))
    # equipment, software and datasets lists
    resources = db.Column(db.JSON, default=dict)
    links = db.Column(db.JSON, default=list)

    views = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    initiator = db.relationship('User')
    members = db.relationship('CollaborationMember', back_populates='collaboration',
                              order_by='CollaborationMember.invited_at',
                              cascade='all, delete-orphan')
    milestones = db.relationship('CollaborationMilestone', back_populates='collaboration',
                                 order_by='CollaborationMilestone.created_at',
                                 cascade='all, delete-orphan')
    updates = db.relationship('CollaborationUpdate', back_populates='collaboration',
                              order_by='CollaborationUpdate.created_at.desc()',
                              cascade='all, delete-orphan')

    def member(self, user_id):
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_participant(self, user_id):
        """The initiator or a collaborator who accepted the invitation."""
        if self.initiator_id == user_id:
            return True
        member = self.member(user_id)
        return member is not None and member.status == 'accepted'

    def has_permission(self, user_id, permission):
        if self.initiator_id == user_id:
            return True
        member = self.member(user_id)
        if member is None or member.status != 'accepted':
            return False
        return member.can_manage or getattr(member, permission)

    def can_view(self, user):
        if self.visibility != 'private':
            return True
        if user is None:
            return False
        return user.role == 'admin' or self.initiator_id == user.user_id \
            or self.member(user.user_id) is not None

    def count_members(self, status):
        return sum(1 for m in self.members if m.status == status)

    @property
    def progress(self):
        if not self.milestones:
            return 0
        completed = sum(1 for m in self.milestones if m.status == 'completed')
        return round(completed / len(self.milestones) * 100)

    def to_dict(self, detail=False):
        data = super().to_dict()
        data.update({
            "collaborator_count": len(self.members),
            "active_collaborator_count": self.count_members('accepted'),
            "pending_invitations_count": self.count_members('pending'),
            "progress": self.progress,
        })
        if self.initiator is not None:
            data['initiator'] = {
                "user_id": self.initiator.user_id,
                "full_name": self.initiator.full_name,
                "institution": self.initiator.institution,
            }
        if detail:
            data['members'] = [m.to_dict() for m in self.members]
            data['milestones'] = [m.to_dict() for m in self.milestones]
            data['updates'] = [u.to_dict() for u in self.updates]
        return data


class CollaborationMember(BaseModel):
    __tablename__ = 'collaboration_members'
    __table_args__ = (db.UniqueConstraint('collaboration_id', 'user_id'),)

    member_id = db.Column(db.String(20), primary_key=True)
    collaboration_id = db.Column(db.String(20), db.ForeignKey('collaborations.collaboration_id'),
                                 nullable=False, index=True)
    user_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default='contributor')
    status = db.Column(db.String(20), nullable=False, default='pending')
    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_invite = db.Column(db.Boolean, nullable=False, default=False)
    can_manage = db.Column(db.Boolean, nullable=False, default=False)
    contribution = db.Column(db.String(500))
    invited_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    invited_at = db.Column(db.DateTime, default=utcnow)
    joined_at = db.Column(db.DateTime)

    collaboration = db.relationship('Collaboration', back_populates='members')
    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self):
        data = super().to_dict()
        data['full_name'] = self.user.full_name if self.user else None
        return data


class CollaborationMilestone(BaseModel):
    __tablename__ = 'collaboration_milestones'

    milestone_id = db.Column(db.String(20), primary_key=True)
    collaboration_id = db.Column(db.String(20), db.ForeignKey('collaborations.collaboration_id'),
                                 nullable=False, index=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    due_date = db.Column(db.Date)
    status = db.Column(db.String(20), nullable=False, default='pending')
    assigned_to = db.Column(db.JSON, default=list)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)

    collaboration = db.relationship('Collaboration', back_populates='milestones')

    def set_status(self, status):
        self.status = status
        self.completed_at = utcnow() if status == 'completed' else None


class CollaborationUpdate(BaseModel):
    __tablename__ = 'collaboration_updates'

    update_id = db.Column(db.String(20), primary_key=True)
    collaboration_id = db.Column(db.String(20), db.ForeignKey('collaborations.collaboration_id'),
                                 nullable=False, index=True)
    author_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), nullable=False)
    title = db.Column(db.String(150), nullable=False)
    content = db.Column(db.String(2000), nullable=False)
    type = db.Column(db.String(20), nullable=False, default='general')
    attachments = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=utcnow)

    collaboration = db.relationship('Collaboration', back_populates='updates')
    author = db.relationship('User')

    def to_dict(self):
        data = super().to_dict()
        data['author_name'] = self.author.full_name if self.author else None
        return data
