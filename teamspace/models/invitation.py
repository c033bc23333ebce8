"""
ProjectInvitation model - tracks invitations to join a project.
"""
from datetime import datetime, timedelta
import enum
import secrets

from teamspace.extensions import db
from teamspace.models.project import MemberRole


class InvitationStatus(str, enum.Enum):
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REVOKED = 'revoked'


class InviteType(str, enum.Enum):
    """Email invitations are bound to one address; link invitations are not."""
    EMAIL = 'email'
    LINK = 'link'


# Roles an invitation can grant (ownership is never transferred this way)
INVITABLE_ROLES = (MemberRole.ADMIN, MemberRole.COLLABORATOR, MemberRole.VIEWER)

DEFAULT_TTL_DAYS = 7


class ProjectInvitation(db.Model):
    """Invitation to join a project with a given role."""

    __tablename__ = 'project_invitations'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey('projects.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    inviter_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    invitee_email = db.Column(db.String(255), nullable=True, index=True)
    role = db.Column(
        db.Enum(MemberRole, name='invitationrole', values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=MemberRole.COLLABORATOR,
    )
    invite_type = db.Column(
        db.Enum(InviteType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=InviteType.EMAIL,
    )
    status = db.Column(
        db.Enum(InvitationStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=InvitationStatus.PENDING,
        index=True,
    )

    # Token carried by the invitation link
    token = db.Column(db.String(64), unique=True, index=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)
    accepted_by_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    project = db.relationship(
        'Project',
        backref=db.backref('invitations', cascade='all, delete-orphan', lazy='dynamic'),
    )
    inviter = db.relationship('User', foreign_keys=[inviter_id])

    def __init__(self, **kwargs):
        ttl_days = kwargs.pop('ttl_days', DEFAULT_TTL_DAYS)
        super().__init__(**kwargs)
        if not self.token:
            self.token = self.generate_token()
        if not self.expires_at:
            self.expires_at = datetime.utcnow() + timedelta(days=ttl_days)

    def __repr__(self):
        return f'<ProjectInvitation {self.id} project={self.project_id} status={self.status.value}>'

    @staticmethod
    def generate_token():
        return secrets.token_urlsafe(32)

    def is_expired(self, now=None):
        return (now or datetime.utcnow()) >= self.expires_at

    @property
    def is_pending(self):
        return self.status == InvitationStatus.PENDING

    def accept(self, user):
        self.status = InvitationStatus.ACCEPTED
        self.accepted_at = datetime.utcnow()
        self.accepted_by_id = user.id

    @classmethod
    def get_by_token(cls, token):
        return cls.query.filter_by(token=token).first()
