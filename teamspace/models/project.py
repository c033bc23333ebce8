"""
Project workspace models: projects, memberships, tasks and resources.
"""
import enum
import uuid
from datetime import datetime

from teamspace.extensions import db


def _uuid():
    return str(uuid.uuid4())


class MemberRole(str, enum.Enum):
    """Role of a user inside a project."""
    OWNER = 'Owner'
    ADMIN = 'Admin'
    COLLABORATOR = 'Collaborator'
    VIEWER = 'Viewer'


# Roles allowed to manage a project (insights, member management)
MANAGER_ROLES = (MemberRole.OWNER, MemberRole.ADMIN)


class TaskStatus(str, enum.Enum):
    """Kanban columns."""
    TODO = 'todo'
    IN_PROGRESS = 'in-progress'
    DONE = 'done'


class TaskPriority(str, enum.Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class ResourceType(str, enum.Enum):
    FILE = 'file'
    LINK = 'link'


class Project(db.Model):
    """A collaborative project owned by a user."""

    __tablename__ = 'projects'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    # Disabled projects are read-only once the owner exceeds the plan limit
    enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=datetime.utcnow)

    owner = db.relationship('User', backref=db.backref('owned_projects', lazy='dynamic'))
    members = db.relationship(
        'ProjectMember', back_populates='project',
        cascade='all, delete-orphan', lazy='dynamic',
    )
    tasks = db.relationship(
        'Task', back_populates='project',
        cascade='all, delete-orphan', lazy='dynamic',
        order_by='Task.position',
    )
    resources = db.relationship(
        'Resource', back_populates='project',
        cascade='all, delete-orphan', lazy='dynamic',
    )

    def __repr__(self):
        return f'<Project {self.name}>'

    def membership_for(self, user):
        """Return the ProjectMember row for a user, or None."""
        return self.members.filter_by(user_id=user.id).first()

    def role_of(self, user):
        membership = self.membership_for(user)
        return membership.role if membership else None


class ProjectMember(db.Model):
    """Membership of a user in a project."""

    __tablename__ = 'project_members'
    __table_args__ = (
        db.UniqueConstraint('project_id', 'user_id', name='uq_project_member'),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey('projects.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    role = db.Column(
        db.Enum(MemberRole, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=MemberRole.COLLABORATOR,
    )
    joined_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    project = db.relationship('Project', back_populates='members')
    user = db.relationship('User', backref=db.backref('memberships', lazy='dynamic'))

    def __repr__(self):
        return f'<ProjectMember {self.user_id} {self.role.value}>'


class Task(db.Model):
    """Kanban task inside a project."""

    __tablename__ = 'tasks'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey('projects.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.Enum(TaskStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TaskStatus.TODO,
    )
    priority = db.Column(
        db.Enum(TaskPriority, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TaskPriority.MEDIUM,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    assignee_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    done_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=datetime.utcnow)

    project = db.relationship('Project', back_populates='tasks')
    assignee = db.relationship('User')

    def __repr__(self):
        return f'<Task {self.title}>'


class Resource(db.Model):
    """A file or link shared in a project."""

    __tablename__ = 'resources'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey('projects.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    type = db.Column(
        db.Enum(ResourceType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    title = db.Column(db.String(255), nullable=False)
    url = db.Column(db.Text, nullable=False)
    mime_type = db.Column(db.String(120), nullable=True)
    size = db.Column(db.Integer, nullable=True)  # bytes
    uploaded_by_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    project = db.relationship('Project', back_populates='resources')

    def __repr__(self):
        return f'<Resource {self.type.value}:{self.title}>'
