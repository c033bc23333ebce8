"""
Project invitations: issue, resolve and accept.

Member limits follow the project owner's plan and are checked both when an
invitation is issued and when it is accepted, since other invitations may
have filled the project in between.
"""
from typing import Optional

from flask import current_app

from teamspace.extensions import db
from teamspace.models.invitation import (
    ProjectInvitation, InvitationStatus, InviteType, INVITABLE_ROLES,
)
from teamspace.models.project import Project, ProjectMember, MemberRole, MANAGER_ROLES
from teamspace.models.user import User
from teamspace.services import entitlements


class InvitationError(Exception):
    """Invitation failure surfaced to API callers."""

    def __init__(self, code: str, message: str, status_code: int = 400, details: Optional[dict] = None):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


def _require_member_slot(project: Project) -> dict:
    check = entitlements.can_add_member(project)
    if not check['can_add']:
        raise InvitationError(
            'plan_limit_exceeded', check['reason'], 403,
            details={'limit': check['limit'], 'current': check['current_count']},
        )
    return check


def invitation_link(invitation: ProjectInvitation) -> str:
    return f"{current_app.config['APP_URL']}/invitations/{invitation.token}"


def send_invitation(project: Project, inviter: User, role: str,
                    invite_type: str = InviteType.EMAIL.value,
                    invitee_email: Optional[str] = None) -> ProjectInvitation:
    """Create a pending invitation to a project.

    Args:
        project: Target project
        inviter: Owner or Admin of the project
        role: Admin, Collaborator or Viewer
        invite_type: 'email' (bound to invitee_email) or 'link'
        invitee_email: Required for email invitations

    Returns:
        The persisted ProjectInvitation

    Raises:
        InvitationError: Not a manager, invalid payload, already a member
            or member limit reached
    """
    if project.role_of(inviter) not in MANAGER_ROLES:
        raise InvitationError('forbidden', 'Only owners and admins can invite members.', 403)

    try:
        member_role = MemberRole(role)
        kind = InviteType(invite_type)
    except ValueError:
        raise InvitationError('validation_error', 'Invalid role or invite type.')
    if member_role not in INVITABLE_ROLES:
        raise InvitationError('validation_error', f'Role {member_role.value} cannot be granted by invitation.')

    email = (invitee_email or '').strip().lower() or None
    if kind == InviteType.EMAIL:
        if not email:
            raise InvitationError('validation_error', 'invitee_email is required for email invitations.')
        existing = User.query.filter_by(email=email).first()
        if existing is not None and project.membership_for(existing) is not None:
            raise InvitationError('already_member', 'This user is already a member of the project.', 409)

    _require_member_slot(project)

    invitation = ProjectInvitation(
        project_id=project.id,
        inviter_id=inviter.id,
        invitee_email=email if kind == InviteType.EMAIL else None,
        role=member_role,
        invite_type=kind,
        ttl_days=current_app.config.get('INVITATION_TTL_DAYS', 7),
    )
    db.session.add(invitation)
    db.session.commit()

    current_app.logger.info(
        f'Invitation {invitation.id} ({kind.value}, {member_role.value}) issued for project {project.id} '
        f'by user {inviter.id}'
    )
    return invitation


def resolve_invitation(token: str) -> ProjectInvitation:
    """Look up an invitation by token.

    Raises:
        InvitationError: Unknown token (404)
    """
    invitation = ProjectInvitation.get_by_token(token) if token else None
    if invitation is None:
        raise InvitationError('not_found', 'Invitation not found.', 404)
    return invitation


def accept_invitation(token: str, user: User) -> ProjectMember:
    """Add the user to the invitation's project.

    Accepting again as an existing member is a no-op that returns the
    current membership.

    Raises:
        InvitationError: Unknown, expired, already used, addressed to another
            email, or member limit reached
    """
    invitation = resolve_invitation(token)
    project = invitation.project

    membership = project.membership_for(user)
    if membership is not None:
        return membership

    if not invitation.is_pending:
        raise InvitationError('invitation_used', 'This invitation is no longer valid.', 409)
    if invitation.is_expired():
        raise InvitationError('invitation_expired', 'This invitation has expired.', 410)
    if invitation.invite_type == InviteType.EMAIL and invitation.invitee_email != user.email.lower():
        raise InvitationError('forbidden', 'This invitation was sent to another email address.', 403)

    _require_member_slot(project)

    membership = ProjectMember(project_id=project.id, user_id=user.id, role=invitation.role)
    db.session.add(membership)
    # Link invitations stay open for other users
    if invitation.invite_type == InviteType.EMAIL:
        invitation.accept(user)
    db.session.commit()

    current_app.logger.info(f'User {user.id} joined project {project.id} as {invitation.role.value}')
    return membership


def revoke_invitation(invitation: ProjectInvitation, user: User) -> None:
    if invitation.project.role_of(user) not in MANAGER_ROLES:
        raise InvitationError('forbidden', 'Only owners and admins can revoke invitations.', 403)
    invitation.status = InvitationStatus.REVOKED
    db.session.commit()
