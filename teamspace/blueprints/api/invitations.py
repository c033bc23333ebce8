"""
API Routes: project invitations.
"""
from flask import request
from marshmallow import ValidationError

from teamspace.blueprints.api import api_bp
from teamspace.blueprints.api.decorators import jwt_required
from teamspace.blueprints.api.helpers import api_error, api_success, json_body
from teamspace.blueprints.api.routes import get_member_project
from teamspace.blueprints.api.schemas import InvitationRequestSchema, InvitationSchema, MembershipSchema
from teamspace.extensions import db, limiter
from teamspace.models.invitation import ProjectInvitation, InvitationStatus
from teamspace.models.project import MANAGER_ROLES
from teamspace.services import entitlements, invitation_service
from teamspace.services.invitation_service import InvitationError


def _invitation_error(e: InvitationError):
    return api_error(e.code, e.message, e.status_code, details=e.details)


@api_bp.route('/projects/<project_id>/invitations', methods=['POST'])
@jwt_required
@limiter.limit('20 per minute')
def api_send_invitation(project_id):
    """Invite someone to a project by email or shareable link (Owner/Admin only)."""
    project, _, error = get_member_project(project_id, request.api_user)
    if error:
        return error

    try:
        data = InvitationRequestSchema().load(json_body())
    except ValidationError as err:
        return api_error('validation_error', 'Invalid invitation data.', 400, details=err.messages)

    try:
        invitation = invitation_service.send_invitation(
            project, request.api_user,
            role=data['role'],
            invite_type=data['invite_type'],
            invitee_email=data['invitee_email'],
        )
    except InvitationError as e:
        return _invitation_error(e)

    payload = InvitationSchema().dump(invitation)
    payload['link'] = invitation_service.invitation_link(invitation)
    return api_success(payload, 201)


@api_bp.route('/projects/<project_id>/invitations', methods=['GET'])
@jwt_required
def api_list_invitations(project_id):
    """Pending invitations of a project (Owner/Admin only)."""
    project, membership, error = get_member_project(project_id, request.api_user)
    if error:
        return error
    if membership.role not in MANAGER_ROLES:
        return api_error('forbidden', 'Only owners and admins can see invitations.', 403)

    invitations = project.invitations.filter_by(status=InvitationStatus.PENDING) \
        .order_by(ProjectInvitation.created_at.desc()).all()
    return api_success(InvitationSchema(many=True).dump(invitations))


@api_bp.route('/projects/<project_id>/invitations/<int:invitation_id>', methods=['DELETE'])
@jwt_required
def api_revoke_invitation(project_id, invitation_id):
    invitation = db.session.get(ProjectInvitation, invitation_id)
    if invitation is None or invitation.project_id != project_id:
        return api_error('not_found', 'Invitation not found.', 404)
    try:
        invitation_service.revoke_invitation(invitation, request.api_user)
    except InvitationError as e:
        return _invitation_error(e)
    return api_success(InvitationSchema().dump(invitation))


@api_bp.route('/invitations/validate', methods=['POST'])
@jwt_required
def api_validate_invitation():
    """Check, before inviting, whether the project can take another member."""
    project_id = json_body().get('project_id')
    if not project_id:
        return api_error('validation_error', 'project_id is required.', 400)

    project, _, error = get_member_project(project_id, request.api_user)
    if error:
        return error
    return api_success(entitlements.can_add_member(project))


@api_bp.route('/invitations/resolve', methods=['POST'])
@limiter.limit('30 per minute')
def api_resolve_invitation():
    """Public lookup of an invitation by token (for the invitation landing page)."""
    try:
        invitation = invitation_service.resolve_invitation(json_body().get('token'))
    except InvitationError as e:
        return _invitation_error(e)

    payload = InvitationSchema(exclude=('token',)).dump(invitation)
    payload['is_expired'] = invitation.is_expired()
    return api_success(payload)


@api_bp.route('/invitations/accept', methods=['POST'])
@jwt_required
def api_accept_invitation():
    """Join the invitation's project as the current user."""
    token = json_body().get('token')
    if not token:
        return api_error('validation_error', 'token is required.', 400)

    try:
        membership = invitation_service.accept_invitation(token, request.api_user)
    except InvitationError as e:
        db.session.rollback()
        return _invitation_error(e)

    return api_success(MembershipSchema().dump(membership))
