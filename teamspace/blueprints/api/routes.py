"""
API Routes: projects, tasks and plan limits.
"""
from flask import request, jsonify
from marshmallow import ValidationError
from sqlalchemy import desc

from teamspace.blueprints.api import api_bp
from teamspace.blueprints.api.decorators import jwt_required
from teamspace.blueprints.api.helpers import paginate_query, api_error, api_success, json_body
from teamspace.blueprints.api.schemas import ProjectSchema, TaskSchema
from teamspace.extensions import db
from teamspace.models.project import Project, ProjectMember, MemberRole, Task, TaskStatus
from teamspace.services import entitlements
from teamspace.services.entitlements import PlanLimitExceeded


def get_member_project(project_id, user):
    """Load a project the user belongs to. Returns (project, membership, error_response)."""
    project = db.session.get(Project, project_id)
    if project is None:
        return None, None, api_error('not_found', 'Project not found.', 404)

    membership = project.membership_for(user)
    if membership is None:
        return None, None, api_error('forbidden', 'You do not have access to this project.', 403)

    return project, membership, None


# ── Projects ────────────────────────────────────────────────

@api_bp.route('/projects', methods=['GET'])
@jwt_required
def api_list_projects():
    """List projects the current user is a member of.

    Query params:
        enabled (bool): Only enabled (true) or disabled (false) projects
        page, per_page: Pagination
    """
    user = request.api_user
    query = Project.query.join(ProjectMember).filter(ProjectMember.user_id == user.id)

    enabled = request.args.get('enabled')
    if enabled is not None:
        query = query.filter(Project.enabled.is_(enabled.lower() in ('1', 'true', 'yes')))

    query = query.order_by(desc(Project.created_at))
    return jsonify(paginate_query(query, ProjectSchema())), 200


@api_bp.route('/projects', methods=['POST'])
@jwt_required
def api_create_project():
    """Create a project owned by the current user (counts toward the plan limit)."""
    user = request.api_user
    try:
        data = ProjectSchema().load(json_body())
    except ValidationError as err:
        return api_error('validation_error', 'Invalid project data.', 400, details=err.messages)

    try:
        entitlements.check_project_limit(user)
    except PlanLimitExceeded as e:
        return api_error(
            'plan_limit_exceeded', str(e), 403,
            details={'limit': e.maximum, 'current': e.current},
        )

    project = Project(name=data['name'], description=data.get('description'), owner_id=user.id)
    db.session.add(project)
    db.session.flush()
    db.session.add(ProjectMember(project_id=project.id, user_id=user.id, role=MemberRole.OWNER))
    db.session.commit()

    return api_success(ProjectSchema().dump(project), 201)


@api_bp.route('/projects/<project_id>/tasks', methods=['GET'])
@jwt_required
def api_list_project_tasks(project_id):
    """List tasks of a project, ordered by Kanban position.

    Query params:
        status (str): todo, in-progress or done
        page, per_page: Pagination
    """
    project, _, error = get_member_project(project_id, request.api_user)
    if error:
        return error

    query = Task.query.filter_by(project_id=project.id)

    status = request.args.get('status')
    if status:
        try:
            query = query.filter(Task.status == TaskStatus(status))
        except ValueError:
            return api_error('invalid_filter', f'Invalid status: {status}', 422)

    query = query.order_by(Task.position, Task.created_at)
    return jsonify(paginate_query(query, TaskSchema(), default_per_page=50)), 200


# ── Plan limits ─────────────────────────────────────────────

@api_bp.route('/projects/limit', methods=['GET'])
@jwt_required
def api_projects_limit():
    """Check whether the current user can enable another project."""
    return api_success(entitlements.check_projects_limit(request.api_user))


@api_bp.route('/projects/limit', methods=['POST'])
@jwt_required
def api_disable_excess_projects():
    """Disable owned projects beyond the plan limit (oldest stay enabled)."""
    user = request.api_user
    disabled = entitlements.disable_excess_projects(user)
    data = entitlements.check_projects_limit(user)
    data['disabled_count'] = disabled
    return api_success(data)


@api_bp.route('/projects/<project_id>/members/limit', methods=['GET'])
@jwt_required
def api_members_limit(project_id):
    """Check whether a project can take another member."""
    project, _, error = get_member_project(project_id, request.api_user)
    if error:
        return error
    return api_success(entitlements.can_add_member(project))
