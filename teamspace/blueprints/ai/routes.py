"""
AI routes: task description, task suggestions, chat summary,
resource analysis, project agent and project insights.
"""
from flask import request, current_app
from marshmallow import ValidationError

from teamspace.blueprints.ai import ai_bp
from teamspace.blueprints.api.decorators import jwt_required, requires_feature
from teamspace.blueprints.api.helpers import api_error, api_success, json_body
from teamspace.blueprints.api.routes import get_member_project
from teamspace.blueprints.api.schemas import (
    TaskDescriptionRequestSchema, ChatSummaryRequestSchema, AgentRequestSchema,
)
from teamspace.extensions import db, limiter
from teamspace.models.project import Resource, MANAGER_ROLES
from teamspace.services import ai_service, entitlements
from teamspace.services.ai_service import ResourceAnalysisError
from teamspace.services.gemini_client import GeminiError


def _gemini_error(e: GeminiError, action: str):
    if e.is_rate_limited:
        return api_error('rate_limit_exceeded', 'AI rate limit exceeded. Try again later.', 429)
    current_app.logger.error(f'AI {action} failed: {e.message}')
    return api_error('ai_error', 'The AI service could not complete the request.', 500)


@ai_bp.route('/task/description', methods=['POST'])
@limiter.limit('20 per minute')
@jwt_required
@requires_feature('ai')
def task_description():
    """Generate a description and checklist for a task.

    Body: {"project_id": "...", "title": "...", "current_checklist": [...]}
    """
    try:
        data = TaskDescriptionRequestSchema().load(json_body())
    except ValidationError as err:
        return api_error('validation_error', 'Invalid request.', 400, details=err.messages)

    project, _, error = get_member_project(data['project_id'], request.api_user)
    if error:
        return error

    try:
        result = ai_service.generate_task_description(project, data['title'], data['current_checklist'])
    except GeminiError as e:
        return _gemini_error(e, 'task description')
    return api_success(result)


@ai_bp.route('/task/suggestions', methods=['POST'])
@limiter.limit('20 per minute')
@jwt_required
@requires_feature('ai')
def task_suggestions():
    """Suggest new tasks for a project. Body: {"project_id": "..."}"""
    project_id = json_body().get('project_id')
    if not project_id:
        return api_error('validation_error', 'project_id is required.', 400)

    project, _, error = get_member_project(project_id, request.api_user)
    if error:
        return error

    try:
        suggestions = ai_service.suggest_tasks(project)
    except GeminiError as e:
        return _gemini_error(e, 'task suggestions')
    return api_success({'suggestions': suggestions})


@ai_bp.route('/chat/summary', methods=['POST'])
@limiter.limit('20 per minute')
@jwt_required
@requires_feature('ai')
def chat_summary():
    """Summarize chat messages.

    Body: {"messages": [...], "channel_name": "...", "start_date": "...", "end_date": "..."}
    """
    try:
        data = ChatSummaryRequestSchema().load(json_body())
    except ValidationError as err:
        return api_error('validation_error', 'Messages array is required.', 400, details=err.messages)

    try:
        summary = ai_service.summarize_chat(
            data['messages'], data['channel_name'], data['start_date'], data['end_date'],
        )
    except GeminiError as e:
        return _gemini_error(e, 'chat summary')
    return api_success({'summary': summary})


@ai_bp.route('/resources/analyze', methods=['POST'])
@limiter.limit('10 per minute')
@jwt_required
@requires_feature('ai')
def analyze_resource():
    """Summarize a shared file. Body: {"resource_id": "..."}"""
    resource_id = json_body().get('resource_id')
    if not resource_id:
        return api_error('validation_error', 'resource_id is required.', 400)

    resource = db.session.get(Resource, resource_id)
    if resource is None:
        return api_error('not_found', 'Resource not found.', 404)

    _, _, error = get_member_project(resource.project_id, request.api_user)
    if error:
        return error

    try:
        summary = ai_service.analyze_resource(resource)
    except ResourceAnalysisError as e:
        return api_error('resource_error', e.message, e.status_code)
    except GeminiError as e:
        return _gemini_error(e, 'resource analysis')
    return api_success({'summary': summary})


@ai_bp.route('/project/insights', methods=['POST'])
@limiter.limit('10 per minute')
@jwt_required
def project_insights():
    """Project health narrative (Enterprise, Owner/Admin only). Body: {"project_id": "..."}"""
    project_id = json_body().get('project_id')
    if not project_id:
        return api_error('validation_error', 'project_id is required.', 400)

    project, membership, error = get_member_project(project_id, request.api_user)
    if error:
        return error

    if membership.role not in MANAGER_ROLES:
        return api_error('forbidden', 'Only project Owners or Admins can view insights.', 403)

    if not entitlements.has_feature(project.owner, 'project_insights'):
        return api_error('plan_required', 'Project insights are only available on the Enterprise plan.', 403)

    try:
        result = ai_service.project_insights(project)
    except GeminiError as e:
        return _gemini_error(e, 'project insights')
    return api_success(result)


@ai_bp.route('/agent', methods=['POST'])
@limiter.limit('20 per minute')
@jwt_required
@requires_feature('ai')
def project_agent():
    """Conversational assistant grounded on project data.

    Body: {"project_id": "...", "message": "...", "history": [{"role": "user"|"assistant", "content": "..."}]}
    """
    try:
        data = AgentRequestSchema().load(json_body())
    except ValidationError as err:
        return api_error('validation_error', 'project_id and message are required.', 400, details=err.messages)

    project, _, error = get_member_project(data['project_id'], request.api_user)
    if error:
        return error

    try:
        result = ai_service.ask_project_agent(project, data['message'], data['history'])
    except GeminiError as e:
        return _gemini_error(e, 'agent')
    return api_success(result)
