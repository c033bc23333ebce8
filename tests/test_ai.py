# =============================================================================
# TeamSpace - AI Assistant Tests (service helpers and /api/ia routes)
# =============================================================================

from datetime import datetime, timedelta
from unittest.mock import patch, MagicMock

import pytest
import requests

from teamspace.extensions import db
from teamspace.models.project import Task, TaskStatus, Resource, ResourceType, MemberRole
from teamspace.services import ai_service
from teamspace.services.ai_service import ResourceAnalysisError
from teamspace.services.gemini_client import GeminiError
from tests.conftest import auth_header, make_project, add_member

GENERATE = 'teamspace.services.gemini_client.generate_content'


def add_task(project, title, status=TaskStatus.TODO, **kwargs):
    task = Task(project_id=project.id, title=title, status=status, **kwargs)
    db.session.add(task)
    db.session.commit()
    return task


# =============================================================================
# Service helpers
# =============================================================================

class TestParseJsonResponse:

    def test_plain_json(self):
        assert ai_service.parse_json_response('{"a": 1}') == {'a': 1}

    def test_fenced_json(self):
        assert ai_service.parse_json_response('```json\n["x", "y"]\n```') == ['x', 'y']

    def test_not_json(self):
        assert ai_service.parse_json_response('Just some prose') is None
        assert ai_service.parse_json_response('') is None


class TestProjectStatistics:

    def test_counts_and_durations(self, app, user, other_user):
        project = make_project(user, name='Stats')
        add_member(project, other_user, role=MemberRole.ADMIN)
        start = datetime(2026, 3, 1, 8, 0)
        add_task(project, 'A', TaskStatus.DONE, assignee_id=user.id,
                 created_at=start, done_at=start + timedelta(hours=2))
        add_task(project, 'B', TaskStatus.DONE, assignee_id=other_user.id,
                 created_at=start, done_at=start + timedelta(hours=6))
        add_task(project, 'C', TaskStatus.IN_PROGRESS, assignee_id=user.id)
        add_task(project, 'D')

        stats = ai_service.project_statistics(project)

        assert stats['total'] == 4
        assert stats['done'] == 2
        assert stats['in_progress'] == 1
        assert stats['todo'] == 1
        assert stats['progress'] == 50
        assert stats['avg_completion_hours'] == 4.0
        assert stats['median_completion_hours'] == 4.0
        assert stats['tasks_by_member'] == {
            'Ana': {'role': 'Owner', 'tasks': 2},
            'Bruno': {'role': 'Admin', 'tasks': 1},
        }

    def test_empty_project(self, app, project):
        stats = ai_service.project_statistics(project)
        assert stats['total'] == 0
        assert stats['progress'] == 0
        assert stats['avg_completion_hours'] == 0


class TestTaskHelpers:

    @patch(GENERATE)
    def test_description_from_fenced_json(self, mock_generate, app, project):
        mock_generate.return_value = '```json\n{"description": "Build it", "checklist": ["a", "b", "c"]}\n```'
        result = ai_service.generate_task_description(project, 'Landing page', ['a'])
        assert result['description'] == 'Build it'
        assert result['checklist'] == ['a', 'b', 'c']
        instructions = mock_generate.call_args.kwargs['system_instruction']
        assert 'Reply only in Spanish.' in instructions

    @patch(GENERATE)
    def test_description_from_prose(self, mock_generate, app, project):
        mock_generate.return_value = 'A plain description.'
        result = ai_service.generate_task_description(project, 'Landing page')
        assert result == {'description': 'A plain description.', 'checklist': [], 'raw': 'A plain description.'}

    @patch(GENERATE)
    def test_suggestions_fallback_skips_existing(self, mock_generate, app, project):
        add_task(project, 'Write copy')
        mock_generate.return_value = '1. Write copy\n2. Design hero\n- Set up analytics\n'
        assert ai_service.suggest_tasks(project) == ['Design hero', 'Set up analytics']


def download_response(chunks, headers=None):
    response = MagicMock(headers=headers or {})
    response.iter_content.return_value = chunks
    response.__enter__.return_value = response
    return response


class TestAnalyzeResource:

    def _resource(self, project, type_=ResourceType.FILE):
        resource = Resource(project_id=project.id, type=type_, title='Brief.pdf',
                            url='https://files.test/brief.pdf', mime_type='application/pdf')
        db.session.add(resource)
        db.session.commit()
        return resource

    def test_link_is_rejected(self, app, project):
        with pytest.raises(ResourceAnalysisError) as exc_info:
            ai_service.analyze_resource(self._resource(project, ResourceType.LINK))
        assert exc_info.value.status_code == 400

    @patch('teamspace.services.ai_service.requests.get')
    def test_download_failure(self, mock_get, app, project):
        mock_get.side_effect = requests.ConnectionError('refused')
        with pytest.raises(ResourceAnalysisError) as exc_info:
            ai_service.analyze_resource(self._resource(project))
        assert exc_info.value.status_code == 500

    @patch('teamspace.services.ai_service.requests.get')
    def test_declared_length_too_large(self, mock_get, app, project):
        app.config['AI_MAX_DOCUMENT_BYTES'] = 4
        response = download_response([b'12345'], headers={'Content-Length': '5'})
        mock_get.return_value = response

        with pytest.raises(ResourceAnalysisError) as exc_info:
            ai_service.analyze_resource(self._resource(project))

        assert exc_info.value.status_code == 413
        response.iter_content.assert_not_called()
        assert mock_get.call_args.kwargs['stream'] is True

    @patch('teamspace.services.ai_service.requests.get')
    def test_stops_reading_past_limit(self, mock_get, app, project):
        app.config['AI_MAX_DOCUMENT_BYTES'] = 4
        chunks = iter([b'123', b'45', b'never read'])
        mock_get.return_value = download_response(chunks)

        with pytest.raises(ResourceAnalysisError) as exc_info:
            ai_service.analyze_resource(self._resource(project))

        assert exc_info.value.status_code == 413
        assert next(chunks) == b'never read'

    @patch(GENERATE)
    @patch('teamspace.services.ai_service.requests.get')
    def test_sends_inline_file(self, mock_get, mock_generate, app, project):
        mock_get.return_value = download_response(
            [b'%P', b'DF'], headers={'Content-Type': 'application/pdf; charset=binary'},
        )
        mock_generate.return_value = '**Summary**'

        assert ai_service.analyze_resource(self._resource(project)) == '**Summary**'
        first_part = mock_generate.call_args.args[0][0]
        assert first_part['file']['file_data'] == 'data:application/pdf;base64,JVBERg=='


# =============================================================================
# Routes
# =============================================================================

class TestAiRoutes:

    def test_free_plan_is_rejected(self, client, user, project):
        resp = client.post('/api/ia/task/description', json={'project_id': project.id, 'title': 'X'},
                           headers=auth_header(user))
        assert resp.status_code == 403
        assert resp.get_json()['error']['code'] == 'plan_required'

    def test_requires_token(self, client):
        assert client.post('/api/ia/chat/summary', json={'messages': []}).status_code == 401

    @patch(GENERATE)
    def test_task_description(self, mock_generate, client, pro_user):
        project = make_project(pro_user, name='Pro project')
        mock_generate.return_value = '{"description": "Do it", "checklist": ["one", "two", "three"]}'

        resp = client.post('/api/ia/task/description', json={'project_id': project.id, 'title': 'Launch'},
                           headers=auth_header(pro_user))

        assert resp.status_code == 200
        assert resp.get_json()['data']['checklist'] == ['one', 'two', 'three']

    def test_task_description_requires_membership(self, client, pro_user, project):
        resp = client.post('/api/ia/task/description', json={'project_id': project.id, 'title': 'Launch'},
                           headers=auth_header(pro_user))
        assert resp.status_code == 403

    def test_task_description_validation(self, client, pro_user):
        resp = client.post('/api/ia/task/description', json={'title': ''}, headers=auth_header(pro_user))
        assert resp.status_code == 400

    def test_chat_summary_requires_messages(self, client, pro_user):
        resp = client.post('/api/ia/chat/summary', json={'channel_name': 'general'}, headers=auth_header(pro_user))
        assert resp.status_code == 400
        assert resp.get_json()['error']['message'] == 'Messages array is required.'

    @patch(GENERATE)
    def test_chat_summary(self, mock_generate, client, pro_user):
        mock_generate.return_value = '## Summary'
        resp = client.post('/api/ia/chat/summary', json={
            'messages': [{'content': 'Ship Friday', 'user': {'name': 'Ana'}, 'created_at': '2026-03-01T10:00'}],
            'channel_name': 'general',
        }, headers=auth_header(pro_user))
        assert resp.status_code == 200
        assert resp.get_json()['data'] == {'summary': '## Summary'}
        assert '[2026-03-01T10:00] Ana: Ship Friday' in mock_generate.call_args.args[0][0]

    @patch(GENERATE)
    def test_rate_limit_passes_through(self, mock_generate, client, pro_user):
        mock_generate.side_effect = GeminiError('quota', status_code=429)
        resp = client.post('/api/ia/chat/summary', json={'messages': [{'content': 'hi'}]},
                           headers=auth_header(pro_user))
        assert resp.status_code == 429
        assert resp.get_json()['error']['code'] == 'rate_limit_exceeded'

    @patch(GENERATE)
    def test_other_ai_failures_are_500(self, mock_generate, client, pro_user):
        mock_generate.side_effect = GeminiError('Empty response from model')
        resp = client.post('/api/ia/chat/summary', json={'messages': [{'content': 'hi'}]},
                           headers=auth_header(pro_user))
        assert resp.status_code == 500
        assert resp.get_json()['error']['code'] == 'ai_error'

    def test_suggestions_require_project_id(self, client, pro_user):
        resp = client.post('/api/ia/task/suggestions', json={}, headers=auth_header(pro_user))
        assert resp.status_code == 400

    def test_analyze_unknown_resource(self, client, pro_user):
        resp = client.post('/api/ia/resources/analyze', json={'resource_id': 'missing'},
                           headers=auth_header(pro_user))
        assert resp.status_code == 404


class TestProjectInsightsRoute:

    def test_requires_enterprise_owner(self, client, pro_user):
        project = make_project(pro_user, name='Pro project')
        resp = client.post('/api/ia/project/insights', json={'project_id': project.id},
                           headers=auth_header(pro_user))
        assert resp.status_code == 403
        assert resp.get_json()['error']['code'] == 'plan_required'

    def test_requires_manager_role(self, client, enterprise_user, user):
        project = make_project(enterprise_user, name='Enterprise project')
        add_member(project, user, role=MemberRole.COLLABORATOR)
        resp = client.post('/api/ia/project/insights', json={'project_id': project.id},
                           headers=auth_header(user))
        assert resp.status_code == 403
        assert resp.get_json()['error']['code'] == 'forbidden'

    @patch(GENERATE)
    def test_admin_of_enterprise_project(self, mock_generate, client, enterprise_user, user):
        project = make_project(enterprise_user, name='Enterprise project')
        add_member(project, user, role=MemberRole.ADMIN)
        add_task(project, 'Done task', TaskStatus.DONE)
        mock_generate.return_value = 'Healthy project.'

        resp = client.post('/api/ia/project/insights', json={'project_id': project.id},
                           headers=auth_header(user))

        assert resp.status_code == 200
        data = resp.get_json()['data']
        assert data['summary'] == 'Healthy project.'
        assert data['statistics']['total'] == 1
        assert data['statistics']['progress'] == 100

    def test_requires_project_id(self, client, enterprise_user):
        resp = client.post('/api/ia/project/insights', json={}, headers=auth_header(enterprise_user))
        assert resp.status_code == 400


class TestProjectAgent:

    def test_requires_ai_plan(self, client, user, project):
        resp = client.post('/api/ia/agent', json={'project_id': project.id, 'message': 'Hola'},
                           headers=auth_header(user))
        assert resp.status_code == 403
        assert resp.get_json()['error']['code'] == 'plan_required'

    def test_requires_project_and_message(self, client, pro_user):
        resp = client.post('/api/ia/agent', json={'message': 'Hola', 'history': []}, headers=auth_header(pro_user))
        assert resp.status_code == 400
        assert 'project_id' in resp.get_json()['error']['details']

    def test_requires_membership(self, client, pro_user, project):
        resp = client.post('/api/ia/agent', json={'project_id': project.id, 'message': 'Hola'},
                           headers=auth_header(pro_user))
        assert resp.status_code == 403

    @patch(GENERATE)
    def test_answers_with_project_context(self, mock_generate, client, pro_user, user):
        project = make_project(pro_user, name='Launch')
        add_member(project, user, role=MemberRole.VIEWER)
        add_task(project, 'Write copy', TaskStatus.DONE)
        add_task(project, 'Design hero', TaskStatus.IN_PROGRESS)
        db.session.add(Resource(project_id=project.id, type=ResourceType.LINK, title='Brand guide',
                                url='https://files.test/brand'))
        db.session.commit()
        mock_generate.return_value = 'You have one task in progress.'

        resp = client.post('/api/ia/agent', json={
            'project_id': project.id,
            'message': 'What is in progress?',
            'history': [{'role': 'user', 'content': 'Hi'}, {'role': 'assistant', 'content': 'Hello!'}],
        }, headers=auth_header(pro_user))

        assert resp.status_code == 200
        data = resp.get_json()['data']
        assert data['response'] == 'You have one task in progress.'
        assert data['used_context'] == {'task_count': 2, 'resource_count': 1, 'member_count': 2}

        context, question = mock_generate.call_args.args[0]
        assert 'STATUS: IN-PROGRESS\n- Design hero' in context
        assert 'ana@example.com (role: Viewer)' in context
        assert '[link] Brand guide' in context
        assert question == 'Current question from the user: What is in progress?'
        assert mock_generate.call_args.kwargs['history'][1] == {'role': 'assistant', 'content': 'Hello!'}

    @patch(GENERATE)
    def test_rate_limit_passes_through(self, mock_generate, client, pro_user):
        project = make_project(pro_user, name='Launch')
        mock_generate.side_effect = GeminiError('quota', status_code=429)
        resp = client.post('/api/ia/agent', json={'project_id': project.id, 'message': 'Hola'},
                           headers=auth_header(pro_user))
        assert resp.status_code == 429
