"""
AI assistant features built on the Gemini client.

Each feature builds its prompt from project data, calls the model and
parses the reply. Replies that should be JSON are parsed leniently
(code fences stripped); unparseable replies are returned as raw text.
"""
import json
import logging
import re
import statistics
from typing import Any, List, Optional

import requests
from flask import current_app

from teamspace.models.project import Project, Resource, ResourceType, Task, TaskStatus
from teamspace.services import gemini_client
from teamspace.services.gemini_client import inline_data_part

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


class ResourceAnalysisError(Exception):
    """Raised when a resource cannot be analyzed."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _language() -> str:
    return current_app.config.get('AI_RESPONSE_LANGUAGE', 'Spanish')


def parse_json_response(text: str) -> Optional[Any]:
    """Parse a model reply as JSON, tolerating Markdown code fences."""
    if not text:
        return None
    cleaned = _FENCE_RE.sub('', text.strip()).strip()
    try:
        return json.loads(cleaned)
    except ValueError:
        return None


def _project_line(project: Project) -> str:
    return f'Project: {{name: {project.name}, description: {project.description or "no description"}}}'


# ============================================================
# TASKS
# ============================================================

def generate_task_description(project: Project, title: str, current_checklist=None) -> dict:
    """Generate a short description and a 3-5 item checklist for a task.

    Returns:
        Dict with description, checklist (list) and the raw model text
    """
    text = gemini_client.generate_content(
        [
            'Write a short description and a checklist for the following project task.',
            _project_line(project),
            f'Task title: {title}',
            f'Current checklist: {json.dumps(current_checklist or [], ensure_ascii=False)}. '
            'Do not repeat items already in the checklist.',
        ],
        system_instruction=[
            'You are a team assistant that writes short task descriptions and checklists.',
            'Reply exactly with this structure: {"description": "", "checklist": ["item1", "item2", "..."]}',
            f'Reply only in {_language()}.',
            'Do not add any text outside the requested structure. No code blocks or special formatting.',
            'The checklist must be relevant to the task and contain between 3 and 5 items.',
        ],
    )

    parsed = parse_json_response(text)
    if not isinstance(parsed, dict):
        return {'description': text.strip(), 'checklist': [], 'raw': text}

    checklist = parsed.get('checklist') or []
    return {
        'description': parsed.get('description') or parsed.get('descripcion') or '',
        'checklist': [str(item) for item in checklist if item],
        'raw': text,
    }


def suggest_tasks(project: Project) -> List[str]:
    """Suggest 3-5 new task titles that do not duplicate existing tasks."""
    current_tasks = [task.title for task in project.tasks]
    text = gemini_client.generate_content(
        [
            'Suggest a list of relevant tasks for the following project.',
            _project_line(project),
            f'Current tasks: {json.dumps(current_tasks, ensure_ascii=False)}. Do not repeat existing tasks.',
        ],
        system_instruction=[
            'You are a team assistant that suggests tasks for a project.',
            f'Reply only in {_language()}.',
            'Each task must be a short title.',
            'Return a JSON array of strings, with no text outside the array and no code blocks.',
            'Suggest between 3 and 5 tasks, avoiding duplicates.',
        ],
    )

    parsed = parse_json_response(text)
    if isinstance(parsed, list):
        return [str(item).strip() for item in parsed if str(item).strip()]

    # Fallback: one suggestion per non-empty line
    lines = (line.strip().lstrip('-*0123456789. ').strip() for line in text.splitlines())
    existing = {title.lower() for title in current_tasks}
    return [line for line in lines if line and line.lower() not in existing]


# ============================================================
# CHAT
# ============================================================

def _format_message(message: dict) -> str:
    sender = (message.get('user') or {}).get('name') or 'Unknown user'
    timestamp = message.get('created_at') or ''
    return f"[{timestamp}] {sender}: {message.get('content', '')}"


def summarize_chat(messages: List[dict], channel_name: Optional[str] = None,
                   start_date: Optional[str] = None, end_date: Optional[str] = None) -> str:
    """Summarize chat messages as Markdown."""
    transcript = '\n'.join(_format_message(m) for m in messages if isinstance(m, dict))
    prompt = (
        f'Write a concise, structured summary of the chat "{channel_name or "general"}" '
        f'from {start_date or "the beginning"} to {end_date or "now"}.\n\n'
        f'Messages:\n{transcript}\n\n'
        'Instructions:\n'
        '1. Identify the main topics discussed.\n'
        '2. Highlight important decisions or assigned tasks.\n'
        '3. Keep a professional, objective tone.\n'
        '4. Say so if there is not enough relevant information.\n'
        '5. Format the answer in Markdown.'
    )
    return gemini_client.generate_content(
        [prompt],
        system_instruction=[
            'You are an assistant specialized in summarizing team conversations.',
            'Your summaries are clear, actionable and well organized.',
            f'Always reply in {_language()}.',
        ],
    )


# ============================================================
# RESOURCES
# ============================================================

def _download(resource: Resource):
    max_bytes = current_app.config.get('AI_MAX_DOCUMENT_BYTES', 20 * 1024 * 1024)
    try:
        with requests.get(resource.url, timeout=30, stream=True) as response:
            response.raise_for_status()

            declared = response.headers.get('Content-Length')
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise ResourceAnalysisError('File is too large to analyze', status_code=413)

            content = bytearray()
            for chunk in response.iter_content(chunk_size=64 * 1024):
                content.extend(chunk)
                if len(content) > max_bytes:
                    raise ResourceAnalysisError('File is too large to analyze', status_code=413)

            mime_type = response.headers.get('Content-Type') or resource.mime_type or 'application/pdf'
    except requests.RequestException as e:
        logger.error(f"Download of resource {resource.id} failed: {e}")
        raise ResourceAnalysisError('Failed to download file', status_code=500) from e

    return bytes(content), mime_type.split(';')[0].strip()


def analyze_resource(resource: Resource) -> str:
    """Download a file resource and ask the model for a Markdown summary."""
    if resource.type != ResourceType.FILE:
        raise ResourceAnalysisError('Only files can be analyzed')

    content, mime_type = _download(resource)
    return gemini_client.generate_content(
        [
            inline_data_part(content, mime_type),
            f'Analyze this file: "{resource.title}".\n\n'
            'Answer in Markdown with this structure:\n'
            '1. **Executive summary:** (2-3 sentences)\n'
            '2. **Key points:** (bullet list)\n'
            '3. **Conclusion / suggested actions:** (if any)\n\n'
            f'Keep a professional tone and reply in {_language()}.',
        ],
        system_instruction='You are an expert analyst. Read the attached file and write a concise, useful summary for the team.',
    )


# ============================================================
# PROJECT INSIGHTS
# ============================================================

def project_statistics(project: Project) -> dict:
    """Task statistics used to ground the insights narrative."""
    tasks = project.tasks.all()
    total = len(tasks)
    counts = {status.value: 0 for status in TaskStatus}
    for task in tasks:
        counts[task.status.value] += 1

    durations = [
        (task.done_at - task.created_at).total_seconds() / 3600
        for task in tasks
        if task.status == TaskStatus.DONE and task.done_at and task.created_at and task.done_at > task.created_at
    ]

    tasks_by_member = {}
    for membership in project.members:
        assigned = sum(1 for task in tasks if task.assignee_id == membership.user_id)
        tasks_by_member[membership.user.display_name] = {
            'role': membership.role.value,
            'tasks': assigned,
        }

    return {
        'total': total,
        'done': counts[TaskStatus.DONE.value],
        'in_progress': counts[TaskStatus.IN_PROGRESS.value],
        'todo': counts[TaskStatus.TODO.value],
        'progress': round(counts[TaskStatus.DONE.value] * 100 / total) if total else 0,
        'avg_completion_hours': round(statistics.mean(durations), 1) if durations else 0,
        'median_completion_hours': round(statistics.median(durations), 1) if durations else 0,
        'tasks_by_member': tasks_by_member,
    }


def project_insights(project: Project) -> dict:
    """Summarize project health and recommendations from task statistics."""
    stats = project_statistics(project)
    members = '\n'.join(
        f"- {name} ({info['role']}): {info['tasks']}"
        for name, info in stats['tasks_by_member'].items()
    ) or '- none'
    summary_text = (
        f'{_project_line(project)}\n\n'
        'Metrics:\n'
        f"- Total tasks: {stats['total']}\n"
        f"- Done: {stats['done']}\n"
        f"- In progress: {stats['in_progress']}\n"
        f"- To do: {stats['todo']}\n"
        f"- Progress: {stats['progress']}%\n"
        f"- Average completion time (hours): {stats['avg_completion_hours']}\n"
        f"- Median completion time (hours): {stats['median_completion_hours']}\n\n"
        f'Tasks per member:\n{members}\n'
    )

    summary = gemini_client.generate_content(
        [summary_text],
        system_instruction=(
            'You are a project analyst. Summarize the current state and give 3-5 actionable recommendations. '
            f'Reply in {_language()} with: 1) Current state (brief) 2) Risks/alerts 3) Recommendations (bullets).'
        ),
    )
    return {'summary': summary, 'statistics': stats}



# ============================================================
# PROJECT AGENT
# ============================================================

AGENT_TASK_LIMIT = 100
AGENT_RESOURCE_LIMIT = 30


def project_context(project: Project) -> dict:
    """Recent project data the agent answers from."""
    tasks = project.tasks.order_by(None).order_by(Task.created_at.desc()).limit(AGENT_TASK_LIMIT).all()
    resources = project.resources.order_by(Resource.created_at.desc()).limit(AGENT_RESOURCE_LIMIT).all()
    members = project.members.all()
    return {'tasks': tasks, 'resources': resources, 'members': members}


def _agent_context_text(project: Project, context: dict) -> str:
    members = '\n'.join(
        f'- {m.user.email} (role: {m.role.value})' for m in context['members']
    ) or '- none'
    resources = '\n'.join(
        f'- [{r.type.value}] {r.title} ({r.created_at:%Y-%m-%d})' for r in context['resources']
    ) or '- none'

    by_status = {}
    for task in context['tasks']:
        by_status.setdefault(task.status.value, []).append(task.title)
    tasks = '\n\n'.join(
        f'STATUS: {status.upper()}\n' + '\n'.join(f'- {title}' for title in titles)
        for status, titles in by_status.items()
    ) or 'No tasks yet.'

    return (
        f'{_project_line(project)}\n\n'
        f'Team members:\n{members}\n\n'
        f'Files and resources (latest {AGENT_RESOURCE_LIMIT}):\n{resources}\n\n'
        f'Tasks by status:\n{tasks}\n'
    )


def ask_project_agent(project: Project, message: str, history=None) -> dict:
    """Answer a question about the project, keeping the conversation thread.

    Args:
        project: Project the question is about
        message: Current user question
        history: Earlier turns as {"role": "user"|"assistant", "content": str}

    Returns:
        Dict with the reply and how much context was used
    """
    context = project_context(project)
    reply = gemini_client.generate_content(
        [_agent_context_text(project, context), f'Current question from the user: {message}'],
        system_instruction=[
            f'You are the AI assistant of the project "{project.name}".',
            'Answer questions about the state of the project, its tasks, members and files.',
            'Use only the project data provided. If something is not there, say you do not have that information.',
            'Be concise and direct. When you suggest tasks, use a clear list.',
            'Keep the thread of the conversation when the user refers to earlier messages.',
            f'Always reply in {_language()}.',
        ],
        history=history,
    )
    return {
        'response': reply,
        'used_context': {
            'task_count': len(context['tasks']),
            'resource_count': len(context['resources']),
            'member_count': len(context['members']),
        },
    }
