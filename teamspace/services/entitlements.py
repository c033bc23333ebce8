"""
Plan entitlements: feature gates and project/member limits.

Limits follow the user's effective tier, which is free unless the
subscription currently grants premium access.
"""
from flask import current_app

from teamspace.blueprints.billing.plans import get_plan_limits, PlanLimits
from teamspace.extensions import db
from teamspace.models.project import Project, ProjectMember
from teamspace.models.user import User


class PlanLimitExceeded(Exception):
    """Raised when a user exceeds their plan limits."""

    def __init__(self, limit_name: str, current: int, maximum: int):
        self.limit_name = limit_name
        self.current = current
        self.maximum = maximum
        super().__init__(
            f"Plan limit reached: {limit_name} ({current}/{maximum})"
        )


class FeatureNotAvailable(Exception):
    """Raised when the user's plan does not include a feature."""

    def __init__(self, feature: str, plan: str):
        self.feature = feature
        self.plan = plan
        super().__init__(f"Feature '{feature}' is not included in the {plan} plan")


def effective_tier(user: User) -> str:
    return user.current_plan


def limits_for(user: User) -> PlanLimits:
    return get_plan_limits(effective_tier(user))


def has_feature(user: User, feature: str) -> bool:
    """Check whether the user's effective plan includes a feature."""
    return feature in limits_for(user).features


def require_feature(user: User, feature: str) -> None:
    """Raise FeatureNotAvailable unless the user's plan includes the feature."""
    if not has_feature(user, feature):
        raise FeatureNotAvailable(feature, effective_tier(user))


def _enabled_projects_query(user: User):
    return Project.query.filter_by(owner_id=user.id, enabled=True)


def check_projects_limit(user: User) -> dict:
    """Report whether the user can enable another project.

    Returns:
        Dict with can_enable, enabled_count, limit (None = unlimited), is_premium
    """
    limit = limits_for(user).max_enabled_projects
    enabled_count = _enabled_projects_query(user).count()
    return {
        'can_enable': limit is None or enabled_count < limit,
        'enabled_count': enabled_count,
        'limit': limit,
        'is_premium': user.is_premium,
    }


def check_project_limit(user: User) -> None:
    """Raise PlanLimitExceeded if the user cannot enable another project."""
    status = check_projects_limit(user)
    if not status['can_enable']:
        raise PlanLimitExceeded('enabled projects', status['enabled_count'], status['limit'])


def disable_excess_projects(user: User) -> int:
    """Disable enabled projects beyond the plan limit, keeping the oldest ones.

    Args:
        user: Project owner

    Returns:
        Number of projects disabled
    """
    limit = limits_for(user).max_enabled_projects
    if limit is None:
        return 0

    enabled = _enabled_projects_query(user).order_by(Project.created_at.asc(), Project.id.asc()).all()
    excess = enabled[limit:]
    for project in excess:
        project.enabled = False
    if excess:
        db.session.commit()
        current_app.logger.info(f'Disabled {len(excess)} project(s) over the limit for user {user.id}')
    return len(excess)


def can_add_member(project: Project) -> dict:
    """Check whether a project can take another member, based on its owner's plan."""
    limit = get_plan_limits(effective_tier(project.owner)).max_members_per_project
    current_count = ProjectMember.query.filter_by(project_id=project.id).count()

    if limit is None or current_count < limit:
        return {'can_add': True, 'reason': None, 'current_count': current_count, 'limit': limit}

    return {
        'can_add': False,
        'reason': f'The free plan allows up to {limit} members per project. Upgrade to add more.',
        'current_count': current_count,
        'limit': limit,
    }
