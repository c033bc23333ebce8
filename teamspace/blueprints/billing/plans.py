"""
Plan limits configuration for TeamSpace SaaS billing.
Defines the Free, Starter, Pro and Enterprise constraints.
"""
from dataclasses import dataclass, field
from typing import Optional, List


@dataclass(frozen=True)
class PlanLimits:
    """Immutable plan limits definition."""
    max_enabled_projects: Optional[int]  # None = unlimited
    max_members_per_project: Optional[int]  # None = unlimited
    features: List[str] = field(default_factory=list)


PLAN_LIMITS = {
    'free': PlanLimits(
        max_enabled_projects=3,
        max_members_per_project=10,
    ),
    'starter': PlanLimits(
        max_enabled_projects=None,
        max_members_per_project=None,
    ),
    'pro': PlanLimits(
        max_enabled_projects=None,
        max_members_per_project=None,
        features=['ai'],
    ),
    'enterprise': PlanLimits(
        max_enabled_projects=None,
        max_members_per_project=None,
        features=['ai', 'project_insights'],
    ),
}


def get_plan_limits(plan_name: str) -> PlanLimits:
    """Get limits for a given plan name. Defaults to free."""
    return PLAN_LIMITS.get(plan_name, PLAN_LIMITS['free'])
