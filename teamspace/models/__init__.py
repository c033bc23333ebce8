"""
SQLAlchemy models for TeamSpace.
All models are imported here for easy access.
"""
from teamspace.models.user import User
from teamspace.models.subscription import (
    Subscription,
    SubscriptionStatus,
    PlanTier,
    BillingProvider,
    CANCELLABLE_STATUSES,
    PREMIUM_STATUSES,
)
from teamspace.models.project import (
    Project,
    ProjectMember,
    MemberRole,
    MANAGER_ROLES,
    Task,
    TaskStatus,
    TaskPriority,
    Resource,
    ResourceType,
)
from teamspace.models.invitation import (
    ProjectInvitation,
    InvitationStatus,
    InviteType,
    INVITABLE_ROLES,
)

__all__ = [
    'User',
    'Subscription', 'SubscriptionStatus', 'PlanTier', 'BillingProvider',
    'CANCELLABLE_STATUSES', 'PREMIUM_STATUSES',
    'Project', 'ProjectMember', 'MemberRole', 'MANAGER_ROLES',
    'Task', 'TaskStatus', 'TaskPriority', 'Resource', 'ResourceType',
    'ProjectInvitation', 'InvitationStatus', 'InviteType', 'INVITABLE_ROLES',
]
