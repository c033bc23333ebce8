"""
Marshmallow schemas for API serialization.
Converts SQLAlchemy models to JSON-safe dictionaries.
"""
from marshmallow import Schema, fields, validate

from teamspace.models.subscription import PlanTier


# ── Shared helpers ──────────────────────────────────────────

class BaseSchema(Schema):
    """Base schema with common config."""
    class Meta:
        ordered = True


def _enum_value(attr):
    def getter(obj):
        value = getattr(obj, attr, None)
        return value.value if value is not None else None
    return getter


# ── Billing ─────────────────────────────────────────────────

class SubscriptionSchema(BaseSchema):
    """Stored subscription with its premium evaluation."""
    provider = fields.Function(_enum_value('provider'))
    external_subscription_id = fields.Str()
    plan_tier = fields.Function(_enum_value('plan_tier'))
    effective_tier = fields.Function(_enum_value('effective_tier'))
    status = fields.Function(_enum_value('status'))
    is_active_premium = fields.Bool(dump_only=True)
    current_period_start = fields.DateTime(format='iso')
    current_period_end = fields.DateTime(format='iso')
    cancel_at_period_end = fields.Bool()
    canceled_at = fields.DateTime(format='iso')
    ended_at = fields.DateTime(format='iso')


class CheckoutRequestSchema(BaseSchema):
    """Body of the checkout endpoints."""
    tier = fields.Str(
        load_default=PlanTier.PRO.value,
        validate=validate.OneOf([t.value for t in PlanTier if t != PlanTier.FREE]),
    )


# ── User ────────────────────────────────────────────────────

class UserMinimalSchema(BaseSchema):
    """Minimal user representation (for nested references)."""
    id = fields.Str(dump_only=True)
    name = fields.Str()
    display_name = fields.Str(dump_only=True)


class UserSchema(BaseSchema):
    """Full user representation (for /me endpoint)."""
    id = fields.Str(dump_only=True)
    email = fields.Email()
    name = fields.Str()
    is_active = fields.Bool()
    is_premium = fields.Bool(dump_only=True)
    plan = fields.Str(attribute='current_plan', dump_only=True)
    subscription = fields.Nested(SubscriptionSchema, dump_only=True, allow_none=True)
    created_at = fields.DateTime(format='iso')


# ── Projects ────────────────────────────────────────────────

class ProjectSchema(BaseSchema):
    """Project representation."""
    id = fields.Str(dump_only=True)
    name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    description = fields.Str(allow_none=True)
    enabled = fields.Bool(dump_only=True)
    owner = fields.Nested(UserMinimalSchema, dump_only=True)
    created_at = fields.DateTime(format='iso', dump_only=True)


class TaskSchema(BaseSchema):
    """Kanban task representation."""
    id = fields.Str(dump_only=True)
    title = fields.Str()
    description = fields.Str(allow_none=True)
    status = fields.Function(_enum_value('status'))
    priority = fields.Function(_enum_value('priority'))
    position = fields.Int()
    assignee = fields.Nested(UserMinimalSchema, allow_none=True)
    due_date = fields.Date()
    done_at = fields.DateTime(format='iso')
    created_at = fields.DateTime(format='iso')


# ── AI ──────────────────────────────────────────────────────

class TaskDescriptionRequestSchema(BaseSchema):
    project_id = fields.Str(required=True)
    title = fields.Str(required=True, validate=validate.Length(min=1))
    current_checklist = fields.List(fields.Str(), load_default=list)


class ChatSummaryRequestSchema(BaseSchema):
    messages = fields.List(fields.Dict(), required=True)
    channel_name = fields.Str(load_default=None, allow_none=True)
    start_date = fields.Str(load_default=None, allow_none=True)
    end_date = fields.Str(load_default=None, allow_none=True)


class AgentRequestSchema(BaseSchema):
    project_id = fields.Str(required=True)
    message = fields.Str(required=True, validate=validate.Length(min=1, max=4000))
    history = fields.List(fields.Dict(), load_default=list)


# ── Invitations ─────────────────────────────────────────────

class InvitationRequestSchema(BaseSchema):
    """Body of the send-invitation endpoint."""
    role = fields.Str(required=True, validate=validate.OneOf(['Admin', 'Collaborator', 'Viewer']))
    invite_type = fields.Str(load_default='email', validate=validate.OneOf(['email', 'link']))
    invitee_email = fields.Email(load_default=None, allow_none=True)


class InvitationProjectSchema(BaseSchema):
    id = fields.Str(dump_only=True)
    name = fields.Str()
    description = fields.Str(allow_none=True)


class InvitationSchema(BaseSchema):
    """Invitation representation (token only shown to managers and link holders)."""
    id = fields.Int(dump_only=True)
    project = fields.Nested(InvitationProjectSchema, dump_only=True)
    inviter = fields.Nested(UserMinimalSchema, dump_only=True, allow_none=True)
    invitee_email = fields.Str(allow_none=True)
    role = fields.Function(_enum_value('role'))
    invite_type = fields.Function(_enum_value('invite_type'))
    status = fields.Function(_enum_value('status'))
    token = fields.Str(dump_only=True)
    created_at = fields.DateTime(format='iso')
    expires_at = fields.DateTime(format='iso')


class MembershipSchema(BaseSchema):
    project_id = fields.Str()
    user_id = fields.Str()
    role = fields.Function(_enum_value('role'))
    joined_at = fields.DateTime(format='iso')
