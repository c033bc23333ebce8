# =============================================================================
# TeamSpace - Pytest Fixtures Configuration
# =============================================================================

import uuid
from datetime import datetime, timedelta

import pytest

from teamspace import create_app
from teamspace.blueprints.api.decorators import create_access_token
from teamspace.extensions import db
from teamspace.models.user import User
from teamspace.models.subscription import (
    Subscription, SubscriptionStatus, PlanTier, BillingProvider,
)
from teamspace.models.project import Project, ProjectMember, MemberRole


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture(scope='function')
def app():
    """Create and configure test application with SQLite in-memory database."""
    application = create_app('testing')

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Test client for HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """CLI test runner."""
    return app.test_cli_runner()


# =============================================================================
# Helpers
# =============================================================================

def make_user(email, name=None, **kwargs):
    """Persist a user with a UUID id (the identity provider's subject)."""
    user = User(id=str(uuid.uuid4()), email=email, name=name, **kwargs)
    db.session.add(user)
    db.session.commit()
    user_id = user.id
    db.session.expire_all()
    return db.session.get(User, user_id)


def make_subscription(user, provider=BillingProvider.MERCADOPAGO, status=SubscriptionStatus.ACTIVE,
                      plan_tier=PlanTier.PRO, external_id='preapproval-123', **kwargs):
    subscription = Subscription(
        user_id=user.id,
        provider=provider,
        external_subscription_id=external_id,
        plan_tier=plan_tier,
        status=status,
        current_period_start=kwargs.pop('current_period_start', datetime.utcnow() - timedelta(days=5)),
        current_period_end=kwargs.pop('current_period_end', datetime.utcnow() + timedelta(days=25)),
        **kwargs,
    )
    db.session.add(subscription)
    db.session.commit()
    return subscription


def make_project(owner, name='Project', role=MemberRole.OWNER, **kwargs):
    """Create a project with its owner membership."""
    project = Project(name=name, owner_id=owner.id, **kwargs)
    db.session.add(project)
    db.session.flush()
    db.session.add(ProjectMember(project_id=project.id, user_id=owner.id, role=role))
    db.session.commit()
    return project


def add_member(project, user, role=MemberRole.COLLABORATOR):
    db.session.add(ProjectMember(project_id=project.id, user_id=user.id, role=role))
    db.session.commit()


def auth_header(user, **claims):
    """Helper: build Authorization header with a freshly minted token."""
    return {'Authorization': f'Bearer {create_access_token(user.id, **claims)}'}


# =============================================================================
# User Fixtures
# =============================================================================

@pytest.fixture
def user(app):
    """A free-plan user."""
    return make_user('ana@example.com', name='Ana')


@pytest.fixture
def other_user(app):
    return make_user('bruno@example.com', name='Bruno')


@pytest.fixture
def pro_user(app):
    """A user with an active Mercado Pago Pro subscription."""
    user = make_user('pro@example.com', name='Pro User')
    make_subscription(user, plan_tier=PlanTier.PRO, external_id='preapproval-pro',
                      provider_plan_id='mp_plan_pro_monthly')
    return db.session.get(User, user.id)


@pytest.fixture
def enterprise_user(app):
    """A user with an active Stripe Enterprise subscription."""
    user = make_user('ent@example.com', name='Enterprise User', stripe_customer_id='cus_enterprise')
    make_subscription(user, provider=BillingProvider.STRIPE, plan_tier=PlanTier.ENTERPRISE,
                      external_id='sub_enterprise', provider_plan_id='price_test_enterprise')
    return db.session.get(User, user.id)


# =============================================================================
# Project Fixtures
# =============================================================================

@pytest.fixture
def project(app, user):
    """A project owned by the free user."""
    return make_project(user, name='Website relaunch', description='New marketing site')
