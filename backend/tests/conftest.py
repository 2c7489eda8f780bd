"""
Pytest fixtures for Tenantory backend tests.

Provides the test database, two tenants with an Owner each, and helpers to
mint bearer tokens the way the identity provider would (HS256 in tests).
"""

import time

import pytest
from flask import g
from jose import jwt

from tenantory import create_app
from tenantory.config import TestingConfig
from tenantory.extensions import db
from tenantory.models import ApplicationUser, Membership, Organization
from tenantory.models.enums import MembershipRole
from tenantory.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Request context from a previous test must not leak into this one
        for name in list(g):
            g.pop(name)

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_token(sub: str, org_id: str | None = None, **claims) -> str:
    """Sign a token with the test key. Extra keyword arguments become claims."""
    payload = {"sub": sub, "iat": int(time.time()), "exp": int(time.time()) + 3600}
    if org_id is not None:
        payload["org_id"] = org_id
    payload.update(claims)
    return jwt.encode(payload, TestingConfig.AUTH_JWT_KEY, algorithm="HS256")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def _make_org(session, external_id: str, name: str) -> Organization:
    org = Organization(external_id=external_id, name=name, slug=external_id, is_active=True)
    session.add(org)
    session.commit()
    return org


def _make_member(session, org: Organization, external_id: str, email: str, role: str) -> ApplicationUser:
    user = ApplicationUser(external_id=external_id, email=email, is_active=True)
    session.add(user)
    session.flush()
    session.add(Membership(user=user, org_id=org.id, role=role, is_active=True, joined_at=utcnow()))
    session.commit()
    return user


@pytest.fixture(scope='function')
def headers_for():
    """headers_for(sub, org_id=None, **claims) -> Authorization headers."""
    def build(sub: str, org_id: str | None = None, **claims) -> dict:
        return auth_headers(make_token(sub, org_id=org_id, **claims))
    return build


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    return _make_org(db_session, "org_acme", "Org A - Acme Corp")


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    return _make_org(db_session, "org_beta", "Org B - Beta Inc")


@pytest.fixture(scope='function')
def owner_a(db_session, org_a):
    """Owner of Organization A."""
    return _make_member(db_session, org_a, "user_owner_a", "owner@acme.com", MembershipRole.OWNER.value)


@pytest.fixture(scope='function')
def owner_b(db_session, org_b):
    """Owner of Organization B."""
    return _make_member(db_session, org_b, "user_owner_b", "owner@beta.com", MembershipRole.OWNER.value)


@pytest.fixture(scope='function')
def viewer_a(db_session, org_a):
    """Read-only member of Organization A."""
    return _make_member(db_session, org_a, "user_viewer_a", "viewer@acme.com", MembershipRole.VIEWER.value)


@pytest.fixture(scope='function')
def owner_a_headers(owner_a, org_a):
    return auth_headers(make_token(owner_a.external_id, org_id=org_a.external_id, email=owner_a.email))


@pytest.fixture(scope='function')
def owner_b_headers(owner_b, org_b):
    return auth_headers(make_token(owner_b.external_id, org_id=org_b.external_id, email=owner_b.email))


@pytest.fixture(scope='function')
def viewer_a_headers(viewer_a, org_a):
    return auth_headers(make_token(viewer_a.external_id, org_id=org_a.external_id, email=viewer_a.email))
