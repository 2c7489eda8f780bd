"""Tenant management CLI tests."""

import uuid

import pytest

from tenantory.models import Organization, Subscription


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_create_and_list(runner, db_session):
    result = runner.invoke(args=["tenants", "create", "--name", "Cli Co", "--external-id", "org_cli"])
    assert result.exit_code == 0
    assert "PASS Created organization: Cli Co" in result.output

    org = db_session.query(Organization).filter_by(external_id="org_cli").one()
    assert db_session.query(Subscription).filter_by(org_id=org.id).count() == 1

    listing = runner.invoke(args=["tenants", "list"])
    assert "Cli Co" in listing.output
    assert "Trial/Trial" in listing.output


def test_list_empty(runner, db_session):
    result = runner.invoke(args=["tenants", "list"])
    assert "No organizations found." in result.output


def test_usage(runner, db_session, org_a, owner_a):
    result = runner.invoke(args=["tenants", "usage", str(org_a.id)])
    assert result.exit_code == 0
    assert "Org A - Acme Corp (Trial, Trial)" in result.output
    assert "Users" in result.output


def test_usage_rejects_bad_id(runner, db_session):
    result = runner.invoke(args=["tenants", "usage", "not-a-uuid"])
    assert result.exit_code != 0
    assert "not a valid organization id" in result.output


def test_deactivate(runner, db_session, org_a):
    result = runner.invoke(args=["tenants", "deactivate", str(org_a.id)])
    assert "PASS Deactivated organization" in result.output
    db_session.refresh(org_a)
    assert org_a.is_active is False

    missing = runner.invoke(args=["tenants", "deactivate", str(uuid.uuid4())])
    assert "not found" in missing.output
