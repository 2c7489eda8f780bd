from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import BaseEntity, UUIDPrimaryKeyMixin, AuditMixin
from .enums import MembershipRole


class Organization(BaseEntity, db.Model):
    """
    Multi-tenant root: Every tenant is an Organization.

    DESIGN:
    - Organizations are the tenant boundary
    - Every tenant-scoped table carries org_id (internal UUID)
    - external_id is the identity provider's organization id; it is only used
      to look the organization up once per request, never as a scoping key
    - Users reach organizations through Membership rows
    """
    __tablename__ = "organizations"
    __table_args__ = (
        db.UniqueConstraint("external_id", name="uq_organizations_external_id"),
    )

    external_id = db.Column(db.String(255), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), nullable=True, index=True)
    description = db.Column(db.String(1000), nullable=True)
    industry = db.Column(db.String(100), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    tax_id = db.Column(db.String(50), nullable=True)
    default_currency = db.Column(db.String(3), nullable=False, default="USD")
    time_zone = db.Column(db.String(64), nullable=False, default="UTC")
    settings = db.Column(db.Text, nullable=True)  # JSON object

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    has_completed_setup = db.Column(db.Boolean, nullable=False, default=False)
    setup_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    subscription = db.relationship(
        "Subscription",
        uselist=False,
        primaryjoin="and_(Organization.id == Subscription.org_id, Subscription.is_deleted == False)",  # noqa: E712
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def settings_dict(self) -> dict:
        if not self.settings:
            return {}
        try:
            value = json.loads(self.settings)
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}

    def to_dict(self) -> dict:
        sub = self.subscription
        return {
            "id": str(self.id),
            "external_id": self.external_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "industry": self.industry,
            "website": self.website,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "image_url": self.image_url,
            "tax_id": self.tax_id,
            "default_currency": self.default_currency,
            "time_zone": self.time_zone,
            "settings": self.settings_dict(),
            "is_active": self.is_active,
            "has_completed_setup": self.has_completed_setup,
            "setup_completed_at": to_utc_z(self.setup_completed_at),
            "limits": sub.limits_dict() if sub is not None else None,
            "plan_name": sub.plan_name if sub is not None else None,
            **self.audit_dict(),
        }


class Membership(UUIDPrimaryKeyMixin, AuditMixin, db.Model):
    """
    User <-> Organization link with a role.

    Join rows are audited but hard deleted.

    INVARIANT: at most one active membership per user. The active membership
    decides which tenant a token without an organization claim is scoped to.
    The partial unique index makes the invariant durable; the service layer
    switches memberships with deactivate-all-then-activate-one.
    """
    __tablename__ = "memberships"
    __table_args__ = (
        db.UniqueConstraint("user_id", "org_id", name="uq_memberships_user_org"),
        db.Index(
            "uq_memberships_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active = true"),
        ),
    )

    user_id = db.Column(
        db.Uuid, db.ForeignKey("application_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    org_id = db.Column(
        db.Uuid, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = db.Column(db.String(32), nullable=False, default=MembershipRole.USER.value)
    is_active = db.Column(db.Boolean, nullable=False, default=False)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("ApplicationUser", backref=db.backref("memberships", lazy=True))
    organization = db.relationship("Organization", backref=db.backref("memberships", lazy=True))

    def __repr__(self) -> str:
        return f"<Membership user_id={self.user_id} org_id={self.org_id} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "org_id": str(self.org_id),
            "organization_name": self.organization.name if self.organization else None,
            "role": self.role,
            "is_active": self.is_active,
            "joined_at": to_utc_z(self.joined_at),
        }
