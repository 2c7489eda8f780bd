from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import BaseEntity


class ApplicationUser(BaseEntity, db.Model):
    """
    Local mirror of an identity-provider user.

    Users are global (not tenant-scoped); they reach tenants via Membership.
    external_id is the provider's subject id and the idempotency key for
    webhook and token-driven sync.
    """
    __tablename__ = "application_users"
    __table_args__ = (
        db.UniqueConstraint("external_id", name="uq_application_users_external_id"),
    )

    external_id = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    username = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ApplicationUser id={self.id} email={self.email!r}>"

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "external_id": self.external_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "username": self.username,
            "phone": self.phone,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "last_seen_at": to_utc_z(self.last_seen_at),
            "created_at": to_utc_z(self.created_at),
        }
